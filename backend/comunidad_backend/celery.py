import os
from pathlib import Path

from celery import Celery
from dotenv import load_dotenv

# Workers start without manage.py, so the .env lookup is repeated here.
backend_dir = Path(__file__).resolve().parent.parent
if (backend_dir / ".env").exists():
    load_dotenv(backend_dir / ".env")
else:
    load_dotenv(backend_dir.parent / ".env")

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "comunidad_backend.settings")

app = Celery("comunidad_backend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(["organizations"])
