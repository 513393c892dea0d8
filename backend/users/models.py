from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    ROLE_ADMIN = "ADMIN"
    ROLE_MUNICIPALIDAD = "MUNICIPALIDAD"
    ROLE_MINISTRO_FE = "MINISTRO_FE"
    ROLE_ORGANIZADOR = "ORGANIZADOR"
    ROLE_MIEMBRO = "MIEMBRO"

    ROLES = (
        (ROLE_ADMIN, "Administrador"),
        (ROLE_MUNICIPALIDAD, "Municipalidad"),
        (ROLE_MINISTRO_FE, "Ministro de Fe"),
        (ROLE_ORGANIZADOR, "Organizador"),
        (ROLE_MIEMBRO, "Miembro"),
    )

    ADMIN_ROLES = (ROLE_ADMIN, ROLE_MUNICIPALIDAD)

    role = models.CharField(max_length=20, choices=ROLES, default=ROLE_ORGANIZADOR)
    rut = models.CharField(max_length=20, blank=True, default="", verbose_name="RUT")
    email = models.EmailField(unique=True, blank=True, null=True, verbose_name="Correo electrónico")

    REQUIRED_FIELDS = ["email", "role"]

    def __str__(self) -> str:
        return f"{self.username} ({self.get_role_display()})"

    def save(self, *args, **kwargs):
        # Unique + nullable: blank emails are stored as NULL.
        if not self.email:
            self.email = None
        super().save(*args, **kwargs)

    @property
    def is_admin_role(self) -> bool:
        return self.role in self.ADMIN_ROLES
