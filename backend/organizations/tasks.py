from __future__ import annotations

import logging

from celery import shared_task

from audit.models import AuditLog
from audit.services import log_system_event

from .services.normalization import run_migration, run_rollback


logger = logging.getLogger(__name__)


@shared_task
def run_normalization_job(
    *,
    dry_run: bool = False,
    batch_size: int | None = None,
    organization_id: int | None = None,
    rollback: bool = False,
) -> dict:
    runner = run_rollback if rollback else run_migration
    logger.info(
        "organization.normalize.job.start",
        extra={"dry_run": dry_run, "rollback": rollback, "organization_id": organization_id},
    )
    summary = runner(dry_run=dry_run, batch_size=batch_size, organization_id=organization_id)
    result = summary.as_dict()

    if not dry_run:
        log_system_event(
            event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN,
            object_id=str(organization_id or ""),
            metadata={"source": "celery", "rollback": rollback, **summary.counters()},
        )
    return result
