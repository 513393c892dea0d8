from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, connection

from audit.models import AuditLog
from audit.services import log_system_event
from organizations.services.normalization import MigrationSummary, run_migration, run_rollback


class Command(BaseCommand):
    help = (
        "Migrates organizations from the embedded schema (v1) to the normalized schema (v2): "
        "creates Member/Document rows and stores their ids on the organization. "
        "Use --rollback to revert."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would change without saving.",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Organizations per batch (default: settings.NORMALIZATION_BATCH_SIZE).",
        )
        parser.add_argument(
            "--org-id",
            type=int,
            default=None,
            help="Only process this organization id.",
        )
        parser.add_argument(
            "--rollback",
            action="store_true",
            help="Delete the normalized Member/Document rows and mark organizations as v1 again.",
        )

    def handle(self, *args, **options):
        dry_run: bool = bool(options["dry_run"])
        rollback: bool = bool(options["rollback"])
        batch_size = options.get("batch_size")
        org_id = options.get("org_id")

        if batch_size is not None and batch_size < 1:
            raise CommandError("--batch-size debe ser mayor que 0.")

        try:
            connection.ensure_connection()
        except DatabaseError as exc:
            raise CommandError(f"No se pudo conectar a la base de datos: {exc}") from exc

        self.stdout.write("=" * 60)
        self.stdout.write("ROLLBACK DE NORMALIZACIÓN" if rollback else "MIGRACIÓN A ESQUEMA NORMALIZADO")
        self.stdout.write("=" * 60)
        if dry_run:
            self.stdout.write(self.style.WARNING("Modo DRY-RUN: no se guardarán cambios."))
        if org_id is not None:
            self.stdout.write(f"Organización: {org_id}")

        runner = run_rollback if rollback else run_migration
        summary = runner(dry_run=dry_run, batch_size=batch_size, organization_id=org_id, echo=self.stdout.write)

        self._print_summary(summary)

        if not dry_run and summary.processed:
            log_system_event(
                event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN,
                object_id=org_id or "",
                metadata={"source": "command", "rollback": rollback, **summary.counters()},
            )

        if summary.errors:
            raise CommandError(
                f"{summary.errors} organización(es) con errores: {summary.failed_ids}. "
                "Reintenta con --org-id para cada una.",
                returncode=1,
            )

    def _print_summary(self, summary: MigrationSummary) -> None:
        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write("ESTADÍSTICAS")
        self.stdout.write("=" * 60)
        self.stdout.write(f"Organizaciones procesadas: {summary.processed}")
        if summary.rollback:
            self.stdout.write(f"Revertidas: {summary.rolled_back}")
            self.stdout.write(f"Miembros eliminados: {summary.members_deleted}")
            self.stdout.write(f"Documentos eliminados: {summary.documents_deleted}")
        else:
            self.stdout.write(f"Migradas: {summary.migrated}")
            self.stdout.write(f"Omitidas (ya migradas): {summary.skipped}")
            self.stdout.write(f"Miembros creados: {summary.members_created}")
            self.stdout.write(f"Documentos creados: {summary.documents_created}")
        style = self.style.ERROR if summary.errors else self.style.SUCCESS
        self.stdout.write(style(f"Errores: {summary.errors}"))
        if summary.dry_run:
            self.stdout.write(self.style.WARNING("DRY-RUN: no se aplicaron cambios."))
