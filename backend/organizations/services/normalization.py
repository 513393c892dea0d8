"""Normalización de organizaciones: schema v1 (embebido) -> v2 (normalizado).

Each organization is converted inside its own `transaction.atomic()` block:
either every Member/Document of the pass plus the organization's reference
lists are committed, or nothing is. Legacy JSON fields are never modified, so
`rollback_organization` fully restores the v1 read path.

`build_normalization_plan` holds every read/decision the conversion makes and
writes nothing; dry runs count from the plan, real runs persist it.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterator

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..models import Document, Member, Organization


logger = logging.getLogger(__name__)


# Strings up to this length are placeholders, not real Base64 images.
SIGNIFICANT_CONTENT_LENGTH = 100
DEFAULT_MIME_TYPE = "image/jpeg"
DEFAULT_BATCH_SIZE = 10
PROVISIONAL_BOARD_SLOTS = ("president", "secretary", "treasurer")

OUTCOME_MIGRATED = "migrated"
OUTCOME_ROLLED_BACK = "rolled_back"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ERROR = "error"

_DATA_URI_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+)[;,]", re.IGNORECASE)

# Legacy (camelCase) key -> Member field.
_MEMBER_OPTIONAL_FIELDS = {
    "primerNombre": "primer_nombre",
    "segundoNombre": "segundo_nombre",
    "apellidoPaterno": "apellido_paterno",
    "apellidoMaterno": "apellido_materno",
    "address": "address",
    "phone": "phone",
    "email": "email",
    "birthDate": "birth_date",
    "occupation": "occupation",
}


class NormalizationError(Exception):
    pass


class AlreadyNormalized(NormalizationError):
    pass


class NotNormalized(NormalizationError):
    pass


def is_significant(value: Any) -> bool:
    return isinstance(value, str) and len(value) > SIGNIFICANT_CONTENT_LENGTH


def sniff_mime_type(content: str) -> str:
    if content.startswith("data:image/png"):
        return "image/png"
    match = _DATA_URI_RE.match(content)
    return match.group(1).lower() if match else DEFAULT_MIME_TYPE


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _member_fields(entry: dict[str, Any], *, rut: str) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "rut": rut,
        "first_name": _text(entry.get("firstName")) or _text(entry.get("primerNombre")) or "Sin nombre",
        "last_name": _text(entry.get("lastName")) or _text(entry.get("apellidoPaterno")),
    }
    for source, target in _MEMBER_OPTIONAL_FIELDS.items():
        fields[target] = _text(entry.get(source))
    return fields


@dataclass
class PlannedDocument:
    doc_type: str
    content: str
    migrated_from: str
    original_path: str
    signer_role: str = ""
    signer_rut: str = ""
    signer_name: str = ""
    description: str = ""
    # Member attribute ("signature" / "certificate") that points back at this document.
    member_link: str = ""

    def build(self, organization: Organization, *, member: Member | None = None) -> Document:
        return Document(
            organization=organization,
            member=member,
            doc_type=self.doc_type,
            content=self.content,
            mime_type=sniff_mime_type(self.content),
            context=Document.Context.MIGRATION,
            signer_role=self.signer_role,
            signer_rut=self.signer_rut,
            signer_name=self.signer_name,
            description=self.description,
            migrated_from=self.migrated_from,
            original_path=self.original_path,
        )


@dataclass
class PlannedMember:
    fields: dict[str, Any]
    documents: list[PlannedDocument] = field(default_factory=list)


@dataclass
class NormalizationPlan:
    organization_id: int
    members: list[PlannedMember] = field(default_factory=list)
    # Documents owned by the organization itself (ministro, validation wizard).
    documents: list[PlannedDocument] = field(default_factory=list)
    anomalies: list[str] = field(default_factory=list)

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def document_count(self) -> int:
        return len(self.documents) + sum(len(m.documents) for m in self.members)


def build_normalization_plan(organization: Organization) -> NormalizationPlan:
    plan = NormalizationPlan(organization_id=organization.pk)
    stamp = int(time.time() * 1000)
    by_rut: dict[str, PlannedMember] = {}

    # 1. members[]
    for index, raw in enumerate(organization.members or []):
        entry = raw if isinstance(raw, dict) else {}
        rut = _text(entry.get("rut"))
        if rut and rut in by_rut:
            raise NormalizationError(f"RUT duplicado en members[{index}]: {rut}")

        role = _text(entry.get("role")) or Member.Role.MEMBER
        if role not in Member.Role.values:
            plan.anomalies.append(f"members[{index}]: rol desconocido '{role}', se usa 'member'")
            role = Member.Role.MEMBER

        fields = _member_fields(entry, rut=rut or f"temp-{stamp}-{index}")
        fields.update(
            role=role,
            is_founding_member=True,
            migrated_from=Member.MigratedFrom.MEMBERS,
            original_index=index,
        )
        planned = PlannedMember(fields=fields)
        signer_name = f"{fields['first_name']} {fields['last_name']}".strip()

        if is_significant(entry.get("signature")):
            planned.documents.append(
                PlannedDocument(
                    doc_type=Document.DocType.SIGNATURE,
                    content=entry["signature"],
                    migrated_from=Document.MigratedFrom.MEMBERS_SIGNATURE,
                    original_path=f"members[{index}].signature",
                    signer_role=role,
                    signer_rut=rut,
                    signer_name=signer_name,
                    member_link="signature",
                )
            )
        if is_significant(entry.get("certificate")):
            planned.documents.append(
                PlannedDocument(
                    doc_type=Document.DocType.CERTIFICATE,
                    content=entry["certificate"],
                    migrated_from=Document.MigratedFrom.MEMBERS_CERTIFICATE,
                    original_path=f"members[{index}].certificate",
                    signer_rut=rut,
                    signer_name=signer_name,
                    member_link="certificate",
                )
            )

        plan.members.append(planned)
        if rut:
            by_rut[rut] = planned

    # 2. electoralCommission[]: reuse a member with the same RUT instead of duplicating it.
    for index, raw in enumerate(organization.electoral_commission or []):
        entry = raw if isinstance(raw, dict) else {}
        rut = _text(entry.get("rut"))
        existing = by_rut.get(rut) if rut else None
        if existing is not None:
            existing.fields["is_electoral_commission"] = True
            continue

        fields = _member_fields(entry, rut=rut or f"ec-{stamp}-{index}")
        fields.update(
            role=Member.Role.ELECTORAL_COMMISSION,
            is_electoral_commission=True,
            migrated_from=Member.MigratedFrom.ELECTORAL_COMMISSION,
            original_index=index,
        )
        planned = PlannedMember(fields=fields)

        if is_significant(entry.get("signature")):
            planned.documents.append(
                PlannedDocument(
                    doc_type=Document.DocType.SIGNATURE,
                    content=entry["signature"],
                    migrated_from=Document.MigratedFrom.ELECTORAL_COMMISSION_SIGNATURE,
                    original_path=f"electoralCommission[{index}].signature",
                    signer_role=Member.Role.ELECTORAL_COMMISSION,
                    signer_rut=rut,
                    signer_name=f"{fields['first_name']} {fields['last_name']}".strip(),
                    member_link="signature",
                )
            )

        plan.members.append(planned)
        if rut:
            by_rut[rut] = planned

    # Provisional board seats are flags on already planned members.
    board = organization.provisional_directorio if isinstance(organization.provisional_directorio, dict) else {}
    for slot in PROVISIONAL_BOARD_SLOTS:
        entry = board.get(slot)
        if not isinstance(entry, dict) or not entry:
            continue
        rut = _text(entry.get("rut"))
        planned = by_rut.get(rut) if rut else None
        if planned is None:
            plan.anomalies.append(f"provisionalDirectorio.{slot}: no hay socio con RUT '{rut}'")
            continue
        planned.fields["is_provisional_board"] = True
        planned.fields["provisional_role"] = slot

    # 3. ministroSignature
    if is_significant(organization.ministro_signature):
        ministro = organization.ministro_data if isinstance(organization.ministro_data, dict) else {}
        plan.documents.append(
            PlannedDocument(
                doc_type=Document.DocType.MINISTRO_SIGNATURE,
                content=organization.ministro_signature,
                migrated_from=Document.MigratedFrom.MINISTRO_SIGNATURE,
                original_path="ministroSignature",
                signer_role="ministro",
                signer_rut=_text(ministro.get("rut")),
                signer_name=_text(ministro.get("name")),
            )
        )

    # 4. validationData.signatures
    validation = organization.validation_data if isinstance(organization.validation_data, dict) else {}
    signatures = validation.get("signatures") or {}
    if isinstance(signatures, dict):
        for key, value in signatures.items():
            if not is_significant(value):
                continue
            plan.documents.append(
                PlannedDocument(
                    doc_type=Document.DocType.SIGNATURE,
                    content=value,
                    migrated_from=Document.MigratedFrom.VALIDATION_DATA_SIGNATURES,
                    original_path=f"validationData.signatures.{key}",
                    description=str(key),
                )
            )

    return plan


@dataclass
class NormalizationResult:
    organization: Organization
    member_ids: list[int]
    document_ids: list[int]
    anomalies: list[str]


@dataclass
class RollbackResult:
    organization: Organization
    members_deleted: int
    documents_deleted: int


def _copy_normalization_state(source: Organization, target: Organization) -> None:
    for name in ("member_ids", "document_ids", "is_normalized", "normalized_at", "schema_version"):
        setattr(target, name, getattr(source, name))


def migrate_organization(organization: Organization) -> NormalizationResult:
    with transaction.atomic():
        org = Organization.objects.select_for_update().get(pk=organization.pk)
        if org.is_normalized:
            raise AlreadyNormalized(f"La organización {org.pk} ya está normalizada")

        plan = build_normalization_plan(org)
        member_ids: list[int] = []
        document_ids: list[int] = []

        for planned in plan.members:
            member = Member.objects.create(organization=org, **planned.fields)
            links: list[str] = []
            for planned_doc in planned.documents:
                document = planned_doc.build(org, member=member)
                document.save()
                document_ids.append(document.pk)
                setattr(member, planned_doc.member_link, document)
                links.append(planned_doc.member_link)
            if links:
                member.save(update_fields=[*links, "updated_at"])
            member_ids.append(member.pk)

        for planned_doc in plan.documents:
            document = planned_doc.build(org)
            document.save()
            document_ids.append(document.pk)

        org.member_ids = member_ids
        org.document_ids = document_ids
        org.is_normalized = True
        org.normalized_at = timezone.now()
        org.schema_version = Organization.SchemaVersion.NORMALIZED
        org.save(
            update_fields=["member_ids", "document_ids", "is_normalized", "normalized_at", "schema_version", "updated_at"]
        )

    _copy_normalization_state(org, organization)

    for anomaly in plan.anomalies:
        logger.warning("organization.normalize.anomaly", extra={"organization_id": org.pk, "anomaly": anomaly})
    logger.info(
        "organization.normalize.done",
        extra={"organization_id": org.pk, "members": len(member_ids), "documents": len(document_ids)},
    )
    return NormalizationResult(
        organization=organization,
        member_ids=member_ids,
        document_ids=document_ids,
        anomalies=plan.anomalies,
    )


def _rollback_targets(org: Organization):
    members = Member.objects.filter(organization=org, id__in=org.member_ids or [])
    documents = Document.objects.filter(organization=org, id__in=org.document_ids or [])
    return members, documents


def rollback_organization(organization: Organization) -> RollbackResult:
    with transaction.atomic():
        org = Organization.objects.select_for_update().get(pk=organization.pk)
        if not org.is_normalized:
            raise NotNormalized(f"La organización {org.pk} no está normalizada")

        members, documents = _rollback_targets(org)
        _, deleted = members.delete()
        members_deleted = deleted.get(Member._meta.label, 0)
        _, deleted = documents.delete()
        documents_deleted = deleted.get(Document._meta.label, 0)

        org.member_ids = []
        org.document_ids = []
        org.is_normalized = False
        org.normalized_at = None
        org.schema_version = Organization.SchemaVersion.LEGACY
        org.save(
            update_fields=["member_ids", "document_ids", "is_normalized", "normalized_at", "schema_version", "updated_at"]
        )

    _copy_normalization_state(org, organization)
    logger.info(
        "organization.rollback.done",
        extra={"organization_id": org.pk, "members": members_deleted, "documents": documents_deleted},
    )
    return RollbackResult(organization=organization, members_deleted=members_deleted, documents_deleted=documents_deleted)


@dataclass
class RecordOutcome:
    organization_id: int
    organization_name: str
    status: str
    members: int = 0
    documents: int = 0
    error: str = ""


@dataclass
class MigrationSummary:
    dry_run: bool = False
    rollback: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    total: int = 0
    processed: int = 0
    migrated: int = 0
    skipped: int = 0
    errors: int = 0
    members_created: int = 0
    documents_created: int = 0
    rolled_back: int = 0
    members_deleted: int = 0
    documents_deleted: int = 0
    outcomes: list[RecordOutcome] = field(default_factory=list)

    @property
    def failed_ids(self) -> list[int]:
        return [o.organization_id for o in self.outcomes if o.status == OUTCOME_ERROR]

    def counters(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "migrated": self.migrated,
            "skipped": self.skipped,
            "errors": self.errors,
            "members_created": self.members_created,
            "documents_created": self.documents_created,
            "rolled_back": self.rolled_back,
            "members_deleted": self.members_deleted,
            "documents_deleted": self.documents_deleted,
        }

    def as_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "rollback": self.rollback,
            "batch_size": self.batch_size,
            **self.counters(),
            "failed_ids": self.failed_ids,
            "outcomes": [asdict(o) for o in self.outcomes],
        }


def _resolve_batch_size(batch_size: int | None) -> int:
    size = int(batch_size or getattr(settings, "NORMALIZATION_BATCH_SIZE", DEFAULT_BATCH_SIZE) or DEFAULT_BATCH_SIZE)
    if size < 1:
        raise ValueError("batch_size debe ser mayor que 0")
    return size


def _iter_batches(queryset, size: int, echo: Callable[[str], None]) -> Iterator[Organization]:
    # Ids are fixed up front: migrated rows leave the eligible set while we iterate.
    ids = list(queryset.order_by("pk").values_list("pk", flat=True))
    for start in range(0, len(ids), size):
        chunk = ids[start:start + size]
        batch = list(Organization.objects.filter(pk__in=chunk).order_by("pk"))
        echo(f"Lote {start // size + 1} ({len(batch)} organizaciones)")
        yield from batch


def _display_name(org: Organization) -> str:
    return org.organization_name or str(org.pk)


def _noop(line: str) -> None:
    return None


def run_migration(
    *,
    dry_run: bool = False,
    batch_size: int | None = None,
    organization_id: int | None = None,
    echo: Callable[[str], None] | None = None,
) -> MigrationSummary:
    """Normalize every organization not yet marked `is_normalized`.

    Per-record failures are logged and counted; the run continues with the
    next organization. Re-running only touches records still unmigrated.
    """

    echo = echo or _noop
    summary = MigrationSummary(dry_run=dry_run, batch_size=_resolve_batch_size(batch_size))

    qs = Organization.objects.exclude(is_normalized=True)
    if organization_id is not None:
        qs = qs.filter(pk=organization_id)
    summary.total = qs.count()
    echo(f"Organizaciones a migrar: {summary.total}")

    for org in _iter_batches(qs, summary.batch_size, echo):
        summary.processed += 1
        name = _display_name(org)

        if org.is_normalized:
            summary.skipped += 1
            summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_SKIPPED))
            echo(f"  {name}: ya migrada, se omite")
            continue

        echo(
            f"  Migrando: {name} ({len(org.members or [])} miembros, "
            f"{len(org.electoral_commission or [])} comisión electoral)"
        )
        try:
            if dry_run:
                plan = build_normalization_plan(org)
                members, documents = plan.member_count, plan.document_count
                echo(f"    [DRY-RUN] Crearía {members} miembro(s) y {documents} documento(s)")
            else:
                result = migrate_organization(org)
                members, documents = len(result.member_ids), len(result.document_ids)
        except AlreadyNormalized:
            summary.skipped += 1
            summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_SKIPPED))
            echo(f"  {name}: ya migrada, se omite")
            continue
        except Exception as exc:
            summary.errors += 1
            summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_ERROR, error=str(exc)))
            logger.exception("organization.normalize.error", extra={"organization_id": org.pk})
            echo(f"  Error migrando {name}: {exc}")
            continue

        summary.migrated += 1
        summary.members_created += members
        summary.documents_created += documents
        summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_MIGRATED, members=members, documents=documents))
        echo(f"  {name}: migrada ({members} miembros, {documents} documentos)")

    logger.info("organization.normalize.run", extra={"dry_run": dry_run, **summary.counters()})
    return summary


def run_rollback(
    *,
    dry_run: bool = False,
    batch_size: int | None = None,
    organization_id: int | None = None,
    echo: Callable[[str], None] | None = None,
) -> MigrationSummary:
    echo = echo or _noop
    summary = MigrationSummary(dry_run=dry_run, rollback=True, batch_size=_resolve_batch_size(batch_size))

    qs = Organization.objects.filter(is_normalized=True)
    if organization_id is not None:
        qs = qs.filter(pk=organization_id)
    summary.total = qs.count()
    echo(f"Organizaciones a revertir: {summary.total}")

    for org in _iter_batches(qs, summary.batch_size, echo):
        summary.processed += 1
        name = _display_name(org)
        echo(f"  Revirtiendo: {name}")
        try:
            if dry_run:
                members_qs, documents_qs = _rollback_targets(org)
                members, documents = members_qs.count(), documents_qs.count()
                echo(f"    [DRY-RUN] Eliminaría {members} miembro(s) y {documents} documento(s)")
            else:
                result = rollback_organization(org)
                members, documents = result.members_deleted, result.documents_deleted
        except NotNormalized:
            summary.skipped += 1
            summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_SKIPPED))
            echo(f"  {name}: no está normalizada, se omite")
            continue
        except Exception as exc:
            summary.errors += 1
            summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_ERROR, error=str(exc)))
            logger.exception("organization.rollback.error", extra={"organization_id": org.pk})
            echo(f"  Error revirtiendo {name}: {exc}")
            continue

        summary.rolled_back += 1
        summary.members_deleted += members
        summary.documents_deleted += documents
        summary.outcomes.append(RecordOutcome(org.pk, name, OUTCOME_ROLLED_BACK, members=members, documents=documents))
        echo(f"  {name}: revertida")

    logger.info("organization.rollback.run", extra={"dry_run": dry_run, **summary.counters()})
    return summary
