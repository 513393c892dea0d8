"""Format-agnostic reads over an Organization.

Callers (views, PDF generation, dashboards) must go through this module instead
of touching `members` / `member_ids` directly: the reader is picked from the
organization's schema version, so results stay correct before and after
normalization.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from ..models import Document, Member, Organization
from .document_stats import DocumentStats, legacy_document_stats, normalized_document_stats
from .normalization import PROVISIONAL_BOARD_SLOTS


logger = logging.getLogger(__name__)

MINISTRO_SIGNATURE_KEY = "ministro"


def member_payload(member: Member) -> dict[str, Any]:
    """Legacy-shaped (camelCase) view of a normalized Member."""

    return {
        "id": member.pk,
        "rut": member.rut,
        "firstName": member.first_name,
        "lastName": member.last_name,
        "primerNombre": member.primer_nombre,
        "segundoNombre": member.segundo_nombre,
        "apellidoPaterno": member.apellido_paterno,
        "apellidoMaterno": member.apellido_materno,
        "address": member.address,
        "phone": member.phone,
        "email": member.email,
        "birthDate": member.birth_date,
        "occupation": member.occupation,
        "role": member.role,
        "isActive": member.is_active,
        "isFoundingMember": member.is_founding_member,
        "isElectoralCommission": member.is_electoral_commission,
        "isProvisionalBoard": member.is_provisional_board,
        "provisionalRole": member.provisional_role,
        "signatureId": member.signature_id,
        "certificateId": member.certificate_id,
        "migratedFrom": member.migrated_from,
        "originalIndex": member.original_index,
    }


def organization_payload(organization: Organization) -> dict[str, Any]:
    return {
        "id": organization.pk,
        "userId": organization.user_id,
        "organizationName": organization.organization_name,
        "organizationType": organization.organization_type,
        "address": organization.address,
        "comuna": organization.comuna,
        "region": organization.region,
        "unidadVecinal": organization.unidad_vecinal,
        "contactEmail": organization.contact_email,
        "contactPhone": organization.contact_phone,
        "status": organization.status,
        "ministroData": organization.ministro_data or {},
        "provisionalDirectorio": organization.provisional_directorio or {},
        "ministroSignature": organization.ministro_signature,
        "validationData": organization.validation_data or {},
        "memberIds": list(organization.member_ids or []),
        "documentIds": list(organization.document_ids or []),
        "isNormalized": organization.is_normalized,
        "normalizedAt": organization.normalized_at,
        "schemaVersion": organization.schema_version,
        "createdAt": organization.created_at,
        "updatedAt": organization.updated_at,
    }


class OrganizationReader:
    schema_version: int

    def __init__(self, organization: Organization):
        self.organization = organization

    def with_members(self, *, include_signatures: bool = False, include_certificates: bool = False) -> dict[str, Any]:
        raise NotImplementedError

    def members(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def electoral_commission(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def provisional_board(self) -> dict[str, Any] | None:
        raise NotImplementedError

    def signature(self, key: str) -> str | None:
        raise NotImplementedError

    def document_stats(self) -> DocumentStats:
        raise NotImplementedError


class LegacyOrganizationReader(OrganizationReader):
    """Schema v1: embedded arrays returned as stored."""

    schema_version = Organization.SchemaVersion.LEGACY

    def with_members(self, *, include_signatures: bool = False, include_certificates: bool = False) -> dict[str, Any]:
        data = organization_payload(self.organization)
        data["members"] = self.members()
        data["electoralCommission"] = self.electoral_commission()
        return data

    def members(self) -> list[dict[str, Any]]:
        return list(self.organization.members or [])

    def electoral_commission(self) -> list[dict[str, Any]]:
        return list(self.organization.electoral_commission or [])

    def provisional_board(self) -> dict[str, Any] | None:
        return self.organization.provisional_directorio

    def signature(self, key: str) -> str | None:
        validation = self.organization.validation_data or {}
        if key == MINISTRO_SIGNATURE_KEY:
            return self.organization.ministro_signature or validation.get("ministroSignature") or None
        return (validation.get("signatures") or {}).get(key) or None

    def document_stats(self) -> DocumentStats:
        return legacy_document_stats(self.organization)


class NormalizedOrganizationReader(OrganizationReader):
    """Schema v2: Member / Document rows referenced by id. Embedded fields are stale."""

    schema_version = Organization.SchemaVersion.NORMALIZED

    def _members(self) -> list[Member]:
        ids = list(self.organization.member_ids or [])
        if not ids:
            return []
        by_id = Member.objects.in_bulk(ids)
        return [by_id[pk] for pk in ids if pk in by_id]

    def with_members(self, *, include_signatures: bool = False, include_certificates: bool = False) -> dict[str, Any]:
        members = self._members()
        payloads = [member_payload(m) for m in members]

        wanted = []
        if include_signatures:
            wanted.append(Document.DocType.SIGNATURE)
        if include_certificates:
            wanted.append(Document.DocType.CERTIFICATE)

        if wanted and members:
            contents: dict[int, dict[str, str]] = defaultdict(dict)
            rows = (
                Document.objects.filter(member_id__in=[m.pk for m in members], doc_type__in=wanted)
                .order_by("id")
                .values_list("member_id", "doc_type", "content")
            )
            for member_id, doc_type, content in rows:
                contents[member_id].setdefault(doc_type, content)
            for payload in payloads:
                # Requested fields are always present; None when the member has no such document.
                for doc_type in wanted:
                    payload[doc_type.value] = None
                payload.update(contents.get(payload["id"], {}))

        data = organization_payload(self.organization)
        data["members"] = payloads
        data["electoralCommission"] = [p for p in payloads if p["isElectoralCommission"]]
        return data

    def members(self) -> list[dict[str, Any]]:
        return [member_payload(m) for m in self._members()]

    def electoral_commission(self) -> list[dict[str, Any]]:
        return [member_payload(m) for m in self._members() if m.is_electoral_commission]

    def provisional_board(self) -> dict[str, Any] | None:
        board: dict[str, Any] = {slot: None for slot in PROVISIONAL_BOARD_SLOTS}
        for member in self._members():
            if not member.is_provisional_board:
                continue
            if member.provisional_role not in board:
                logger.warning(
                    "organization.provisional_board.unmatched_role",
                    extra={
                        "organization_id": self.organization.pk,
                        "member_id": member.pk,
                        "provisional_role": member.provisional_role,
                    },
                )
                continue
            if board[member.provisional_role] is None:
                board[member.provisional_role] = member_payload(member)
        return board

    def signature(self, key: str) -> str | None:
        documents = Document.objects.filter(organization=self.organization).order_by("id")
        if key == MINISTRO_SIGNATURE_KEY:
            document = documents.filter(doc_type=Document.DocType.MINISTRO_SIGNATURE).first()
        else:
            candidates = documents.filter(doc_type=Document.DocType.SIGNATURE, original_path__contains=key)
            document = candidates.filter(original_path=f"validationData.signatures.{key}").first() or candidates.first()
        return document.content if document else None

    def document_stats(self) -> DocumentStats:
        return normalized_document_stats(self.organization)


READERS: dict[int, type[OrganizationReader]] = {
    Organization.SchemaVersion.LEGACY: LegacyOrganizationReader,
    Organization.SchemaVersion.NORMALIZED: NormalizedOrganizationReader,
}


def schema_version_of(organization: Organization) -> int:
    # is_normalized is authoritative; schema_version is bookkeeping kept in step with it.
    if organization.is_normalized:
        return Organization.SchemaVersion.NORMALIZED
    return Organization.SchemaVersion.LEGACY


def reader_for(organization: Organization) -> OrganizationReader:
    return READERS[schema_version_of(organization)](organization)


def _load(organization_or_id) -> Organization | None:
    if isinstance(organization_or_id, Organization):
        return organization_or_id
    return Organization.objects.filter(pk=organization_or_id).first()


def get_organization_with_members(
    organization_id,
    *,
    include_signatures: bool = False,
    include_certificates: bool = False,
) -> dict[str, Any] | None:
    organization = _load(organization_id)
    if organization is None:
        return None
    return reader_for(organization).with_members(
        include_signatures=include_signatures,
        include_certificates=include_certificates,
    )


def get_organization_members(organization_id) -> list[dict[str, Any]]:
    organization = _load(organization_id)
    if organization is None:
        return []
    return reader_for(organization).members()


def get_electoral_commission(organization_id) -> list[dict[str, Any]]:
    organization = _load(organization_id)
    if organization is None:
        return []
    return reader_for(organization).electoral_commission()


def get_provisional_board(organization_id) -> dict[str, Any] | None:
    organization = _load(organization_id)
    if organization is None:
        return None
    return reader_for(organization).provisional_board()


def get_signature(organization_id, signature_key: str) -> str | None:
    if not signature_key:
        return None
    organization = _load(organization_id)
    if organization is None:
        return None
    return reader_for(organization).signature(signature_key)


def get_organization_document_stats(organization_id) -> DocumentStats | None:
    organization = _load(organization_id)
    if organization is None:
        return None
    return reader_for(organization).document_stats()
