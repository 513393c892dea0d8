from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable

from ..models import Document, Organization
from .normalization import is_significant


def calculate_base64_size(value: Any) -> int:
    """Approximate decoded size in bytes of a Base64 string: floor(len * 3 / 4)."""

    if not value or not isinstance(value, str):
        return 0
    return Document.calculate_size(value)


@dataclass(frozen=True)
class DocumentStats:
    total_size_bytes: int
    signature_count: int
    certificate_count: int
    document_count: int
    is_normalized: bool
    schema_version: int

    @property
    def total_size_kb(self) -> int:
        return round(self.total_size_bytes / 1024)

    @property
    def total_size_mb(self) -> float:
        return round(self.total_size_bytes / (1024 * 1024), 2)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_size_kb"] = self.total_size_kb
        data["total_size_mb"] = self.total_size_mb
        return data


def _embedded_strings(organization: Organization) -> Iterable[tuple[str, str]]:
    """(kind, value) pairs for every embedded Base64 string long enough to be a real document."""

    member_ruts = set()
    for member in organization.members or []:
        if not isinstance(member, dict):
            continue
        if member.get("rut"):
            member_ruts.add(str(member["rut"]).strip())
        if is_significant(member.get("signature")):
            yield Document.DocType.SIGNATURE, member["signature"]
        if is_significant(member.get("certificate")):
            yield Document.DocType.CERTIFICATE, member["certificate"]

    for entry in organization.electoral_commission or []:
        if not isinstance(entry, dict):
            continue
        # A commission entry for an existing member is folded into that member.
        if str(entry.get("rut") or "").strip() in member_ruts:
            continue
        if is_significant(entry.get("signature")):
            yield Document.DocType.SIGNATURE, entry["signature"]

    if is_significant(organization.ministro_signature):
        yield Document.DocType.SIGNATURE, organization.ministro_signature

    signatures = (organization.validation_data or {}).get("signatures") or {}
    if isinstance(signatures, dict):
        for value in signatures.values():
            if is_significant(value):
                yield Document.DocType.SIGNATURE, value


def legacy_document_stats(organization: Organization) -> DocumentStats:
    total = 0
    signatures = 0
    certificates = 0
    for kind, value in _embedded_strings(organization):
        total += calculate_base64_size(value)
        if kind == Document.DocType.CERTIFICATE:
            certificates += 1
        else:
            signatures += 1

    return DocumentStats(
        total_size_bytes=total,
        signature_count=signatures,
        certificate_count=certificates,
        document_count=signatures + certificates,
        is_normalized=bool(organization.is_normalized),
        schema_version=int(organization.schema_version or Organization.SchemaVersion.LEGACY),
    )


def normalized_document_stats(organization: Organization) -> DocumentStats:
    rows = Document.objects.filter(id__in=organization.document_ids or []).values_list("doc_type", "size")

    total = 0
    signatures = 0
    certificates = 0
    count = 0
    for doc_type, size in rows:
        count += 1
        total += size or 0
        if doc_type in (Document.DocType.SIGNATURE, Document.DocType.MINISTRO_SIGNATURE):
            signatures += 1
        elif doc_type == Document.DocType.CERTIFICATE:
            certificates += 1

    return DocumentStats(
        total_size_bytes=total,
        signature_count=signatures,
        certificate_count=certificates,
        document_count=count,
        is_normalized=bool(organization.is_normalized),
        schema_version=int(organization.schema_version or Organization.SchemaVersion.NORMALIZED),
    )
