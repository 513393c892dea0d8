from __future__ import annotations

from django.conf import settings
from django.db import models


class Organization(models.Model):
    """Organización comunitaria (Ley 19.418).

    Two schema generations coexist in this table:

    - v1 (legacy): members, electoral commission, provisional board and
      signatures embedded as JSON, with Base64 images inline.
    - v2 (normalized): `member_ids` / `document_ids` reference rows in
      `Member` and `Document`.

    `is_normalized` selects which one is authoritative. Legacy fields are kept
    after normalization and must be treated as stale; read them through
    `organizations.services.accessor`.
    """

    class OrganizationType(models.TextChoices):
        JUNTA_VECINOS = "JUNTA_VECINOS", "Junta de Vecinos"
        COMITE_VECINOS = "COMITE_VECINOS", "Comité de Vecinos"
        CLUB_DEPORTIVO = "CLUB_DEPORTIVO", "Club Deportivo"
        CLUB_ADULTO_MAYOR = "CLUB_ADULTO_MAYOR", "Club de Adulto Mayor"
        CLUB_JUVENIL = "CLUB_JUVENIL", "Club Juvenil"
        CLUB_CULTURAL = "CLUB_CULTURAL", "Club Cultural"
        CENTRO_MADRES = "CENTRO_MADRES", "Centro de Madres"
        CENTRO_PADRES = "CENTRO_PADRES", "Centro de Padres"
        CENTRO_CULTURAL = "CENTRO_CULTURAL", "Centro Cultural"
        AGRUPACION_FOLCLORICA = "AGRUPACION_FOLCLORICA", "Agrupación Folclórica"
        AGRUPACION_CULTURAL = "AGRUPACION_CULTURAL", "Agrupación Cultural"
        AGRUPACION_JUVENIL = "AGRUPACION_JUVENIL", "Agrupación Juvenil"
        AGRUPACION_AMBIENTAL = "AGRUPACION_AMBIENTAL", "Agrupación Ambiental"
        AGRUPACION_EMPRENDEDORES = "AGRUPACION_EMPRENDEDORES", "Agrupación de Emprendedores"
        COMITE_VIVIENDA = "COMITE_VIVIENDA", "Comité de Vivienda"
        COMITE_ALLEGADOS = "COMITE_ALLEGADOS", "Comité de Allegados"
        COMITE_APR = "COMITE_APR", "Comité de Agua Potable Rural"
        COMITE_ADELANTO = "COMITE_ADELANTO", "Comité de Adelanto"
        COMITE_MEJORAMIENTO = "COMITE_MEJORAMIENTO", "Comité de Mejoramiento"
        COMITE_CONVIVENCIA = "COMITE_CONVIVENCIA", "Comité de Convivencia"
        ORG_SCOUT = "ORG_SCOUT", "Organización Scout"
        ORG_MUJERES = "ORG_MUJERES", "Organización de Mujeres"
        ORG_INDIGENA = "ORG_INDIGENA", "Organización Indígena"
        ORG_SALUD = "ORG_SALUD", "Organización de Salud"
        ORG_SOCIAL = "ORG_SOCIAL", "Organización Social"
        ORG_CULTURAL = "ORG_CULTURAL", "Organización Cultural"
        GRUPO_TEATRO = "GRUPO_TEATRO", "Grupo de Teatro"
        CORO = "CORO", "Coro"
        TALLER_ARTESANIA = "TALLER_ARTESANIA", "Taller de Artesanía"
        ORG_COMUNITARIA = "ORG_COMUNITARIA", "Organización Comunitaria"
        ORG_FUNCIONAL = "ORG_FUNCIONAL", "Organización Funcional"
        OTRA_FUNCIONAL = "OTRA_FUNCIONAL", "Otra Funcional"

    class Status(models.TextChoices):
        DRAFT = "draft", "Borrador"
        WAITING_MINISTRO = "waiting_ministro", "Esperando ministro de fe"
        MINISTRO_SCHEDULED = "ministro_scheduled", "Ministro agendado"
        MINISTRO_APPROVED = "ministro_approved", "Aprobada por ministro"
        PENDING_REVIEW = "pending_review", "Pendiente de revisión"
        IN_REVIEW = "in_review", "En revisión"
        REJECTED = "rejected", "Rechazada"
        SENT_REGISTRY = "sent_registry", "Enviada al registro"
        APPROVED = "approved", "Aprobada"
        DISSOLVED = "dissolved", "Disuelta"

    class SchemaVersion(models.IntegerChoices):
        LEGACY = 1, "v1 (embebido)"
        NORMALIZED = 2, "v2 (normalizado)"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="organizations",
    )
    organization_name = models.CharField(max_length=255)
    organization_type = models.CharField(max_length=40, choices=OrganizationType.choices)
    address = models.CharField(max_length=255, blank=True, default="")
    comuna = models.CharField(max_length=100, default="Renca")
    region = models.CharField(max_length=100, default="Metropolitana")
    unidad_vecinal = models.CharField(max_length=50, blank=True, default="")
    contact_email = models.EmailField(blank=True, default="")
    contact_phone = models.CharField(max_length=30, blank=True, default="")

    status = models.CharField(max_length=30, choices=Status.choices, default=Status.DRAFT, db_index=True)

    # {ministroId, name, rut, scheduledDate, scheduledTime, location, assignedAt}
    ministro_data = models.JSONField(default=dict, blank=True)

    # Schema v1 (embedded). Keys keep the wizard's camelCase.
    members = models.JSONField(default=list, blank=True)
    electoral_commission = models.JSONField(default=list, blank=True)
    provisional_directorio = models.JSONField(default=dict, blank=True)
    ministro_signature = models.TextField(blank=True, default="")
    validation_data = models.JSONField(default=dict, blank=True)

    # Schema v2 (normalized). member_ids order is significant.
    member_ids = models.JSONField(default=list, blank=True)
    document_ids = models.JSONField(default=list, blank=True)

    is_normalized = models.BooleanField(default=False, db_index=True)
    normalized_at = models.DateTimeField(null=True, blank=True)
    schema_version = models.PositiveSmallIntegerField(choices=SchemaVersion.choices, default=SchemaVersion.LEGACY)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["user"], name="org_user_idx"),
            models.Index(fields=["is_normalized", "id"], name="org_normalized_idx"),
        ]

    def __str__(self) -> str:
        return self.organization_name or f"Organización {self.pk}"


class Member(models.Model):
    """Miembro normalizado (schema v2). Firmas y certificados viven en `Document`."""

    class Role(models.TextChoices):
        PRESIDENT = "president", "Presidente"
        VICE_PRESIDENT = "vice_president", "Vicepresidente"
        SECRETARY = "secretary", "Secretario"
        TREASURER = "treasurer", "Tesorero"
        DIRECTOR = "director", "Director"
        MEMBER = "member", "Socio"
        ELECTORAL_COMMISSION = "electoral_commission", "Comisión electoral"
        ADDITIONAL = "additional", "Adicional"

    class MigratedFrom(models.TextChoices):
        MEMBERS = "members", "members[]"
        ELECTORAL_COMMISSION = "electoralCommission", "electoralCommission[]"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="normalized_members")

    rut = models.CharField(max_length=64, db_index=True)
    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150, blank=True, default="")

    primer_nombre = models.CharField(max_length=100, blank=True, default="")
    segundo_nombre = models.CharField(max_length=100, blank=True, default="")
    apellido_paterno = models.CharField(max_length=100, blank=True, default="")
    apellido_materno = models.CharField(max_length=100, blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    email = models.CharField(max_length=254, blank=True, default="")
    birth_date = models.CharField(max_length=30, blank=True, default="")
    occupation = models.CharField(max_length=150, blank=True, default="")

    role = models.CharField(max_length=30, choices=Role.choices, default=Role.MEMBER)

    signature = models.ForeignKey(
        "Document",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    certificate = models.ForeignKey(
        "Document",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    is_active = models.BooleanField(default=True)
    is_founding_member = models.BooleanField(default=True)
    is_electoral_commission = models.BooleanField(default=False)
    is_provisional_board = models.BooleanField(default=False)
    provisional_role = models.CharField(max_length=30, blank=True, default="")

    migrated_from = models.CharField(max_length=30, choices=MigratedFrom.choices, blank=True, default="")
    original_index = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["organization", "rut"], name="uniq_member_rut_per_organization"),
        ]
        indexes = [
            models.Index(fields=["organization", "role"], name="member_org_role_idx"),
            models.Index(fields=["organization", "is_electoral_commission"], name="member_org_commission_idx"),
            models.Index(fields=["organization", "is_provisional_board"], name="member_org_board_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.rut})"

    @property
    def full_name(self) -> str:
        if self.primer_nombre:
            nombres = " ".join(p for p in [self.primer_nombre, self.segundo_nombre] if p)
            apellidos = " ".join(p for p in [self.apellido_paterno, self.apellido_materno] if p)
            return f"{nombres} {apellidos}".strip()
        return f"{self.first_name} {self.last_name}".strip()


class Document(models.Model):
    """Contenido Base64 (firmas, certificados, fotos) separado de la organización."""

    class DocType(models.TextChoices):
        SIGNATURE = "signature", "Firma"
        CERTIFICATE = "certificate", "Certificado de residencia"
        MINISTRO_SIGNATURE = "ministro_signature", "Firma ministro de fe"
        GROUP_PHOTO = "group_photo", "Foto grupal"
        ACTA = "acta", "Acta"
        ESTATUTOS = "estatutos", "Estatutos"
        ATTENDEE_LIST = "attendee_list", "Lista de asistentes"
        OTHER = "other", "Otro"

    class Context(models.TextChoices):
        CONSTITUTION_ASSEMBLY = "constitution_assembly", "Asamblea constitutiva"
        VALIDATION_WIZARD = "validation_wizard", "Wizard de validación"
        MEMBER_REGISTRATION = "member_registration", "Registro de miembros"
        MANUAL_UPLOAD = "manual_upload", "Subida manual"
        MIGRATION = "migration", "Migración"

    class MigratedFrom(models.TextChoices):
        MEMBERS_SIGNATURE = "members.signature", "members[].signature"
        MEMBERS_CERTIFICATE = "members.certificate", "members[].certificate"
        ELECTORAL_COMMISSION_SIGNATURE = "electoralCommission.signature", "electoralCommission[].signature"
        VALIDATION_DATA_SIGNATURES = "validationData.signatures", "validationData.signatures"
        MINISTRO_SIGNATURE = "ministroSignature", "ministroSignature"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="documents")
    member = models.ForeignKey(
        Member,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="documents",
    )

    doc_type = models.CharField(max_length=30, choices=DocType.choices, db_index=True)
    content = models.TextField()
    mime_type = models.CharField(max_length=100, default="image/png")
    # Bytes represented by `content`; kept in sync by save().
    size = models.PositiveBigIntegerField(default=0)
    original_name = models.CharField(max_length=255, blank=True, default="")
    description = models.CharField(max_length=255, blank=True, default="")

    context = models.CharField(max_length=30, choices=Context.choices, default=Context.CONSTITUTION_ASSEMBLY)

    signer_role = models.CharField(max_length=50, blank=True, default="")
    signer_rut = models.CharField(max_length=64, blank=True, default="")
    signer_name = models.CharField(max_length=255, blank=True, default="")

    migrated_from = models.CharField(max_length=40, choices=MigratedFrom.choices, blank=True, default="")
    original_path = models.CharField(max_length=255, blank=True, default="")

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["organization", "doc_type"], name="document_org_type_idx"),
            models.Index(fields=["member", "doc_type"], name="document_member_type_idx"),
            models.Index(fields=["organization", "context"], name="document_org_context_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_doc_type_display()} #{self.pk} ({self.readable_size()})"

    @staticmethod
    def calculate_size(base64_string: str | None) -> int:
        if not base64_string:
            return 0
        return (len(base64_string) * 3) // 4

    def readable_size(self) -> str:
        size = self.size or 0
        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        return f"{size / (1024 * 1024):.2f} MB"

    def save(self, *args, **kwargs):
        self.size = self.calculate_size(self.content)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "content" in update_fields and "size" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "size"]
        super().save(*args, **kwargs)
