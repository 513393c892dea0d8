import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("organization_name", models.CharField(max_length=255)),
                (
                    "organization_type",
                    models.CharField(
                        choices=[
                            ("JUNTA_VECINOS", "Junta de Vecinos"),
                            ("COMITE_VECINOS", "Comité de Vecinos"),
                            ("CLUB_DEPORTIVO", "Club Deportivo"),
                            ("CLUB_ADULTO_MAYOR", "Club de Adulto Mayor"),
                            ("CLUB_JUVENIL", "Club Juvenil"),
                            ("CLUB_CULTURAL", "Club Cultural"),
                            ("CENTRO_MADRES", "Centro de Madres"),
                            ("CENTRO_PADRES", "Centro de Padres"),
                            ("CENTRO_CULTURAL", "Centro Cultural"),
                            ("AGRUPACION_FOLCLORICA", "Agrupación Folclórica"),
                            ("AGRUPACION_CULTURAL", "Agrupación Cultural"),
                            ("AGRUPACION_JUVENIL", "Agrupación Juvenil"),
                            ("AGRUPACION_AMBIENTAL", "Agrupación Ambiental"),
                            ("AGRUPACION_EMPRENDEDORES", "Agrupación de Emprendedores"),
                            ("COMITE_VIVIENDA", "Comité de Vivienda"),
                            ("COMITE_ALLEGADOS", "Comité de Allegados"),
                            ("COMITE_APR", "Comité de Agua Potable Rural"),
                            ("COMITE_ADELANTO", "Comité de Adelanto"),
                            ("COMITE_MEJORAMIENTO", "Comité de Mejoramiento"),
                            ("COMITE_CONVIVENCIA", "Comité de Convivencia"),
                            ("ORG_SCOUT", "Organización Scout"),
                            ("ORG_MUJERES", "Organización de Mujeres"),
                            ("ORG_INDIGENA", "Organización Indígena"),
                            ("ORG_SALUD", "Organización de Salud"),
                            ("ORG_SOCIAL", "Organización Social"),
                            ("ORG_CULTURAL", "Organización Cultural"),
                            ("GRUPO_TEATRO", "Grupo de Teatro"),
                            ("CORO", "Coro"),
                            ("TALLER_ARTESANIA", "Taller de Artesanía"),
                            ("ORG_COMUNITARIA", "Organización Comunitaria"),
                            ("ORG_FUNCIONAL", "Organización Funcional"),
                            ("OTRA_FUNCIONAL", "Otra Funcional"),
                        ],
                        max_length=40,
                    ),
                ),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("comuna", models.CharField(default="Renca", max_length=100)),
                ("region", models.CharField(default="Metropolitana", max_length=100)),
                ("unidad_vecinal", models.CharField(blank=True, default="", max_length=50)),
                ("contact_email", models.EmailField(blank=True, default="", max_length=254)),
                ("contact_phone", models.CharField(blank=True, default="", max_length=30)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Borrador"),
                            ("waiting_ministro", "Esperando ministro de fe"),
                            ("ministro_scheduled", "Ministro agendado"),
                            ("ministro_approved", "Aprobada por ministro"),
                            ("pending_review", "Pendiente de revisión"),
                            ("in_review", "En revisión"),
                            ("rejected", "Rechazada"),
                            ("sent_registry", "Enviada al registro"),
                            ("approved", "Aprobada"),
                            ("dissolved", "Disuelta"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=30,
                    ),
                ),
                ("ministro_data", models.JSONField(blank=True, default=dict)),
                ("members", models.JSONField(blank=True, default=list)),
                ("electoral_commission", models.JSONField(blank=True, default=list)),
                ("provisional_directorio", models.JSONField(blank=True, default=dict)),
                ("ministro_signature", models.TextField(blank=True, default="")),
                ("validation_data", models.JSONField(blank=True, default=dict)),
                ("member_ids", models.JSONField(blank=True, default=list)),
                ("document_ids", models.JSONField(blank=True, default=list)),
                ("is_normalized", models.BooleanField(db_index=True, default=False)),
                ("normalized_at", models.DateTimeField(blank=True, null=True)),
                (
                    "schema_version",
                    models.PositiveSmallIntegerField(
                        choices=[(1, "v1 (embebido)"), (2, "v2 (normalizado)")],
                        default=1,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="organizations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["user"], name="org_user_idx"),
                    models.Index(fields=["is_normalized", "id"], name="org_normalized_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Document",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "doc_type",
                    models.CharField(
                        choices=[
                            ("signature", "Firma"),
                            ("certificate", "Certificado de residencia"),
                            ("ministro_signature", "Firma ministro de fe"),
                            ("group_photo", "Foto grupal"),
                            ("acta", "Acta"),
                            ("estatutos", "Estatutos"),
                            ("attendee_list", "Lista de asistentes"),
                            ("other", "Otro"),
                        ],
                        db_index=True,
                        max_length=30,
                    ),
                ),
                ("content", models.TextField()),
                ("mime_type", models.CharField(default="image/png", max_length=100)),
                ("size", models.PositiveBigIntegerField(default=0)),
                ("original_name", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "context",
                    models.CharField(
                        choices=[
                            ("constitution_assembly", "Asamblea constitutiva"),
                            ("validation_wizard", "Wizard de validación"),
                            ("member_registration", "Registro de miembros"),
                            ("manual_upload", "Subida manual"),
                            ("migration", "Migración"),
                        ],
                        default="constitution_assembly",
                        max_length=30,
                    ),
                ),
                ("signer_role", models.CharField(blank=True, default="", max_length=50)),
                ("signer_rut", models.CharField(blank=True, default="", max_length=64)),
                ("signer_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "migrated_from",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("members.signature", "members[].signature"),
                            ("members.certificate", "members[].certificate"),
                            ("electoralCommission.signature", "electoralCommission[].signature"),
                            ("validationData.signatures", "validationData.signatures"),
                            ("ministroSignature", "ministroSignature"),
                        ],
                        default="",
                        max_length=40,
                    ),
                ),
                ("original_path", models.CharField(blank=True, default="", max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="documents",
                        to="organizations.organization",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Member",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("rut", models.CharField(db_index=True, max_length=64)),
                ("first_name", models.CharField(max_length=150)),
                ("last_name", models.CharField(blank=True, default="", max_length=150)),
                ("primer_nombre", models.CharField(blank=True, default="", max_length=100)),
                ("segundo_nombre", models.CharField(blank=True, default="", max_length=100)),
                ("apellido_paterno", models.CharField(blank=True, default="", max_length=100)),
                ("apellido_materno", models.CharField(blank=True, default="", max_length=100)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("phone", models.CharField(blank=True, default="", max_length=50)),
                ("email", models.CharField(blank=True, default="", max_length=254)),
                ("birth_date", models.CharField(blank=True, default="", max_length=30)),
                ("occupation", models.CharField(blank=True, default="", max_length=150)),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("president", "Presidente"),
                            ("vice_president", "Vicepresidente"),
                            ("secretary", "Secretario"),
                            ("treasurer", "Tesorero"),
                            ("director", "Director"),
                            ("member", "Socio"),
                            ("electoral_commission", "Comisión electoral"),
                            ("additional", "Adicional"),
                        ],
                        default="member",
                        max_length=30,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("is_founding_member", models.BooleanField(default=True)),
                ("is_electoral_commission", models.BooleanField(default=False)),
                ("is_provisional_board", models.BooleanField(default=False)),
                ("provisional_role", models.CharField(blank=True, default="", max_length=30)),
                (
                    "migrated_from",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("members", "members[]"),
                            ("electoralCommission", "electoralCommission[]"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
                ("original_index", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="normalized_members",
                        to="organizations.organization",
                    ),
                ),
                (
                    "signature",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="organizations.document",
                    ),
                ),
                (
                    "certificate",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="organizations.document",
                    ),
                ),
            ],
            options={
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["organization", "role"], name="member_org_role_idx"),
                    models.Index(fields=["organization", "is_electoral_commission"], name="member_org_commission_idx"),
                    models.Index(fields=["organization", "is_provisional_board"], name="member_org_board_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("organization", "rut"), name="uniq_member_rut_per_organization"),
                ],
            },
        ),
        migrations.AddField(
            model_name="document",
            name="member",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="documents",
                to="organizations.member",
            ),
        ),
        migrations.AddIndex(
            model_name="document",
            index=models.Index(fields=["organization", "doc_type"], name="document_org_type_idx"),
        ),
        migrations.AddIndex(
            model_name="document",
            index=models.Index(fields=["member", "doc_type"], name="document_member_type_idx"),
        ),
        migrations.AddIndex(
            model_name="document",
            index=models.Index(fields=["organization", "context"], name="document_org_context_idx"),
        ),
    ]
