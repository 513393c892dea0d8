from unittest import mock

from django.db import DatabaseError, OperationalError
from django.test import TestCase

from .models import Document, Member, Organization
from .services import accessor
from .services.normalization import (
    AlreadyNormalized,
    NormalizationError,
    NotNormalized,
    build_normalization_plan,
    migrate_organization,
    rollback_organization,
    run_migration,
    run_rollback,
    sniff_mime_type,
)


PNG_SIGNATURE = "data:image/png;base64," + "iVBORw0KGgo" * 20
JPEG_SIGNATURE = "/9j/4AAQSkZJRg" * 15
CERTIFICATE = "JVBERi0xLjQK" * 20


def make_organization(**kwargs):
    defaults = {
        "organization_name": "Junta de Vecinos Villa Esperanza",
        "organization_type": Organization.OrganizationType.JUNTA_VECINOS,
    }
    defaults.update(kwargs)
    return Organization.objects.create(**defaults)


def full_fixture(**kwargs):
    return make_organization(
        members=[
            {
                "rut": "11.111.111-1",
                "firstName": "Ana",
                "lastName": "López",
                "role": "president",
                "signature": PNG_SIGNATURE,
                "certificate": CERTIFICATE,
            },
            {"rut": "22.222.222-2", "firstName": "Bruno", "lastName": "Díaz", "role": "secretary", "signature": JPEG_SIGNATURE},
            {"rut": "33.333.333-3", "firstName": "Carla", "lastName": "Soto", "signature": "x" * 50},
        ],
        electoral_commission=[
            {"rut": "22.222.222-2", "firstName": "Bruno", "lastName": "Díaz", "signature": JPEG_SIGNATURE},
            {"rut": "44.444.444-4", "firstName": "Diego", "lastName": "Rojas", "signature": PNG_SIGNATURE},
        ],
        provisional_directorio={
            "president": {"rut": "11.111.111-1", "firstName": "Ana"},
            "secretary": {"rut": "22.222.222-2", "firstName": "Bruno"},
            "treasurer": {"rut": "99.999.999-9", "firstName": "Nadie"},
        },
        ministro_signature=PNG_SIGNATURE,
        ministro_data={"ministroId": 7, "name": "Patricia Fuentes", "rut": "55.555.555-5"},
        validation_data={"signatures": {"president": JPEG_SIGNATURE, "witness": "short"}},
        **kwargs,
    )


class NormalizationPlanTests(TestCase):
    def test_threshold_is_strictly_greater_than_100(self):
        org = make_organization(
            members=[
                {"rut": "1-1", "firstName": "Ana", "signature": "a" * 100},
                {"rut": "2-2", "firstName": "Beto", "signature": "b" * 101},
            ]
        )

        plan = build_normalization_plan(org)

        self.assertEqual(plan.member_count, 2)
        self.assertEqual(plan.document_count, 1)
        self.assertEqual(plan.members[0].documents, [])
        self.assertEqual(plan.members[1].documents[0].original_path, "members[1].signature")

    def test_missing_rut_gets_unique_placeholder(self):
        org = make_organization(
            members=[{"firstName": "Sin"}, {"firstName": "Rut"}],
            electoral_commission=[{"firstName": "Comisión"}],
        )

        plan = build_normalization_plan(org)
        ruts = [m.fields["rut"] for m in plan.members]

        self.assertTrue(ruts[0].startswith("temp-"))
        self.assertTrue(ruts[1].startswith("temp-"))
        self.assertTrue(ruts[2].startswith("ec-"))
        self.assertEqual(len(set(ruts)), 3)

    def test_name_falls_back_to_structured_parts(self):
        org = make_organization(
            members=[{"rut": "1-1", "primerNombre": "María", "segundoNombre": "José", "apellidoPaterno": "Pérez"}]
        )

        fields = build_normalization_plan(org).members[0].fields

        self.assertEqual(fields["first_name"], "María")
        self.assertEqual(fields["last_name"], "Pérez")
        self.assertEqual(fields["segundo_nombre"], "José")
        self.assertEqual(fields["role"], Member.Role.MEMBER)
        self.assertTrue(fields["is_founding_member"])

    def test_duplicate_member_rut_is_rejected(self):
        org = make_organization(members=[{"rut": "1-1", "firstName": "A"}, {"rut": "1-1", "firstName": "B"}])

        with self.assertRaises(NormalizationError):
            build_normalization_plan(org)

    def test_unknown_role_maps_to_member_with_anomaly(self):
        org = make_organization(members=[{"rut": "1-1", "firstName": "A", "role": "tesorero_suplente"}])

        plan = build_normalization_plan(org)

        self.assertEqual(plan.members[0].fields["role"], Member.Role.MEMBER)
        self.assertEqual(len(plan.anomalies), 1)

    def test_unmatched_provisional_slot_is_an_anomaly(self):
        plan = build_normalization_plan(full_fixture())

        self.assertTrue(any("treasurer" in a for a in plan.anomalies))
        flagged = {m.fields["rut"]: m.fields.get("provisional_role") for m in plan.members if m.fields.get("is_provisional_board")}
        self.assertEqual(flagged, {"11.111.111-1": "president", "22.222.222-2": "secretary"})

    def test_mime_type_sniffing(self):
        self.assertEqual(sniff_mime_type(PNG_SIGNATURE), "image/png")
        self.assertEqual(sniff_mime_type("data:application/pdf;base64,JVBERi0"), "application/pdf")
        self.assertEqual(sniff_mime_type(JPEG_SIGNATURE), "image/jpeg")


class MigrateOrganizationTests(TestCase):
    def test_single_member_with_signature(self):
        org = make_organization(members=[{"rut": "1-1", "firstName": "Ana", "lastName": "Lopez", "signature": "S" * 180}])

        result = migrate_organization(org)

        org.refresh_from_db()
        member = Member.objects.get()
        document = Document.objects.get()
        self.assertTrue(org.is_normalized)
        self.assertIsNotNone(org.normalized_at)
        self.assertEqual(org.schema_version, Organization.SchemaVersion.NORMALIZED)
        self.assertEqual(org.member_ids, [member.id])
        self.assertEqual(org.document_ids, [document.id])
        self.assertEqual(result.member_ids, [member.id])
        self.assertEqual(member.role, Member.Role.MEMBER)
        self.assertTrue(member.is_founding_member)
        self.assertEqual(member.migrated_from, Member.MigratedFrom.MEMBERS)
        self.assertEqual(member.original_index, 0)
        self.assertEqual(member.signature_id, document.id)
        self.assertEqual(document.doc_type, Document.DocType.SIGNATURE)
        self.assertEqual(document.member_id, member.id)
        self.assertEqual(document.context, Document.Context.MIGRATION)
        self.assertEqual(document.size, 135)
        self.assertEqual(document.mime_type, "image/jpeg")

    def test_full_organization(self):
        org = full_fixture()

        result = migrate_organization(org)

        # 3 members + 1 commission-only entry; Bruno is reused.
        self.assertEqual(len(result.member_ids), 4)
        # Ana sig + cert, Bruno sig, Diego sig, ministro, validation "president".
        self.assertEqual(len(result.document_ids), 6)

        bruno = Member.objects.get(rut="22.222.222-2")
        self.assertTrue(bruno.is_electoral_commission)
        self.assertEqual(bruno.role, Member.Role.SECRETARY)
        self.assertEqual(bruno.provisional_role, "secretary")

        diego = Member.objects.get(rut="44.444.444-4")
        self.assertEqual(diego.role, Member.Role.ELECTORAL_COMMISSION)
        self.assertEqual(diego.migrated_from, Member.MigratedFrom.ELECTORAL_COMMISSION)
        self.assertEqual(diego.original_index, 1)
        self.assertEqual(diego.signature.original_path, "electoralCommission[1].signature")

        ana = Member.objects.get(rut="11.111.111-1")
        self.assertEqual(ana.certificate.doc_type, Document.DocType.CERTIFICATE)
        self.assertEqual(ana.signature.mime_type, "image/png")

        ministro = Document.objects.get(doc_type=Document.DocType.MINISTRO_SIGNATURE)
        self.assertIsNone(ministro.member_id)
        self.assertEqual(ministro.signer_name, "Patricia Fuentes")
        self.assertEqual(ministro.signer_rut, "55.555.555-5")

        validation = Document.objects.get(original_path="validationData.signatures.president")
        self.assertEqual(validation.description, "president")
        self.assertEqual(validation.migrated_from, Document.MigratedFrom.VALIDATION_DATA_SIGNATURES)

    def test_every_provenance_choice_is_produced(self):
        migrate_organization(full_fixture())

        self.assertEqual(
            set(Member.objects.values_list("migrated_from", flat=True)),
            set(Member.MigratedFrom.values),
        )
        self.assertEqual(
            set(Document.objects.values_list("migrated_from", flat=True)),
            set(Document.MigratedFrom.values),
        )

    def test_member_order_follows_legacy_index(self):
        org = full_fixture()
        migrate_organization(org)
        org.refresh_from_db()

        ruts = [m["rut"] for m in accessor.get_organization_members(org.id)]

        self.assertEqual(ruts, ["11.111.111-1", "22.222.222-2", "33.333.333-3", "44.444.444-4"])

    def test_legacy_fields_are_not_modified(self):
        org = full_fixture()
        before = (org.members, org.electoral_commission, org.provisional_directorio, org.validation_data, org.ministro_signature)

        migrate_organization(org)
        org.refresh_from_db()

        after = (org.members, org.electoral_commission, org.provisional_directorio, org.validation_data, org.ministro_signature)
        self.assertEqual(before, after)

    def test_already_normalized_is_rejected(self):
        org = full_fixture()
        migrate_organization(org)

        with self.assertRaises(AlreadyNormalized):
            migrate_organization(org)
        self.assertEqual(Member.objects.count(), 4)

    def test_failure_leaves_no_partial_rows(self):
        org = full_fixture()

        with mock.patch.object(Document, "save", side_effect=DatabaseError("disk full")):
            with self.assertRaises(DatabaseError):
                migrate_organization(org)

        org.refresh_from_db()
        self.assertFalse(org.is_normalized)
        self.assertEqual(org.member_ids, [])
        self.assertEqual(org.schema_version, Organization.SchemaVersion.LEGACY)
        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Document.objects.count(), 0)


class RollbackOrganizationTests(TestCase):
    def test_rollback_removes_normalized_rows(self):
        org = full_fixture()
        migrate_organization(org)

        result = rollback_organization(org)

        org.refresh_from_db()
        self.assertEqual(result.members_deleted, 4)
        self.assertEqual(result.documents_deleted, 6)
        self.assertFalse(org.is_normalized)
        self.assertIsNone(org.normalized_at)
        self.assertEqual(org.schema_version, Organization.SchemaVersion.LEGACY)
        self.assertEqual(org.member_ids, [])
        self.assertEqual(org.document_ids, [])
        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Document.objects.count(), 0)
        self.assertEqual(len(accessor.get_organization_members(org.id)), 3)

    def test_rollback_then_migrate_reproduces_state(self):
        def snapshot(org_id):
            members = sorted(
                (m["rut"], m["firstName"], m["lastName"], m["role"], m["isElectoralCommission"], m["provisionalRole"])
                for m in accessor.get_organization_members(org_id)
            )
            commission = sorted(m["rut"] for m in accessor.get_electoral_commission(org_id))
            stats = accessor.get_organization_document_stats(org_id).as_dict()
            return members, commission, stats

        org = full_fixture()
        migrate_organization(org)
        first = snapshot(org.id)

        rollback_organization(org)
        migrate_organization(org)

        self.assertEqual(snapshot(org.id), first)

    def test_rollback_of_legacy_organization_is_rejected(self):
        org = full_fixture()

        with self.assertRaises(NotNormalized):
            rollback_organization(org)

    def test_failed_rollback_keeps_organization_normalized(self):
        org = full_fixture()
        migrate_organization(org)

        with mock.patch.object(Organization, "save", side_effect=DatabaseError("conflict")):
            with self.assertRaises(DatabaseError):
                rollback_organization(org)

        org.refresh_from_db()
        self.assertTrue(org.is_normalized)
        self.assertEqual(Member.objects.count(), 4)
        self.assertEqual(Document.objects.count(), 6)


class RunMigrationTests(TestCase):
    def test_rerun_only_targets_unmigrated(self):
        full_fixture()
        make_organization(organization_name="Club Deportivo Renca", members=[{"rut": "1-1", "firstName": "Ana"}])

        first = run_migration()
        second = run_migration()

        self.assertEqual(first.migrated, 2)
        self.assertEqual(first.members_created, 5)
        self.assertEqual(first.documents_created, 6)
        self.assertEqual(second.total, 0)
        self.assertEqual(second.migrated, 0)
        self.assertEqual(Member.objects.count(), 5)

    def test_dry_run_reports_real_counts_without_writing(self):
        org = full_fixture()

        dry = run_migration(dry_run=True)

        org.refresh_from_db()
        self.assertFalse(org.is_normalized)
        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Document.objects.count(), 0)

        real = run_migration()

        self.assertEqual(dry.migrated, 1)
        self.assertEqual(
            (dry.members_created, dry.documents_created),
            (real.members_created, real.documents_created),
        )
        self.assertEqual(real.members_created, 4)

    def test_record_error_does_not_stop_the_batch(self):
        broken = make_organization(members=[{"rut": "1-1", "firstName": "A"}, {"rut": "1-1", "firstName": "B"}])
        healthy = make_organization(members=[{"rut": "2-2", "firstName": "C"}])

        with self.assertLogs("organizations.services.normalization", level="ERROR"):
            summary = run_migration()

        self.assertEqual(summary.processed, 2)
        self.assertEqual(summary.errors, 1)
        self.assertEqual(summary.migrated, 1)
        self.assertEqual(summary.failed_ids, [broken.id])
        healthy.refresh_from_db()
        broken.refresh_from_db()
        self.assertTrue(healthy.is_normalized)
        self.assertFalse(broken.is_normalized)
        self.assertEqual(Member.objects.filter(organization=broken).count(), 0)

    def test_batches_and_single_organization_filter(self):
        orgs = [make_organization(members=[{"rut": f"{i}-{i}", "firstName": "X"}]) for i in range(1, 4)]
        lines = []

        summary = run_migration(batch_size=2, organization_id=orgs[1].id, echo=lines.append)
        self.assertEqual(summary.processed, 1)
        self.assertEqual(summary.migrated, 1)

        lines.clear()
        summary = run_migration(batch_size=2, echo=lines.append)
        self.assertEqual(summary.processed, 2)
        self.assertIn("Lote 1 (2 organizaciones)", lines)
        self.assertFalse(any(line.startswith("Lote 2") for line in lines))

    def test_batch_size_default_comes_from_settings(self):
        with self.settings(NORMALIZATION_BATCH_SIZE=3):
            self.assertEqual(run_migration(dry_run=True).batch_size, 3)

    def test_negative_batch_size_is_rejected(self):
        with self.assertRaises(ValueError):
            run_migration(batch_size=-1)

    def test_store_unavailable_aborts_run(self):
        with mock.patch.object(Organization.objects, "exclude", side_effect=OperationalError("connection refused")):
            with self.assertRaises(OperationalError):
                run_migration()

    def test_summary_as_dict(self):
        full_fixture()

        data = run_migration().as_dict()

        self.assertEqual(data["migrated"], 1)
        self.assertEqual(data["failed_ids"], [])
        self.assertEqual(data["outcomes"][0]["status"], "migrated")
        self.assertEqual(data["outcomes"][0]["documents"], 6)


class RunRollbackTests(TestCase):
    def test_rollback_run(self):
        full_fixture()
        make_organization(members=[{"rut": "1-1", "firstName": "Ana"}])
        run_migration()

        dry = run_rollback(dry_run=True)
        self.assertEqual(dry.rolled_back, 2)
        self.assertEqual(dry.members_deleted, 5)
        self.assertEqual(Member.objects.count(), 5)

        real = run_rollback()
        self.assertEqual(real.rolled_back, 2)
        self.assertEqual(real.members_deleted, 5)
        self.assertEqual(real.documents_deleted, 6)
        self.assertEqual(Member.objects.count(), 0)
        self.assertEqual(Organization.objects.filter(is_normalized=True).count(), 0)

        # Rolled back organizations are eligible again.
        self.assertEqual(run_migration().migrated, 2)
