from django.test import TestCase

from .models import Document, Member, Organization
from .services import accessor
from .services.normalization import migrate_organization


SIGNATURE = "data:image/png;base64," + "iVBORw0KGgo" * 20
CERTIFICATE = "JVBERi0xLjQK" * 20
MINISTRO = "/9j/4AAQSkZJRg" * 15


def legacy_organization(**kwargs):
    data = {
        "organization_name": "Comité de Vivienda Los Aromos",
        "organization_type": Organization.OrganizationType.COMITE_VIVIENDA,
        "members": [
            {"rut": "1-1", "firstName": "Ana", "lastName": "López", "role": "president", "signature": SIGNATURE, "certificate": CERTIFICATE},
            {"rut": "2-2", "firstName": "Bruno", "lastName": "Díaz", "role": "treasurer", "signature": SIGNATURE},
            {"rut": "3-3", "firstName": "Carla", "lastName": "Soto", "role": "member"},
        ],
        "electoral_commission": [
            {"rut": "3-3", "firstName": "Carla", "lastName": "Soto"},
        ],
        "provisional_directorio": {"president": {"rut": "1-1", "firstName": "Ana"}},
        "ministro_signature": MINISTRO,
        "validation_data": {"signatures": {"president": SIGNATURE}},
    }
    data.update(kwargs)
    return Organization.objects.create(**data)


class LegacyReaderTests(TestCase):
    def setUp(self):
        self.org = legacy_organization()

    def test_reader_selection(self):
        self.assertIsInstance(accessor.reader_for(self.org), accessor.LegacyOrganizationReader)

    def test_embedded_arrays_are_returned_unchanged(self):
        data = accessor.get_organization_with_members(self.org.id)

        self.assertEqual(data["members"], self.org.members)
        self.assertEqual(data["electoralCommission"], self.org.electoral_commission)
        self.assertEqual(data["organizationName"], "Comité de Vivienda Los Aromos")
        self.assertFalse(data["isNormalized"])

    def test_provisional_board_is_verbatim(self):
        self.assertEqual(accessor.get_provisional_board(self.org.id), {"president": {"rut": "1-1", "firstName": "Ana"}})

    def test_signatures(self):
        self.assertEqual(accessor.get_signature(self.org.id, "ministro"), MINISTRO)
        self.assertEqual(accessor.get_signature(self.org.id, "president"), SIGNATURE)
        self.assertIsNone(accessor.get_signature(self.org.id, "secretary"))

    def test_ministro_signature_falls_back_to_validation_data(self):
        org = legacy_organization(ministro_signature="", validation_data={"ministroSignature": MINISTRO})

        self.assertEqual(accessor.get_signature(org.id, "ministro"), MINISTRO)


class NormalizedReaderTests(TestCase):
    def setUp(self):
        self.org = legacy_organization()
        migrate_organization(self.org)
        self.org.refresh_from_db()

    def test_reader_selection(self):
        self.assertIsInstance(accessor.reader_for(self.org), accessor.NormalizedOrganizationReader)

    def test_members_are_legacy_shaped(self):
        members = accessor.get_organization_members(self.org.id)

        self.assertEqual([m["firstName"] for m in members], ["Ana", "Bruno", "Carla"])
        self.assertEqual(members[0]["role"], "president")
        self.assertEqual(members[0]["originalIndex"], 0)
        self.assertNotIn("signature", members[0])

    def test_with_members_attaches_requested_contents(self):
        plain = accessor.get_organization_with_members(self.org.id)
        self.assertNotIn("signature", plain["members"][0])

        data = accessor.get_organization_with_members(self.org.id, include_signatures=True)
        self.assertEqual(data["members"][0]["signature"], SIGNATURE)
        self.assertNotIn("certificate", data["members"][0])
        self.assertIn("signature", data["members"][2])
        self.assertIsNone(data["members"][2]["signature"])

        data = accessor.get_organization_with_members(self.org.id, include_signatures=True, include_certificates=True)
        self.assertEqual(data["members"][0]["certificate"], CERTIFICATE)
        self.assertIsNone(data["members"][1]["certificate"])
        self.assertIsNone(data["members"][2]["certificate"])
        self.assertEqual([m["rut"] for m in data["electoralCommission"]], ["3-3"])
        self.assertTrue(data["isNormalized"])

    def test_provisional_board_buckets_by_slot(self):
        board = accessor.get_provisional_board(self.org.id)

        self.assertEqual(board["president"]["rut"], "1-1")
        self.assertIsNone(board["secretary"])
        self.assertIsNone(board["treasurer"])

    def test_unmatched_provisional_role_is_reported(self):
        extra = Member.objects.create(
            organization=self.org,
            rut="9-9",
            first_name="Vera",
            is_provisional_board=True,
            provisional_role="vice_president",
        )
        self.org.member_ids = [*self.org.member_ids, extra.id]
        self.org.save(update_fields=["member_ids"])

        with self.assertLogs("organizations.services.accessor", level="WARNING") as logs:
            board = accessor.get_provisional_board(self.org.id)

        self.assertEqual(set(board), {"president", "secretary", "treasurer"})
        self.assertIn("organization.provisional_board.unmatched_role", logs.output[0])

    def test_signatures(self):
        self.assertEqual(accessor.get_signature(self.org.id, "ministro"), MINISTRO)
        self.assertEqual(accessor.get_signature(self.org.id, "president"), SIGNATURE)
        self.assertIsNone(accessor.get_signature(self.org.id, "witness"))

    def test_exact_validation_path_wins_over_substring_match(self):
        Document.objects.filter(organization=self.org).delete()
        loose = Document.objects.create(
            organization=self.org,
            doc_type=Document.DocType.SIGNATURE,
            content="L" * 120,
            original_path="validationData.signatures.vice_president",
        )
        exact = Document.objects.create(
            organization=self.org,
            doc_type=Document.DocType.SIGNATURE,
            content="E" * 120,
            original_path="validationData.signatures.president",
        )
        self.assertLess(loose.id, exact.id)

        self.assertEqual(accessor.get_signature(self.org.id, "president"), exact.content)
        self.assertEqual(accessor.get_signature(self.org.id, "vice"), loose.content)

    def test_stale_legacy_fields_are_ignored(self):
        org = legacy_organization(is_normalized=True, schema_version=Organization.SchemaVersion.NORMALIZED)

        self.assertEqual(accessor.get_organization_members(org.id), [])
        self.assertEqual(accessor.get_electoral_commission(org.id), [])
        self.assertIsNone(accessor.get_signature(org.id, "ministro"))
        self.assertEqual(accessor.get_organization_document_stats(org.id).document_count, 0)


class FormatTransparencyTests(TestCase):
    def test_same_answers_before_and_after_migration(self):
        org = legacy_organization()

        def view():
            members = [(m["rut"], m["firstName"], m["lastName"], m["role"]) for m in accessor.get_organization_members(org.id)]
            commission = [(m["rut"], m["firstName"], m["lastName"]) for m in accessor.get_electoral_commission(org.id)]
            stats = accessor.get_organization_document_stats(org.id)
            counts = (stats.total_size_bytes, stats.signature_count, stats.certificate_count, stats.document_count)
            signatures = (accessor.get_signature(org.id, "ministro"), accessor.get_signature(org.id, "president"))
            return members, commission, counts, signatures

        before = view()
        migrate_organization(org)
        after = view()

        self.assertEqual(before, after)

    def test_placeholder_signatures_are_not_counted_as_documents(self):
        org = legacy_organization(
            members=[
                {"rut": "1-1", "firstName": "Ana", "signature": "pending", "certificate": CERTIFICATE},
                {"rut": "2-2", "firstName": "Bruno", "signature": SIGNATURE},
            ],
            electoral_commission=[{"rut": "2-2", "firstName": "Bruno", "signature": MINISTRO}],
            validation_data={"signatures": {"president": "ok"}},
        )

        def counts():
            stats = accessor.get_organization_document_stats(org.id)
            return stats.total_size_bytes, stats.signature_count, stats.certificate_count, stats.document_count

        before = counts()
        migrate_organization(org)
        after = counts()

        self.assertEqual(before, after)
        self.assertEqual(after[3], 3)


class MissingOrganizationTests(TestCase):
    def test_missing_organization(self):
        self.assertIsNone(accessor.get_organization_with_members(999999))
        self.assertEqual(accessor.get_organization_members(999999), [])
        self.assertEqual(accessor.get_electoral_commission(999999), [])
        self.assertIsNone(accessor.get_provisional_board(999999))
        self.assertIsNone(accessor.get_signature(999999, "ministro"))
        self.assertIsNone(accessor.get_organization_document_stats(999999))

    def test_reads_do_not_write(self):
        org = legacy_organization()
        migrate_organization(org)
        org.refresh_from_db()
        updated_at = org.updated_at

        accessor.get_organization_with_members(org.id, include_signatures=True, include_certificates=True)
        accessor.get_provisional_board(org.id)
        accessor.get_organization_document_stats(org.id)

        org.refresh_from_db()
        self.assertEqual(org.updated_at, updated_at)
        self.assertEqual(Member.objects.count(), 3)
