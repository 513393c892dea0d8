from unittest import mock

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.test import APITestCase

from audit.models import AuditLog

from .models import Member, Organization
from .services.normalization import migrate_organization
from .tasks import run_normalization_job


User = get_user_model()

SIGNATURE = "data:image/png;base64," + "iVBORw0KGgo" * 20


class OrganizationAPITestBase(APITestCase):
    def setUp(self):
        self.admin = User.objects.create_user(
            username="admin_org",
            password="admin123",
            email="admin_org@example.com",
            role=User.ROLE_ADMIN,
        )
        self.owner = User.objects.create_user(
            username="organizador",
            password="pw123456",
            email="organizador@example.com",
            role=User.ROLE_ORGANIZADOR,
        )
        self.stranger = User.objects.create_user(
            username="otro",
            password="pw123456",
            email="otro@example.com",
            role=User.ROLE_ORGANIZADOR,
        )
        self.ministro = User.objects.create_user(
            username="ministro",
            password="pw123456",
            email="ministro@example.com",
            role=User.ROLE_MINISTRO_FE,
        )

        self.org = Organization.objects.create(
            user=self.owner,
            organization_name="Junta de Vecinos El Roble",
            organization_type=Organization.OrganizationType.JUNTA_VECINOS,
            ministro_data={"ministroId": self.ministro.id, "name": "Ministro Uno", "rut": "8-8"},
            members=[
                {"rut": "1-1", "firstName": "Ana", "lastName": "López", "role": "president", "signature": SIGNATURE},
                {"rut": "2-2", "firstName": "Bruno", "lastName": "Díaz"},
            ],
            electoral_commission=[{"rut": "2-2", "firstName": "Bruno", "lastName": "Díaz"}],
            provisional_directorio={"president": {"rut": "1-1"}},
            ministro_signature=SIGNATURE,
            validation_data={"signatures": {"president": SIGNATURE}},
        )
        self.other_org = Organization.objects.create(
            user=self.stranger,
            organization_name="Club Deportivo Estrella",
            organization_type=Organization.OrganizationType.CLUB_DEPORTIVO,
            members=[{"rut": "3-3", "firstName": "Carla"}],
        )

    def url(self, suffix=""):
        return f"/api/organizations/{self.org.id}/{suffix}"


class OrganizationReadAPITest(OrganizationAPITestBase):
    def test_requires_authentication(self):
        res = self.client.get("/api/organizations/")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_list_is_scoped_to_owner(self):
        self.client.force_authenticate(user=self.owner)
        res = self.client.get("/api/organizations/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual([o["id"] for o in res.data], [self.org.id])
        self.assertEqual(res.data[0]["member_count"], 2)

    def test_admin_and_ministro_lists(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.get("/api/organizations/")
        self.assertEqual(len(res.data), 2)

        self.client.force_authenticate(user=self.ministro)
        res = self.client.get("/api/organizations/")
        self.assertEqual([o["id"] for o in res.data], [self.org.id])

    def test_retrieve_legacy_and_normalized(self):
        self.client.force_authenticate(user=self.owner)
        res = self.client.get(self.url())
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertFalse(res.data["isNormalized"])
        self.assertEqual(res.data["members"][0]["signature"], SIGNATURE)

        migrate_organization(self.org)

        res = self.client.get(self.url())
        self.assertTrue(res.data["isNormalized"])
        self.assertNotIn("signature", res.data["members"][0])
        self.assertEqual([m["rut"] for m in res.data["electoralCommission"]], ["2-2"])

        res = self.client.get(self.url(), {"include_signatures": "true"})
        self.assertEqual(res.data["members"][0]["signature"], SIGNATURE)

    def test_other_organizer_is_forbidden(self):
        self.client.force_authenticate(user=self.stranger)
        res = self.client.get(self.url())
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_assigned_ministro_can_read(self):
        self.client.force_authenticate(user=self.ministro)
        res = self.client.get(self.url("members/"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(len(res.data), 2)

    def test_detail_endpoints(self):
        migrate_organization(self.org)
        self.client.force_authenticate(user=self.owner)

        res = self.client.get(self.url("electoral-commission/"))
        self.assertEqual([m["firstName"] for m in res.data], ["Bruno"])

        res = self.client.get(self.url("provisional-board/"))
        self.assertEqual(res.data["president"]["rut"], "1-1")
        self.assertIsNone(res.data["secretary"])

        res = self.client.get(self.url("signatures/ministro/"))
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["content"], SIGNATURE)

        res = self.client.get(self.url("signatures/treasurer/"))
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)

        res = self.client.get(self.url("document-stats/"))
        self.assertEqual(res.data["document_count"], 3)
        self.assertEqual(res.data["signature_count"], 3)
        self.assertTrue(res.data["is_normalized"])

    def test_missing_organization(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.get("/api/organizations/999999/")
        self.assertEqual(res.status_code, status.HTTP_404_NOT_FOUND)


class OrganizationNormalizationAPITest(OrganizationAPITestBase):
    def test_only_admin_roles_can_normalize(self):
        self.client.force_authenticate(user=self.owner)
        res = self.client.post(self.url("normalize/"), {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

        res = self.client.post("/api/organizations/normalization/run/", {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_normalize_and_rollback_single_organization(self):
        self.client.force_authenticate(user=self.admin)

        res = self.client.post(self.url("normalize/"), {"dry_run": True}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertEqual(res.data["members_created"], 2)
        self.assertEqual(res.data["documents_created"], 3)
        self.assertEqual(Member.objects.count(), 0)

        res = self.client.post(self.url("normalize/"), {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertEqual(res.data["stats"]["document_count"], 3)
        self.assertEqual(Member.objects.count(), 2)
        self.assertTrue(
            AuditLog.objects.filter(
                event_type=AuditLog.EventType.ORGANIZATION_NORMALIZE,
                object_id=str(self.org.id),
                actor=self.admin,
            ).exists()
        )

        res = self.client.post(self.url("normalize/"), {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)

        res = self.client.post(self.url("rollback/"), {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertEqual(res.data["members_deleted"], 2)
        self.assertEqual(res.data["documents_deleted"], 3)
        self.assertEqual(AuditLog.objects.filter(event_type=AuditLog.EventType.ORGANIZATION_ROLLBACK).count(), 1)

        res = self.client.post(self.url("rollback/"), {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_409_CONFLICT)

    def test_normalize_rejects_inconsistent_data(self):
        self.org.members = [{"rut": "1-1", "firstName": "A"}, {"rut": "1-1", "firstName": "B"}]
        self.org.save(update_fields=["members"])
        self.client.force_authenticate(user=self.admin)

        res = self.client.post(self.url("normalize/"), {}, format="json")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Member.objects.count(), 0)

    def test_batch_run(self):
        self.client.force_authenticate(user=self.admin)

        res = self.client.post("/api/organizations/normalization/run/", {"dry_run": True}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK, res.data)
        self.assertEqual(res.data["migrated"], 2)
        self.assertFalse(AuditLog.objects.exists())

        res = self.client.post("/api/organizations/normalization/run/", {"batch_size": 1}, format="json")
        self.assertEqual(res.data["migrated"], 2)
        self.assertEqual(res.data["members_created"], 3)
        self.assertEqual(res.data["failed_ids"], [])
        self.assertEqual(AuditLog.objects.filter(event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN).count(), 1)

        res = self.client.post("/api/organizations/normalization/run/", {"rollback": True}, format="json")
        self.assertEqual(res.data["rolled_back"], 2)
        self.assertEqual(Member.objects.count(), 0)

    def test_batch_run_validation(self):
        self.client.force_authenticate(user=self.admin)
        res = self.client.post("/api/organizations/normalization/run/", {"batch_size": 0}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_async_run_is_queued(self):
        self.client.force_authenticate(user=self.admin)

        with mock.patch("organizations.views.run_normalization_job.delay") as delay:
            delay.return_value = mock.Mock(id="task-123")
            res = self.client.post(
                "/api/organizations/normalization/run/",
                {"run_async": True, "organization_id": self.org.id},
                format="json",
            )

        self.assertEqual(res.status_code, status.HTTP_202_ACCEPTED)
        self.assertEqual(res.data["task_id"], "task-123")
        delay.assert_called_once_with(rollback=False, dry_run=False, organization_id=self.org.id)
        self.assertEqual(Member.objects.count(), 0)

    def test_task_runs_the_batch_driver(self):
        result = run_normalization_job(organization_id=self.org.id)

        self.assertEqual(result["migrated"], 1)
        self.org.refresh_from_db()
        self.assertTrue(self.org.is_normalized)
        log = AuditLog.objects.get(event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN)
        self.assertEqual(log.metadata["source"], "celery")

        result = run_normalization_job(rollback=True, dry_run=True)
        self.assertEqual(result["rolled_back"], 1)
        self.org.refresh_from_db()
        self.assertTrue(self.org.is_normalized)


class AuditLogAPITest(OrganizationAPITestBase):
    def test_audit_logs_are_admin_only(self):
        self.client.force_authenticate(user=self.admin)
        self.client.post(self.url("normalize/"), {}, format="json")

        res = self.client.get("/api/audit-logs/")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(len(res.data), 1)
        self.assertEqual(res.data[0]["event_type"], AuditLog.EventType.ORGANIZATION_NORMALIZE)

        self.assertEqual(res.data[0]["source"], "api")

        self.client.force_authenticate(user=self.owner)
        res = self.client.get("/api/audit-logs/")
        self.assertEqual(res.status_code, status.HTTP_403_FORBIDDEN)

    def test_filter_by_organization(self):
        run_normalization_job(organization_id=self.other_org.id)
        self.client.force_authenticate(user=self.admin)
        self.client.post(self.url("normalize/"), {}, format="json")

        res = self.client.get("/api/audit-logs/", {"organization": self.other_org.id})

        self.assertEqual(len(res.data), 1)
        self.assertEqual(res.data[0]["event_type"], AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN)
        self.assertEqual(res.data[0]["source"], "celery")
        self.assertIsNone(res.data[0]["actor"])
