from types import SimpleNamespace

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from .models import User
from .permissions import IsAdmin, IsOrganizationReader


class UserModelTests(TestCase):
    def test_blank_emails_do_not_collide(self):
        first = User.objects.create_user(username="uno", password="password", role=User.ROLE_MIEMBRO)
        second = User.objects.create_user(username="dos", password="password", role=User.ROLE_MIEMBRO)

        self.assertIsNone(first.email)
        self.assertIsNone(second.email)

    def test_admin_roles(self):
        self.assertTrue(User(role=User.ROLE_ADMIN).is_admin_role)
        self.assertTrue(User(role=User.ROLE_MUNICIPALIDAD).is_admin_role)
        self.assertFalse(User(role=User.ROLE_ORGANIZADOR).is_admin_role)


class TokenAuthTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username="admin", password="password", email="admin@example.com", role=User.ROLE_ADMIN
        )
        self.organizer = User.objects.create_user(
            username="organizador", password="password", email="org@example.com", role=User.ROLE_ORGANIZADOR
        )

    def get_token(self, user):
        response = self.client.post("/api/token/", {"username": user.username, "password": "password"})
        return response.data["access"]

    def test_wrong_password_is_rejected(self):
        response = self.client.post("/api/token/", {"username": "admin", "password": "nope"})
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_admin_can_read_audit_logs(self):
        token = self.get_token(self.admin)
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_organizer_cannot_read_audit_logs(self):
        token = self.get_token(self.organizer)
        self.client.credentials(HTTP_AUTHORIZATION="Bearer " + token)
        response = self.client.get("/api/audit-logs/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_refresh_token(self):
        response = self.client.post("/api/token/", {"username": "organizador", "password": "password"})
        refresh = response.data["refresh"]
        response = self.client.post("/api/token/refresh/", {"refresh": refresh})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)


class PermissionClassTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="muni", password="password", role=User.ROLE_MUNICIPALIDAD)
        self.owner = User.objects.create_user(username="owner", password="password", role=User.ROLE_ORGANIZADOR)
        self.ministro = User.objects.create_user(username="mf", password="password", role=User.ROLE_MINISTRO_FE)
        self.other_ministro = User.objects.create_user(username="mf2", password="password", role=User.ROLE_MINISTRO_FE)
        self.member = User.objects.create_user(username="socio", password="password", role=User.ROLE_MIEMBRO)
        self.obj = SimpleNamespace(user_id=self.owner.id, ministro_data={"ministroId": str(self.ministro.id)})

    def request(self, user):
        return SimpleNamespace(user=user)

    def test_is_admin(self):
        self.assertTrue(IsAdmin().has_permission(self.request(self.admin), None))
        self.assertFalse(IsAdmin().has_permission(self.request(self.owner), None))

    def test_organization_reader(self):
        perm = IsOrganizationReader()
        self.assertTrue(perm.has_object_permission(self.request(self.admin), None, self.obj))
        self.assertTrue(perm.has_object_permission(self.request(self.owner), None, self.obj))
        self.assertTrue(perm.has_object_permission(self.request(self.ministro), None, self.obj))
        self.assertFalse(perm.has_object_permission(self.request(self.other_ministro), None, self.obj))
        self.assertFalse(perm.has_object_permission(self.request(self.member), None, self.obj))
