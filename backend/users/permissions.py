from rest_framework import permissions
from .models import User


class IsAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role in User.ADMIN_ROLES


class IsOrganizationReader(permissions.BasePermission):
    """
    Read access to an organization: the registrant, admin roles and the
    ministro de fe assigned to it.
    """

    def has_object_permission(self, request, view, obj):
        user = request.user
        if not user.is_authenticated:
            return False
        if user.role in User.ADMIN_ROLES:
            return True
        if getattr(obj, "user_id", None) == user.id:
            return True
        if user.role == User.ROLE_MINISTRO_FE:
            assigned = (getattr(obj, "ministro_data", None) or {}).get("ministroId")
            return str(assigned or "") == str(user.id)
        return False
