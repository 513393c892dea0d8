from __future__ import annotations

from rest_framework import permissions, viewsets

from users.permissions import IsAdmin

from .models import AuditLog
from .serializers import AuditLogSerializer
from .services import ORGANIZATION


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
	"""Normalization / rollback history. `?organization=<id>` narrows to one organization."""

	queryset = AuditLog.objects.select_related("actor").order_by("-created_at", "-id")
	serializer_class = AuditLogSerializer
	permission_classes = [permissions.IsAuthenticated, IsAdmin]
	filterset_fields = ["event_type", "actor"]

	def get_queryset(self):
		qs = super().get_queryset()
		organization_id = (self.request.query_params.get("organization") or "").strip()
		if organization_id:
			qs = qs.filter(object_type=ORGANIZATION, object_id=organization_id)
		return qs
