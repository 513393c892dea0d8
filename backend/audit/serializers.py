from __future__ import annotations

from rest_framework import serializers

from .models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
	actor_username = serializers.CharField(source="actor.username", read_only=True, default="")
	actor_role = serializers.CharField(source="actor.role", read_only=True, default="")
	event_type_display = serializers.CharField(source="get_event_type_display", read_only=True)
	source = serializers.SerializerMethodField()

	class Meta:
		model = AuditLog
		fields = [
			"id",
			"created_at",
			"actor",
			"actor_username",
			"actor_role",
			"event_type",
			"event_type_display",
			"object_type",
			"object_id",
			"source",
			"method",
			"path",
			"status_code",
			"metadata",
		]
		read_only_fields = fields

	def get_source(self, obj) -> str:
		# System events carry their origin ("command" / "celery") in metadata.
		if obj.actor_id:
			return "api"
		return (obj.metadata or {}).get("source", "system")
