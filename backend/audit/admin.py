from django.contrib import admin

from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
	list_display = ("created_at", "event_type", "object_id", "actor", "status_code")
	list_filter = ("event_type", "object_type")
	search_fields = ("object_id", "actor__username", "actor__rut")
	date_hierarchy = "created_at"

	def get_readonly_fields(self, request, obj=None):
		return [field.name for field in AuditLog._meta.fields]

	def has_add_permission(self, request):
		return False

	def has_change_permission(self, request, obj=None):
		return False
