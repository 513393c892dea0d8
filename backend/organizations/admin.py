from django.contrib import admin

from .models import Document, Member, Organization


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("organization_name", "organization_type", "comuna", "status", "is_normalized", "schema_version", "normalized_at")
    list_filter = ("status", "organization_type", "is_normalized", "schema_version")
    search_fields = ("organization_name", "unidad_vecinal", "user__username")
    readonly_fields = ("member_ids", "document_ids", "is_normalized", "normalized_at", "schema_version", "created_at", "updated_at")


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ("rut", "first_name", "last_name", "organization", "role", "is_electoral_commission", "is_provisional_board")
    list_filter = ("role", "is_electoral_commission", "is_provisional_board", "migrated_from")
    search_fields = ("rut", "first_name", "last_name", "organization__organization_name")
    raw_id_fields = ("organization", "signature", "certificate")


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    list_display = ("id", "doc_type", "organization", "member", "size", "context", "migrated_from")
    list_filter = ("doc_type", "context", "migrated_from", "is_active")
    search_fields = ("signer_rut", "signer_name", "original_path", "organization__organization_name")
    raw_id_fields = ("organization", "member")
    exclude = ("content",)
    readonly_fields = ("size",)
