from rest_framework import serializers

from .models import Organization


class OrganizationListSerializer(serializers.ModelSerializer):
    member_count = serializers.SerializerMethodField()

    class Meta:
        model = Organization
        fields = [
            "id",
            "organization_name",
            "organization_type",
            "comuna",
            "unidad_vecinal",
            "status",
            "is_normalized",
            "normalized_at",
            "schema_version",
            "member_count",
            "created_at",
        ]
        read_only_fields = fields

    def get_member_count(self, obj):
        if obj.is_normalized:
            return len(obj.member_ids or [])
        return len(obj.members or [])


class NormalizationRunSerializer(serializers.Serializer):
    dry_run = serializers.BooleanField(default=False)
    batch_size = serializers.IntegerField(required=False, min_value=1, max_value=500)
    organization_id = serializers.IntegerField(required=False, min_value=1)
    rollback = serializers.BooleanField(default=False)
    run_async = serializers.BooleanField(default=False)
