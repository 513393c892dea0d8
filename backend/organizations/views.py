from __future__ import annotations

from django.db.models import Q
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from audit.models import AuditLog
from audit.services import log_event
from users.models import User
from users.permissions import IsAdmin, IsOrganizationReader

from .models import Organization
from .serializers import NormalizationRunSerializer, OrganizationListSerializer
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
)
from .tasks import run_normalization_job


ADMIN_ACTIONS = {"normalize", "rollback", "normalization_run"}


def _flag(value) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


class OrganizationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Organization.objects.select_related("user").all().order_by("id")
    serializer_class = OrganizationListSerializer
    filterset_fields = ["status", "organization_type", "comuna", "is_normalized"]

    def get_permissions(self):
        if self.action in ADMIN_ACTIONS:
            return [permissions.IsAuthenticated(), IsAdmin()]
        return [permissions.IsAuthenticated(), IsOrganizationReader()]

    def get_queryset(self):
        qs = super().get_queryset()
        if self.action != "list":
            return qs
        user = self.request.user
        if user.role in User.ADMIN_ROLES:
            return qs
        visible = Q(user=user)
        if user.role == User.ROLE_MINISTRO_FE:
            visible |= Q(ministro_data__ministroId=user.id) | Q(ministro_data__ministroId=str(user.id))
        return qs.filter(visible)

    def retrieve(self, request, *args, **kwargs):
        organization = self.get_object()
        data = accessor.get_organization_with_members(
            organization,
            include_signatures=_flag(request.query_params.get("include_signatures")),
            include_certificates=_flag(request.query_params.get("include_certificates")),
        )
        return Response(data)

    @action(detail=True, methods=["get"], url_path="members")
    def members(self, request, pk=None):
        organization = self.get_object()
        return Response(accessor.get_organization_members(organization))

    @action(detail=True, methods=["get"], url_path="electoral-commission")
    def electoral_commission(self, request, pk=None):
        organization = self.get_object()
        return Response(accessor.get_electoral_commission(organization))

    @action(detail=True, methods=["get"], url_path="provisional-board")
    def provisional_board(self, request, pk=None):
        organization = self.get_object()
        return Response(accessor.get_provisional_board(organization) or {})

    @action(detail=True, methods=["get"], url_path=r"signatures/(?P<key>[^/.]+)")
    def signature(self, request, pk=None, key=None):
        organization = self.get_object()
        content = accessor.get_signature(organization, key)
        if content is None:
            return Response({"detail": "Firma no encontrada."}, status=status.HTTP_404_NOT_FOUND)
        return Response({"key": key, "content": content})

    @action(detail=True, methods=["get"], url_path="document-stats")
    def document_stats(self, request, pk=None):
        organization = self.get_object()
        return Response(accessor.get_organization_document_stats(organization).as_dict())

    @action(detail=True, methods=["post"], url_path="normalize")
    def normalize(self, request, pk=None):
        organization = self.get_object()
        dry_run = _flag(request.data.get("dry_run"))

        if organization.is_normalized:
            return Response(
                {"detail": "La organización ya está normalizada."},
                status=status.HTTP_409_CONFLICT,
            )

        try:
            if dry_run:
                plan = build_normalization_plan(organization)
                payload = {
                    "organization_id": organization.id,
                    "dry_run": True,
                    "members_created": plan.member_count,
                    "documents_created": plan.document_count,
                    "anomalies": plan.anomalies,
                }
            else:
                result = migrate_organization(organization)
                payload = {
                    "organization_id": organization.id,
                    "dry_run": False,
                    "members_created": len(result.member_ids),
                    "documents_created": len(result.document_ids),
                    "anomalies": result.anomalies,
                }
        except AlreadyNormalized:
            return Response(
                {"detail": "La organización ya está normalizada."},
                status=status.HTTP_409_CONFLICT,
            )
        except NormalizationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        if not dry_run:
            payload["stats"] = accessor.get_organization_document_stats(organization).as_dict()
            log_event(
                request,
                event_type=AuditLog.EventType.ORGANIZATION_NORMALIZE,
                object_id=organization.id,
                status_code=status.HTTP_200_OK,
                metadata={
                    "members_created": payload["members_created"],
                    "documents_created": payload["documents_created"],
                },
            )
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="rollback")
    def rollback(self, request, pk=None):
        organization = self.get_object()
        try:
            result = rollback_organization(organization)
        except NotNormalized:
            return Response(
                {"detail": "La organización no está normalizada."},
                status=status.HTTP_409_CONFLICT,
            )

        payload = {
            "organization_id": organization.id,
            "members_deleted": result.members_deleted,
            "documents_deleted": result.documents_deleted,
        }
        log_event(
            request,
            event_type=AuditLog.EventType.ORGANIZATION_ROLLBACK,
            object_id=organization.id,
            status_code=status.HTTP_200_OK,
            metadata=payload,
        )
        return Response(payload, status=status.HTTP_200_OK)

    @action(detail=False, methods=["post"], url_path="normalization/run")
    def normalization_run(self, request):
        serializer = NormalizationRunSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        options = dict(serializer.validated_data)
        run_async = options.pop("run_async")
        rollback = options.pop("rollback")

        if run_async:
            result = run_normalization_job.delay(rollback=rollback, **options)
            log_event(
                request,
                event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN,
                object_id=options.get("organization_id") or "",
                status_code=status.HTTP_202_ACCEPTED,
                metadata={"queued": True, "rollback": rollback, **options},
            )
            return Response(
                {"detail": "Normalización encolada.", "task_id": getattr(result, "id", None)},
                status=status.HTTP_202_ACCEPTED,
            )

        runner = run_rollback if rollback else run_migration
        summary = runner(**options)
        if not summary.dry_run:
            log_event(
                request,
                event_type=AuditLog.EventType.ORGANIZATION_NORMALIZATION_RUN,
                object_id=options.get("organization_id") or "",
                status_code=status.HTTP_200_OK,
                metadata={"rollback": rollback, **summary.counters()},
            )
        return Response(summary.as_dict(), status=status.HTTP_200_OK)
