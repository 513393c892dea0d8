from __future__ import annotations

from typing import Any, Optional

from django.http import HttpRequest

from .models import AuditLog


ORGANIZATION = "organization"


def _client_ip(request: HttpRequest) -> str:
	forwarded = (request.META.get("HTTP_X_FORWARDED_FOR") or "").strip()
	if forwarded:
		# "client, proxy1, proxy2": the first hop is the client.
		return forwarded.split(",")[0].strip()
	return (request.META.get("REMOTE_ADDR") or "").strip()


def _record(*, actor, event_type: str, object_type: str, object_id, metadata, **request_fields) -> AuditLog:
	return AuditLog.objects.create(
		actor=actor,
		event_type=event_type,
		object_type=object_type or "",
		object_id="" if object_id is None else str(object_id),
		metadata=metadata or {},
		**request_fields,
	)


def log_event(
	request: HttpRequest,
	*,
	event_type: str,
	object_type: str = ORGANIZATION,
	object_id: str | int = "",
	status_code: Optional[int] = None,
	metadata: Optional[dict[str, Any]] = None,
) -> Optional[AuditLog]:
	"""Audit an administrative action triggered over HTTP. Anonymous requests are not recorded."""

	user = getattr(request, "user", None)
	if not getattr(user, "is_authenticated", False):
		return None

	return _record(
		actor=user,
		event_type=event_type,
		object_type=object_type,
		object_id=object_id,
		metadata=metadata,
		path=getattr(request, "path", "") or "",
		method=getattr(request, "method", "") or "",
		status_code=status_code,
		ip_address=_client_ip(request),
		user_agent=(request.META.get("HTTP_USER_AGENT") or "")[:4000],
	)


def log_system_event(
	*,
	event_type: str,
	object_type: str = ORGANIZATION,
	object_id: str | int = "",
	metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
	"""Audit entry without a request (management command, Celery worker)."""

	return _record(
		actor=None,
		event_type=event_type,
		object_type=object_type,
		object_id=object_id,
		metadata=metadata,
	)
