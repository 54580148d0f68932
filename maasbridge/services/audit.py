"""
AuditLogger - structured audit events for resource reads and cache traffic.

Events go through loguru with ``audit=True`` bound so they can be routed to a
dedicated sink. Emitting an event never raises into the caller.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger

from maasbridge.settings import Settings, global_settings


class AuditEventType(str, Enum):
    """Types of audit events."""

    RESOURCE_ACCESS = "resource_access"
    CACHE_OPERATION = "cache_operation"


MASK = "********"


def mask_sensitive_data(obj: Any, sensitive_fields: list[str]) -> Any:
    """Return a copy of ``obj`` with values under sensitive keys masked."""
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            lowered = str(key).lower()
            if any(field in lowered for field in sensitive_fields):
                result[key] = MASK
            else:
                result[key] = mask_sensitive_data(value, sensitive_fields)
        return result
    if isinstance(obj, list):
        return [mask_sensitive_data(item, sensitive_fields) for item in obj]
    return obj


class AuditLogger:
    """
    Audit event sink.

    Usage:
        audit = AuditLogger()
        audit.log_resource_access("Machine", "abc123", "read", request_id)
    """

    def __init__(
        self,
        enabled: bool = True,
        include_resource_state: bool = False,
        mask_sensitive_fields: bool = True,
        sensitive_fields: list[str] | None = None,
    ):
        self.enabled = enabled
        self.include_resource_state = include_resource_state
        self.mask_sensitive_fields = mask_sensitive_fields
        self.sensitive_fields = [
            f.lower()
            for f in (sensitive_fields or ["password", "token", "secret", "key", "credential"])
        ]
        self._logger = logger.bind(module="AuditLog", audit=True)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "AuditLogger":
        settings = settings or global_settings
        return cls(
            enabled=settings.audit_log_enabled,
            include_resource_state=settings.audit_log_include_resource_state,
            mask_sensitive_fields=settings.audit_log_mask_sensitive_fields,
            sensitive_fields=settings.sensitive_fields,
        )

    def log_resource_access(
        self,
        resource_type: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        user_id: str | None = None,
        ip_address: str | None = None,
        details: dict[str, Any] | None = None,
        after_state: Any = None,
    ) -> None:
        entry = self._entry(
            AuditEventType.RESOURCE_ACCESS,
            resource_type,
            resource_id,
            action,
            "success",
            request_id,
            user_id=user_id,
            ip_address=ip_address,
            details=details,
        )
        if after_state is not None and self.include_resource_state:
            entry["after_state"] = self._prepare(after_state)
        self._emit("INFO", entry)

    def log_resource_access_failure(
        self,
        resource_type: str,
        resource_id: str | None,
        action: str,
        request_id: str,
        error: BaseException,
        user_id: str | None = None,
        ip_address: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        entry = self._entry(
            AuditEventType.RESOURCE_ACCESS,
            resource_type,
            resource_id,
            action,
            "failure",
            request_id,
            user_id=user_id,
            ip_address=ip_address,
            details=details,
        )
        entry["error_details"] = {
            "type": type(error).__name__,
            "message": str(error),
            "status_code": getattr(error, "status_code", None),
            "error_code": getattr(error, "error_code", None),
        }
        self._emit("ERROR", entry)

    def log_cache_operation(
        self,
        resource_type: str,
        operation: str,
        request_id: str,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        entry = self._entry(
            AuditEventType.CACHE_OPERATION,
            resource_type,
            resource_id,
            operation,
            "success",
            request_id,
            details=details,
        )
        self._emit("DEBUG", entry)

    def _entry(
        self,
        event_type: AuditEventType,
        resource_type: str,
        resource_id: str | None,
        action: str,
        status: str,
        request_id: str,
        user_id: str | None = None,
        ip_address: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "event_type": event_type.value,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "action": action,
            "status": status,
            "request_id": request_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if user_id:
            entry["user_id"] = user_id
        if ip_address:
            entry["ip_address"] = ip_address
        if details:
            entry["details"] = self._prepare(details)
        return entry

    def _prepare(self, state: Any) -> Any:
        if self.mask_sensitive_fields:
            return mask_sensitive_data(state, self.sensitive_fields)
        return state

    def _emit(self, level: str, entry: dict[str, Any]) -> None:
        if not self.enabled:
            return
        try:
            self._logger.bind(**entry).log(
                level,
                f"AUDIT {entry['event_type']} {entry['resource_type']} "
                f"{entry['action']} {entry['status']}",
            )
        except Exception as e:
            logger.warning(f"Failed to write audit event: {e}")


class NullAuditLogger(AuditLogger):
    """Audit sink that drops every event."""

    def __init__(self) -> None:
        super().__init__(enabled=False)
