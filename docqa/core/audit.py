"""Audit trail for billing and document events."""

from typing import Any

import structlog

from docqa.core.logging import get_logger
from docqa.models.audit_log import AuditLog

log = get_logger(__name__)


async def log_event(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append to audit_logs, tagged with the current request id when bound."""
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    await AuditLog(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        request_id=request_id,
        metadata=metadata or {},
    ).insert()
    log.debug("audit_event", event_type=event_type, entity_type=entity_type, entity_id=entity_id)
