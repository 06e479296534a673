from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AuditLog(Document):
    """Append-only record of billing and document events."""
    user_id: str | None = None  # None when the user could not be resolved
    event_type: str  # user_created, payment_credited, payment_not_credited, document_uploaded, ...
    entity_type: str
    entity_id: str | None = None
    request_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("entity_type", 1), ("entity_id", 1)],
            [("event_type", 1), ("created_at", -1)],  # support reconciliation of payment_not_credited
        ]
