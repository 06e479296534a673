from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

PAYMENT_SUCCEEDED = "succeeded"


class PaymentRecord(Document):
    """One confirmed external payment. Never updated once written."""
    user_id: PydanticObjectId
    payment_id: str  # processor id, idempotency key
    amount: int  # smallest currency unit
    status: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "payment_records"
        indexes = [
            IndexModel(
                [("user_id", ASCENDING), ("payment_id", ASCENDING)],
                name="uniq_user_payment",
                unique=True,
            ),
            IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)], name="idx_user_created"),
        ]
