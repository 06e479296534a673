from docqa.models.user import User
from docqa.models.payment_record import PaymentRecord
from docqa.models.document import UserDocument
from docqa.models.audit_log import AuditLog

__all__ = [
    "User",
    "PaymentRecord",
    "UserDocument",
    "AuditLog",
]
