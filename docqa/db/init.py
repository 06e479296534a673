import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from docqa.core.config import get_settings
from docqa.core.logging import get_logger
from docqa.models.audit_log import AuditLog
from docqa.models.document import UserDocument
from docqa.models.payment_record import PaymentRecord
from docqa.models.user import User

log = get_logger(__name__)

DOCUMENT_MODELS = [
    User,
    PaymentRecord,
    UserDocument,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def create_client() -> AsyncIOMotorClient:
    settings = get_settings()
    kwargs = {"serverSelectionTimeoutMS": settings.mongodb_timeout_ms}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    return AsyncIOMotorClient(settings.mongodb_uri, **kwargs)


async def init_db() -> AsyncIOMotorClient:
    settings = get_settings()
    client = create_client()
    database = client[settings.mongodb_db_name]
    # Creates the unique (user_id, payment_id) index the ledger relies on.
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    log.info("db_initialized", db=settings.mongodb_db_name, models=len(DOCUMENT_MODELS))
    return client
