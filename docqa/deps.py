"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from docqa.core.exceptions import UnauthorizedError
from docqa.core.logging import bind_user_id
from docqa.core.security import load_session_cookie
from docqa.models.user import User
from docqa.services.credits import CreditLedger, LedgerMirror
from docqa.services.ledger_store import LedgerStore, MongoLedgerStore
from docqa.services.retrieval import RetrievalClient
from docqa.storage.base import StorageBackend, get_storage

SESSION_COOKIE_NAME = "docqa_session"


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await User.get(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user_id(str(user.id))
    return user


def get_ledger_store() -> LedgerStore:
    return MongoLedgerStore()


def get_ledger(
    user: User = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
) -> CreditLedger:
    """Per-request ledger; the mirror starts from the balance loaded with the user."""
    return CreditLedger(store, user.id, LedgerMirror(credits=user.credits))


def get_retrieval_client() -> RetrievalClient:
    return RetrievalClient()


def get_storage_backend() -> StorageBackend:
    return get_storage()
