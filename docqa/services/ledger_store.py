"""Persistence contract for the credit ledger and its MongoDB implementation.

The ledger only needs four store primitives: an atomic increment on the
balance, an atomic conditional decrement, an insert guarded by a unique
(user_id, payment_id) index, and queries ordered by created_at descending.
"""

from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Iterator, Protocol

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Inc
from pydantic import BaseModel
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from docqa.core.exceptions import DuplicatePaymentError, NotFoundError, StoreUnavailableError
from docqa.core.logging import get_logger
from docqa.models.payment_record import PAYMENT_SUCCEEDED, PaymentRecord
from docqa.models.user import User

log = get_logger(__name__)


class Payment(BaseModel):
    id: str
    amount: int
    status: str
    created_at: datetime

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_SUCCEEDED


class DebitResult(str, Enum):
    APPLIED = "applied"
    INSUFFICIENT = "insufficient"
    USER_NOT_FOUND = "user_not_found"


class LedgerStore(Protocol):
    async def get_credits(self, user_id: PydanticObjectId) -> int | None:  # pragma: no cover - Protocol
        ...

    async def debit_if_sufficient(
        self, user_id: PydanticObjectId, amount: int
    ) -> DebitResult:  # pragma: no cover - Protocol
        ...

    async def increment_credits(self, user_id: PydanticObjectId, amount: int) -> None:  # pragma: no cover - Protocol
        ...

    async def find_payment(
        self, user_id: PydanticObjectId, payment_id: str, status: str | None = None
    ) -> Payment | None:  # pragma: no cover - Protocol
        ...

    async def insert_payment(
        self, user_id: PydanticObjectId, payment_id: str, amount: int, status: str
    ) -> Payment:  # pragma: no cover - Protocol
        ...

    async def list_payments(
        self, user_id: PydanticObjectId, limit: int = 50, offset: int = 0
    ) -> list[Payment]:  # pragma: no cover - Protocol
        ...


def _to_payment(doc: PaymentRecord) -> Payment:
    return Payment(id=doc.payment_id, amount=doc.amount, status=doc.status, created_at=doc.created_at)


@contextmanager
def _store_call(op: str) -> Iterator[None]:
    try:
        yield
    except ConnectionFailure as e:
        log.warning("store_unavailable", op=op, error=str(e))
        raise StoreUnavailableError() from e


class MongoLedgerStore:
    """LedgerStore over the users and payment_records collections."""

    async def get_credits(self, user_id: PydanticObjectId) -> int | None:
        with _store_call("get_credits"):
            user = await User.get(user_id)
        return user.credits if user else None

    async def debit_if_sufficient(self, user_id: PydanticObjectId, amount: int) -> DebitResult:
        # Filter and $inc run as one document-level atomic operation.
        with _store_call("debit"):
            result = await User.find_one(
                User.id == user_id,
                User.credits >= amount,
            ).update(Inc({User.credits: -amount}), response_type=UpdateResponse.UPDATE_RESULT)
            if result.modified_count == 1:
                return DebitResult.APPLIED
            exists = await User.find(User.id == user_id).count()
        return DebitResult.INSUFFICIENT if exists else DebitResult.USER_NOT_FOUND

    async def increment_credits(self, user_id: PydanticObjectId, amount: int) -> None:
        with _store_call("increment"):
            result = await User.find_one(User.id == user_id).update(
                Inc({User.credits: amount}), response_type=UpdateResponse.UPDATE_RESULT
            )
        if result.matched_count == 0:
            raise NotFoundError("User not found")

    async def find_payment(
        self, user_id: PydanticObjectId, payment_id: str, status: str | None = None
    ) -> Payment | None:
        filters = [PaymentRecord.user_id == user_id, PaymentRecord.payment_id == payment_id]
        if status is not None:
            filters.append(PaymentRecord.status == status)
        with _store_call("find_payment"):
            doc = await PaymentRecord.find_one(*filters)
        return _to_payment(doc) if doc else None

    async def insert_payment(
        self, user_id: PydanticObjectId, payment_id: str, amount: int, status: str
    ) -> Payment:
        doc = PaymentRecord(user_id=user_id, payment_id=payment_id, amount=amount, status=status)
        with _store_call("insert_payment"):
            try:
                await doc.insert()
            except DuplicateKeyError as e:
                raise DuplicatePaymentError(payment_id) from e
        return _to_payment(doc)

    async def list_payments(
        self, user_id: PydanticObjectId, limit: int = 50, offset: int = 0
    ) -> list[Payment]:
        with _store_call("list_payments"):
            docs = (
                await PaymentRecord.find(PaymentRecord.user_id == user_id)
                .sort(-PaymentRecord.created_at)
                .skip(offset)
                .limit(limit)
                .to_list()
            )
        return [_to_payment(d) for d in docs]
