"""Credit ledger: atomic debit/credit and idempotent payment confirmation."""

from dataclasses import dataclass, field
from enum import Enum

from beanie import PydanticObjectId

from docqa.core.config import get_settings
from docqa.core.exceptions import BadRequestError, DuplicatePaymentError
from docqa.core.logging import get_logger
from docqa.models.payment_record import PAYMENT_SUCCEEDED
from docqa.services.ledger_store import DebitResult, LedgerStore, Payment

log = get_logger(__name__)


@dataclass
class LedgerMirror:
    """Display copy of the authoritative balance and payment list."""
    credits: int = 0
    payments: list[Payment] = field(default_factory=list)

    def add_payment(self, payment: Payment) -> None:
        self.payments = sorted([*self.payments, payment], key=lambda p: p.created_at, reverse=True)


class CreditLedger:
    """Ledger operations for one user against one store."""

    def __init__(
        self,
        store: LedgerStore,
        user_id: PydanticObjectId,
        mirror: LedgerMirror | None = None,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self.mirror = mirror or LedgerMirror()

    async def refresh(self, limit: int = 50) -> LedgerMirror:
        """Overwrite the mirror with the stored balance and latest payments."""
        credits = await self._store.get_credits(self.user_id)
        payments = await self._store.list_payments(self.user_id, limit=limit)
        self.mirror.credits = credits or 0
        self.mirror.payments = payments
        return self.mirror

    async def debit(self, amount: int) -> bool:
        """Spend credits. False when the balance is too low or the user is gone."""
        _require_positive(amount)
        result = await self._store.debit_if_sufficient(self.user_id, amount)
        if result is not DebitResult.APPLIED:
            log.info("credits_debit_rejected", user_id=str(self.user_id), amount=amount, reason=result.value)
            return False
        # Exact delta: the store already validated it against the live balance.
        self.mirror.credits -= amount
        log.info("credits_debited", user_id=str(self.user_id), amount=amount)
        return True

    async def credit(self, amount: int) -> int:
        """Add credits and return the re-read balance."""
        _require_positive(amount)
        await self._store.increment_credits(self.user_id, amount)
        balance = await self._store.get_credits(self.user_id)
        self.mirror.credits = balance or 0
        log.info("credits_added", user_id=str(self.user_id), amount=amount, balance=self.mirror.credits)
        return self.mirror.credits

    async def is_payment_recorded(self, payment_id: str) -> Payment | None:
        return await self._store.find_payment(self.user_id, payment_id, status=PAYMENT_SUCCEEDED)

    async def record_payment(self, payment_id: str, amount: int, status: str) -> Payment | None:
        """Insert a payment record once per payment id.

        Returns the new record, or None when one already exists (either found by
        the re-check or rejected by the unique index on a concurrent insert).
        """
        if await self._store.find_payment(self.user_id, payment_id) is not None:
            return None
        try:
            payment = await self._store.insert_payment(self.user_id, payment_id, amount, status)
        except DuplicatePaymentError:
            log.info("payment_insert_raced", user_id=str(self.user_id), payment_id=payment_id)
            return None
        self.mirror.add_payment(payment)
        log.info("payment_recorded", user_id=str(self.user_id), payment_id=payment_id, amount=amount)
        return payment


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise BadRequestError("Amount must be positive", details={"amount": amount})


def credits_for_payment(amount: int) -> int:
    """Credits granted for a payment of `amount` smallest currency units."""
    s = get_settings()
    return amount * s.credits_per_currency_unit + s.payment_bonus_credits


def get_pricing() -> dict:
    s = get_settings()
    return {
        "question": s.credits_per_question,
        "credits_per_currency_unit": s.credits_per_currency_unit,
        "payment_bonus": s.payment_bonus_credits,
        "currency": s.stripe_currency,
    }


@dataclass
class PaymentDescriptor:
    """Payment as verified with the processor."""
    id: str
    amount: int
    status: str
    created: int | None = None  # processor timestamp, seconds


class ConfirmationOutcome(str, Enum):
    CREDITED = "credited"
    ALREADY_PROCESSED = "already_processed"
    VALIDATION_FAILED = "validation_failed"
    RECORDED_NOT_CREDITED = "recorded_not_credited"


@dataclass
class ConfirmationResult:
    outcome: ConfirmationOutcome
    payment_id: str
    payment: Payment | None = None
    credits_added: int = 0
    balance: int | None = None


async def confirm_payment(ledger: CreditLedger, descriptor: PaymentDescriptor) -> ConfirmationResult:
    """Record a verified payment and credit it at most once.

    Safe to call repeatedly for the same descriptor: after the first success
    every call returns ALREADY_PROCESSED with the stored record.
    """
    if descriptor.status != PAYMENT_SUCCEEDED:
        log.info("payment_validation_failed", payment_id=descriptor.id, status=descriptor.status)
        return ConfirmationResult(ConfirmationOutcome.VALIDATION_FAILED, descriptor.id)

    existing = await ledger.is_payment_recorded(descriptor.id)
    if existing:
        return ConfirmationResult(ConfirmationOutcome.ALREADY_PROCESSED, descriptor.id, payment=existing)

    payment = await ledger.record_payment(descriptor.id, descriptor.amount, descriptor.status)
    if payment is None:
        existing = await ledger.is_payment_recorded(descriptor.id)
        return ConfirmationResult(ConfirmationOutcome.ALREADY_PROCESSED, descriptor.id, payment=existing)

    to_add = credits_for_payment(descriptor.amount)
    try:
        balance = await ledger.credit(to_add)
    except Exception:
        # Never retried here; support reconciles from the audit log.
        log.exception(
            "payment_not_credited",
            user_id=str(ledger.user_id),
            payment_id=descriptor.id,
            credits=to_add,
        )
        return ConfirmationResult(ConfirmationOutcome.RECORDED_NOT_CREDITED, descriptor.id, payment=payment)

    return ConfirmationResult(
        ConfirmationOutcome.CREDITED,
        descriptor.id,
        payment=payment,
        credits_added=to_add,
        balance=balance,
    )
