"""Stripe payment intents and webhook: verified payments go through confirm_payment."""

from typing import Any, Mapping

import stripe
from beanie import PydanticObjectId

from docqa.core.audit import log_event
from docqa.core.config import get_settings
from docqa.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from docqa.core.logging import get_logger
from docqa.core.security import verify_stripe_event
from docqa.models.user import User
from docqa.services.credits import (
    ConfirmationOutcome,
    ConfirmationResult,
    CreditLedger,
    LedgerMirror,
    PaymentDescriptor,
    confirm_payment,
)
from docqa.services.ledger_store import LedgerStore

log = get_logger(__name__)

MIN_AMOUNT = 1
MAX_AMOUNT = 10_000


def _api_key() -> str:
    key = get_settings().stripe_secret_key
    if not key:
        raise BadRequestError("Payments not configured")
    return key


def to_subcurrency(amount: float, factor: int = 100) -> int:
    """Dollars to cents."""
    return round(amount * factor)


def descriptor_from_intent(intent: Mapping[str, Any]) -> PaymentDescriptor:
    return PaymentDescriptor(
        id=intent["id"],
        amount=int(intent["amount"]),
        status=intent["status"],
        created=intent.get("created"),
    )


def create_payment_intent(user: User, amount: float) -> dict:
    """Create a PaymentIntent for `amount` in major currency units."""
    if not MIN_AMOUNT <= amount <= MAX_AMOUNT:
        raise BadRequestError("Invalid amount", details={"min": MIN_AMOUNT, "max": MAX_AMOUNT})
    settings = get_settings()
    intent = stripe.PaymentIntent.create(
        api_key=_api_key(),
        amount=to_subcurrency(amount),
        currency=settings.stripe_currency,
        metadata={"user_id": str(user.id)},
        automatic_payment_methods={"enabled": True},
    )
    log.info("payment_intent_created", user_id=str(user.id), payment_id=intent["id"], amount=intent["amount"])
    return {
        "payment_id": intent["id"],
        "client_secret": intent["client_secret"],
        "amount": intent["amount"],
        "currency": intent["currency"],
        "publishable_key": settings.stripe_publishable_key,
    }


def verify_payment_intent(intent_id: str, user: User) -> PaymentDescriptor:
    """Fetch the intent from Stripe and check it belongs to `user`."""
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id, api_key=_api_key())
    except stripe.InvalidRequestError as e:
        raise NotFoundError("Payment not found") from e
    owner = (intent.get("metadata") or {}).get("user_id")
    if owner != str(user.id):
        log.warning("payment_owner_mismatch", user_id=str(user.id), payment_id=intent_id)
        raise ForbiddenError("Payment belongs to another account")
    return descriptor_from_intent(intent)


async def confirm_and_audit(ledger: CreditLedger, descriptor: PaymentDescriptor) -> ConfirmationResult:
    result = await confirm_payment(ledger, descriptor)
    if result.outcome is ConfirmationOutcome.CREDITED:
        await log_event(
            str(ledger.user_id),
            "payment_credited",
            "payment",
            descriptor.id,
            {"amount": descriptor.amount, "credits": result.credits_added},
        )
    elif result.outcome is ConfirmationOutcome.RECORDED_NOT_CREDITED:
        await log_event(
            str(ledger.user_id),
            "payment_not_credited",
            "payment",
            descriptor.id,
            {"amount": descriptor.amount},
        )
    return result


async def handle_webhook(payload: bytes, signature: str, store: LedgerStore) -> ConfirmationResult | None:
    """Verify the event and confirm payment_intent.succeeded; other events are ignored."""
    secret = get_settings().stripe_webhook_secret
    if not secret:
        raise BadRequestError("Webhook secret not configured")
    event = verify_stripe_event(payload, signature, secret)
    if event["type"] != "payment_intent.succeeded":
        return None
    intent = event["data"]["object"]
    user_id = (intent.get("metadata") or {}).get("user_id")
    if not user_id or not PydanticObjectId.is_valid(user_id):
        log.warning("webhook_payment_without_user", payment_id=intent.get("id"))
        return None
    user = await User.get(PydanticObjectId(user_id))
    if not user:
        log.warning("webhook_user_missing", user_id=user_id, payment_id=intent.get("id"))
        return None
    ledger = CreditLedger(store, user.id, LedgerMirror(credits=user.credits))
    result = await confirm_and_audit(ledger, descriptor_from_intent(intent))
    log.info("webhook_payment_handled", user_id=user_id, payment_id=result.payment_id, outcome=result.outcome.value)
    return result
