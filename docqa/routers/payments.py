from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from docqa.core.exceptions import BadRequestError, PaymentNotCreditedError
from docqa.core.pagination import Page, paginate
from docqa.deps import get_current_user, get_ledger, get_ledger_store
from docqa.models.user import User
from docqa.routers.credits import payment_dict
from docqa.services import payments as payments_service
from docqa.services.credits import ConfirmationOutcome, CreditLedger
from docqa.services.ledger_store import LedgerStore

router = APIRouter()


class CreateIntentRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Major currency units, e.g. 10 for $10")


class ConfirmRequest(BaseModel):
    payment_intent: str = Field(..., min_length=1)


@router.post("/intents")
async def create_intent(body: CreateIntentRequest, user: User = Depends(get_current_user)):
    """Create a Stripe PaymentIntent; the client confirms it with client_secret."""
    return payments_service.create_payment_intent(user, body.amount)


@router.post("/confirm")
async def confirm(
    body: ConfirmRequest,
    user: User = Depends(get_current_user),
    ledger: CreditLedger = Depends(get_ledger),
):
    """Payment-success redirect: verify with Stripe, record once, credit once."""
    descriptor = payments_service.verify_payment_intent(body.payment_intent, user)
    result = await payments_service.confirm_and_audit(ledger, descriptor)
    if result.outcome is ConfirmationOutcome.VALIDATION_FAILED:
        raise BadRequestError(
            "Payment validation failed",
            details={"payment_id": descriptor.id, "status": descriptor.status},
            code="PAYMENT_VALIDATION_FAILED",
        )
    if result.outcome is ConfirmationOutcome.RECORDED_NOT_CREDITED:
        raise PaymentNotCreditedError(descriptor.id)
    return {
        "outcome": result.outcome.value,
        "payment": payment_dict(result.payment) if result.payment else None,
        "credits_added": result.credits_added,
        "credits": ledger.mirror.credits,
    }


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    store: LedgerStore = Depends(get_ledger_store),
):
    """Stripe webhook: payment_intent.succeeded -> confirm (idempotent with /confirm)."""
    body = await request.body()
    await payments_service.handle_webhook(body, stripe_signature, store)
    return {"status": "ok"}


@router.get("")
async def list_payments(
    user: User = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Payment history, newest first."""
    limit, offset = paginate(limit, offset)
    payments = await store.list_payments(user.id, limit=limit, offset=offset)
    return Page[dict](items=[payment_dict(p) for p in payments], limit=limit, offset=offset)
