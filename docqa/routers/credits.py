from fastapi import APIRouter, Depends

from docqa.deps import get_ledger
from docqa.services import credits as credits_service
from docqa.services.credits import CreditLedger

router = APIRouter()


def payment_dict(p) -> dict:
    return {
        "id": p.id,
        "amount": p.amount,
        "status": p.status,
        "created_at": p.created_at.isoformat(),
    }


@router.get("")
async def credits_summary(ledger: CreditLedger = Depends(get_ledger)):
    """Authoritative balance plus the most recent payments (newest first)."""
    mirror = await ledger.refresh(limit=10)
    return {
        "credits": mirror.credits,
        "payments": [payment_dict(p) for p in mirror.payments],
    }


@router.get("/pricing")
async def credits_pricing():
    return credits_service.get_pricing()
