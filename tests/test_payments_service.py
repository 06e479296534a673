"""Stripe-facing payment service with the Stripe SDK stubbed out."""

from types import SimpleNamespace

import pytest
import stripe
from beanie import PydanticObjectId

from docqa.core.config import Settings
from docqa.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from docqa.services import payments as payments_service
from docqa.services.credits import ConfirmationOutcome


@pytest.fixture
def settings(monkeypatch):
    s = Settings(
        stripe_secret_key="sk_test_123",
        stripe_publishable_key="pk_test_123",
        stripe_webhook_secret="whsec_123",
    )
    monkeypatch.setattr(payments_service, "get_settings", lambda: s)
    return s


@pytest.fixture
def audit(monkeypatch):
    events = []

    async def fake_log_event(*args):
        events.append(args)

    monkeypatch.setattr(payments_service, "log_event", fake_log_event)
    return events


def _intent(user_id, status="succeeded", amount=1000, intent_id="pi_1"):
    return {
        "id": intent_id,
        "amount": amount,
        "status": status,
        "created": 1700000000,
        "currency": "usd",
        "client_secret": f"{intent_id}_secret",
        "metadata": {"user_id": str(user_id)},
    }


@pytest.mark.parametrize("amount,expected", [(10, 1000), (1.5, 150), (19.99, 1999)])
def test_to_subcurrency(amount, expected):
    assert payments_service.to_subcurrency(amount) == expected


def test_descriptor_from_intent():
    d = payments_service.descriptor_from_intent(_intent("u1", amount="2500"))
    assert (d.id, d.amount, d.status, d.created) == ("pi_1", 2500, "succeeded", 1700000000)


def test_create_payment_intent(settings, monkeypatch):
    user = SimpleNamespace(id=PydanticObjectId())
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return _intent(user.id, status="requires_payment_method", amount=kwargs["amount"])

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

    out = payments_service.create_payment_intent(user, 25)

    assert captured["amount"] == 2500
    assert captured["currency"] == "usd"
    assert captured["api_key"] == "sk_test_123"
    assert captured["metadata"] == {"user_id": str(user.id)}
    assert out == {
        "payment_id": "pi_1",
        "client_secret": "pi_1_secret",
        "amount": 2500,
        "currency": "usd",
        "publishable_key": "pk_test_123",
    }


@pytest.mark.parametrize("amount", [0.5, 10_001])
def test_create_payment_intent_rejects_out_of_range(settings, amount):
    with pytest.raises(BadRequestError):
        payments_service.create_payment_intent(SimpleNamespace(id=PydanticObjectId()), amount)


def test_payments_not_configured(monkeypatch):
    monkeypatch.setattr(payments_service, "get_settings", lambda: Settings(stripe_secret_key=""))
    with pytest.raises(BadRequestError):
        payments_service.create_payment_intent(SimpleNamespace(id=PydanticObjectId()), 10)


def test_verify_payment_intent_checks_owner(settings, monkeypatch):
    owner = SimpleNamespace(id=PydanticObjectId())
    intruder = SimpleNamespace(id=PydanticObjectId())
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", lambda intent_id, api_key=None: _intent(owner.id))

    descriptor = payments_service.verify_payment_intent("pi_1", owner)
    assert descriptor.amount == 1000

    with pytest.raises(ForbiddenError):
        payments_service.verify_payment_intent("pi_1", intruder)


def test_verify_unknown_payment_intent(settings, monkeypatch):
    def fake_retrieve(intent_id, api_key=None):
        raise stripe.InvalidRequestError("No such payment_intent", "intent")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)

    with pytest.raises(NotFoundError):
        payments_service.verify_payment_intent("pi_missing", SimpleNamespace(id=PydanticObjectId()))


@pytest.mark.asyncio
async def test_confirm_and_audit_records_credit_event(store, audit):
    from docqa.services.credits import CreditLedger, PaymentDescriptor

    ledger = CreditLedger(store, store.add_user(credits=0))
    result = await payments_service.confirm_and_audit(ledger, PaymentDescriptor("pi_1", 100, "succeeded"))

    assert result.outcome is ConfirmationOutcome.CREDITED
    assert [e[1] for e in audit] == ["payment_credited"]

    await payments_service.confirm_and_audit(ledger, PaymentDescriptor("pi_1", 100, "succeeded"))
    assert len(audit) == 1


@pytest.mark.asyncio
async def test_webhook_ignores_other_events(settings, monkeypatch, store):
    monkeypatch.setattr(
        payments_service,
        "verify_stripe_event",
        lambda payload, sig, secret: {"type": "charge.refunded", "data": {"object": {}}},
    )
    assert await payments_service.handle_webhook(b"{}", "sig", store) is None


@pytest.mark.asyncio
async def test_webhook_requires_secret(monkeypatch, store):
    monkeypatch.setattr(payments_service, "get_settings", lambda: Settings(stripe_webhook_secret=""))
    with pytest.raises(BadRequestError):
        await payments_service.handle_webhook(b"{}", "sig", store)


@pytest.mark.asyncio
async def test_webhook_bad_signature_is_rejected(settings, store):
    with pytest.raises(BadRequestError):
        await payments_service.handle_webhook(b'{"type": "x"}', "t=1,v1=bad", store)


@pytest.mark.asyncio
async def test_webhook_credits_payment_once(settings, monkeypatch, store, audit):
    user_id = store.add_user(credits=5)

    async def fake_get(uid):
        return SimpleNamespace(id=uid, credits=store.credits[uid]) if uid in store.credits else None

    monkeypatch.setattr(payments_service, "User", SimpleNamespace(get=fake_get))
    event = {"type": "payment_intent.succeeded", "data": {"object": _intent(user_id, amount=300)}}
    monkeypatch.setattr(payments_service, "verify_stripe_event", lambda payload, sig, secret: event)

    first = await payments_service.handle_webhook(b"{}", "sig", store)
    second = await payments_service.handle_webhook(b"{}", "sig", store)

    assert first.outcome is ConfirmationOutcome.CREDITED
    assert second.outcome is ConfirmationOutcome.ALREADY_PROCESSED
    assert store.credits[user_id] == 5 + 301


@pytest.mark.asyncio
async def test_webhook_without_user_metadata_is_skipped(settings, monkeypatch, store):
    intent = _intent("not-an-object-id")
    event = {"type": "payment_intent.succeeded", "data": {"object": intent}}
    monkeypatch.setattr(payments_service, "verify_stripe_event", lambda payload, sig, secret: event)

    assert await payments_service.handle_webhook(b"{}", "sig", store) is None
