import hashlib
from typing import Any

import stripe
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from docqa.core.config import get_settings
from docqa.core.exceptions import BadRequestError

SESSION_MAX_AGE = 7 * 24 * 3600  # 7 days


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="docqa-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    return get_session_serializer().dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def verify_stripe_event(payload: bytes, signature: str, secret: str) -> stripe.Event:
    """Check the Stripe-Signature header and parse the event."""
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as e:
        raise BadRequestError("Invalid webhook payload") from e
    except stripe.SignatureVerificationError as e:
        raise BadRequestError("Invalid webhook signature") from e
