from datetime import datetime

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from docqa.core.audit import log_event
from docqa.core.config import get_settings
from docqa.core.exceptions import BadRequestError, UnauthorizedError
from docqa.core.logging import get_logger
from docqa.models.user import User

log = get_logger(__name__)

PROFILE_FIELDS = ("contact_email", "display_name")


def verify_google_id_token(token: str) -> dict:
    """Verify Google ID token; return decoded claims (sub, email, name, picture, etc.)."""
    settings = get_settings()
    try:
        return id_token.verify_oauth2_token(
            token,
            google_requests.Request(),
            settings.google_client_id,
        )
    except ValueError as e:
        raise UnauthorizedError(f"Invalid Google token: {e}") from e


async def upsert_user_from_google(claims: dict) -> User:
    """Refresh identity fields on login; new users start with the default balance."""
    google_sub = claims.get("sub")
    if not google_sub:
        raise BadRequestError("Missing sub in token")
    email = claims.get("email") or ""
    name = claims.get("name") or ""
    picture = claims.get("picture")
    verified = bool(claims.get("email_verified"))

    user = await User.find_one(User.google_sub == google_sub)
    if user:
        user.email = email
        user.display_name = user.display_name or name
        user.photo_url = user.photo_url or picture
        user.email_verified = verified
        user.last_login_at = datetime.utcnow()
        user.updated_at = datetime.utcnow()
        # Only identity fields are written; credits stay under ledger control.
        await user.save_changes()
        log.info("user_login", user_id=str(user.id), email=user.email)
        return user

    user = User(
        google_sub=google_sub,
        email=email,
        contact_email=email,
        display_name=name,
        photo_url=picture,
        email_verified=verified,
        credits=get_settings().default_credits,
        last_login_at=datetime.utcnow(),
    )
    await user.insert()
    log.info("user_created", user_id=str(user.id), email=user.email, credits=user.credits)
    await log_event(str(user.id), "user_created", "user", str(user.id), {"credits": user.credits})
    return user


async def update_profile(user: User, changes: dict) -> User:
    """Apply editable profile fields; anything else is rejected."""
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise BadRequestError("Field(s) cannot be updated", details={"fields": sorted(unknown)})
    for name, value in changes.items():
        setattr(user, name, value)
    user.updated_at = datetime.utcnow()
    await user.save_changes()
    return user


def session_payload_for_user(user: User) -> dict:
    return {"user_id": str(user.id), "session_version": user.session_version}


def profile_dict(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "contact_email": user.contact_email,
        "display_name": user.display_name,
        "photo_url": user.photo_url,
        "email_verified": user.email_verified,
        "credits": user.credits,
    }
