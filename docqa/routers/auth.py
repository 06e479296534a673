from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from docqa.core.security import SESSION_MAX_AGE, create_session_cookie
from docqa.deps import SESSION_COOKIE_NAME, get_current_user
from docqa.models.user import User
from docqa.services import users as user_service

router = APIRouter()


class GoogleAuthRequest(BaseModel):
    id_token: str


class ProfileUpdate(BaseModel):
    contact_email: str | None = None
    display_name: str | None = None


@router.post("/google")
async def auth_google(body: GoogleAuthRequest, response: Response):
    """Exchange Google ID token for session; set httpOnly cookie."""
    claims = user_service.verify_google_id_token(body.id_token)
    user = await user_service.upsert_user_from_google(claims)
    payload = user_service.session_payload_for_user(user)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_session_cookie(payload),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=False,  # set True in prod with HTTPS
        samesite="lax",
        path="/",
    )
    return {"user": user_service.profile_dict(user)}


@router.post("/logout")
async def auth_logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"status": "ok"}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    """Return the current profile, including the credit balance."""
    return user_service.profile_dict(user)


@router.patch("/me")
async def auth_update_me(body: ProfileUpdate, user: User = Depends(get_current_user)):
    changes = body.model_dump(exclude_none=True)
    user = await user_service.update_profile(user, changes)
    return user_service.profile_dict(user)
