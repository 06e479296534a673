from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    google_sub: Indexed(str, unique=True)
    email: str
    contact_email: str = ""
    display_name: str = ""
    photo_url: str | None = None
    email_verified: bool = False
    credits: int = 0  # mutated only through the credit ledger
    session_version: int = 0
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True  # save_changes() must never write credits back
