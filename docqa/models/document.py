from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class UserDocument(Document):
    """Uploaded file plus its retrieval-service counterpart."""
    user_id: PydanticObjectId
    name: str
    content_type: str = "application/octet-stream"
    storage_key: str
    url: str
    uploaded_to_retrieval: bool = False
    retrieval_document_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "documents"
        indexes = [[("user_id", 1), ("created_at", -1)]]
