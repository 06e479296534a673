from abc import ABC, abstractmethod
from typing import BinaryIO

from docqa.core.config import get_settings


class StorageBackend(ABC):
    """Object store for uploaded documents, keyed by documents/<user_id>/<name>."""

    @abstractmethod
    async def put(self, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        """Store file; return its URL."""
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Retrieve file bytes; FileNotFoundError if missing."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete file; missing keys are ignored."""
        ...


def get_storage() -> StorageBackend:
    settings = get_settings()
    if settings.storage_backend == "gcs":
        from docqa.storage.gcs import GCSStorage
        return GCSStorage()
    from docqa.storage.local import LocalStorage
    return LocalStorage()
