import asyncio
from typing import BinaryIO

from google.cloud import storage

from docqa.core.config import get_settings
from docqa.storage.base import StorageBackend


class GCSStorage(StorageBackend):
    """Google Cloud Storage; the blocking client runs in a worker thread."""

    def __init__(self) -> None:
        settings = get_settings()
        self.bucket_name = settings.gcs_bucket_name or "docqa-uploads"
        self._client = storage.Client()
        self._bucket = self._client.bucket(self.bucket_name)

    async def put(self, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        blob = self._bucket.blob(key)
        content_type = content_type or "application/octet-stream"
        if isinstance(body, bytes):
            await asyncio.to_thread(blob.upload_from_string, body, content_type=content_type)
        else:
            await asyncio.to_thread(blob.upload_from_file, body, content_type=content_type)
        return f"gs://{self.bucket_name}/{key}"

    async def get(self, key: str) -> bytes:
        blob = self._bucket.blob(key)
        if not await asyncio.to_thread(blob.exists):
            raise FileNotFoundError(key)
        return await asyncio.to_thread(blob.download_as_bytes)

    async def delete(self, key: str) -> None:
        blob = self._bucket.blob(key)
        if await asyncio.to_thread(blob.exists):
            await asyncio.to_thread(blob.delete)
