from pathlib import Path
from typing import BinaryIO

from docqa.core.config import get_settings
from docqa.storage.base import StorageBackend


class LocalStorage(StorageBackend):
    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or get_settings().storage_local_path).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, body: BinaryIO | bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body if isinstance(body, bytes) else body.read())
        return path.as_uri()

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(key)
        return path.read_bytes()

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
