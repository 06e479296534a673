import pytest

from docqa.storage.local import LocalStorage

pytestmark = pytest.mark.asyncio


async def test_local_put_get_delete(tmp_path):
    storage = LocalStorage(root=tmp_path)

    url = await storage.put("documents/u1/a.txt", b"hello", content_type="text/plain")

    assert url.startswith("file://")
    assert await storage.get("documents/u1/a.txt") == b"hello"
    await storage.delete("documents/u1/a.txt")
    with pytest.raises(FileNotFoundError):
        await storage.get("documents/u1/a.txt")
    # deleting again is a no-op
    await storage.delete("documents/u1/a.txt")


async def test_local_rejects_keys_outside_root(tmp_path):
    storage = LocalStorage(root=tmp_path / "root")
    with pytest.raises(ValueError):
        await storage.put("../escape.txt", b"x")
