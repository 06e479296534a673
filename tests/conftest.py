import asyncio
import os
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from beanie import PydanticObjectId
from httpx import ASGITransport, AsyncClient
from openai import OpenAIError

# Use test DB
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "docqa_test")
os.environ.setdefault("MONGODB_TIMEOUT_MS", "2000")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("STORAGE_LOCAL_PATH", "/tmp/docqa-test-uploads")

from docqa.core.exceptions import DuplicatePaymentError, NotFoundError, StoreUnavailableError  # noqa: E402
from docqa.services.ledger_store import DebitResult, Payment  # noqa: E402


class FakeLedgerStore:
    """In-memory LedgerStore. Yields to the loop on every call so gathered
    coroutines interleave the way concurrent requests would."""

    def __init__(self) -> None:
        self.credits: dict[PydanticObjectId, int] = {}
        self.payments: dict[PydanticObjectId, list[Payment]] = {}
        self.fail_increment = False
        self.fail_debit = False
        self.increment_calls = 0
        self._lock = asyncio.Lock()
        self._clock = datetime(2024, 1, 1)

    def add_user(self, credits: int = 0) -> PydanticObjectId:
        user_id = PydanticObjectId()
        self.credits[user_id] = credits
        self.payments[user_id] = []
        return user_id

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def get_credits(self, user_id):
        await asyncio.sleep(0)
        return self.credits.get(user_id)

    async def debit_if_sufficient(self, user_id, amount):
        await asyncio.sleep(0)
        if self.fail_debit:
            raise StoreUnavailableError()
        # The lock stands in for the database's single-document atomicity.
        async with self._lock:
            if user_id not in self.credits:
                return DebitResult.USER_NOT_FOUND
            if self.credits[user_id] < amount:
                return DebitResult.INSUFFICIENT
            await asyncio.sleep(0)
            self.credits[user_id] -= amount
            return DebitResult.APPLIED

    async def increment_credits(self, user_id, amount):
        await asyncio.sleep(0)
        self.increment_calls += 1
        if self.fail_increment:
            raise StoreUnavailableError()
        if user_id not in self.credits:
            raise NotFoundError("User not found")
        self.credits[user_id] += amount

    async def find_payment(self, user_id, payment_id, status=None):
        await asyncio.sleep(0)
        for p in self.payments.get(user_id, []):
            if p.id == payment_id and (status is None or p.status == status):
                return p
        return None

    async def insert_payment(self, user_id, payment_id, amount, status):
        await asyncio.sleep(0)
        records = self.payments.setdefault(user_id, [])
        if any(p.id == payment_id for p in records):
            raise DuplicatePaymentError(payment_id)
        payment = Payment(id=payment_id, amount=amount, status=status, created_at=self._now())
        records.append(payment)
        return payment

    async def list_payments(self, user_id, limit=50, offset=0):
        await asyncio.sleep(0)
        ordered = sorted(self.payments.get(user_id, []), key=lambda p: p.created_at, reverse=True)
        return ordered[offset:offset + limit]


@pytest.fixture
def store() -> FakeLedgerStore:
    return FakeLedgerStore()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from docqa.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


_mongo_reachable: bool | None = None


@pytest_asyncio.fixture
async def mongo():
    """Initialised Beanie on a throwaway database. Uses a real MongoDB when one
    answers, otherwise an in-memory mongomock_motor client."""
    global _mongo_reachable
    from beanie import init_beanie
    from mongomock_motor import AsyncMongoMockClient
    from pymongo.errors import ConnectionFailure

    from docqa.core.config import get_settings
    from docqa.db.init import DOCUMENT_MODELS, init_db

    db_name = get_settings().mongodb_db_name
    if _mongo_reachable is not False:
        try:
            mongo_client = await init_db()
        except ConnectionFailure:
            _mongo_reachable = False
        else:
            _mongo_reachable = True
            yield mongo_client
            await mongo_client.drop_database(db_name)
            mongo_client.close()
            return

    mock_client = AsyncMongoMockClient()
    await init_beanie(database=mock_client[db_name], document_models=DOCUMENT_MODELS)
    yield mock_client


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeCompletions:
    def __init__(self, chunks, fail_after=None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._stream()

    async def _stream(self):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise OpenAIError("upstream went away")
            yield chunk


class FakeLLM:
    """Stands in for AsyncOpenAI. Strings (or None) become delta chunks;
    anything else is streamed as-is."""

    def __init__(self, fragments=(), fail_after=None):
        chunks = [f if not (f is None or isinstance(f, str)) else _chunk(f) for f in fragments]
        self.chat = SimpleNamespace(completions=FakeCompletions(chunks, fail_after))

    @property
    def calls(self):
        return self.chat.completions.calls


@pytest.fixture
def fake_llm():
    return FakeLLM
