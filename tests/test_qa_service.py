import pytest

from docqa.core.exceptions import BadRequestError, GenerationError, InsufficientCreditsError, NotFoundError
from docqa.services import generation, qa
from docqa.services.credits import CreditLedger, LedgerMirror
from docqa.services.retrieval import Passage


pytestmark = pytest.mark.asyncio


class FakeRetrieval:
    def __init__(self, passages):
        self.passages = passages
        self.queries = []

    async def retrieve(self, query, user_id):
        self.queries.append((query, user_id))
        return self.passages


async def test_no_passages_is_not_charged(store, fake_llm):
    user_id = store.add_user(credits=10)
    ledger = CreditLedger(store, user_id, LedgerMirror(credits=10))

    with pytest.raises(NotFoundError) as exc:
        await qa.ask(ledger, FakeRetrieval([]), "anything?", model="gpt-4o", llm_client=fake_llm())

    assert exc.value.message == qa.NO_CONTENT_MESSAGE
    assert store.credits[user_id] == 10


async def test_insufficient_credits(store, fake_llm):
    user_id = store.add_user(credits=0)
    ledger = CreditLedger(store, user_id)
    retrieval = FakeRetrieval([Passage("alpha", 0.9)])

    with pytest.raises(InsufficientCreditsError) as exc:
        await qa.ask(ledger, retrieval, "q", model="gpt-4o", llm_client=fake_llm())

    assert exc.value.status_code == 402
    assert store.credits[user_id] == 0


async def test_ask_charges_and_streams_answer(store, fake_llm):
    user_id = store.add_user(credits=10)
    ledger = CreditLedger(store, user_id, LedgerMirror(credits=10))
    retrieval = FakeRetrieval([Passage("alpha fact", 0.9), Passage("beta fact", 0.5)])
    llm = fake_llm(["Alpha ", "it is."])

    stream = await qa.ask(ledger, retrieval, "what is alpha?", model="gpt-4o", llm_client=llm)

    assert store.credits[user_id] == 9
    assert ledger.mirror.credits == 9
    assert await generation.collect(stream) == "Alpha it is."
    assert retrieval.queries == [("what is alpha?", str(user_id))]
    messages = llm.calls[0]["messages"]
    assert "alpha fact\nbeta fact" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "what is alpha?"}


async def test_unknown_model_fails_before_retrieval(store):
    user_id = store.add_user(credits=10)
    ledger = CreditLedger(store, user_id)
    retrieval = FakeRetrieval([Passage("alpha", 0.9)])

    with pytest.raises(BadRequestError):
        await qa.ask(ledger, retrieval, "q", model="gpt-2")

    assert retrieval.queries == []
    assert store.credits[user_id] == 10


async def test_provider_failure_before_first_fragment_is_refunded(store, fake_llm):
    user_id = store.add_user(credits=10)
    ledger = CreditLedger(store, user_id, LedgerMirror(credits=10))
    retrieval = FakeRetrieval([Passage("alpha", 0.9)])

    with pytest.raises(GenerationError):
        await qa.ask(ledger, retrieval, "q", model="gpt-4o", llm_client=fake_llm(["x"], fail_after=0))

    assert store.credits[user_id] == 10
    assert ledger.mirror.credits == 10


async def test_empty_answer_stream_is_still_charged(store, fake_llm):
    user_id = store.add_user(credits=10)
    ledger = CreditLedger(store, user_id)

    stream = await qa.ask(ledger, FakeRetrieval([Passage("alpha", 0.9)]), "q", model="gpt-4o", llm_client=fake_llm())

    assert await generation.collect(stream) == ""
    assert store.credits[user_id] == 9


async def test_summarize_streams_without_charge(fake_llm):
    llm = fake_llm(["Résumé."])
    stream = await qa.summarize("long text", "French", model="gpt-4o", num_words=20, llm_client=llm)
    assert await generation.collect(stream) == "Résumé."


async def test_answer_uses_document_and_question(fake_llm):
    llm = fake_llm(["Blue", "."])

    stream = await qa.answer("The sky is blue.", "What colour is the sky?", model="gpt-4o", llm_client=llm)

    assert await generation.collect(stream) == "Blue."
    messages = llm.calls[0]["messages"]
    assert "100 words or less" in messages[0]["content"]
    assert messages[1]["content"].endswith("Provided question:\nWhat colour is the sky?")


async def test_free_stream_failure_raises_before_streaming(fake_llm):
    with pytest.raises(GenerationError):
        await qa.answer("doc", "q", model="gpt-4o", llm_client=fake_llm(["x"], fail_after=0))
