"""Question answering over the user's indexed documents."""

from typing import AsyncIterator

from docqa.core.config import get_settings
from docqa.core.exceptions import AppError, GenerationError, InsufficientCreditsError, NotFoundError
from docqa.core.logging import get_logger
from docqa.services import generation
from docqa.services.credits import CreditLedger
from docqa.services.retrieval import Passage, RetrievalClient

log = get_logger(__name__)

NO_CONTENT_MESSAGE = "No relevant content found. Please upload some documents first."


async def retrieve_only(retrieval: RetrievalClient, query: str, user_id: str) -> list[Passage]:
    return await retrieval.retrieve(query, user_id)


async def _refund(ledger: CreditLedger, amount: int) -> None:
    try:
        await ledger.credit(amount)
    except AppError:
        # The GenerationError still propagates; the lost refund is left in the logs.
        log.exception("question_refund_failed", user_id=str(ledger.user_id), amount=amount)
        return
    log.info("question_refunded", user_id=str(ledger.user_id), amount=amount)


async def ask(
    ledger: CreditLedger,
    retrieval: RetrievalClient,
    query: str,
    model: str | None = None,
    llm_client=None,
) -> AsyncIterator[str]:
    """Retrieve passages, charge for the question, return the answer stream.

    Nothing is charged when no passages match or the model is unusable. The
    charge is refunded when the provider fails before the first fragment.
    """
    model = model or get_settings().default_model
    spec = generation.resolve_model(model)
    llm_client = llm_client or generation.client_for(spec)

    passages = await retrieval.retrieve(query, str(ledger.user_id))
    if not passages:
        raise NotFoundError(NO_CONTENT_MESSAGE)

    cost = get_settings().credits_per_question
    if not await ledger.debit(cost):
        raise InsufficientCreditsError(required=cost)

    log.info("question_asked", user_id=str(ledger.user_id), model=model, passages=len(passages))
    system_prompt = generation.build_passage_prompt(p.text for p in passages)
    try:
        return await generation.primed(generation.stream_text(system_prompt, query, model, client=llm_client))
    except GenerationError:
        await _refund(ledger, cost)
        raise


async def _free_stream(system_prompt: str, user_prompt: str, model: str | None, llm_client) -> AsyncIterator[str]:
    model = model or get_settings().default_model
    spec = generation.resolve_model(model)
    llm_client = llm_client or generation.client_for(spec)
    return await generation.primed(generation.stream_text(system_prompt, user_prompt, model, client=llm_client))


async def summarize(
    document: str,
    language: str,
    model: str | None = None,
    num_words: int = 100,
    llm_client=None,
) -> AsyncIterator[str]:
    system_prompt, user_prompt = generation.summary_prompts(document, language, num_words)
    return await _free_stream(system_prompt, user_prompt, model, llm_client)


async def answer(document: str, question: str, model: str | None = None, llm_client=None) -> AsyncIterator[str]:
    """Short answer to `question` from a pasted document (no retrieval, no charge)."""
    system_prompt, user_prompt = generation.answer_prompts(document, question)
    return await _free_stream(system_prompt, user_prompt, model, llm_client)
