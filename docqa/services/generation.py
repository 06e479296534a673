"""LLM answer generation over OpenAI-compatible chat endpoints."""

from dataclasses import dataclass
from typing import AsyncIterator, Iterable

from openai import AsyncOpenAI, OpenAIError

from docqa.core.config import Settings, get_settings
from docqa.core.exceptions import BadRequestError, GenerationError
from docqa.core.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    provider_model: str
    key_setting: str  # Settings attribute holding the API key
    base_url: str | None = None


MODELS: dict[str, ModelSpec] = {
    "gpt-4o": ModelSpec("gpt-4o", "openai_api_key"),
    "gemini-1.5-pro": ModelSpec(
        "gemini-1.5-pro-latest",
        "google_api_key",
        "https://generativelanguage.googleapis.com/v1beta/openai/",
    ),
    "mistral-large": ModelSpec("mistral-large-latest", "mistral_api_key", "https://api.mistral.ai/v1"),
    "claude-3-5-sonnet": ModelSpec(
        "claude-3-5-sonnet-20241022",
        "anthropic_api_key",
        "https://api.anthropic.com/v1/",
    ),
    "llama-v3p1-405b": ModelSpec(
        "accounts/fireworks/models/llama-v3p1-405b-instruct",
        "fireworks_api_key",
        "https://api.fireworks.ai/inference/v1",
    ),
}

RETRIEVAL_SYSTEM_PROMPT = """You are "Ragie AI", a professional but friendly AI chatbot working as an assistant to the user.
Your current task is to help the user based on all of the information available to you shown below.
Answer informally, directly, and concisely without a heading or greeting but include everything relevant.
Use richtext Markdown when appropriate including bold, italic, paragraphs, and lists when helpful.
If using LaTeX, use double $$ as delimiter instead of single $. Use $$...$$ instead of parentheses.
Organize information into multiple sections or points when appropriate.
Don't include raw item IDs or other raw fields from the source.
Don't use XML or other markup unless requested by the user.

Here is all of the information available to answer the user:
===
{passages}
===

If the user asked for a search and there are no results, make sure to let the user know that you couldn't find anything,
and what they might be able to do to find the information they need."""

ANSWER_SYSTEM_PROMPT = (
    "You are a helpful question and answer assistant. Your job is to generate an answer to the provided "
    "question based on the provided document. Without any introduction, provide an answer that is concise, "
    "informative, and 100 words or less."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful summarization and translation assistant. Your job is to generate a summary of the "
    "provided document in the provided language. The summary should be concise, informative, and {num_words} "
    "words or less. Present the summary without introduction and without saying that it is a summary."
)


def build_passage_prompt(passages: Iterable[str]) -> str:
    return RETRIEVAL_SYSTEM_PROMPT.format(passages="\n".join(passages))


def answer_prompts(document: str, question: str) -> tuple[str, str]:
    return ANSWER_SYSTEM_PROMPT, f"Provided document:\n{document}\n\nProvided question:\n{question}"


def summary_prompts(document: str, language: str, num_words: int) -> tuple[str, str]:
    return (
        SUMMARY_SYSTEM_PROMPT.format(num_words=num_words),
        f"Provided document:\n{document}\n\nProvided language:\n{language}",
    )


def resolve_model(name: str) -> ModelSpec:
    spec = MODELS.get(name)
    if spec is None:
        raise BadRequestError(f"Unsupported model name: {name}", details={"supported": sorted(MODELS)})
    return spec


def client_for(spec: ModelSpec, settings: Settings | None = None) -> AsyncOpenAI:
    settings = settings or get_settings()
    api_key = getattr(settings, spec.key_setting)
    if not api_key:
        raise BadRequestError(f"Model provider not configured ({spec.key_setting.upper()} missing)")
    return AsyncOpenAI(api_key=api_key, base_url=spec.base_url)


async def stream_text(
    system_prompt: str,
    user_prompt: str,
    model: str,
    client: AsyncOpenAI | None = None,
) -> AsyncIterator[str]:
    """Yield text fragments from the model in arrival order."""
    spec = resolve_model(model)
    client = client or client_for(spec)
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    fragments = 0
    try:
        stream = await client.chat.completions.create(model=spec.provider_model, messages=messages, stream=True)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                fragments += 1
                yield delta
    except OpenAIError as e:
        log.error("generation_failed", model=model, error=str(e))
        raise GenerationError() from e
    log.info("generation_done", model=model, fragments=fragments)


async def collect(stream: AsyncIterator[str]) -> str:
    return "".join([fragment async for fragment in stream])


async def _prepend(first: str, rest: AsyncIterator[str]) -> AsyncIterator[str]:
    yield first
    async for fragment in rest:
        yield fragment


async def _empty() -> AsyncIterator[str]:
    return
    yield


async def primed(stream: AsyncIterator[str]) -> AsyncIterator[str]:
    """Pull the first fragment now so provider failures raise before a response starts."""
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        return _empty()
    return _prepend(first, stream)
