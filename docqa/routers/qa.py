from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from docqa.deps import get_current_user, get_ledger, get_retrieval_client
from docqa.models.user import User
from docqa.services import qa as qa_service
from docqa.services.credits import CreditLedger
from docqa.services.retrieval import RetrievalClient

router = APIRouter()


class QuestionRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=4000)
    model: str | None = None


class AnswerRequest(BaseModel):
    document: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, max_length=4000)
    model: str | None = None


class SummaryRequest(BaseModel):
    document: str = Field(..., min_length=1)
    language: str = "English"
    model: str | None = None
    num_words: int = Field(100, ge=10, le=1000)


@router.post("/retrieve")
async def retrieve(
    body: QuestionRequest,
    user: User = Depends(get_current_user),
    retrieval: RetrievalClient = Depends(get_retrieval_client),
):
    """Return matching passages with relevance scores (free)."""
    passages = await qa_service.retrieve_only(retrieval, body.query, str(user.id))
    return {"passages": [{"text": p.text, "score": p.score} for p in passages]}


@router.post("/ask")
async def ask(
    body: QuestionRequest,
    ledger: CreditLedger = Depends(get_ledger),
    retrieval: RetrievalClient = Depends(get_retrieval_client),
):
    """Answer from the user's documents; streams plain text. Costs credits."""
    stream = await qa_service.ask(ledger, retrieval, body.query, body.model)
    return StreamingResponse(
        stream,
        media_type="text/plain; charset=utf-8",
        headers={"X-Credits-Remaining": str(ledger.mirror.credits)},
    )


@router.post("/summarize")
async def summarize(body: SummaryRequest, user: User = Depends(get_current_user)):
    stream = await qa_service.summarize(body.document, body.language, body.model, body.num_words)
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")


@router.post("/answer")
async def answer(body: AnswerRequest, user: User = Depends(get_current_user)):
    """Answer a question about a pasted document in 100 words or less (free)."""
    stream = await qa_service.answer(body.document, body.question, body.model)
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")
