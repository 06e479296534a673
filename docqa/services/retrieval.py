"""Ragie retrieval API: passage search and document indexing."""

import json
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

import httpx

from docqa.core.config import get_settings
from docqa.core.exceptions import BadRequestError, RetrievalServiceError
from docqa.core.logging import get_logger

log = get_logger(__name__)

_REQUEST_ID_HEADERS = ("x-request-id", "x-requestid", "request-id")


@dataclass
class Passage:
    text: str
    score: float


def _truncate(s: str, max_len: int) -> str:
    return s if len(s) <= max_len else s[:max_len] + "…"


def _redact_url(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _extract_detail(response: httpx.Response) -> str | None:
    text = response.text
    if "application/json" in response.headers.get("content-type", ""):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("detail", "message", "error"):
                if isinstance(body.get(key), str):
                    return body[key]
    text = text.strip()
    return _truncate(text, 2000) if text else None


def _error_code(status: int) -> str:
    if status == 401:
        return "RAGIE_UNAUTHORIZED"
    if status == 403:
        return "RAGIE_FORBIDDEN"
    if status == 413:
        return "RAGIE_TOO_LARGE"
    if status == 415:
        return "RAGIE_UNSUPPORTED_MEDIA_TYPE"
    if status == 429:
        return "RAGIE_RATE_LIMITED"
    if status >= 500:
        return "RAGIE_SERVER_ERROR"
    return "RAGIE_REQUEST_FAILED"


def _user_message(status: int, detail: str | None) -> str:
    if status == 401:
        return "The retrieval service rejected the API key (401 Unauthorized). Check RAGIE_API_KEY."
    if status == 403:
        d = (detail or "").lower()
        if "account" in d and "disabled" in d:
            return detail
        return "The retrieval service forbids this request (403). The API key may not have access to this resource."
    if status == 413:
        return "The upload is too large (413). Try a smaller file."
    if status == 415:
        return "The file type is not supported (415). Try a supported document format."
    if status == 429:
        return "The retrieval service rate-limited this request (429). Please retry in a moment."
    if status >= 500:
        return "The retrieval service is having trouble right now. Please retry in a moment."
    return f"Retrieval request failed (HTTP {status})."


def error_from_response(response: httpx.Response, endpoint: str, method: str) -> RetrievalServiceError:
    """Map a non-2xx Ragie response to a RetrievalServiceError and log it."""
    request_id = next(
        (response.headers[h] for h in _REQUEST_ID_HEADERS if h in response.headers),
        None,
    )
    detail = _extract_detail(response)
    log.error(
        "retrieval_request_failed",
        endpoint=endpoint,
        method=method,
        status=response.status_code,
        upstream_request_id=request_id,
        url=_redact_url(str(response.request.url)),
        detail=_truncate(detail, 500) if detail else None,
    )
    return RetrievalServiceError(
        _user_message(response.status_code, detail),
        code=_error_code(response.status_code),
        upstream_status=response.status_code,
        detail=detail,
        request_id=request_id,
    )


class RetrievalClient:
    """Thin async client for the Ragie REST API.

    Pass `http_client` to reuse a connection pool or to inject a mock
    transport in tests; otherwise a client is created per call.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        scope: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.ragie_api_key
        self.base_url = (base_url or settings.ragie_base_url).rstrip("/")
        self.scope = scope or settings.ragie_scope
        self.timeout = timeout or settings.ragie_timeout_seconds
        self._http = http_client

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise RetrievalServiceError(
                "Retrieval API key is not configured",
                code="RAGIE_NOT_CONFIGURED",
            )
        return {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        headers = self._headers()
        url = f"{self.base_url}{endpoint}"
        try:
            if self._http is not None:
                response = await self._http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            log.warning("retrieval_timeout", endpoint=endpoint, method=method)
            raise RetrievalServiceError(
                "Request timed out. Please try again.",
                code="RAGIE_TIMEOUT",
            ) from e
        except httpx.TransportError as e:
            log.warning("retrieval_unreachable", endpoint=endpoint, method=method, error=str(e))
            raise RetrievalServiceError(
                "The retrieval service could not be reached. Please try again.",
                code="RAGIE_UNAVAILABLE",
            ) from e
        if response.is_error:
            raise error_from_response(response, endpoint, method)
        return response

    async def retrieve(self, query: str, user_id: str) -> list[Passage]:
        """Search the user's indexed documents; passages come back best first."""
        if not query or not query.strip():
            raise BadRequestError("Query cannot be empty")
        if not user_id:
            raise BadRequestError("User authentication required")
        response = await self._request(
            "POST",
            "/retrievals",
            json={"query": query, "filter": {"scope": self.scope, "userId": user_id}},
        )
        chunks = response.json().get("scored_chunks") or []
        passages = [Passage(text=c.get("text", ""), score=float(c.get("score", 0.0))) for c in chunks]
        log.info("retrieval_done", user_id=user_id, passages=len(passages))
        return passages

    async def upload_document(
        self,
        content: bytes,
        filename: str,
        user_id: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Index a file for the user; return the remote document id."""
        metadata = {"title": filename, "scope": self.scope, "userId": user_id}
        response = await self._request(
            "POST",
            "/documents",
            files={"file": (filename, content, content_type)},
            data={"metadata": json.dumps(metadata)},
        )
        document_id = response.json().get("id")
        log.info("retrieval_document_uploaded", user_id=user_id, filename=filename, document_id=document_id)
        return document_id

    async def delete_document(self, document_id: str) -> None:
        await self._request("DELETE", f"/documents/{document_id}")
