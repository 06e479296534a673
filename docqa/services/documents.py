"""Document upload: object storage, metadata record, retrieval indexing."""

from datetime import datetime
from pathlib import PurePath

from beanie import PydanticObjectId

from docqa.core.audit import log_event
from docqa.core.exceptions import BadRequestError, NotFoundError, RetrievalServiceError
from docqa.core.logging import get_logger
from docqa.models.document import UserDocument
from docqa.models.user import User
from docqa.services.retrieval import RetrievalClient
from docqa.storage.base import StorageBackend

log = get_logger(__name__)

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


async def upload_document(
    user: User,
    content: bytes,
    filename: str,
    content_type: str | None,
    storage: StorageBackend,
    retrieval: RetrievalClient,
) -> UserDocument:
    """Store the file, record it, then index it with the retrieval service.

    If indexing fails the record is kept with uploaded_to_retrieval=False and
    the error propagates.
    """
    if not content:
        raise BadRequestError("Empty file")
    if len(content) > MAX_UPLOAD_BYTES:
        raise BadRequestError("File too large", details={"max_bytes": MAX_UPLOAD_BYTES})
    content_type = content_type or "application/octet-stream"
    safe_name = PurePath(filename).name or "upload"
    key = f"documents/{user.id}/{datetime.utcnow().strftime('%Y%m%d%H%M%S')}_{safe_name}"
    url = await storage.put(key, content, content_type=content_type)
    doc = UserDocument(
        user_id=user.id,
        name=filename,
        content_type=content_type,
        storage_key=key,
        url=url,
    )
    await doc.insert()

    doc.retrieval_document_id = await retrieval.upload_document(
        content, filename, str(user.id), content_type=content_type
    )
    doc.uploaded_to_retrieval = True
    await doc.save()
    log.info("document_uploaded", user_id=str(user.id), document_id=str(doc.id), size=len(content))
    await log_event(str(user.id), "document_uploaded", "document", str(doc.id), {"name": filename})
    return doc


async def list_documents(user_id: PydanticObjectId, limit: int = 50, offset: int = 0) -> list[UserDocument]:
    return (
        await UserDocument.find(UserDocument.user_id == user_id)
        .sort(-UserDocument.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )


async def delete_document(
    user_id: PydanticObjectId,
    document_id: PydanticObjectId,
    storage: StorageBackend,
    retrieval: RetrievalClient,
) -> None:
    doc = await UserDocument.find_one(UserDocument.id == document_id, UserDocument.user_id == user_id)
    if not doc:
        raise NotFoundError("Document not found")
    if doc.retrieval_document_id:
        try:
            await retrieval.delete_document(doc.retrieval_document_id)
        except RetrievalServiceError as e:
            if e.upstream_status != 404:
                raise
            log.info("retrieval_document_already_gone", document_id=str(document_id))
    await storage.delete(doc.storage_key)
    await doc.delete()
    log.info("document_deleted", user_id=str(user_id), document_id=str(document_id))
    await log_event(str(user_id), "document_deleted", "document", str(document_id), {"name": doc.name})
