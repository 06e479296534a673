from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, File, Query, UploadFile

from docqa.core.exceptions import BadRequestError
from docqa.core.pagination import paginate
from docqa.deps import get_current_user, get_retrieval_client, get_storage_backend
from docqa.models.document import UserDocument
from docqa.models.user import User
from docqa.services import documents as documents_service
from docqa.services.retrieval import RetrievalClient
from docqa.storage.base import StorageBackend

router = APIRouter()


def document_dict(doc: UserDocument) -> dict:
    return {
        "id": str(doc.id),
        "name": doc.name,
        "url": doc.url,
        "content_type": doc.content_type,
        "uploaded_to_retrieval": doc.uploaded_to_retrieval,
        "created_at": doc.created_at.isoformat(),
    }


@router.post("")
async def upload(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage_backend),
    retrieval: RetrievalClient = Depends(get_retrieval_client),
):
    """Upload a document; it is stored and indexed for retrieval."""
    if not file.filename:
        raise BadRequestError("Missing filename")
    content = await file.read()
    doc = await documents_service.upload_document(
        user, content, file.filename, file.content_type, storage, retrieval
    )
    return document_dict(doc)


@router.get("")
async def list_documents(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    limit, offset = paginate(limit, offset)
    docs = await documents_service.list_documents(user.id, limit=limit, offset=offset)
    return {"items": [document_dict(d) for d in docs], "limit": limit, "offset": offset}


@router.delete("/{document_id}")
async def delete(
    document_id: str,
    user: User = Depends(get_current_user),
    storage: StorageBackend = Depends(get_storage_backend),
    retrieval: RetrievalClient = Depends(get_retrieval_client),
):
    if not PydanticObjectId.is_valid(document_id):
        raise BadRequestError("Invalid document id")
    await documents_service.delete_document(user.id, PydanticObjectId(document_id), storage, retrieval)
    return {"status": "deleted"}
