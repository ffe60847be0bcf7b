from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth import get_current_user, TokenData
from chat_store import ChatStore
from database import get_db
from document_store import DocumentStore, document_to_dict
from errors import DocumentAccessError, DocumentNotFoundError
from schemas import (
    DocumentCreate, DocumentUpdate, DocumentContentUpdate, DocumentTitleUpdate,
    DocumentResponse, DocumentListResponse,
)

router = APIRouter(prefix="/api/documents", tags=["documents"])


def _document_error(e: Exception) -> HTTPException:
    if isinstance(e, DocumentAccessError):
        return HTTPException(status_code=403, detail=str(e))
    return HTTPException(status_code=404, detail="Document not found")


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    docs = DocumentStore(db).list_by_actor(current_user.user_id)
    return DocumentListResponse(documents=[DocumentResponse(**document_to_dict(d)) for d in docs])


@router.post("", response_model=DocumentResponse, status_code=201)
async def create_document(
    data: DocumentCreate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ChatStore(db).ensure_actor(current_user.user_id, current_user.username)
    doc = DocumentStore(db).create(current_user.user_id, data.title, data.content)
    return DocumentResponse(**document_to_dict(doc))


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doc = DocumentStore(db).get_owned(current_user.user_id, document_id)
    except (DocumentNotFoundError, DocumentAccessError) as e:
        raise _document_error(e)
    return DocumentResponse(**document_to_dict(doc))


@router.put("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: int,
    data: DocumentUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doc = DocumentStore(db).update(current_user.user_id, document_id, data.title, data.content)
    except (DocumentNotFoundError, DocumentAccessError) as e:
        raise _document_error(e)
    return DocumentResponse(**document_to_dict(doc))


@router.patch("/{document_id}/content", response_model=DocumentResponse)
async def update_document_content(
    document_id: int,
    data: DocumentContentUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doc = DocumentStore(db).update_content(current_user.user_id, document_id, data.content)
    except (DocumentNotFoundError, DocumentAccessError) as e:
        raise _document_error(e)
    return DocumentResponse(**document_to_dict(doc))


@router.patch("/{document_id}/title", response_model=DocumentResponse)
async def update_document_title(
    document_id: int,
    data: DocumentTitleUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        doc = DocumentStore(db).update_title(current_user.user_id, document_id, data.title)
    except (DocumentNotFoundError, DocumentAccessError) as e:
        raise _document_error(e)
    return DocumentResponse(**document_to_dict(doc))


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        DocumentStore(db).delete(current_user.user_id, document_id)
    except (DocumentNotFoundError, DocumentAccessError) as e:
        raise _document_error(e)
    return {"message": "Document deleted"}
