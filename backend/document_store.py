"""Document persistence with per-actor ownership checks."""

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from database import commit_or_rollback
from errors import DocumentAccessError, DocumentNotFoundError
from models import Document


def document_to_dict(doc: Document) -> dict:
    return {
        "id": doc.id,
        "title": doc.title,
        "content": doc.content,
        "createdAt": doc.created_at.isoformat() if doc.created_at else None,
        "updatedAt": doc.updated_at.isoformat() if doc.updated_at else None,
    }


class DocumentStore:

    def __init__(self, db: Session):
        self.db = db

    def create(self, actor_id: str, title: str, content: str) -> Document:
        doc = Document(user_id=actor_id, title=title, content=content)
        self.db.add(doc)
        commit_or_rollback(self.db, "create document")
        self.db.refresh(doc)
        return doc

    def get(self, document_id: int) -> Document:
        doc = self.db.query(Document).filter(Document.id == document_id).first()
        if doc is None:
            raise DocumentNotFoundError(document_id)
        return doc

    def get_owned(self, actor_id: str, document_id: int) -> Document:
        """Fetch a document, refusing access to anyone but its owner."""
        doc = self.get(document_id)
        if doc.user_id != actor_id:
            raise DocumentAccessError(document_id)
        return doc

    def _save(self, doc: Document) -> Document:
        doc.updated_at = datetime.now(timezone.utc)
        commit_or_rollback(self.db, "save document")
        self.db.refresh(doc)
        return doc

    def update(self, actor_id: str, document_id: int, title: str, content: str) -> Document:
        doc = self.get_owned(actor_id, document_id)
        doc.title = title
        doc.content = content
        return self._save(doc)

    def update_content(self, actor_id: str, document_id: int, content: str) -> Document:
        doc = self.get_owned(actor_id, document_id)
        doc.content = content
        return self._save(doc)

    def update_title(self, actor_id: str, document_id: int, title: str) -> Document:
        doc = self.get_owned(actor_id, document_id)
        doc.title = title
        return self._save(doc)

    def delete(self, actor_id: str, document_id: int):
        doc = self.get_owned(actor_id, document_id)
        self.db.delete(doc)
        commit_or_rollback(self.db, "delete document")

    def list_by_actor(self, actor_id: str) -> list[Document]:
        return (
            self.db.query(Document)
            .filter(Document.user_id == actor_id)
            .order_by(Document.updated_at.desc(), Document.id.desc())
            .all()
        )
