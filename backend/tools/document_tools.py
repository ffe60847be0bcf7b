"""Document tools exposed to the chat assistant."""

from pydantic import BaseModel, Field

from document_store import document_to_dict
from .registry import ActorContext, Tool, ToolRegistry


class CreateDocumentInput(BaseModel):
    title: str = Field(..., min_length=1, description="The title of the document")
    content: str = Field(..., description="The content of the document")


class GetDocumentInput(BaseModel):
    id: int = Field(..., description="The ID of the document to retrieve")


class UpdateDocumentInput(BaseModel):
    id: int = Field(..., description="The ID of the document to update")
    title: str = Field(..., min_length=1, description="The new title of the document")
    content: str = Field(..., description="The new content of the document")


class ListDocumentsInput(BaseModel):
    pass


async def create_document(params: CreateDocumentInput, actor: ActorContext) -> dict:
    doc = actor.documents.create(actor.user_id, params.title, params.content)
    return document_to_dict(doc)


async def get_document(params: GetDocumentInput, actor: ActorContext) -> dict:
    doc = actor.documents.get_owned(actor.user_id, params.id)
    return document_to_dict(doc)


async def update_document(params: UpdateDocumentInput, actor: ActorContext) -> dict:
    doc = actor.documents.update(actor.user_id, params.id, params.title, params.content)
    return document_to_dict(doc)


async def list_documents(params: ListDocumentsInput, actor: ActorContext) -> dict:
    docs = actor.documents.list_by_actor(actor.user_id)
    # Listing returns summaries; the model fetches full content with getDocument
    return {
        "count": len(docs),
        "documents": [
            {"id": d.id, "title": d.title, "updatedAt": d.updated_at.isoformat() if d.updated_at else None}
            for d in docs
        ],
    }


DOCUMENT_TOOLS = [
    Tool(
        name="createDocument",
        description="Create a new document for the user. Use this when the user asks to create, write, or save a document.",
        input_model=CreateDocumentInput,
        execute=create_document,
    ),
    Tool(
        name="getDocument",
        description="Get a document by ID. Use this when the user asks to view, read, or retrieve a document.",
        input_model=GetDocumentInput,
        execute=get_document,
    ),
    Tool(
        name="updateDocument",
        description="Update an existing document. Use this when the user asks to edit, modify, or update a document.",
        input_model=UpdateDocumentInput,
        execute=update_document,
    ),
    Tool(
        name="listDocuments",
        description="List the user's documents with their IDs and titles, most recently updated first.",
        input_model=ListDocumentsInput,
        execute=list_documents,
    ),
]


def build_document_registry() -> ToolRegistry:
    return ToolRegistry(DOCUMENT_TOOLS)
