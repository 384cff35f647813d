from pydantic import BaseModel

from shared.clients.rag.models.Batch import BatchReport
from shared.clients.rag.models.Query import VectorMatch
from shared.models.document import DocumentIndexEntry


class StoreResponse(BaseModel):
    success: bool = True
    document_id: str
    chunks: int
    vector_ids: list[str]
    pruned: int = 0


class DocumentListResponse(BaseModel):
    documents: list[DocumentIndexEntry]
    total: int


class VectorListResponse(BaseModel):
    document_id: str
    vectors: list[VectorMatch]
    total: int


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: int
    report: BatchReport
