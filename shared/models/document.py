"""Pydantic models for documents flowing through the index.

Hierarchy:
  PageOffset          — page boundaries reported by the text extractor.
  ChunkDescriptor     — one retrievable unit of a document (transient).
  IngestRequest       — input of a single document ingestion.
  IngestResult        — what an ingestion wrote.
  DocumentIndexEntry  — read-side projection of a metadata record.
  DeleteResult        — what a deletion removed.
"""

from pydantic import BaseModel, ConfigDict, Field

from shared.clients.rag.models.Batch import BatchReport
from shared.clients.rag.models.VectorRecord import CustomMetadataValue


class PageOffset(BaseModel):
    """Character range of one page inside the extracted text.

    Accepts the extractor's camelCase keys ({pageNumber, startIndex, endIndex}).
    """

    model_config = ConfigDict(populate_by_name=True)

    page_number: int = Field(alias="pageNumber")
    start_index: int = Field(alias="startIndex")
    end_index: int = Field(alias="endIndex")


class ChunkDescriptor(BaseModel):
    """A bounded slice of a document's text, the unit that gets embedded.

    text is always the literal slice source[start_offset:end_offset].
    """

    chunk_index: int
    text: str
    start_offset: int | None = None
    end_offset: int | None = None
    page_number: int | None = None
    page_numbers: list[int] = []


class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    document_id: str | None = Field(default=None, alias="documentId")
    file_name: str = Field(alias="fileName")
    file_type: str = Field(default="unknown", alias="fileType")
    text: str
    page_offsets: list[PageOffset] | None = Field(default=None, alias="pageInfo")
    metadata: dict[str, CustomMetadataValue] = {}


class IngestResult(BaseModel):
    document_id: str
    chunks: int
    vector_ids: list[str]
    created_at: str
    pruned: int = 0


class DocumentIndexEntry(BaseModel):
    """Document summary assembled from its metadata record. Computed on read, never stored."""

    id: str
    file_name: str
    file_type: str = "unknown"
    created_at: str | None = None
    chunks: int = 1


class DeleteResult(BaseModel):
    deleted: int
    report: BatchReport
