"""VectorRecord model — a vector plus the tag set stored alongside it in a RAG backend.

Every record written by the document index carries the same tag set. The
user_id field is mandatory and enforced as a tenant isolation invariant: every
query and delete filters on it, so a record can only ever be reached by its owner.
"""

from pydantic import BaseModel, ConfigDict, Field

VECTORIZED_DOCUMENT_TYPE = "vectorized_document"
METADATA_RECORD_SUFFIX = "meta"
METADATA_CHUNK_INDEX = -1
ID_SEPARATOR = ":"

# Tag names owned by the index; caller-supplied custom metadata may not override them.
RESERVED_METADATA_KEYS = frozenset({
    "userId", "documentId", "fileName", "fileType", "type", "isMetadata",
    "totalChunks", "chunkIndex", "createdAt", "text",
    "pageNumbers", "startPage", "endPage", "recordId",
})

CustomMetadataValue = str | int | float | bool | list[str]


def make_content_id(user_id: str, document_id: str, chunk_index: int) -> str:
    """Build the deterministic id of a content record.

    Args:
        user_id (str): The owner of the document.
        document_id (str): The logical document id.
        chunk_index (int): Zero-based chunk index within the document.

    Returns:
        str: "{user_id}:{document_id}:{chunk_index}"
    """
    return ID_SEPARATOR.join([user_id, document_id, str(chunk_index)])


def make_metadata_id(user_id: str, document_id: str) -> str:
    """Build the deterministic id of the per-document metadata record."""
    return ID_SEPARATOR.join([user_id, document_id, METADATA_RECORD_SUFFIX])


class VectorMetadata(BaseModel):
    """Tag set stored alongside every vector.

    Serialised with camelCase keys (by_alias) since those are the field names
    stored in and filtered on in the vector store.

    Attributes:
        user_id:       MANDATORY — owner of the record; used for tenant isolation.
        document_id:   Logical document the record belongs to.
        file_name:     Original file name, used for display and filename lookups.
        file_type:     MIME type or extension of the original file.
        type:          Discriminator separating index records from other store users.
        is_metadata:   True only on the one summary record per document.
        total_chunks:  Number of content records of the document.
        chunk_index:   Ordinal of a content record; -1 on the metadata record.
        created_at:    ISO-8601 timestamp of the ingestion that wrote the record.
        text:          Chunk text; only present on content records.
        page_numbers:  Pages the chunk overlaps (strings, as stored).
        start_page:    First page the chunk overlaps.
        end_page:      Last page the chunk overlaps.
        custom:        Caller-supplied extra tags, merged into the payload.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    document_id: str = Field(alias="documentId")
    file_name: str = Field(alias="fileName")
    file_type: str = Field(default="unknown", alias="fileType")
    type: str = VECTORIZED_DOCUMENT_TYPE
    is_metadata: bool = Field(default=False, alias="isMetadata")
    total_chunks: int = Field(alias="totalChunks")
    chunk_index: int = Field(default=METADATA_CHUNK_INDEX, alias="chunkIndex")
    created_at: str = Field(alias="createdAt")

    text: str | None = None
    page_numbers: list[str] | None = Field(default=None, alias="pageNumbers")
    start_page: str | None = Field(default=None, alias="startPage")
    end_page: str | None = Field(default=None, alias="endPage")

    custom: dict[str, CustomMetadataValue] = Field(default_factory=dict, exclude=True)

    def to_payload(self) -> dict:
        """Flatten the tag set into the dict stored in the vector store.

        None values are dropped since vector stores reject null metadata.

        Returns:
            dict: camelCase payload including custom tags.
        """
        payload = dict(self.custom)
        payload.update(self.model_dump(by_alias=True, exclude_none=True))
        return payload


class VectorRecord(BaseModel):
    """The unit written to a RAG backend.

    Attributes:
        id:        Deterministic id, see make_content_id / make_metadata_id.
        embedding: Vector of the configured dimension.
        metadata:  The tag set.
    """

    id: str
    embedding: list[float]
    metadata: VectorMetadata
