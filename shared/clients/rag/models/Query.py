"""Engine-neutral query models: metadata filters and query matches."""

from pydantic import BaseModel

FilterValue = str | int | float | bool


class MetadataFilter(BaseModel):
    """Conjunction of equality conditions on metadata fields.

    Each RAG engine translates this into its own wire format
    (see RAGClientInterface.get_filter_payload).

    Attributes:
        must:     field -> value pairs that must all be equal.
        must_not: field -> value pairs that must all differ.
    """

    must: dict[str, FilterValue]
    must_not: dict[str, FilterValue] = {}


class VectorMatch(BaseModel):
    """A single record returned by a query or scroll.

    Attributes:
        id:       The readable record id ("{userId}:{documentId}:{chunkIndex|meta}").
        score:    Similarity score; meaningless for placeholder-vector lookups.
        metadata: The stored tag set, or None if metadata was not requested.
    """

    id: str
    score: float = 0.0
    metadata: dict | None = None
