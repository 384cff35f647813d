"""Builds the tenant-scoped metadata filters used by every read and delete of the index."""

from shared.clients.rag.models.Query import MetadataFilter
from shared.clients.rag.models.VectorRecord import VECTORIZED_DOCUMENT_TYPE
from shared.exceptions.IndexExceptions import ValidationError


class FilterBuilder:
    """Every filter is scoped to one user and to records written by the document index."""

    @staticmethod
    def _base(user_id: str, **conditions) -> MetadataFilter:
        if not user_id:
            raise ValidationError("A userId is required to query the document index.")
        must = {"userId": user_id, "type": VECTORIZED_DOCUMENT_TYPE}
        for key, value in conditions.items():
            if value is None or value == "":
                raise ValidationError(f"Filter value for '{key}' must not be empty.")
            must[key] = value
        return MetadataFilter(must=must)

    @classmethod
    def for_user_documents(cls, user_id: str) -> MetadataFilter:
        """Metadata records (one per document) of a user."""
        return cls._base(user_id, isMetadata=True)

    @classmethod
    def for_document(cls, user_id: str, document_id: str) -> MetadataFilter:
        """Every record (content and metadata) of one document."""
        return cls._base(user_id, documentId=document_id)

    @classmethod
    def for_document_content(cls, user_id: str, document_id: str) -> MetadataFilter:
        """Content records of one document, without its metadata record."""
        return cls._base(user_id, documentId=document_id, isMetadata=False)

    @classmethod
    def for_file_name(cls, user_id: str, file_name: str) -> MetadataFilter:
        """Every record of every document of a user sharing this file name."""
        return cls._base(user_id, fileName=file_name)
