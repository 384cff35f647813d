from pydantic import BaseModel, ConfigDict, Field

from shared.clients.rag.models.VectorRecord import CustomMetadataValue
from shared.models.document import IngestRequest, PageOffset


class StoreRequest(BaseModel):
    """Body of POST /vectorize/store. The owner comes from the X-User-Id header."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str | None = Field(default=None, alias="documentId")
    file_name: str = Field(alias="fileName")
    file_type: str = Field(default="unknown", alias="fileType")
    text: str
    page_info: list[PageOffset] | None = Field(default=None, alias="pageInfo")
    metadata: dict[str, CustomMetadataValue] = {}

    def to_ingest_request(self, user_id: str) -> IngestRequest:
        return IngestRequest(
            user_id=user_id,
            document_id=self.document_id,
            file_name=self.file_name,
            file_type=self.file_type,
            text=self.text,
            page_offsets=self.page_info,
            metadata=self.metadata,
        )
