"""Generic attachment model: one entry of a project's attachments map."""

from pydantic import BaseModel, ConfigDict, Field


class AttachmentRecord(BaseModel):
    """
    Represents the completion state of a single project attachment, as stored in the relational backend.

    Unknown keys of the stored JSON (titles, questions, ...) are preserved so the
    map can be written back without losing data.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    document_id: str | None = Field(default=None, alias="documentId")
    completed: bool = False
    updated_at: str | None = Field(default=None, alias="updatedAt")

    def to_payload(self) -> dict:
        # keys present in the stored JSON are written back even when null
        payload = self.model_dump(by_alias=True, exclude_unset=True)
        payload.update(self.model_extra or {})
        return payload
