"""Pydantic models for attachment reconciliation results."""

from enum import Enum

from pydantic import BaseModel


class ReconcileState(str, Enum):
    """Evaluated on every reconciliation run, never persisted."""

    CLEAN = "clean"
    DRIFTED = "drifted"


class ReconcileResult(BaseModel):
    """
    Outcome of a single reconciliation run for one project.

    Attributes:
        project_id (str): The reconciled project.
        state (ReconcileState): CLEAN if nothing had to change, DRIFTED if attachments were repaired.
        repaired_document_ids (list[str]): Attachments whose completed flag was set to true.
        refresh_required (bool): True if the caller should reload its view of the attachments.
    """

    project_id: str
    state: ReconcileState
    repaired_document_ids: list[str] = []
    refresh_required: bool = False
