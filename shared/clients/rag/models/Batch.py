from pydantic import BaseModel


class BatchReport(BaseModel):
    """Outcome of a batched write or delete against a RAG backend.

    Attributes:
        operation:          "upsert" or "delete".
        total:              Number of records (or ids) submitted after de-duplication.
        batch_size:         Maximum records per backend call.
        succeeded_batches:  Zero-based indices of batches the backend accepted.
        failed_batches:     Zero-based indices of batches that raised.
        processed:          Number of records contained in succeeded batches.
    """

    operation: str
    total: int
    batch_size: int
    succeeded_batches: list[int] = []
    failed_batches: list[int] = []
    processed: int = 0

    @property
    def batch_count(self) -> int:
        return len(self.succeeded_batches) + len(self.failed_batches)

    @property
    def ok(self) -> bool:
        return not self.failed_batches
