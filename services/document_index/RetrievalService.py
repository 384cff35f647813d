"""Retrieval and deletion service for indexed documents.

Every lookup goes through FilterBuilder, so results are always scoped to the
requesting user. Deletion is irreversible and not transactional with the
relational store; retrying a failed deletion is safe and finishes the job.
"""

import asyncio

from shared.clients.rag.FilterBuilder import FilterBuilder
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Batch import BatchReport
from shared.clients.rag.models.Query import MetadataFilter, VectorMatch
from shared.exceptions.IndexExceptions import NotFoundError, VectorStoreError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import DeleteResult, DocumentIndexEntry

LIST_DOCUMENTS_CAP = 100  # max documents listed per user
DELETE_RETRY_ATTEMPTS = 3  # re-queries when a full round only returned deleted ids
DELETE_RETRY_DELAY = 0.5  # seconds before the first re-query, doubled after each


class RetrievalService:
    """Read and delete paths of the document index."""

    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self._retry_attempts = helper_config.get_int_val("INDEX_DELETE_RETRY_ATTEMPTS", default=DELETE_RETRY_ATTEMPTS, minimum=0)
        self._retry_delay = helper_config.get_number_val("INDEX_DELETE_RETRY_DELAY", default=DELETE_RETRY_DELAY)

    ##########################################
    ################# READ ###################
    ##########################################

    async def do_list_documents(self, user_id: str) -> list[DocumentIndexEntry]:
        """List the indexed documents of a user, one entry per metadata record.

        Args:
            user_id (str): The requesting user.

        Returns:
            list[DocumentIndexEntry]: Up to LIST_DOCUMENTS_CAP documents.
        """
        matches = await self._rag_client.do_query_by_filter(
            FilterBuilder.for_user_documents(user_id), top_k=LIST_DOCUMENTS_CAP, include_metadata=True
        )
        if len(matches) >= LIST_DOCUMENTS_CAP:
            self.logging.warning(
                "User %s has at least %d indexed documents; the listing is capped.", user_id, LIST_DOCUMENTS_CAP
            )
        entries = [self._to_entry(match) for match in matches]
        self.logging.info("Listed %d documents for user=%s.", len(entries), user_id)
        return entries

    async def do_list_vectors(self, user_id: str, document_id: str) -> list[VectorMatch]:
        """Return every record (content and metadata) of a document, with metadata.

        Returns:
            list[VectorMatch]: The records; empty if the document is unknown to this user.
        """
        return await self._rag_client.do_fetch_all(FilterBuilder.for_document(user_id, document_id), include_metadata=True)

    ##########################################
    ################ DELETE ##################
    ##########################################

    async def do_delete_document(self, user_id: str, document_id: str) -> DeleteResult:
        """Delete every record of one document.

        Raises:
            NotFoundError: If nothing matched (unknown document or not owned by the user).
            VectorStoreError: If a delete batch failed; the report shows partial progress.
        """
        result = await self._do_delete_matching(FilterBuilder.for_document(user_id, document_id))
        if result.deleted == 0:
            raise NotFoundError(
                "Document not found or you do not have permission to delete it.",
                detail={"document_id": document_id},
            )
        self.logging.info("Deleted document id=%s for user=%s: %d records.", document_id, user_id, result.deleted)
        return result

    async def do_delete_by_file_name(self, user_id: str, file_name: str) -> DeleteResult:
        """Delete every record of every document of the user sharing a file name.

        Raises:
            NotFoundError: If no record carries this file name for the user.
            VectorStoreError: If a delete batch failed.
        """
        result = await self._do_delete_matching(FilterBuilder.for_file_name(user_id, file_name))
        if result.deleted == 0:
            raise NotFoundError("No documents found with the specified filename.", detail={"file_name": file_name})
        self.logging.info("Deleted all records of '%s' for user=%s: %d records.", file_name, user_id, result.deleted)
        return result

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _do_delete_matching(self, filter: MetadataFilter) -> DeleteResult:
        """Drain all records matching the filter.

        Queries at the ceiling and deletes what it finds, round after round,
        until a round returns fewer records than the ceiling. A single query is
        never trusted to have returned everything.

        A full round made only of ids deleted earlier means the store has not
        applied those deletes yet and may hide records beyond the ceiling. The
        query is then repeated with a growing delay, and the drain fails rather
        than report success while records may remain.

        Raises:
            VectorStoreError: If a delete batch failed or the store kept returning
                deleted ids. The report covers every round, earlier ones included.
        """
        ceiling = self._rag_client.query_ceiling
        total = BatchReport(operation="delete", total=0, batch_size=self._rag_client.batch_size)
        deleted_ids: set[str] = set()
        stale_rounds = 0
        while True:
            matches = await self._rag_client.do_query_by_filter(filter, top_k=ceiling, include_metadata=False)
            # a store that applies deletes late may return ids of the previous round again
            new_ids = [match.id for match in matches if match.id not in deleted_ids]
            if not new_ids:
                if len(matches) < ceiling:
                    break
                if stale_rounds >= self._retry_attempts:
                    raise VectorStoreError(
                        f"Store still returned {len(matches)} deleted records after {stale_rounds} retries; "
                        "matching records may remain.",
                        operation="delete",
                        report=total,
                    )
                delay = self._retry_delay * 2**stale_rounds
                stale_rounds += 1
                self.logging.warning(
                    "Query returned only deleted records, retrying in %.2fs (%d/%d).", delay, stale_rounds, self._retry_attempts
                )
                await asyncio.sleep(delay)
                continue

            stale_rounds = 0
            offset = total.batch_count
            try:
                report = await self._rag_client.do_delete_many(new_ids)
            except VectorStoreError as exc:
                if exc.report is not None:
                    self._merge_report(total, exc.report, offset)
                batch_index = offset + exc.batch_index if exc.batch_index is not None else None
                raise VectorStoreError(
                    exc.message, operation="delete", batch_index=batch_index, report=total, original=exc.original
                ) from exc
            deleted_ids.update(new_ids)
            self._merge_report(total, report, offset)
            if len(matches) < ceiling:
                break
            self.logging.info("Deleted a full round of %d records, checking for more.", len(matches))
        return DeleteResult(deleted=total.processed, report=total)

    @staticmethod
    def _merge_report(total: BatchReport, report: BatchReport, offset: int) -> None:
        total.total += report.total
        total.processed += report.processed
        total.succeeded_batches += [offset + index for index in report.succeeded_batches]
        total.failed_batches += [offset + index for index in report.failed_batches]

    def _to_entry(self, match: VectorMatch) -> DocumentIndexEntry:
        metadata = match.metadata or {}
        return DocumentIndexEntry(
            id=str(metadata.get("documentId", "")),
            file_name=str(metadata.get("fileName", "")),
            file_type=metadata.get("fileType") or "unknown",
            created_at=metadata.get("createdAt"),
            chunks=int(metadata.get("totalChunks") or 1),
        )
