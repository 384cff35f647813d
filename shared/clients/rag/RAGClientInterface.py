from abc import abstractmethod
from typing import Awaitable, Callable, TypeVar

import httpx
from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.Batch import BatchReport
from shared.clients.rag.models.Query import MetadataFilter, VectorMatch
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.exceptions.IndexExceptions import (
    DimensionMismatchError,
    ResultCeilingError,
    ValidationError,
    VectorStoreError,
)

from shared.helper.HelperConfig import HelperConfig

T = TypeVar("T")

MAX_BATCH_SIZE = 100  # max records per upsert/delete call accepted by the backends
QUERY_CEILING = 1000  # max topK of a single query; also the max records of one document
DEFAULT_DIMENSIONS = 3072


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        # the vector dimension is shared with the embed client, hence no engine prefix
        self.dimensions = helper_config.get_int_val("EMBED_DIMENSIONS", default=DEFAULT_DIMENSIONS, minimum=1)
        self.batch_size = min(int(self.get_config_val("BATCH_SIZE", default=MAX_BATCH_SIZE, val_type="number")), MAX_BATCH_SIZE)
        if self.batch_size < 1:
            raise ValueError(f"{self._get_config_key_name('BATCH_SIZE')} must be at least 1.")
        self.query_ceiling = QUERY_CEILING
        self._placeholder_vector = [0.0] * self.dimensions

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_records(self, records: list[VectorRecord]) -> None:
        """Fail fast before any network call on records that must never reach the backend.

        Raises:
            DimensionMismatchError: If an embedding does not have the configured dimension.
            ValidationError: If a record carries no owner.
        """
        for record in records:
            if len(record.embedding) != self.dimensions:
                raise DimensionMismatchError(expected=self.dimensions, actual=len(record.embedding))
            if not record.metadata.user_id:
                raise ValidationError(f"Record '{record.id}' has no userId; every record must belong to a user.")

    def validate_filter(self, filter: MetadataFilter) -> None:
        """Every query must be scoped to one tenant.

        Raises:
            ValidationError: If the filter does not constrain userId.
        """
        if not filter.must.get("userId"):
            raise ValidationError("Vector store filters must always include userId.")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    def get_placeholder_vector(self) -> list[float]:
        """
        Returns the canonical zero vector used for metadata-only lookups.

        The query primitive of the vector store always takes a similarity vector;
        a zero vector of the correct dimension makes the ranking irrelevant while
        the filter decides what matches.
        """
        return list(self._placeholder_vector)

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_upsert(self) -> str:
        """
        Returns the endpoint path for upsert requests (e.g. "/vectors/upsert").
        """
        pass

    @abstractmethod
    def _get_method_upsert(self) -> str:
        """
        Returns the HTTP method of upsert requests (e.g. "POST").
        """
        pass

    @abstractmethod
    def _get_endpoint_query(self) -> str:
        """
        Returns the endpoint path for similarity queries (e.g. "/query").
        """
        pass

    @abstractmethod
    def _get_endpoint_delete(self) -> str:
        """
        Returns the endpoint path for deleting records by id (e.g. "/vectors/delete").
        """
        pass

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    @abstractmethod
    def get_filter_payload(self, filter: MetadataFilter) -> dict:
        """
        Translates the engine-neutral filter into the backend's filter syntax.

        Args:
            filter (MetadataFilter): The conditions to translate.

        Returns:
            dict: The backend-specific filter.
        """
        pass

    @abstractmethod
    def get_upsert_payload(self, records: list[VectorRecord]) -> dict:
        """
        Builds the request body for one upsert batch.

        Args:
            records (list[VectorRecord]): The records of the batch.

        Returns:
            dict: The payload for the upsert request.
        """
        pass

    @abstractmethod
    def get_query_payload(self, vector: list[float], filter: MetadataFilter, top_k: int, include_metadata: bool) -> dict:
        """
        Builds the request body for a similarity query.

        Args:
            vector (list[float]): The query vector.
            filter (MetadataFilter): Conditions every match must satisfy.
            top_k (int): Maximum number of matches.
            include_metadata (bool): Whether to return the stored tag set.

        Returns:
            dict: The payload for the query request.
        """
        pass

    @abstractmethod
    def get_delete_payload(self, ids: list[str]) -> dict:
        """
        Builds the request body for one delete batch.

        Args:
            ids (list[str]): Readable record ids to delete.

        Returns:
            dict: The payload for the delete request.
        """
        pass

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    @abstractmethod
    def extract_query_matches(self, raw_response: dict, include_metadata: bool = True) -> list[VectorMatch]:
        """
        Extracts the matches from a raw query response.

        Args:
            raw_response (dict): The raw JSON response from the query endpoint.
            include_metadata (bool): If False, every match carries metadata=None.

        Returns:
            list[VectorMatch]: The matches, ids translated back to readable record ids.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_ensure_ready(self) -> None:
        """Prepare the backend for use (e.g. create a missing collection). No-op by default."""
        return None

    async def do_upsert(self, records: list[VectorRecord]) -> BatchReport:
        """Upsert records in batches of at most batch_size.

        Inserts new records or overwrites existing ones with the same id. Every
        batch is attempted; batches are independent and idempotent.

        Args:
            records (list[VectorRecord]): The records to write.

        Returns:
            BatchReport: Which batches landed and how many records were written.

        Raises:
            DimensionMismatchError: If any record has the wrong dimension (nothing is sent).
            VectorStoreError: If at least one batch failed; carries the report.
        """
        self.validate_records(records)

        async def send(batch: list[VectorRecord]) -> None:
            await self.do_request(
                method=self._get_method_upsert(),
                json=self.get_upsert_payload(batch),
                endpoint=self._get_endpoint_upsert(),
                raise_on_error=True,
            )

        return await self._do_batched("upsert", records, send)

    async def do_delete_many(self, ids: list[str]) -> BatchReport:
        """Delete records by id in batches of at most batch_size.

        Duplicate ids are dropped before batching; deleting an id that does not
        exist is not an error.

        Args:
            ids (list[str]): Readable record ids.

        Returns:
            BatchReport: Which batches landed and how many ids were deleted.

        Raises:
            VectorStoreError: If at least one batch failed; carries the report.
        """
        unique_ids = list(dict.fromkeys(ids))

        async def send(batch: list[str]) -> None:
            await self.do_request(
                method="POST",
                json=self.get_delete_payload(batch),
                endpoint=self._get_endpoint_delete(),
                raise_on_error=True,
            )

        return await self._do_batched("delete", unique_ids, send)

    async def do_query_by_filter(
        self,
        filter: MetadataFilter,
        top_k: int,
        include_metadata: bool = True,
        vector: list[float] | None = None,
    ) -> list[VectorMatch]:
        """Query up to top_k records matching the filter.

        Args:
            filter (MetadataFilter): Conditions every match must satisfy; must include userId.
            top_k (int): Maximum number of matches, at most query_ceiling.
            include_metadata (bool): Whether to return the stored tag set.
            vector (list[float] | None): Similarity vector; None means a metadata-only
                lookup with the placeholder vector.

        Returns:
            list[VectorMatch]: The matches.

        Raises:
            ValidationError: If the filter is not tenant-scoped or top_k is out of range.
            VectorStoreError: If the backend call fails.
        """
        self.validate_filter(filter)
        if top_k < 1 or top_k > self.query_ceiling:
            raise ValidationError(f"top_k must be between 1 and {self.query_ceiling}, got {top_k}.")
        query_vector = vector if vector is not None else self._placeholder_vector
        if len(query_vector) != self.dimensions:
            raise DimensionMismatchError(expected=self.dimensions, actual=len(query_vector))
        try:
            resp = await self.do_request(
                method="POST",
                json=self.get_query_payload(query_vector, filter, top_k, include_metadata),
                endpoint=self._get_endpoint_query(),
                raise_on_error=True,
            )
        except httpx.HTTPError as exc:
            raise VectorStoreError(f"Query against {self.get_engine_name()} failed: {exc}", operation="query", original=exc) from exc
        return self.extract_query_matches(resp.json(), include_metadata)

    async def do_fetch_all(self, filter: MetadataFilter, include_metadata: bool = True) -> list[VectorMatch]:
        """Fetch every record matching the filter.

        Backends without cursors answer with a single query at the ceiling. A
        result that fills the whole ceiling may be truncated, so it is rejected
        instead of returned. Backends with cursors override this with a scan.

        Args:
            filter (MetadataFilter): Conditions every record must satisfy; must include userId.
            include_metadata (bool): Whether to return the stored tag set.

        Returns:
            list[VectorMatch]: All matching records.

        Raises:
            ResultCeilingError: If the query returned query_ceiling matches.
            VectorStoreError: If the backend call fails.
        """
        matches = await self.do_query_by_filter(filter, top_k=self.query_ceiling, include_metadata=include_metadata)
        if len(matches) >= self.query_ceiling:
            raise ResultCeilingError(ceiling=self.query_ceiling, operation="fetch_all")
        return matches

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _do_batched(self, operation: str, items: list[T], send: Callable[[list[T]], Awaitable[None]]) -> BatchReport:
        """Issue items in sequential batches and collect a per-batch report.

        Raises:
            VectorStoreError: If any batch failed, pointing at the first failed batch.
        """
        report = BatchReport(operation=operation, total=len(items), batch_size=self.batch_size)
        first_error: httpx.HTTPError | None = None
        for batch_index, batch_start in enumerate(range(0, len(items), self.batch_size)):
            batch = items[batch_start: batch_start + self.batch_size]
            try:
                await send(batch)
            except httpx.HTTPError as exc:
                self.logging.error(
                    "%s batch %d (%d records) against %s failed: %s",
                    operation.capitalize(), batch_index, len(batch), self.get_engine_name(), exc,
                )
                report.failed_batches.append(batch_index)
                first_error = first_error or exc
                continue
            report.succeeded_batches.append(batch_index)
            report.processed += len(batch)
            self.logging.debug("%s batch %d: %d records.", operation.capitalize(), batch_index, len(batch))

        if report.failed_batches:
            raise VectorStoreError(
                f"{operation.capitalize()} failed for {len(report.failed_batches)} of {report.batch_count} batches "
                f"against {self.get_engine_name()}.",
                operation=operation,
                batch_index=report.failed_batches[0],
                report=report,
                original=first_error,
            )
        return report
