"""Ingestion service.

Chunks a document's extracted text, embeds every chunk through the embed
client, and upserts one content record per chunk plus one metadata record
into the RAG backend.

Ingestion is not atomic. Content records are written first and the metadata
record last, so the presence of the metadata record marks a document as
completely indexed. Every id is deterministic, so re-running an ingestion
overwrites instead of duplicating; content records of an earlier, longer
version of the document are pruned afterwards.
"""

import asyncio
import uuid
from datetime import datetime, timezone

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.FilterBuilder import FilterBuilder
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import (
    ID_SEPARATOR,
    RESERVED_METADATA_KEYS,
    VectorMetadata,
    VectorRecord,
    make_content_id,
    make_metadata_id,
)
from shared.exceptions.IndexExceptions import DimensionMismatchError, EmbeddingError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkDescriptor, IngestRequest, IngestResult
from services.document_index.Chunker import Chunker

EMBED_CONCURRENCY = 4      # max simultaneous embedding calls per document
MAX_EMBED_CONCURRENCY = 8


class IngestionService:
    """Orchestrates chunk → embed → tag → batch-upsert for a single document."""

    def __init__(
        self,
        helper_config: HelperConfig,
        rag_client: RAGClientInterface,
        embed_client: EmbedClientInterface,
        chunker: Chunker | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self._embed_client = embed_client
        self._chunker = chunker or Chunker(helper_config)
        self._embed_concurrency = helper_config.get_int_val(
            "INDEX_EMBED_CONCURRENCY", default=EMBED_CONCURRENCY, minimum=1, maximum=MAX_EMBED_CONCURRENCY
        )

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_ingest(self, request: IngestRequest) -> IngestResult:
        """Index one document.

        Args:
            request (IngestRequest): The document text and its provenance.

        Returns:
            IngestResult: The document id, chunk count and written record ids.

        Raises:
            ValidationError: On empty text, bad identifiers, reserved custom keys or too many chunks.
            EmbeddingError: If embedding any chunk failed; carries the chunk index.
            DimensionMismatchError: If the provider returned a vector of the wrong size.
            VectorStoreError: If a batch could not be written.
        """
        document_id = request.document_id or str(uuid.uuid4())
        self._validate(request, document_id)

        chunks = list(self._chunker.chunk(request.text, request.page_offsets))
        # every record of one document must fit below the query ceiling
        if len(chunks) + 1 > self._rag_client.query_ceiling:
            raise ValidationError(
                f"Document '{request.file_name}' produces {len(chunks)} chunks; "
                f"at most {self._rag_client.query_ceiling - 1} are supported per document.",
                detail={"chunks": len(chunks)},
            )

        self.logging.info(
            "Ingesting document id=%s ('%s') for user=%s: %d chunks.",
            document_id, request.file_name, request.user_id, len(chunks),
        )

        vectors = await self._embed_chunks(chunks)

        created_at = datetime.now(timezone.utc).isoformat()
        content_records = [
            self._build_content_record(request, document_id, chunk, vector, len(chunks), created_at)
            for chunk, vector in zip(chunks, vectors)
        ]
        metadata_record = self._build_metadata_record(request, document_id, vectors[0], len(chunks), created_at)

        await self._rag_client.do_upsert(content_records)
        await self._rag_client.do_upsert([metadata_record])

        pruned = await self._prune_stale_chunks(request.user_id, document_id, len(chunks))

        self.logging.info(
            "Ingested document id=%s ('%s'): %d content records + 1 metadata record.",
            document_id, request.file_name, len(content_records), color="green",
        )
        return IngestResult(
            document_id=document_id,
            chunks=len(chunks),
            vector_ids=[record.id for record in content_records] + [metadata_record.id],
            created_at=created_at,
            pruned=pruned,
        )

    ##########################################
    ############## VALIDATION ################
    ##########################################

    def _validate(self, request: IngestRequest, document_id: str) -> None:
        for name, value in (("userId", request.user_id), ("documentId", document_id)):
            if not value or not value.strip():
                raise ValidationError(f"Missing required field: {name}.")
            # ids are joined with ":"; allowing it inside a part would make ids ambiguous
            if ID_SEPARATOR in value:
                raise ValidationError(f"{name} must not contain '{ID_SEPARATOR}': '{value}'.")
        if not request.file_name or not request.file_name.strip():
            raise ValidationError("Missing required field: fileName.")
        reserved = sorted(RESERVED_METADATA_KEYS.intersection(request.metadata))
        if reserved:
            raise ValidationError(f"Custom metadata may not override reserved keys: {', '.join(reserved)}.")

    ##########################################
    ############## EMBEDDING #################
    ##########################################

    async def _embed_chunks(self, chunks: list[ChunkDescriptor]) -> list[list[float]]:
        """Embed every chunk with bounded parallelism.

        After the first failure no further calls are started; calls already in
        flight finish. The error of the lowest failing chunk index is raised.

        Raises:
            EmbeddingError: If any chunk failed to embed.
            DimensionMismatchError: If any vector had the wrong size.
        """
        sem = asyncio.Semaphore(self._embed_concurrency)
        aborted = asyncio.Event()

        async def embed_one(chunk: ChunkDescriptor) -> list[float] | None:
            async with sem:
                if aborted.is_set():
                    return None
                try:
                    vectors = await self._embed_client.do_embed(chunk.text)
                except DimensionMismatchError as exc:
                    aborted.set()
                    raise DimensionMismatchError(expected=exc.expected, actual=exc.actual, chunk_index=chunk.chunk_index) from exc
                except EmbeddingError as exc:
                    aborted.set()
                    raise EmbeddingError(
                        f"Embedding failed for chunk {chunk.chunk_index}: {exc.message}",
                        chunk_index=chunk.chunk_index,
                        original=exc,
                    ) from exc
                return vectors[0]

        results = await asyncio.gather(*[embed_one(chunk) for chunk in chunks], return_exceptions=True)

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            fatal = [f for f in failures if isinstance(f, DimensionMismatchError)]
            error = fatal[0] if fatal else failures[0]
            self.logging.error("Aborting ingestion: %s", error)
            raise error
        return list(results)

    ##########################################
    ############ RECORD BUILDER ##############
    ##########################################

    def _build_content_record(
        self,
        request: IngestRequest,
        document_id: str,
        chunk: ChunkDescriptor,
        vector: list[float],
        total_chunks: int,
        created_at: str,
    ) -> VectorRecord:
        pages = [str(page) for page in chunk.page_numbers]
        metadata = VectorMetadata(
            user_id=request.user_id,
            document_id=document_id,
            file_name=request.file_name,
            file_type=request.file_type,
            is_metadata=False,
            total_chunks=total_chunks,
            chunk_index=chunk.chunk_index,
            created_at=created_at,
            text=chunk.text,
            page_numbers=pages or None,
            start_page=pages[0] if pages else None,
            end_page=pages[-1] if pages else None,
            custom=request.metadata,
        )
        return VectorRecord(
            id=make_content_id(request.user_id, document_id, chunk.chunk_index),
            embedding=vector,
            metadata=metadata,
        )

    def _build_metadata_record(
        self,
        request: IngestRequest,
        document_id: str,
        vector: list[float],
        total_chunks: int,
        created_at: str,
    ) -> VectorRecord:
        # A zero vector cannot be stored under cosine distance, so the summary
        # record reuses the first chunk's embedding.
        metadata = VectorMetadata(
            user_id=request.user_id,
            document_id=document_id,
            file_name=request.file_name,
            file_type=request.file_type,
            is_metadata=True,
            total_chunks=total_chunks,
            created_at=created_at,
            custom=request.metadata,
        )
        return VectorRecord(id=make_metadata_id(request.user_id, document_id), embedding=vector, metadata=metadata)

    ##########################################
    ############### PRUNING ##################
    ##########################################

    async def _prune_stale_chunks(self, user_id: str, document_id: str, total_chunks: int) -> int:
        """Delete content records left over from a previous ingestion with more chunks.

        Returns:
            int: Number of deleted records.
        """
        matches = await self._rag_client.do_fetch_all(
            FilterBuilder.for_document_content(user_id, document_id), include_metadata=True
        )
        stale_ids = [
            match.id for match in matches
            if int((match.metadata or {}).get("chunkIndex", -1)) >= total_chunks
        ]
        if not stale_ids:
            return 0
        self.logging.info("Pruning %d stale chunk records of document id=%s.", len(stale_ids), document_id)
        report = await self._rag_client.do_delete_many(stale_ids)
        return report.processed
