"""Shared fixtures: environment, logger, in-memory backends and wired services."""

import asyncio
import json
import logging

import httpx
import pytest
import pytest_asyncio

from shared.clients.db.models.Attachment import AttachmentRecord
from shared.clients.rag.pinecone.RAGClientPinecone import RAGClientPinecone
from shared.exceptions.IndexExceptions import DimensionMismatchError, EmbeddingError, NotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from services.document_index.Chunker import Chunker
from services.document_index.IngestionService import IngestionService
from services.document_index.ReconcileService import ReconcileService
from services.document_index.RetrievalService import RetrievalService

DIMENSIONS = 4
PINECONE_HOST = "https://docs-index.svc.pinecone.test"


class InMemoryPinecone:
    """Pinecone data plane stand-in, served through httpx.MockTransport.

    Evaluates $and/$eq/$ne filters like the real index. Write calls listed in
    fail_upserts / fail_deletes (zero-based, per operation) answer 503.
    With delete_lag > 0 a deleted record stays visible to that many further
    queries, like an eventually consistent index; None never applies deletes.
    """

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}
        self.requests: list[tuple[str, dict]] = []
        self.fail_upserts: set[int] = set()
        self.fail_deletes: set[int] = set()
        self.delete_lag: int | None = 0
        self._pending_deletes: list[tuple[str, int]] = []
        self._upsert_calls = 0
        self._delete_calls = 0

    def calls(self, path: str) -> list[dict]:
        return [body for request_path, body in self.requests if request_path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        self.requests.append((path, body))

        if path == "/vectors/upsert":
            call, self._upsert_calls = self._upsert_calls, self._upsert_calls + 1
            if call in self.fail_upserts:
                return httpx.Response(503, json={"message": "unavailable"})
            for vector in body["vectors"]:
                self.records[vector["id"]] = {"values": vector["values"], "metadata": vector["metadata"]}
            return httpx.Response(200, json={"upsertedCount": len(body["vectors"])})

        if path == "/vectors/delete":
            call, self._delete_calls = self._delete_calls, self._delete_calls + 1
            if call in self.fail_deletes:
                return httpx.Response(503, json={"message": "unavailable"})
            for record_id in body["ids"]:
                if self.delete_lag == 0:
                    self.records.pop(record_id, None)
                else:
                    self._pending_deletes.append((record_id, self.delete_lag or 0))
            return httpx.Response(200, json={})

        if path == "/query":
            matches = []
            for record_id, record in self.records.items():
                if not self._matches(record["metadata"], body.get("filter") or {}):
                    continue
                match = {"id": record_id, "score": 0.0}
                if body.get("includeMetadata"):
                    match["metadata"] = record["metadata"]
                matches.append(match)
            self._age_pending_deletes()
            return httpx.Response(200, json={"matches": matches[: body["topK"]], "namespace": ""})

        if path == "/describe_index_stats":
            return httpx.Response(200, json={"dimension": DIMENSIONS, "totalVectorCount": len(self.records)})

        return httpx.Response(404, json={"message": f"unknown path {path}"})

    def _age_pending_deletes(self) -> None:
        if self.delete_lag is None:
            return
        pending = []
        for record_id, queries_left in self._pending_deletes:
            if queries_left <= 1:
                self.records.pop(record_id, None)
            else:
                pending.append((record_id, queries_left - 1))
        self._pending_deletes = pending

    @staticmethod
    def _matches(metadata: dict, filter: dict) -> bool:
        for condition in filter.get("$and", []):
            for key, operator in condition.items():
                if "$eq" in operator and metadata.get(key) != operator["$eq"]:
                    return False
                if "$ne" in operator and metadata.get(key) == operator["$ne"]:
                    return False
        return True


class FakeEmbedClient:
    """Deterministic embedder. Texts containing fail_marker raise EmbeddingError."""

    def __init__(self, dimensions: int = DIMENSIONS, produced_dimensions: int | None = None, fail_marker: str | None = None, delay: float = 0.0) -> None:
        self.dimensions = dimensions
        self.produced_dimensions = produced_dimensions or dimensions
        self.fail_marker = fail_marker
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else texts
        self.calls.extend(texts)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_marker and any(self.fail_marker in text for text in texts):
                raise EmbeddingError("provider rejected the input")
            if self.produced_dimensions != self.dimensions:
                raise DimensionMismatchError(expected=self.dimensions, actual=self.produced_dimensions)
            return [[float(len(text)), 1.0, 0.5, 0.25][: self.produced_dimensions] for text in texts]
        finally:
            self.in_flight -= 1


class FakeDBClient:
    """Relational store stand-in holding one attachments map per project."""

    def __init__(self) -> None:
        self.projects: dict[str, dict[str, dict]] = {}
        self.completed: dict[str, set[str]] = {}
        self.updates: list[tuple[str, dict]] = []

    async def do_fetch_attachments(self, project_id: str) -> dict[str, AttachmentRecord]:
        if project_id not in self.projects:
            raise NotFoundError(f"Project '{project_id}' not found.")
        return {doc_id: AttachmentRecord.model_validate(entry) for doc_id, entry in self.projects[project_id].items()}

    async def do_fetch_completed_document_ids(self, project_id: str) -> set[str]:
        return set(self.completed.get(project_id, set()))

    async def do_update_attachments(self, project_id: str, attachments: dict[str, AttachmentRecord]) -> None:
        payload = {doc_id: record.to_payload() for doc_id, record in attachments.items()}
        self.updates.append((project_id, payload))
        self.projects[project_id] = payload


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("EMBED_DIMENSIONS", str(DIMENSIONS))
    monkeypatch.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("EMBED_OLLAMA_BASE_URL", "http://ollama.test:11434")
    monkeypatch.setenv("RAG_PINECONE_BASE_URL", PINECONE_HOST)
    monkeypatch.setenv("RAG_PINECONE_API_KEY", "pc-test")
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://qdrant.test:6333")
    monkeypatch.setenv("RAG_QDRANT_COLLECTION", "documents")
    monkeypatch.setenv("DB_SUPABASE_BASE_URL", "https://project.supabase.test")
    monkeypatch.setenv("DB_SUPABASE_API_KEY", "sb-test")
    monkeypatch.setenv("APP_API_KEY", "app-test")
    monkeypatch.setenv("INDEX_DELETE_RETRY_DELAY", "0")
    for key in (
        "EMBED_MODEL",
        "INDEX_EMBED_CONCURRENCY",
        "INDEX_CHUNK_MAX_CHARS",
        "INDEX_DELETE_RETRY_ATTEMPTS",
        "RAG_PINECONE_NAMESPACE",
        "RAG_PINECONE_BATCH_SIZE",
        "RAG_QDRANT_API_KEY",
        "RAG_QDRANT_BATCH_SIZE",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def helper_config():
    return HelperConfig(logger=ColorLogger(logging.getLogger("document_index.tests")))


@pytest.fixture
def pinecone_store():
    return InMemoryPinecone()


@pytest_asyncio.fixture
async def rag_client(env, helper_config, pinecone_store):
    client = RAGClientPinecone(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(pinecone_store.handler))
    yield client
    await client.close()


@pytest.fixture
def embed_client():
    return FakeEmbedClient()


@pytest.fixture
def make_embed_client():
    return FakeEmbedClient


@pytest.fixture
def db_client():
    return FakeDBClient()


@pytest.fixture
def chunker(helper_config):
    # small chunks keep the documents in the tests readable
    return Chunker(helper_config, max_chars=60)


@pytest.fixture
def ingestion_service(env, helper_config, rag_client, embed_client, chunker):
    return IngestionService(helper_config=helper_config, rag_client=rag_client, embed_client=embed_client, chunker=chunker)


@pytest.fixture
def retrieval_service(helper_config, rag_client):
    return RetrievalService(helper_config=helper_config, rag_client=rag_client)


@pytest.fixture
def reconcile_service(helper_config, db_client):
    return ReconcileService(helper_config=helper_config, db_client=db_client)


@pytest.fixture
def three_chunk_text():
    """Three paragraphs, each too long to share a 60 character chunk with another."""
    return (
        "The first paragraph explains how the index stores chunks.\n\n"
        "The second paragraph covers deterministic record ids.\n\n"
        "The third paragraph is about deleting documents again."
    )
