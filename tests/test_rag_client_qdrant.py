"""Wire-level tests for the Qdrant client against an in-memory collection."""

import json

import httpx
import pytest
import pytest_asyncio

from shared.clients.rag.FilterBuilder import FilterBuilder
from shared.clients.rag.models.VectorRecord import VectorMetadata, VectorRecord, make_content_id, make_metadata_id
from shared.clients.rag.qdrant.RAGClientQdrant import RECORD_ID_KEY, RAGClientQdrant, make_point_id
from shared.exceptions.IndexExceptions import VectorStoreError

COLLECTION = "/collections/documents"


class InMemoryQdrant:
    def __init__(self, exists: bool = True) -> None:
        self.exists = exists
        self.points: dict[str, dict] = {}
        self.requests: list[tuple[str, str, dict]] = []

    def calls(self, method: str, path: str) -> list[dict]:
        return [body for m, p, body in self.requests if m == method and p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        path = request.url.path
        self.requests.append((request.method, path, body))

        if path == f"{COLLECTION}/exists":
            return httpx.Response(200, json={"result": {"exists": self.exists}})
        if path == COLLECTION and request.method == "PUT":
            self.exists = True
            return httpx.Response(200, json={"result": True})
        if path == f"{COLLECTION}/points" and request.method == "PUT":
            for point in body["points"]:
                self.points[point["id"]] = {"vector": point["vector"], "payload": point["payload"]}
            return httpx.Response(200, json={"result": {"status": "completed"}})
        if path == f"{COLLECTION}/points/delete":
            for point_id in body["points"]:
                self.points.pop(point_id, None)
            return httpx.Response(200, json={"result": {"status": "completed"}})
        if path == f"{COLLECTION}/points/search":
            hits = [self._render(pid, p, body["with_payload"]) for pid, p in self._filtered(body["filter"])]
            return httpx.Response(200, json={"result": hits[: body["limit"]]})
        if path == f"{COLLECTION}/points/scroll":
            matched = self._filtered(body["filter"])
            start = 0
            if body.get("offset") is not None:
                start = [pid for pid, _ in matched].index(body["offset"])
            page = matched[start: start + body["limit"]]
            rest = matched[start + body["limit"]:]
            return httpx.Response(200, json={"result": {
                "points": [self._render(pid, p, body["with_payload"]) for pid, p in page],
                "next_page_offset": rest[0][0] if rest else None,
            }})
        return httpx.Response(404, json={"status": {"error": f"unknown path {path}"}})

    def _filtered(self, filter: dict) -> list[tuple[str, dict]]:
        def keep(payload: dict) -> bool:
            must = all(payload.get(c["key"]) == c["match"]["value"] for c in filter.get("must", []))
            must_not = any(payload.get(c["key"]) == c["match"]["value"] for c in filter.get("must_not", []))
            return must and not must_not

        return sorted((pid, p) for pid, p in self.points.items() if keep(p["payload"]))

    @staticmethod
    def _render(point_id: str, point: dict, with_payload) -> dict:
        payload = point["payload"]
        if isinstance(with_payload, list):
            payload = {k: v for k, v in payload.items() if k in with_payload}
        return {"id": point_id, "score": 0.0, "payload": payload}


def make_records(count: int, user_id: str = "user-1", document_id: str = "doc-1") -> list[VectorRecord]:
    return [
        VectorRecord(
            id=make_content_id(user_id, document_id, i),
            embedding=[0.1, 0.2, 0.3, 0.4],
            metadata=VectorMetadata(
                user_id=user_id,
                document_id=document_id,
                file_name="notes.txt",
                total_chunks=count,
                chunk_index=i,
                created_at="2026-01-01T00:00:00+00:00",
                text=f"chunk {i}",
            ),
        )
        for i in range(count)
    ]


@pytest.fixture
def qdrant_store():
    return InMemoryQdrant()


@pytest_asyncio.fixture
async def qdrant_client(env, helper_config, qdrant_store):
    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(qdrant_store.handler))
    yield client
    await client.close()


class TestPointIds:
    def test_point_id_is_deterministic_uuid(self):
        assert make_point_id("user-1:doc-1:0") == make_point_id("user-1:doc-1:0")
        assert make_point_id("user-1:doc-1:0") != make_point_id("user-1:doc-1:1")
        assert len(make_point_id(make_metadata_id("user-1", "doc-1"))) == 36


class TestQdrantClient:
    @pytest.mark.asyncio
    async def test_upsert_keeps_readable_id_in_payload(self, qdrant_client, qdrant_store):
        await qdrant_client.do_upsert(make_records(2))
        point = qdrant_store.points[make_point_id("user-1:doc-1:1")]
        assert point["payload"][RECORD_ID_KEY] == "user-1:doc-1:1"
        assert point["payload"]["userId"] == "user-1"
        assert qdrant_store.requests[0][0] == "PUT"

    @pytest.mark.asyncio
    async def test_query_returns_readable_ids(self, qdrant_client):
        await qdrant_client.do_upsert(make_records(3))
        matches = await qdrant_client.do_query_by_filter(FilterBuilder.for_document("user-1", "doc-1"), top_k=10)
        assert sorted(m.id for m in matches) == ["user-1:doc-1:0", "user-1:doc-1:1", "user-1:doc-1:2"]
        assert all(RECORD_ID_KEY not in m.metadata for m in matches)

    @pytest.mark.asyncio
    async def test_query_without_metadata(self, qdrant_client, qdrant_store):
        await qdrant_client.do_upsert(make_records(1))
        matches = await qdrant_client.do_query_by_filter(
            FilterBuilder.for_document("user-1", "doc-1"), top_k=10, include_metadata=False
        )
        assert matches[0].id == "user-1:doc-1:0"
        assert matches[0].metadata is None
        assert qdrant_store.calls("POST", f"{COLLECTION}/points/search")[0]["with_payload"] == [RECORD_ID_KEY]

    def test_filter_payload(self, qdrant_client):
        payload = qdrant_client.get_filter_payload(FilterBuilder.for_document_content("user-1", "doc-1"))
        assert {"key": "userId", "match": {"value": "user-1"}} in payload["must"]
        assert {"key": "isMetadata", "match": {"value": False}} in payload["must"]
        assert "must_not" not in payload

    @pytest.mark.asyncio
    async def test_delete_translates_ids(self, qdrant_client, qdrant_store):
        await qdrant_client.do_upsert(make_records(2))
        await qdrant_client.do_delete_many(["user-1:doc-1:0"])
        assert qdrant_store.calls("POST", f"{COLLECTION}/points/delete") == [{"points": [make_point_id("user-1:doc-1:0")]}]
        assert list(qdrant_store.points) == [make_point_id("user-1:doc-1:1")]

    @pytest.mark.asyncio
    async def test_fetch_all_follows_cursor(self, qdrant_client, qdrant_store):
        qdrant_client.query_ceiling = 2
        await qdrant_client.do_upsert(make_records(5))
        matches = await qdrant_client.do_fetch_all(FilterBuilder.for_document("user-1", "doc-1"))
        assert len(matches) == 5
        assert len(qdrant_store.calls("POST", f"{COLLECTION}/points/scroll")) == 3

    @pytest.mark.asyncio
    async def test_ensure_ready_creates_missing_collection(self, env, helper_config):
        store = InMemoryQdrant(exists=False)
        client = RAGClientQdrant(helper_config=helper_config)

        await client.boot(transport=httpx.MockTransport(store.handler))
        try:
            await client.do_ensure_ready()
            await client.do_ensure_ready()
        finally:
            await client.close()
        creates = store.calls("PUT", COLLECTION)
        assert creates == [{"vectors": {"size": 4, "distance": "Cosine"}}]

    @pytest.mark.asyncio
    async def test_scroll_failure_wrapped(self, env, helper_config):
        client = RAGClientQdrant(helper_config=helper_config)

        await client.boot(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        try:
            with pytest.raises(VectorStoreError) as exc_info:
                await client.do_fetch_all(FilterBuilder.for_document("user-1", "doc-1"))
        finally:
            await client.close()
        assert exc_info.value.operation == "scroll"
