"""Router tests through FastAPI's TestClient with services wired to in-memory backends."""

import pytest
from fastapi.testclient import TestClient

from server.api_server import app


@pytest.fixture
def client(env, helper_config, ingestion_service, retrieval_service, reconcile_service):
    # the lifespan is not entered, so no real backends are booted
    app.state.helper_config = helper_config
    app.state.ingestion_service = ingestion_service
    app.state.retrieval_service = retrieval_service
    app.state.reconcile_service = reconcile_service
    return TestClient(app)


@pytest.fixture
def headers():
    return {"X-Api-Key": "app-test", "X-User-Id": "user-1"}


def store(client, headers, text: str, document_id: str, file_name: str = "report.pdf"):
    return client.post(
        "/vectorize/store",
        headers=headers,
        json={"documentId": document_id, "fileName": file_name, "fileType": "application/pdf", "text": text},
    )


class TestAuth:
    def test_wrong_api_key(self, client):
        response = client.get("/vectorize/documents", headers={"X-Api-Key": "nope", "X-User-Id": "user-1"})
        assert response.status_code == 401

    def test_missing_user(self, client):
        response = client.get("/vectorize/documents", headers={"X-Api-Key": "app-test"})
        assert response.status_code == 422


class TestVectorize:
    def test_store_and_list(self, client, headers, three_chunk_text):
        response = store(client, headers, three_chunk_text, "doc-1")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["chunks"] == 3
        assert body["vector_ids"][-1] == "user-1:doc-1:meta"

        listing = client.get("/vectorize/documents", headers=headers).json()
        assert listing["total"] == 1
        assert listing["documents"][0]["file_name"] == "report.pdf"

    def test_store_empty_text(self, client, headers):
        response = store(client, headers, "  ", "doc-1")
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
        assert response.json()["retryable"] is False

    def test_list_vectors(self, client, headers, three_chunk_text):
        store(client, headers, three_chunk_text, "doc-1")
        body = client.get("/vectorize/documents/doc-1/vectors", headers=headers).json()
        assert body["total"] == 4
        assert {v["id"] for v in body["vectors"]} >= {"user-1:doc-1:0", "user-1:doc-1:meta"}

    def test_delete_document(self, client, headers, three_chunk_text):
        store(client, headers, three_chunk_text, "doc-1")
        response = client.delete("/vectorize/documents/doc-1", headers=headers)
        assert response.status_code == 200
        assert response.json()["deleted"] == 4
        assert client.get("/vectorize/documents", headers=headers).json()["total"] == 0

    def test_delete_other_users_document(self, client, headers, three_chunk_text):
        store(client, headers, three_chunk_text, "doc-1")
        response = client.delete("/vectorize/documents/doc-1", headers={**headers, "X-User-Id": "user-2"})
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_delete_by_file_name(self, client, headers, three_chunk_text):
        store(client, headers, three_chunk_text, "doc-1", file_name="handbook.pdf")
        store(client, headers, "Another short upload.", "doc-2", file_name="handbook.pdf")
        response = client.delete("/vectorize/documents/by-filename/handbook.pdf", headers=headers)
        assert response.status_code == 200
        assert response.json()["deleted"] == 6
        assert client.get("/vectorize/documents", headers=headers).json()["total"] == 0


class TestReconcile:
    def test_reconcile_project(self, client, headers, db_client):
        db_client.projects["p-1"] = {"doc-1": {"completed": False}}
        db_client.completed["p-1"] = {"doc-1"}
        response = client.post("/projects/p-1/attachments/reconcile", headers=headers)
        assert response.status_code == 200
        assert response.json()["state"] == "drifted"
        assert response.json()["repaired_document_ids"] == ["doc-1"]

    def test_unknown_project(self, client, headers):
        response = client.post("/projects/missing/attachments/reconcile", headers=headers)
        assert response.status_code == 404
