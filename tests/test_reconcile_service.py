"""Tests for attachment completion reconciliation."""

import logging
import warnings

import pytest

from shared.exceptions.IndexExceptions import NotFoundError
from shared.models.reconcile import ReconcileState


class TestReconcile:
    @pytest.mark.asyncio
    async def test_repairs_missed_completion(self, reconcile_service, db_client, caplog):
        db_client.projects["p-1"] = {
            "doc-1": {"documentId": "doc-1", "completed": False, "title": "Handbook"},
            "doc-2": {"documentId": "doc-2", "completed": False},
        }
        db_client.completed["p-1"] = {"doc-1"}

        with caplog.at_level(logging.WARNING):
            result = await reconcile_service.do_reconcile("p-1")

        assert result.state == ReconcileState.DRIFTED
        assert result.repaired_document_ids == ["doc-1"]
        assert result.refresh_required
        assert len(db_client.updates) == 1
        stored = db_client.projects["p-1"]
        assert stored["doc-1"]["completed"] is True
        assert stored["doc-1"]["updatedAt"]
        assert stored["doc-1"]["title"] == "Handbook"
        assert stored["doc-2"]["completed"] is False
        assert any("ConsistencyWarning" in record.getMessage() and "doc-1" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_second_run_is_clean(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {"doc-1": {"completed": False}}
        db_client.completed["p-1"] = {"doc-1"}
        await reconcile_service.do_reconcile("p-1")

        result = await reconcile_service.do_reconcile("p-1")
        assert result.state == ReconcileState.CLEAN
        assert not result.refresh_required
        assert len(db_client.updates) == 1

    @pytest.mark.asyncio
    async def test_never_unsets_completion(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {
            "doc-1": {"completed": True},
            "doc-2": {"completed": False},
        }
        db_client.completed["p-1"] = {"doc-2"}
        await reconcile_service.do_reconcile("p-1")
        assert db_client.projects["p-1"]["doc-1"]["completed"] is True
        assert db_client.projects["p-1"]["doc-2"]["completed"] is True

    @pytest.mark.asyncio
    async def test_completed_rows_without_attachment_are_ignored(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {"doc-1": {"completed": True}}
        db_client.completed["p-1"] = {"doc-1", "doc-9"}
        result = await reconcile_service.do_reconcile("p-1")
        assert result.state == ReconcileState.CLEAN
        assert db_client.updates == []

    @pytest.mark.asyncio
    async def test_no_attachments(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {}
        db_client.completed["p-1"] = {"doc-1"}
        result = await reconcile_service.do_reconcile("p-1")
        assert result.state == ReconcileState.CLEAN

    @pytest.mark.asyncio
    async def test_no_completed_documents(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {"doc-1": {"completed": False}}
        result = await reconcile_service.do_reconcile("p-1")
        assert result.state == ReconcileState.CLEAN
        assert db_client.updates == []

    @pytest.mark.asyncio
    async def test_unknown_project(self, reconcile_service):
        with pytest.raises(NotFoundError):
            await reconcile_service.do_reconcile("missing")

    @pytest.mark.asyncio
    async def test_keeps_null_valued_keys(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {
            "doc-1": {"completed": False, "title": None, "fileUrl": None},
            "doc-2": {"completed": True, "questions": None},
        }
        db_client.completed["p-1"] = {"doc-1"}
        await reconcile_service.do_reconcile("p-1")
        stored = db_client.projects["p-1"]
        assert stored["doc-1"]["title"] is None and "title" in stored["doc-1"]
        assert "fileUrl" in stored["doc-1"]
        assert stored["doc-2"] == {"completed": True, "questions": None}

    @pytest.mark.asyncio
    async def test_drift_is_not_raised_as_warning(self, reconcile_service, db_client):
        db_client.projects["p-1"] = {"doc-1": {"completed": False}}
        db_client.completed["p-1"] = {"doc-1"}
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            result = await reconcile_service.do_reconcile("p-1")
        assert result.state == ReconcileState.DRIFTED
        assert len(db_client.updates) == 1
