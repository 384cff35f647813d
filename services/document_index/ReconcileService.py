"""Reconciliation service.

Repairs missed writes of the attachments' completed flag: an attachment whose
document has a completed-document row must be marked completed. The repair is
one-directional (never true → false), idempotent and ends in a single write of
the whole attachments map.
"""

from datetime import datetime, timezone

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.exceptions.IndexExceptions import ConsistencyWarning
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconcile import ReconcileResult, ReconcileState


class ReconcileService:
    def __init__(self, helper_config: HelperConfig, db_client: DBClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._db_client = db_client

    async def do_reconcile(self, project_id: str) -> ReconcileResult:
        """Bring the attachments of a project in line with its completed documents.

        Args:
            project_id (str): The project to reconcile.

        Returns:
            ReconcileResult: CLEAN if nothing changed, DRIFTED with the repaired ids otherwise.

        Raises:
            NotFoundError: If the project does not exist.
            RelationalStoreError: If reading or the final write fails; nothing is partially written.
        """
        attachments = await self._db_client.do_fetch_attachments(project_id)
        if not attachments:
            self.logging.debug("Project %s has no attachments, nothing to reconcile.", project_id)
            return ReconcileResult(project_id=project_id, state=ReconcileState.CLEAN)

        completed_ids = await self._db_client.do_fetch_completed_document_ids(project_id)
        if not completed_ids:
            self.logging.debug("Project %s has no completed documents, nothing to reconcile.", project_id)
            return ReconcileResult(project_id=project_id, state=ReconcileState.CLEAN)

        repaired: list[str] = []
        now = datetime.now(timezone.utc).isoformat()
        for document_id, attachment in attachments.items():
            if document_id in completed_ids and not attachment.completed:
                attachment.completed = True
                attachment.updated_at = now
                repaired.append(document_id)

        if not repaired:
            self.logging.debug("Attachments of project %s are consistent.", project_id)
            return ReconcileResult(project_id=project_id, state=ReconcileState.CLEAN)

        await self._db_client.do_update_attachments(project_id, attachments)

        # logged only, the write already happened and the caller gets DRIFTED
        self.logging.warning(
            "%s: repaired completion status of %d attachment(s) in project %s: %s",
            ConsistencyWarning.__name__,
            len(repaired),
            project_id,
            ", ".join(repaired),
        )
        return ReconcileResult(
            project_id=project_id,
            state=ReconcileState.DRIFTED,
            repaired_document_ids=repaired,
            refresh_required=True,
        )
