from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from shared.models.reconcile import ReconcileResult

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/{project_id}/attachments/reconcile")
async def reconcile_attachments(
    request: Request,
    project_id: str,
    _: None = Depends(verify_api_key),
) -> ReconcileResult:
    """Mark attachments completed whose documents have a completed-document row.

    Args:
        request (Request): FastAPI request (provides app.state.reconcile_service).
        project_id (str): The project to reconcile.
        _ (None): Auth dependency result (unused).

    Returns:
        ReconcileResult: CLEAN, or DRIFTED with the repaired document ids.
    """
    reconcile_service = request.app.state.reconcile_service
    return await reconcile_service.do_reconcile(project_id)
