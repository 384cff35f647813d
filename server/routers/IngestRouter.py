from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.requests import StoreRequest
from server.models.responses import StoreResponse

router = APIRouter(prefix="/vectorize", tags=["vectorize"])


@router.post("/store")
async def store_document(
    request: Request,
    body: StoreRequest,
    user_id: str = Depends(get_user_id),
    _: None = Depends(verify_api_key),
) -> StoreResponse:
    """Chunk, embed and index the extracted text of one document.

    Re-sending the same documentId overwrites the previous version.

    Args:
        request (Request): FastAPI request (provides app.state.ingestion_service).
        body (StoreRequest): Extracted text, file name and optional page offsets.
        user_id (str): Owner of the document, from X-User-Id.
        _ (None): Auth dependency result (unused).

    Returns:
        StoreResponse: The document id and the written record ids.
    """
    ingestion_service = request.app.state.ingestion_service
    result = await ingestion_service.do_ingest(body.to_ingest_request(user_id))
    return StoreResponse(
        document_id=result.document_id,
        chunks=result.chunks,
        vector_ids=result.vector_ids,
        pruned=result.pruned,
    )
