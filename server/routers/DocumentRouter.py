from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import get_user_id, verify_api_key
from server.models.responses import DeleteResponse, DocumentListResponse, VectorListResponse

router = APIRouter(prefix="/vectorize/documents", tags=["documents"])


@router.get("")
async def list_documents(
    request: Request,
    user_id: str = Depends(get_user_id),
    _: None = Depends(verify_api_key),
) -> DocumentListResponse:
    """List the indexed documents of the requesting user."""
    retrieval_service = request.app.state.retrieval_service
    documents = await retrieval_service.do_list_documents(user_id)
    return DocumentListResponse(documents=documents, total=len(documents))


# registered before /{document_id} so "by-filename" is never taken for a document id
@router.delete("/by-filename/{file_name}")
async def delete_by_file_name(
    request: Request,
    file_name: str,
    user_id: str = Depends(get_user_id),
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    """Delete every record of every document of the user with this file name.

    Returns:
        DeleteResponse: Number of deleted records and the batch report.
    """
    retrieval_service = request.app.state.retrieval_service
    result = await retrieval_service.do_delete_by_file_name(user_id, file_name)
    return DeleteResponse(deleted=result.deleted, report=result.report)


@router.delete("/{document_id}")
async def delete_document(
    request: Request,
    document_id: str,
    user_id: str = Depends(get_user_id),
    _: None = Depends(verify_api_key),
) -> DeleteResponse:
    """Delete all records of one document owned by the user."""
    retrieval_service = request.app.state.retrieval_service
    result = await retrieval_service.do_delete_document(user_id, document_id)
    return DeleteResponse(deleted=result.deleted, report=result.report)


@router.get("/{document_id}/vectors")
async def list_vectors(
    request: Request,
    document_id: str,
    user_id: str = Depends(get_user_id),
    _: None = Depends(verify_api_key),
) -> VectorListResponse:
    """Return every stored record of one document, metadata included."""
    retrieval_service = request.app.state.retrieval_service
    vectors = await retrieval_service.do_list_vectors(user_id, document_id)
    return VectorListResponse(document_id=document_id, vectors=vectors, total=len(vectors))
