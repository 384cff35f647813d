"""FastAPI application entry point for the document index."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.db.DBClientManager import DBClientManager
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.exceptions.IndexExceptions import DocumentIndexException
from services.document_index.IngestionService import IngestionService
from services.document_index.RetrievalService import RetrievalService
from services.document_index.ReconcileService import ReconcileService
from server.routers.IngestRouter import router as ingest_router
from server.routers.DocumentRouter import router as document_router
from server.routers.ReconcileRouter import router as reconcile_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.helper_config).get_client()
    db_client = DBClientManager(helper_config=app.state.helper_config).get_client()
    clients = [embed_client, rag_client, db_client]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections(embed_client, rag_client, db_client)
    await rag_client.do_ensure_ready()

    app.state.embed_client = embed_client
    app.state.rag_client = rag_client
    app.state.db_client = db_client

    app.state.ingestion_service = IngestionService(
        helper_config=app.state.helper_config,
        rag_client=rag_client,
        embed_client=embed_client,
    )
    app.state.retrieval_service = RetrievalService(
        helper_config=app.state.helper_config,
        rag_client=rag_client,
    )
    app.state.reconcile_service = ReconcileService(
        helper_config=app.state.helper_config,
        db_client=db_client,
    )

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="document_index",
    description=(
        "Turns extracted document text into tenant-scoped vector records for semantic retrieval. "
        "Documents are chunked, embedded and stored via POST /vectorize/store, listed and deleted "
        "under /vectorize/documents, and attachment completion is repaired via "
        "POST /projects/{project_id}/attachments/reconcile."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router)
app.include_router(document_router)
app.include_router(reconcile_router)


@app.exception_handler(DocumentIndexException)
async def handle_index_exception(request: Request, exc: DocumentIndexException) -> JSONResponse:
    """Map domain errors to their HTTP status with the structured error body."""
    if exc.status_code >= 500:
        logging.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    else:
        logging.info("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def check_connections(
    embed_client: EmbedClientInterface,
    rag_client: RAGClientInterface,
    db_client: DBClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    The relational store is only needed for reconciliation, so its failure is
    non-fatal. The vector store and the embedding model are required, and the
    model must produce vectors of the configured dimension.

    Raises:
        Exception: If the vector store or the embedding backend is not reachable.
        DimensionMismatchError: If the embedding model produces the wrong dimension.
    """
    result = await db_client.do_healthcheck()
    if not result.is_success:
        logging.warning(
            "DB client '%s' is not reachable (status %d). Reconciliation may fail.",
            db_client.__class__.__name__,
            result.status_code,
        )

    result = await rag_client.do_healthcheck()
    if not result.is_success:
        raise Exception(
            f"RAG client '{rag_client.__class__.__name__}' is not reachable "
            f"(status {result.status_code}). Cannot store or retrieve documents."
        )

    result = await embed_client.do_healthcheck()
    if not result.is_success:
        raise Exception(
            f"Embed client is not reachable (status {result.status_code}). "
            "Documents cannot be vectorized."
        )
    await embed_client.do_verify_dimensions()


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting document_index API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
