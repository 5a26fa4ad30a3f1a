"""Webhook router for note and library item events.

The persistence layer calls these endpoints whenever a note's content
changes, a library item is uploaded or moved between notes, or either is
deleted. Each handler starts the matching vectorization job as a
fire-and-forget background task so the response is returned immediately.
"""

import asyncio
from typing import Coroutine

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from server.models.requests import ReassociateRequest
from server.models.responses import WebhookAcceptedResponse
from services.vectorization.VectorizationService import VectorizationService
from shared.dependencies.auth import verify_api_key
from shared.models.document import DocumentKind

webhook_router = APIRouter()

KIND_BY_PATH = {
    "notes": DocumentKind.NOTE,
    "library-items": DocumentKind.LIBRARY_ITEM,
}


def _start_background(request: Request, job: Coroutine) -> None:
    logging = request.app.state.logging
    # keep a reference so the task is not garbage collected before it finishes
    tasks: set[asyncio.Task] = request.app.state.background_tasks

    def on_done(task: asyncio.Task) -> None:
        tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logging.error("Background job %s failed: %s", task.get_name(), task.exception())

    task = asyncio.create_task(job)
    tasks.add(task)
    task.add_done_callback(on_done)


def _accepted(kind: DocumentKind, unit_id: str, action: str) -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content=WebhookAcceptedResponse(kind=kind.value, id=unit_id, action=action).model_dump(),
    )


@webhook_router.post(
    "/webhook/notes/{note_id}/vectorize",
    dependencies=[Depends(verify_api_key)],
    tags=["Webhook"],
)
async def handle_note_vectorize(request: Request, note_id: str) -> JSONResponse:
    """Re-vectorize a note after its content changed."""
    request.app.state.logging.info("Vectorize webhook received for note_id=%r", note_id)
    vectorizer: VectorizationService = request.app.state.vectorizer
    _start_background(request, vectorizer.do_vectorize_note(note_id))
    return _accepted(DocumentKind.NOTE, note_id, "vectorize")


@webhook_router.post(
    "/webhook/library-items/{library_item_id}/vectorize",
    dependencies=[Depends(verify_api_key)],
    tags=["Webhook"],
)
async def handle_library_item_vectorize(request: Request, library_item_id: str) -> JSONResponse:
    """Vectorize a newly uploaded or re-extracted library item."""
    request.app.state.logging.info("Vectorize webhook received for library_item_id=%r", library_item_id)
    vectorizer: VectorizationService = request.app.state.vectorizer
    _start_background(request, vectorizer.do_vectorize_library_item(library_item_id))
    return _accepted(DocumentKind.LIBRARY_ITEM, library_item_id, "vectorize")


@webhook_router.post(
    "/webhook/library-items/{library_item_id}/reassociate",
    dependencies=[Depends(verify_api_key)],
    tags=["Webhook"],
)
async def handle_library_item_reassociate(
    request: Request,
    library_item_id: str,
    body: ReassociateRequest,
) -> JSONResponse:
    """Move a library item's chunks to another note (or to the placeholder note when note_id is null)."""
    request.app.state.logging.info(
        "Reassociate webhook received for library_item_id=%r → note_id=%r", library_item_id, body.note_id
    )
    vectorizer: VectorizationService = request.app.state.vectorizer
    _start_background(request, vectorizer.do_reassociate(library_item_id, body.note_id))
    return _accepted(DocumentKind.LIBRARY_ITEM, library_item_id, "reassociate")


@webhook_router.post(
    "/webhook/{kind}/{unit_id}/deleted",
    dependencies=[Depends(verify_api_key)],
    tags=["Webhook"],
)
async def handle_unit_deleted(request: Request, kind: str, unit_id: str) -> JSONResponse:
    """Remove the vectors of a deleted note or library item.

    Raises:
        HTTPException: 404 for an unknown kind.
    """
    document_kind = KIND_BY_PATH.get(kind)
    if document_kind is None:
        raise HTTPException(status_code=404, detail=f"Unknown document kind '{kind}'.")
    request.app.state.logging.info("Delete webhook received for %s id=%r", document_kind.value, unit_id)
    vectorizer: VectorizationService = request.app.state.vectorizer
    _start_background(request, vectorizer.do_delete_unit(document_kind, unit_id))
    return _accepted(document_kind, unit_id, "delete")
