"""Query router: question answering over a note's documents.

POST returns the full AnswerResult. GET .../stream returns server-sent
events, one JSON object per event: {"type": ..., "data": {...}} with types
status, chunk, metadata, complete, error and ping (keep-alive while the
pipeline is still classifying or retrieving).
"""

import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from server.models.requests import QARequest
from services.qa.PipelineOrchestrator import PipelineOrchestrator
from shared.dependencies.auth import verify_api_key

query_router = APIRouter()


def format_event(event_type: str, data: dict) -> str:
    return f"data: {json.dumps({'type': event_type, 'data': data})}\n\n"


def _validate_question(question: str, user_id: str) -> None:
    if not question or not question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty.")
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="user_id is required.")


@query_router.post(
    "/notes/{note_id}/qa",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
)
async def handle_qa(request: Request, note_id: str, body: QARequest) -> JSONResponse:
    """Answer a question asked in a note.

    Pipeline failures do not produce 5xx responses; they come back as a
    zero-confidence apology answer.

    Raises:
        HTTPException: 400 if the question or user_id is blank.
    """
    _validate_question(body.question, body.user_id)
    request.app.state.logging.info(
        "Q&A received: note_id=%s user_id=%s question=%r", note_id, body.user_id, body.question[:80]
    )
    orchestrator: PipelineOrchestrator = request.app.state.orchestrator
    result = await orchestrator.do_answer(note_id, body.user_id, body.question.strip())
    return JSONResponse(content=result.model_dump(mode="json"))


@query_router.get(
    "/notes/{note_id}/qa/stream",
    dependencies=[Depends(verify_api_key)],
    tags=["Query"],
)
async def handle_qa_stream(
    request: Request,
    note_id: str,
    question: str = "",
    user_id: str = "",
    client_block_id: str | None = None,
) -> StreamingResponse:
    """Stream the answer to a question as server-sent events.

    Raises:
        HTTPException: 400 if the question or user_id is blank.
    """
    _validate_question(question, user_id)
    request.app.state.logging.info(
        "Streaming Q&A received: note_id=%s user_id=%s question=%r", note_id, user_id, question[:80]
    )
    return StreamingResponse(
        _stream_answer(request, note_id, user_id, question.strip(), client_block_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _stream_answer(
    request: Request,
    note_id: str,
    user_id: str,
    question: str,
    client_block_id: str | None,
) -> AsyncIterator[str]:
    """Bridge the orchestrator's chunk callback to an SSE body through a queue.

    The orchestration task is cancelled when the client disconnects.
    """
    logging = request.app.state.logging
    orchestrator: PipelineOrchestrator = request.app.state.orchestrator
    keepalive_seconds = request.app.state.qa_keepalive_seconds
    queue: asyncio.Queue[tuple[str, dict]] = asyncio.Queue()

    async def on_chunk(text: str, is_complete: bool) -> None:
        await queue.put(("chunk", {"chunk": text, "is_complete": is_complete, "client_block_id": client_block_id}))

    async def run() -> None:
        try:
            result = await orchestrator.do_answer_streaming(note_id, user_id, question, on_chunk)
            metadata = result.model_dump(mode="json", exclude={"answer"})
            metadata["client_block_id"] = client_block_id
            await queue.put(("metadata", metadata))
            await queue.put(("complete", {"answer": result.answer, "client_block_id": client_block_id}))
        except Exception as exc:
            logging.error("Streaming Q&A for note '%s' failed: %s", note_id, exc, exc_info=True)
            await queue.put(("error", {"message": "Failed to generate answer.", "client_block_id": client_block_id}))

    yield format_event("status", {"status": "started", "client_block_id": client_block_id})
    task = asyncio.create_task(run())
    try:
        while True:
            if await request.is_disconnected():
                logging.info("Client disconnected from Q&A stream for note '%s'.", note_id)
                break
            try:
                event_type, data = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield format_event("ping", {"client_block_id": client_block_id})
                continue
            yield format_event(event_type, data)
            if event_type in ("complete", "error"):
                break
    finally:
        if not task.done():
            task.cancel()
