from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator
from uuid import uuid4

import anyio
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from zoerag.agent.graph import run_graph
from zoerag.agent.prompts import build_messages
from zoerag.apps.api.deps import AssistantClients, get_clients
from zoerag.apps.api.errors import error_json
from zoerag.core.config import get_settings
from zoerag.core.errors import InvalidRequestError, ProviderRateLimitError, ProviderTimeoutError
from zoerag.domain.events import CompletionChunk, ErrorEvent, SourcesEvent
from zoerag.domain.state import AssistantState, SourceCitation
from zoerag.providers.llm.base import ChatCompletionStream
from zoerag.services.auth.claims import authenticate
from zoerag.services.conversations import record_assistant_turn
from zoerag.services.knowledge import latest_user_message
from zoerag.services.telemetry import increment_counter, record_stream_duration
from zoerag.services.validation import validate_payload

logger = logging.getLogger(__name__)
router = APIRouter(tags=["assistant"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": "text/event-stream",
    "Connection": "keep-alive",
}
DONE_FRAME = "data: [DONE]\n\n"

_TIMEOUT_MESSAGE = "The assistant took too long to respond. Please try again."
_UNAVAILABLE_MESSAGE = "The assistant is temporarily unavailable. Please try again."
_STREAM_CLOSE_TIMEOUT_S = 5.0


@dataclass
class RelayOutcome:
    # Filled in by the relay, read by the post-stream persistence task.
    started_at: float
    parts: list[str] = field(default_factory=list)
    finished_at: float | None = None
    completed: bool = False
    failed: bool = False

    @property
    def content(self) -> str:
        return "".join(self.parts)

    @property
    def response_time_ms(self) -> int:
        finished = self.finished_at if self.finished_at is not None else time.monotonic()
        return int((finished - self.started_at) * 1000)


def _sse_data(payload: Any) -> str:
    # One compact JSON document per frame; newlines inside strings stay escaped.
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n"


def _chunk_text(chunk: CompletionChunk) -> str:
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _caller_safe_message(exc: BaseException) -> str:
    if isinstance(exc, (ProviderTimeoutError, TimeoutError)):
        return _TIMEOUT_MESSAGE
    return _UNAVAILABLE_MESSAGE


async def relay_completion(
    stream: ChatCompletionStream | None,
    citations: list[SourceCitation],
    outcome: RelayOutcome,
    *,
    request_id: str,
    open_error: Exception | None = None,
) -> AsyncGenerator[str, None]:
    """Forward provider chunks as SSE frames, then sources (or error), then [DONE].

    The terminal frame is always emitted unless the client went away; the
    provider stream is closed on every exit path.
    """
    failure: Exception | None = open_error
    try:
        if stream is not None and failure is None:
            try:
                async for chunk in stream:
                    text = _chunk_text(chunk)
                    if text:
                        outcome.parts.append(text)
                    yield _sse_data(chunk)
            except Exception as exc:  # noqa: BLE001 - surfaced in-band, never as an HTTP failure
                failure = exc

        if failure is None:
            if citations:
                sources: SourcesEvent = {"type": "sources", "sources": [item.to_dict() for item in citations]}
                yield _sse_data(sources)
        else:
            outcome.failed = True
            increment_counter("stream_errors_total")
            logger.error(
                "chat_stream_failed request_id=%s chars_relayed=%s",
                request_id,
                len(outcome.content),
                exc_info=failure,
            )
            error: ErrorEvent = {"type": "error", "message": _caller_safe_message(failure)}
            yield _sse_data(error)
        yield DONE_FRAME
        outcome.completed = True
    finally:
        outcome.finished_at = time.monotonic()
        # A client disconnect cancels this generator; the upstream response must still be released.
        with anyio.CancelScope(shield=True):
            if stream is not None:
                with anyio.move_on_after(_STREAM_CLOSE_TIMEOUT_S):
                    await stream.aclose()
            record_stream_duration(outcome.response_time_ms)
            logger.info(
                "chat_stream_closed request_id=%s completed=%s failed=%s chars=%s",
                request_id,
                outcome.completed,
                outcome.failed,
                len(outcome.content),
            )


async def persist_assistant_reply(
    clients: AssistantClients,
    outcome: RelayOutcome,
    *,
    conversation_id: str | None,
    citations: list[SourceCitation],
    model: str,
    request_id: str,
) -> None:
    # Runs once the response body is closed; failures are logged inside the service.
    await record_assistant_turn(
        clients.conversations,
        conversation_id=conversation_id,
        content=outcome.content,
        response_time_ms=outcome.response_time_ms,
        metadata={
            "model": model,
            "request_id": request_id,
            "source_ids": [item.id for item in citations],
            "stream_error": outcome.failed,
        },
        request_id=request_id,
    )


@router.post("/chat")
async def chat(
    http_request: Request,
    clients: AssistantClients = Depends(get_clients),
) -> Response:
    settings = get_settings()
    request_id = getattr(http_request.state, "request_id", None) or str(uuid4())

    # Hard failures first: nothing downstream runs for unauthenticated or malformed requests.
    claims = authenticate(http_request.headers.get(settings.auth_header), settings)
    try:
        body = await http_request.json()
    except ValueError as exc:
        raise InvalidRequestError("Invalid request body") from exc
    payload = validate_payload(body, settings)
    query_text = latest_user_message(payload.messages)

    logger.info(
        "chat_request request_id=%s subject_id=%s session_id=%s messages=%s",
        request_id,
        claims.subject_id,
        payload.session_id,
        len(payload.messages),
    )

    state: AssistantState = {
        "request_id": request_id,
        "request": payload,
        "claims": claims,
        "accept_language": http_request.headers.get("accept-language"),
        "query_text": query_text,
        "timings_ms": {},
    }
    final_state = await run_graph(
        embedder=clients.embedder,
        retriever=clients.retriever,
        profiles=clients.profiles,
        conversations=clients.conversations,
        settings=settings,
        state=state,
    )
    citations = list(final_state.get("citations") or [])
    conversation_id = final_state.get("conversation_id")
    logger.info(
        "chat_context_ready request_id=%s sources=%s conversation_id=%s timings_ms=%s",
        request_id,
        len(citations),
        conversation_id,
        final_state.get("timings_ms"),
    )

    messages = build_messages(
        final_state["knowledge_context"],
        payload.messages,
        history_turns=settings.chat_history_turns,
    )
    outcome = RelayOutcome(started_at=time.monotonic())
    stream: ChatCompletionStream | None = None
    open_error: Exception | None = None
    try:
        stream = await clients.llm.open_stream(
            messages,
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
            request_id=request_id,
        )
    except ProviderRateLimitError as exc:
        # Nothing has been streamed yet, so throttling can still be a plain HTTP status.
        logger.warning("chat_rate_limited request_id=%s", request_id)
        return error_json(str(exc), 429)
    except Exception as exc:  # noqa: BLE001 - reported as an error frame inside the stream
        open_error = exc

    background = BackgroundTask(
        persist_assistant_reply,
        clients,
        outcome,
        conversation_id=conversation_id,
        citations=citations,
        model=clients.llm.model,
        request_id=request_id,
    )
    return StreamingResponse(
        relay_completion(
            stream,
            citations,
            outcome,
            request_id=request_id,
            open_error=open_error,
        ),
        headers=SSE_HEADERS,
        media_type="text/event-stream",
        background=background,
    )
