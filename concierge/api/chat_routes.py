from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import StreamingResponse

from ..auth import require_bearer_token
from ..deps import ConciergeServices, get_services
from ._body import read_json_body

SESSION_HEADER = "x-intelligence-session-id"

router = APIRouter(tags=["chat"], dependencies=[Depends(require_bearer_token)])


@router.post("/chat")
async def chat(
    request: Request,
    x_session_id: str | None = Header(default=None, alias=SESSION_HEADER),
    services: ConciergeServices = Depends(get_services),
) -> StreamingResponse:
    """
    Stream a reply as Server-Sent Events.

    Validation (400) and budget (403) failures are answered as JSON before
    the stream opens; anything later ends the stream with an error frame.
    """
    pipeline = services.pipeline
    chat_request = pipeline.validate(await read_json_body(request))
    prepared = await pipeline.prepare(chat_request, (x_session_id or "").strip() or None)
    return StreamingResponse(
        pipeline.stream(prepared),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
            "X-Accel-Buffering": "no",
        },
    )
