from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from ..auth import require_bearer_token
from ..deps import ConciergeServices, get_services
from ..errors import ValidationError
from ._body import read_json_body
from .chat_routes import SESSION_HEADER

IDEMPOTENCY_HEADER = "x-idempotency-key"
NO_STORE = {"Cache-Control": "no-store"}

router = APIRouter(tags=["tools"], dependencies=[Depends(require_bearer_token)])


@router.get("/tools")
async def list_tools(services: ConciergeServices = Depends(get_services)) -> dict:
    return {"tools": services.tool_gateway.names()}


@router.post("/tools/{tool_name}")
async def run_tool(
    tool_name: str,
    request: Request,
    x_session_id: str | None = Header(default=None, alias=SESSION_HEADER),
    x_idempotency_key: str | None = Header(default=None, alias=IDEMPOTENCY_HEADER),
    services: ConciergeServices = Depends(get_services),
) -> JSONResponse:
    """
    Run a tool through the gateway. The body is always `{ok, output?, error?}`.
    """
    try:
        payload = await read_json_body(request, default={})
    except ValidationError as exc:
        return JSONResponse(
            {"ok": False, "error": exc.message, "code": "invalid_input"},
            status_code=400,
            headers=NO_STORE,
        )
    result = await services.tool_gateway.execute(
        tool_name,
        (x_session_id or "").strip() or None,
        payload,
        idempotency_key=(x_idempotency_key or "").strip() or None,
    )
    headers = dict(NO_STORE)
    if result.retry_after is not None and result.status_code == 429:
        headers["Retry-After"] = str(result.retry_after)
    return JSONResponse(result.body(), status_code=result.status_code, headers=headers)
