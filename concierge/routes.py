import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .api.chat_routes import router as chat_router
from .api.session_routes import router as session_router
from .api.tool_routes import router as tool_router
from .errors import (
    ConciergeError,
    ErrorResponse,
    InternalError,
    RateLimitExceeded,
    format_validation_details,
    summarize_validation_details,
)
from .log_sanitizer import sanitize_headers_for_log
from .logging_config import logger
from .settings import settings


class HealthResponse(BaseModel):
    status: str = "ok"


def _error_json(payload: ErrorResponse, status_code: int, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        payload.model_dump(exclude_none=True), status_code=status_code, headers=headers
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Concierge Chat Core", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(tool_router)
    app.include_router(session_router)

    @app.exception_handler(ConciergeError)
    async def _concierge_error(request: Request, exc: ConciergeError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {"Retry-After": str(exc.retry_after)}
        if isinstance(exc, InternalError):
            logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
            return _error_json(ErrorResponse(error=InternalError.GENERIC_MESSAGE), exc.status_code)
        return _error_json(exc.to_response(), exc.status_code, headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = format_validation_details(list(exc.errors()))
        return _error_json(
            ErrorResponse(
                error=summarize_validation_details(details),
                code="validation_error",
                details=details,
            ),
            status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _error_json(
            ErrorResponse(error=str(exc.detail)), exc.status_code, getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        error_id = uuid.uuid4().hex[:12]
        logger.error(
            "Unhandled error %s while processing %s %s",
            error_id,
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            {"error": InternalError.GENERIC_MESSAGE, "errorId": error_id},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Basic request/response logging middleware. Session ids, idempotency
        keys and credentials are masked before headers are logged.
        """
        client_host = request.client.host if request.client else "-"
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            sanitize_headers_for_log(request.headers),
        )
        response = await call_next(request)
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    @app.on_event("shutdown")
    async def _close_services() -> None:
        services = getattr(app.state, "services", None)
        if services is not None:
            await services.aclose()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    return app
