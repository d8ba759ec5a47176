from __future__ import annotations
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from core_logging import get_logger, log_stage, record_error, current_request_id
from core_utils.ids import generate_request_id
from core_utils import jsonx
from core_logging.error_codes import ErrorCode

def error_envelope(code: ErrorCode, message: str, request_id: str, *, details: object | None = None) -> dict:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        },
        "request_id": request_id,
    }
    if details is not None:
        payload["error"]["details"] = jsonx.sanitize(details)
    return payload

def attach_standard_error_handlers(app: FastAPI, *, service: str) -> None:
    """
    Uniform error shaping:
      - 422: Pydantic validation
      - Starlette HTTP errors (JSON passthrough)
      - 500: Catch-all with {code, message, details, request_id}
    """
    logger = get_logger(service)

    @app.exception_handler(RequestValidationError)
    async def _validation_exc_handler(request: Request, exc: RequestValidationError):
        req_id = current_request_id() or generate_request_id()
        log_stage(logger, "validation", "validation.failed",
                  request_id=req_id, errors=jsonx.sanitize(exc.errors()),
                  path=str(request.url.path), method=request.method)
        return JSONResponse(
            status_code=422,
            content=error_envelope(
                ErrorCode.validation_failed,
                "Request validation failed",
                req_id,
                details={"errors": exc.errors()},
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(_: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(status_code=exc.status_code, content=exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def _unhandled_exc_handler(request: Request, exc: Exception):
        req_id = current_request_id() or generate_request_id()
        record_error(
            ErrorCode.internal.value,
            where="http.server",
            message=str(exc),
            logger=logger,
            error_type=exc.__class__.__name__,
            path=str(request.url.path),
            request_id=req_id,
        )
        return JSONResponse(
            status_code=500,
            content=error_envelope(
                ErrorCode.internal,
                "Unexpected error",
                req_id,
                details={"type": exc.__class__.__name__, "message": str(exc)},
            ),
        )
