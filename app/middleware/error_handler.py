import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import DispatchError, DispatchErrorKind, ParseError

logger = structlog.get_logger()

DISPATCH_STATUS = {
    DispatchErrorKind.CONNECTION_FAULT: 503,
    DispatchErrorKind.NOT_FOUND: 404,
    DispatchErrorKind.AMBIGUOUS_LOOKUP_UNAVAILABLE: 400,
    DispatchErrorKind.UNREACHABLE: 403,
    DispatchErrorKind.RATE_LIMITED: 429,
    DispatchErrorKind.INVALID_TARGET: 400,
    DispatchErrorKind.TRANSPORT_ERROR: 502,
}


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status = DISPATCH_STATUS.get(exc.kind, 500)
    logger.warning("api.dispatch_error", path=request.url.path, kind=exc.kind.value, status=status)
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": exc.kind.value, "message": exc.detail},
    )


async def parse_error_handler(request: Request, exc: ParseError) -> JSONResponse:
    logger.warning("api.parse_error", path=request.url.path, kind=exc.kind.value)
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": exc.kind.value, "message": exc.detail},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal_error", "message": str(exc)},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": "http_error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies answer 400 in the same envelope as every other error."""
    message = "; ".join(_describe(err) for err in exc.errors())
    logger.warning("api.validation_error", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "validation_error", "message": message},
    )


def _describe(err: dict) -> str:
    # loc starts with "body"/"query"; a model-level error has nothing after it
    field = ".".join(str(part) for part in err["loc"][1:])
    return f"{field}: {err['msg']}" if field else err["msg"]
