"""Exception handlers that render every failure as {"success": false, "error": {...}}."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, details=None, headers=None, **extra) -> JSONResponse:
    error = {"message": message}
    if details is not None:
        error["details"] = details
    error.update(extra)
    return JSONResponse(status_code=status_code, content={"success": False, "error": error}, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    headers = getattr(exc, "headers", None)
    if isinstance(detail, dict):
        detail = dict(detail)
        message = detail.pop("message", "Request failed")
        return error_response(exc.status_code, message, headers=headers, **detail)
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Route not found"
    return error_response(exc.status_code, str(detail), headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return error_response(400, "Validation failed", details=details)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
