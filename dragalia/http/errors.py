"""FastAPI/Starlette error handlers.

- transport and decoding failures (wrong media type, malformed MessagePack)
  are rejected with a JSON 4xx before any handler logic runs;
- business rejections (fort invariant, unknown account) are reported inside
  a normal MessagePack envelope with the matching result code;
- unhandled faults become a plain 500 that still carries the fixed response
  headers, because Starlette sends it from outside the user middleware stack.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, PlainTextResponse

from dragalia.accountdb import AccountNotFoundError
from dragalia.codec import EnvelopeDecodeError
from dragalia.envelope import ResultCode, failure
from dragalia.fort import FortConflictError, FortDetailNotFoundError, FortInvariantError
from dragalia.http.formatters import EnvelopeResponse, UnsupportedMediaTypeError
from dragalia.http.headers import stamp_response_headers

if TYPE_CHECKING:
    from fastapi import FastAPI
    from starlette.requests import Request
    from starlette.responses import Response

STATUS_BAD_REQUEST: Final[int] = 400
STATUS_CONFLICT: Final[int] = 409
STATUS_UNSUPPORTED_MEDIA_TYPE: Final[int] = 415
STATUS_INTERNAL_SERVER_ERROR: Final[int] = 500

logger = logging.getLogger(__name__)


async def _unsupported_media_type_handler(request: Request, exc: Exception) -> Response:
    _ = request
    media_type = getattr(exc, "content_type", "")
    return JSONResponse(
        {"detail": "Unsupported Media Type", "content_type": media_type},
        status_code=STATUS_UNSUPPORTED_MEDIA_TYPE,
    )


async def _decode_error_handler(request: Request, exc: Exception) -> Response:
    logger.info("Rejecting undecodable body on %s: %s", request.url.path, exc)
    return JSONResponse(
        {"detail": "Invalid request body", "error": str(exc)},
        status_code=STATUS_BAD_REQUEST,
    )


async def _fort_invariant_handler(request: Request, exc: Exception) -> Response:
    _ = request
    result = getattr(exc, "result", ResultCode.INVALID_REQUEST)
    return EnvelopeResponse(failure(result))


async def _account_not_found_handler(request: Request, exc: Exception) -> Response:
    _ = (request, exc)
    return EnvelopeResponse(failure(ResultCode.ACCOUNT_NOT_FOUND))


async def _conflict_handler(request: Request, exc: Exception) -> Response:
    _ = request
    return JSONResponse({"detail": str(exc)}, status_code=STATUS_CONFLICT)


async def _http_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        return JSONResponse({"detail": "Internal Server Error"}, status_code=500)
    return await http_exception_handler(request, exc)


async def _request_validation_handler(request: Request, exc: Exception) -> Response:
    _ = request
    if not isinstance(exc, RequestValidationError):
        return JSONResponse({"detail": "Internal Server Error"}, status_code=500)
    return JSONResponse(
        {"detail": "Invalid request", "errors": exc.errors()},
        status_code=STATUS_BAD_REQUEST,
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    _ = exc
    logger.error("Unhandled error on %s", request.url.path)
    response = PlainTextResponse(
        "Internal Server Error",
        status_code=STATUS_INTERNAL_SERVER_ERROR,
    )
    stamp_response_headers(response.headers)
    return response


def install_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for decoding, business and unhandled errors."""
    app.add_exception_handler(UnsupportedMediaTypeError, _unsupported_media_type_handler)
    app.add_exception_handler(EnvelopeDecodeError, _decode_error_handler)
    app.add_exception_handler(FortInvariantError, _fort_invariant_handler)
    app.add_exception_handler(FortDetailNotFoundError, _account_not_found_handler)
    app.add_exception_handler(AccountNotFoundError, _account_not_found_handler)
    app.add_exception_handler(FortConflictError, _conflict_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
