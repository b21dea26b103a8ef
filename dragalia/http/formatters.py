"""MessagePack input/output formatters for FastAPI routes.

Routes declare the request shape with ``Depends(decode_body(Shape))`` and
return an :class:`EnvelopeResponse`. Both sides use the contractless codec in
``dragalia.codec``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import Response

from dragalia.codec import (
    ACCEPTED_MEDIA_TYPES,
    MEDIA_TYPE,
    EnvelopeDecodeError,
    pack,
    unpack,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class UnsupportedMediaTypeError(ValueError):
    """Raised when a request body is not declared as MessagePack."""

    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"unsupported media type {content_type!r}")


class EnvelopeResponse(Response):
    """Response whose content is serialized with the contractless codec."""

    media_type = MEDIA_TYPE

    def render(self, content: Any) -> bytes:
        return pack(content)


def request_media_type(request: Request) -> str:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


def decode_body[TShape](shape: type[TShape]) -> Callable[[Request], Awaitable[TShape]]:
    """Build a FastAPI dependency that materializes the body as ``shape``."""

    # Request is imported at runtime: FastAPI resolves this signature.
    async def dependency(request: Request):  # noqa: ANN202
        media_type = request_media_type(request)
        if media_type not in ACCEPTED_MEDIA_TYPES:
            raise UnsupportedMediaTypeError(media_type)
        body = await request.body()
        return unpack(body, shape)

    dependency.__name__ = f"decode_{getattr(shape, '__name__', 'body')}"
    return dependency


__all__ = [
    "EnvelopeDecodeError",
    "EnvelopeResponse",
    "UnsupportedMediaTypeError",
    "decode_body",
    "request_media_type",
]
