"""Starlette/FastAPI middleware.

Installation order matters and is kept explicit in ``dragalia.app``:

- ``ResponseHeaderPolicyMiddleware`` is outermost so every response gets the
  fixed headers;
- ``DeChunkerMiddleware`` is innermost so the body is reassembled before
  routing and body parsing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import anyio
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from dragalia.http.chunked import ChunkedEncodingError, parse_chunked
from dragalia.http.headers import stamp_response_headers
from dragalia.http.settings import DEFAULT_CHUNK_IDLE_TIMEOUT, DEFAULT_MAX_BODY_BYTES

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send


logger = logging.getLogger(__name__)

STATUS_BAD_REQUEST = 400
STATUS_PAYLOAD_TOO_LARGE = 413


class ResponseHeaderPolicyMiddleware:
    """Stamp cache-control, CORS and keep-alive headers on every response."""

    def __init__(self, app: ASGIApp) -> None:
        """Store the downstream ASGI app."""
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Rewrite ``http.response.start`` headers just before they are sent."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                stamp_response_headers(MutableHeaders(scope=message))
            await send(message)

        await self.app(scope, receive, send_with_headers)


class ShutdownGuardMiddleware:
    """Return HTTP 503 when the app is shutting down."""

    def __init__(self, app: ASGIApp) -> None:
        """Store the downstream ASGI app."""
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Short-circuit requests once shutdown has started."""
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        app = scope.get("app")
        if getattr(getattr(app, "state", None), "shutting_down", False):
            response = PlainTextResponse("", status_code=503)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)


class AttachRequestStateMiddleware:
    """Attach storage handles to request.state."""

    def __init__(self, app: ASGIApp) -> None:
        """Store the downstream ASGI app."""
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Copy app-level storage handles onto the request state."""
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        storage = getattr(request.app.state, "storage", None)
        if storage is not None:
            request.state.storage = storage
            request.state.accountdb = getattr(storage, "accountdb", None)
            request.state.fortdb = getattr(storage, "fortdb", None)

        await self.app(scope, receive, send)


class _BodyTooLargeError(Exception):
    pass


def _is_chunked(scope: Scope) -> bool:
    for name, value in scope.get("headers", []):
        if name.lower() == b"transfer-encoding" and b"chunked" in value.lower():
            return True
    return False


def _reframed_headers(
    headers: list[tuple[bytes, bytes]],
    body_length: int,
) -> list[tuple[bytes, bytes]]:
    kept = [
        (name, value)
        for name, value in headers
        if name.lower() not in {b"transfer-encoding", b"content-length"}
    ]
    kept.append((b"content-length", str(body_length).encode("latin-1")))
    return kept


class DeChunkerMiddleware:
    """Reassemble chunked request bodies into one well-formed body.

    Some clients send ``Transfer-Encoding: chunked`` bodies without the
    terminating zero-length chunk, so the stream never reports its end and
    downstream body readers wait forever. The body is buffered until the
    stream ends, the client disconnects, or no data arrives for
    ``idle_timeout`` seconds; the buffered bytes are then replayed as a single
    message with a ``content-length`` header.

    With ``raw_framing`` the buffered bytes are expected to still carry the
    chunk framing (transports that forward it verbatim); the framing is
    parsed, a missing terminator repaired, and corrupt framing rejected with
    400.

    The whole body is held in memory; ``max_body_bytes`` bounds it (413).
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        idle_timeout: float = DEFAULT_CHUNK_IDLE_TIMEOUT,
        max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES,
        raw_framing: bool = False,
    ) -> None:
        """Store the downstream ASGI app and buffering limits."""
        self.app = app
        self.idle_timeout = idle_timeout
        self.max_body_bytes = max_body_bytes
        self.raw_framing = raw_framing

    async def _read_body(self, receive: Receive) -> tuple[bytes, str]:
        """Drain the request stream.

        Returns the body and how the stream stopped: ``"complete"``, ``"idle"``
        (no terminator before the idle timeout) or ``"disconnect"``.
        """
        buffer = bytearray()
        while True:
            with anyio.move_on_after(self.idle_timeout) as cancel_scope:
                message = await receive()
            if cancel_scope.cancelled_caught:
                return bytes(buffer), "idle"
            if message["type"] == "http.disconnect":
                return bytes(buffer), "disconnect"

            buffer.extend(message.get("body", b""))
            if self.max_body_bytes is not None and len(buffer) > self.max_body_bytes:
                raise _BodyTooLargeError
            if not message.get("more_body", False):
                return bytes(buffer), "complete"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Buffer a chunked body and hand downstream a fixed-length request."""
        if scope["type"] != "http" or not _is_chunked(scope):
            await self.app(scope, receive, send)
            return

        try:
            body, stream_end = await self._read_body(receive)
        except _BodyTooLargeError:
            logger.warning(
                "Rejecting chunked body on %s: larger than %d bytes",
                scope.get("path"),
                self.max_body_bytes,
            )
            response = PlainTextResponse(
                "Request body too large",
                status_code=STATUS_PAYLOAD_TOO_LARGE,
            )
            await response(scope, receive, send)
            return

        if stream_end != "complete":
            logger.info(
                "Chunked body on %s stopped (%s) without terminator after %d bytes",
                scope.get("path"),
                stream_end,
                len(body),
            )

        if self.raw_framing:
            try:
                framed = parse_chunked(body)
            except ChunkedEncodingError as e:
                logger.warning("Malformed chunked body on %s: %s", scope.get("path"), e)
                response = PlainTextResponse(
                    "Malformed chunked body",
                    status_code=STATUS_BAD_REQUEST,
                )
                await response(scope, receive, send)
                return
            if not framed.terminated:
                logger.info("Repaired missing chunk terminator on %s", scope.get("path"))
            body = framed.payload

        replayed = False

        async def replay_receive() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": False}
            if stream_end == "disconnect":
                return {"type": "http.disconnect"}
            if stream_end == "idle":
                # The stream never ended; nothing more will arrive on it.
                await anyio.sleep_forever()
            while True:
                message = await receive()
                if message["type"] != "http.request":
                    return message

        scope = {
            **scope,
            "headers": _reframed_headers(list(scope.get("headers", [])), len(body)),
        }
        await self.app(scope, replay_receive, send)
