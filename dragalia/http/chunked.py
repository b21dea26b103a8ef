"""Chunked transfer-encoding framing.

Some game clients stream request bodies with ``Transfer-Encoding: chunked``
but never send the terminating zero-length chunk. These helpers parse raw
chunk framing leniently at the end of the stream (a terminator that is
missing or cut short is reported, not rejected) while still rejecting
corrupt framing anywhere else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

CRLF: Final[bytes] = b"\r\n"
LAST_CHUNK: Final[bytes] = b"0" + CRLF + CRLF

_CHUNK_SIZE_RE = re.compile(rb"[0-9A-Fa-f]+")


class ChunkedEncodingError(ValueError):
    """Raised when chunk framing is corrupt (not merely unterminated)."""


@dataclass(frozen=True, slots=True)
class ChunkedBody:
    """Parsed chunk framing.

    ``missing`` holds the bytes that must be appended to the original stream
    to make it a properly terminated chunked body; it is empty when the
    stream was already well formed.
    """

    chunks: tuple[bytes, ...]
    missing: bytes = b""

    @property
    def terminated(self) -> bool:
        return not self.missing

    @property
    def payload(self) -> bytes:
        return b"".join(self.chunks)


def _chunk_size(line: bytes, offset: int) -> int:
    # Chunk extensions (";name=value") are allowed and ignored.
    token = line.split(b";", 1)[0].strip()
    if not _CHUNK_SIZE_RE.fullmatch(token):
        message = f"invalid chunk size {token!r} at offset {offset}"
        raise ChunkedEncodingError(message)
    return int(token, 16)


def parse_chunked(raw: bytes) -> ChunkedBody:
    """Parse a chunked body, tolerating a missing terminator at the end.

    A zero-length stream is a well-formed empty body.
    """
    chunks: list[bytes] = []
    pos = 0
    end_of_stream = len(raw)

    while pos < end_of_stream:
        eol = raw.find(CRLF, pos)
        if eol < 0:
            rest = raw[pos:]
            if LAST_CHUNK.startswith(rest):
                # Stream stopped inside the last-chunk line.
                return ChunkedBody(tuple(chunks), missing=LAST_CHUNK[len(rest) :])
            message = f"unterminated chunk size line at offset {pos}"
            raise ChunkedEncodingError(message)

        size = _chunk_size(raw[pos:eol], pos)
        start = eol + len(CRLF)

        if size == 0:
            trailer = raw[start:]
            if CRLF.startswith(trailer) and trailer != CRLF:
                return ChunkedBody(tuple(chunks), missing=CRLF[len(trailer) :])
            if trailer == CRLF or trailer.endswith(CRLF + CRLF):
                return ChunkedBody(tuple(chunks))
            message = f"malformed trailer section at offset {start}"
            raise ChunkedEncodingError(message)

        end = start + size
        if end > end_of_stream:
            message = (
                f"chunk at offset {pos} declares {size} bytes, "
                f"only {end_of_stream - start} available"
            )
            raise ChunkedEncodingError(message)

        chunks.append(raw[start:end])

        tail = raw[end : end + len(CRLF)]
        if end + len(CRLF) > end_of_stream and CRLF.startswith(tail):
            # Stream stopped right after the chunk data, or inside its CRLF.
            return ChunkedBody(tuple(chunks), missing=CRLF[len(tail) :] + LAST_CHUNK)
        if tail != CRLF:
            message = f"chunk data at offset {start} is not followed by CRLF"
            raise ChunkedEncodingError(message)
        pos = end + len(CRLF)

    if not chunks:
        return ChunkedBody(())
    return ChunkedBody(tuple(chunks), missing=LAST_CHUNK)


def repair_chunked(raw: bytes) -> bytes:
    """Return ``raw`` with the missing terminator appended, if any."""
    body = parse_chunked(raw)
    if body.terminated:
        return raw
    return raw + body.missing


def decode_chunked(raw: bytes) -> bytes:
    """Strip chunk framing and return the concatenated chunk payloads."""
    return parse_chunked(raw).payload
