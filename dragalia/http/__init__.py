"""FastAPI HTTP layer.

This package contains the FastAPI-specific adapters (middleware, MessagePack
formatters, error handling, settings parsing).

The ASGI entrypoint lives in `dragalia.app`.
"""
