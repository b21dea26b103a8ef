"""FastAPI dependency helpers.

Storage handles are attached to ``app.state`` during lifespan startup and
copied to ``request.state`` by middleware; prefer the request-scoped copy.
"""

from __future__ import annotations

from starlette.requests import Request

from dragalia.accountdb import AccountDb
from dragalia.fort import FortService
from dragalia.fortdb import FortDetailDb


class DependencyNotInitializedError(RuntimeError):
    """Raised when an app dependency is missing from request/app state."""

    def __init__(self, dependency: str) -> None:
        """Create a DependencyNotInitializedError for the given dependency name."""
        message = f"{dependency} not initialized"
        super().__init__(message)


def _state_attr(request: Request, name: str) -> object | None:
    value = getattr(request.state, name, None)
    if value is not None:
        return value
    storage = getattr(request.app.state, "storage", None)
    return getattr(storage, name, None)


def _require_dependency(request: Request, name: str) -> object:
    value = _state_attr(request, name)
    if value is None:
        raise DependencyNotInitializedError(name)
    return value


def get_accountdb(request: Request) -> AccountDb:
    """Return the request-scoped AccountDb handle."""
    return _require_dependency(request, "accountdb")


def get_fortdb(request: Request) -> FortDetailDb:
    """Return the request-scoped FortDetailDb handle."""
    return _require_dependency(request, "fortdb")


def get_fort_service(request: Request) -> FortService:
    return FortService(get_fortdb(request))
