"""Startup gate that waits for the storage backend.

``wait_for_storage`` polls the backend at a fixed interval with no attempt
limit and no backoff: if the database never comes up the process blocks here
until it is terminated. Once the backend answers, pending migrations are
applied exactly once.

A migration failure is logged and swallowed so that the server still starts.
Requests may then run against a partially migrated schema; the failing
migration stays pending and is retried on the next start.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Storage(Protocol):
    def can_connect(self) -> bool:
        """Return True once the backend accepts connections."""

    def migrate(self) -> object:
        """Apply pending schema migrations."""


def wait_until_reachable(
    storage: Storage,
    *,
    interval: float = 1.0,
    sleep: Callable[[float], object] = time.sleep,
) -> int:
    """Block until ``storage.can_connect()`` is true; return the probe count."""
    probes = 1
    while not storage.can_connect():
        logger.info("Storage not ready yet; waiting...")
        sleep(interval)
        probes += 1
    return probes


def wait_for_storage(
    storage: Storage,
    *,
    interval: float = 1.0,
    sleep: Callable[[float], object] = time.sleep,
) -> int:
    """Wait for the storage backend, then migrate it once."""
    logger.info("Migrating database...")
    probes = wait_until_reachable(storage, interval=interval, sleep=sleep)

    try:
        storage.migrate()
    except Exception:
        logger.exception("An error occurred while migrating the database.")
    else:
        logger.info("Database migrated successfully.")
    return probes
