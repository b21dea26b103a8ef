"""Ordered schema migrations.

Each migration runs once; the highest applied version is recorded in the
key-value store under ``schema_version`` after every successful step, so a
failure part way leaves the earlier steps recorded and the failing one
pending for the next start.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from pymongo import ASCENDING

from dragalia.fort import new_fort_detail

SCHEMA_VERSION_KEY = "schema_version"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable


def create_player_indexes(storage):
    storage.accountdb.accounts.create_index(
        [("viewer_id", ASCENDING)],
        name="viewer_id",
        unique=True,
    )


def provision_missing_fort_details(storage):
    account_ids = storage.accountdb.get_account_ids()
    for device_account_id in storage.fortdb.missing_for(account_ids):
        storage.fortdb.insert(new_fort_detail(device_account_id))


MIGRATIONS = (
    Migration(1, "unique viewer_id index on players", create_player_indexes),
    Migration(2, "fort detail for every account", provision_missing_fort_details),
)


def current_version(kvstore):
    return kvstore.get(SCHEMA_VERSION_KEY, 0)


def pending_migrations(kvstore, migrations=MIGRATIONS):
    version = current_version(kvstore)
    return [m for m in sorted(migrations, key=lambda m: m.version) if m.version > version]


def apply_migrations(storage, migrations=MIGRATIONS):
    """Apply pending migrations in order; return the versions applied."""
    applied = []
    for migration in pending_migrations(storage.kvstore, migrations):
        logger.info(
            "Applying migration %d: %s", migration.version, migration.description
        )
        migration.apply(storage)
        storage.kvstore[SCHEMA_VERSION_KEY] = migration.version
        applied.append(migration.version)
    return applied
