from datetime import timezone

from bson.codec_options import CodecOptions
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from dragalia.accountdb import AccountDb
from dragalia.fortdb import FortDetailDb
from dragalia.kvstore import KeyValueStore
from dragalia.migrations import apply_migrations


class StorageDb:
    """Owns the MongoDB connection and the collection helpers built on it."""

    def __init__(self, db_name="dragalia", host="localhost", probe_timeout_ms=1000):
        # MongoClient connects lazily; nothing here blocks on the server.
        self.conn = MongoClient(host, serverSelectionTimeoutMS=probe_timeout_ms)
        codec_options = CodecOptions(tz_aware=True, tzinfo=timezone.utc)
        self.db = self.conn[db_name].with_options(codec_options=codec_options)
        self.kvstore = KeyValueStore(db=self.db)
        self.fortdb = FortDetailDb(self.db)
        self.accountdb = AccountDb(self.db, self.fortdb)

    def can_connect(self):
        try:
            self.conn.admin.command("ping")
        except PyMongoError:
            return False
        return True

    def migrate(self):
        return apply_migrations(self)

    def close(self):
        self.conn.close()
