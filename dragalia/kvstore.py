from collections.abc import MutableMapping

from vtjson import validate

from dragalia.schemas import kvstore_schema


class KeyValueStore(MutableMapping):
    """Small persistent mapping, used for server bookkeeping such as the
    applied schema version. It shares the connection of its database."""

    def __init__(self, db, collection="kvstore"):
        self.__kvstore = db[collection]

    def __setitem__(self, key, value):
        document = {"_id": key, "value": value}
        validate(kvstore_schema, document)
        self.__kvstore.replace_one({"_id": key}, document, upsert=True)

    def __getitem__(self, key):
        document = self.__kvstore.find_one({"_id": key})
        if document is None:
            raise KeyError(key)
        return document["value"]

    def __delitem__(self, key):
        d = self.__kvstore.delete_one({"_id": key})
        if d.deleted_count == 0:
            raise KeyError(key)

    def __len__(self):
        return self.__kvstore.count_documents({})

    def __iter__(self):
        documents = self.__kvstore.find({}, {"value": 0, "_id": 1})
        for d in documents:
            yield d["_id"]

    def clear(self):
        self.__kvstore.delete_many({})
