from vtjson import validate

from dragalia.schemas import fort_detail_schema


class FortDetailDb:
    """Per-account fort detail documents.

    The owning account's ``device_account_id`` is the document ``_id``, so an
    account has at most one fort detail. Documents are validated for shape
    only; the carpenter ordering is enforced by ``dragalia.fort``.
    """

    def __init__(self, db):
        self.db = db
        self.fort_details = self.db["player_fort_detail"]

    def get(self, device_account_id):
        return self.fort_details.find_one({"_id": device_account_id})

    def insert(self, fort_detail):
        validate(fort_detail_schema, fort_detail, "fort_detail")  # may throw exception
        self.fort_details.insert_one(fort_detail)

    def replace(self, fort_detail, expected):
        """Replace the document if it still holds the ``expected`` counts.

        Returns False when another request changed it since it was read.
        """
        validate(fort_detail_schema, fort_detail, "fort_detail")  # may throw exception
        r = self.fort_details.replace_one(
            {"_id": fort_detail["_id"], **expected},
            fort_detail,
        )
        return r.matched_count == 1

    def set_working(self, device_account_id, expected, working):
        """Compare-and-set the working carpenter count.

        ``expected`` holds all three counts as they were read, so a change to
        any of them by another request makes the write miss.
        """
        r = self.fort_details.update_one(
            {"_id": device_account_id, **expected},
            {"$set": {"working_carpenter_num": working}},
        )
        return r.matched_count == 1

    def delete(self, device_account_id):
        return self.fort_details.delete_one({"_id": device_account_id}).deleted_count

    def missing_for(self, device_account_ids):
        """Return the account ids that have no fort detail yet."""
        ids = list(device_account_ids)
        present = {
            d["_id"] for d in self.fort_details.find({"_id": {"$in": ids}}, {"_id": 1})
        }
        return [i for i in ids if i not in present]
