from datetime import datetime, timezone

from pymongo import DESCENDING
from vtjson import validate

from dragalia.fort import new_fort_detail
from dragalia.schemas import account_schema


class AccountNotFoundError(LookupError):
    def __init__(self, device_account_id):
        self.device_account_id = device_account_id
        super().__init__(f"account {device_account_id!r} not found")


class AccountDb:
    """Player accounts and the records they exclusively own.

    Owned records share the account's ``device_account_id`` as their key:
    they are created when the account is provisioned and deleted with it.
    """

    def __init__(self, db, fortdb):
        self.db = db
        self.accounts = self.db["players"]
        self.fortdb = fortdb

    def get_account(self, device_account_id):
        return self.accounts.find_one({"_id": device_account_id})

    def require_account(self, device_account_id):
        account = self.get_account(device_account_id)
        if account is None:
            raise AccountNotFoundError(device_account_id)
        return account

    def next_viewer_id(self):
        last = self.accounts.find_one({}, {"viewer_id": 1}, sort=[("viewer_id", DESCENDING)])
        return 1 if last is None else last["viewer_id"] + 1

    def create_account(self, device_account_id, viewer_id=None):
        if viewer_id is None:
            viewer_id = self.next_viewer_id()
        account = {
            "_id": device_account_id,
            "viewer_id": viewer_id,
            "created": datetime.now(timezone.utc),
        }
        validate(account_schema, account, "account")  # may throw exception
        self.accounts.insert_one(account)
        self.fortdb.insert(new_fort_detail(device_account_id))
        return account

    def delete_account(self, device_account_id):
        r = self.accounts.delete_one({"_id": device_account_id})
        if r.deleted_count == 0:
            raise AccountNotFoundError(device_account_id)
        self.fortdb.delete(device_account_id)

    def get_account_ids(self):
        return [a["_id"] for a in self.accounts.find({}, {"_id": 1})]
