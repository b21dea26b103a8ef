import unittest

import test_support
from pymongo.errors import DuplicateKeyError
from vtjson import ValidationError

from dragalia.accountdb import AccountNotFoundError
from dragalia.envelope import ResultCode
from dragalia.fort import (
    DEFAULT_CARPENTER_NUM,
    DEFAULT_MAX_CARPENTER_COUNT,
    FortConflictError,
    FortDetail,
    FortDetailNotFoundError,
    FortInvariantError,
    FortService,
    check_fort_detail,
)


class TestCheckFortDetail(unittest.TestCase):
    def test_valid(self):
        check_fort_detail(0, 0, 0)
        check_fort_detail(2, 5, 2)
        check_fort_detail(5, 5, 0)

    def test_working_exceeds_available(self):
        with self.assertRaises(FortInvariantError) as cm:
            check_fort_detail(2, 5, 3)
        self.assertEqual(cm.exception.result, ResultCode.FORT_NO_IDLE_CARPENTER)

    def test_available_exceeds_capacity(self):
        with self.assertRaises(FortInvariantError) as cm:
            check_fort_detail(6, 5, 0)
        self.assertEqual(cm.exception.result, ResultCode.FORT_CARPENTER_LIMIT)

    def test_negative_working(self):
        with self.assertRaises(FortInvariantError) as cm:
            check_fort_detail(2, 5, -1)
        self.assertEqual(cm.exception.result, ResultCode.FORT_NO_WORKING_CARPENTER)


class TestFortService(unittest.TestCase):
    def setUp(self):
        self.storage = test_support.StorageStub()
        self.storage.accountdb.create_account("player1")
        self.fort = FortService(self.storage.fortdb)

    def test_new_account_gets_default_fort_detail(self):
        self.assertEqual(
            self.fort.get("player1"),
            FortDetail(DEFAULT_CARPENTER_NUM, DEFAULT_MAX_CARPENTER_COUNT, 0),
        )

    def test_build_cycle(self):
        self.assertEqual(self.fort.begin_build("player1").working_carpenter_num, 1)
        self.assertEqual(self.fort.begin_build("player1").working_carpenter_num, 2)
        self.assertEqual(self.fort.finish_build("player1").working_carpenter_num, 1)
        self.assertEqual(self.fort.get("player1").working_carpenter_num, 1)

    def test_working_cannot_exceed_available(self):
        for _ in range(DEFAULT_CARPENTER_NUM):
            self.fort.begin_build("player1")
        with self.assertRaises(FortInvariantError):
            self.fort.begin_build("player1")
        self.assertEqual(
            self.fort.get("player1").working_carpenter_num,
            DEFAULT_CARPENTER_NUM,
        )

    def test_finish_without_work(self):
        with self.assertRaises(FortInvariantError):
            self.fort.finish_build("player1")
        self.assertEqual(self.fort.get("player1").working_carpenter_num, 0)

    def test_set_carpenters(self):
        detail = self.fort.set_carpenters("player1", 4)
        self.assertEqual(detail, FortDetail(4, DEFAULT_MAX_CARPENTER_COUNT, 0))
        self.assertEqual(self.fort.get("player1"), detail)

    def test_set_carpenters_beyond_capacity(self):
        with self.assertRaises(FortInvariantError):
            self.fort.set_carpenters("player1", DEFAULT_MAX_CARPENTER_COUNT + 1)

    def test_set_carpenters_below_working(self):
        self.fort.begin_build("player1")
        self.fort.begin_build("player1")
        with self.assertRaises(FortInvariantError):
            self.fort.set_carpenters("player1", 1)

    def _interleave(self, mutation):
        """Run ``mutation`` right after the next fort detail read."""
        fortdb = self.storage.fortdb
        real_get = fortdb.get
        fired = []

        def get(device_account_id):
            document = real_get(device_account_id)
            if not fired:
                fired.append(True)
                mutation()
            return document

        fortdb.get = get

    def test_concurrent_build_is_detected(self):
        self._interleave(lambda: FortService(self.storage.fortdb).begin_build("player1"))
        with self.assertRaises(FortConflictError):
            self.fort.begin_build("player1")
        self.assertEqual(self.storage.fortdb.get("player1")["working_carpenter_num"], 1)

    def test_build_racing_carpenter_removal_is_detected(self):
        self.fort.begin_build("player1")
        other = FortService(self.storage.fortdb)
        self._interleave(lambda: other.set_carpenters("player1", 1))
        with self.assertRaises(FortConflictError):
            self.fort.begin_build("player1")
        stored = self.fort.get("player1")
        self.assertEqual(stored, FortDetail(1, DEFAULT_MAX_CARPENTER_COUNT, 1))
        check_fort_detail(
            stored.carpenter_num,
            stored.max_carpenter_count,
            stored.working_carpenter_num,
        )

    def test_carpenter_change_racing_build_keeps_the_build(self):
        other = FortService(self.storage.fortdb)
        self._interleave(lambda: other.begin_build("player1"))
        with self.assertRaises(FortConflictError):
            self.fort.set_carpenters("player1", 3)
        self.assertEqual(
            self.fort.get("player1"),
            FortDetail(DEFAULT_CARPENTER_NUM, DEFAULT_MAX_CARPENTER_COUNT, 1),
        )

    def test_unknown_account(self):
        with self.assertRaises(FortDetailNotFoundError):
            self.fort.get("nobody")


class TestFortDetailStorage(unittest.TestCase):
    def setUp(self):
        self.storage = test_support.StorageStub()
        self.fortdb = self.storage.fortdb

    def test_storage_does_not_enforce_carpenter_ordering(self):
        # Only the fort service checks the ordering; the collection accepts it.
        document = {
            "_id": "legacy",
            "carpenter_num": 1,
            "max_carpenter_count": 5,
            "working_carpenter_num": 3,
        }
        self.fortdb.insert(document)
        self.assertEqual(self.fortdb.get("legacy"), document)

    def test_storage_validates_shape(self):
        with self.assertRaises(ValidationError):
            self.fortdb.insert(
                {
                    "_id": "bad",
                    "carpenter_num": -1,
                    "max_carpenter_count": 5,
                    "working_carpenter_num": 0,
                },
            )
        with self.assertRaises(ValidationError):
            self.fortdb.insert({"_id": "bad", "carpenter_num": 1})

    def test_one_fort_detail_per_account(self):
        self.storage.accountdb.create_account("player1")
        with self.assertRaises(DuplicateKeyError):
            self.storage.accountdb.fortdb.insert(
                {
                    "_id": "player1",
                    "carpenter_num": 2,
                    "max_carpenter_count": 5,
                    "working_carpenter_num": 0,
                },
            )


class TestAccountDb(unittest.TestCase):
    def setUp(self):
        self.storage = test_support.StorageStub()
        self.accountdb = self.storage.accountdb

    def test_create_provisions_fort_detail(self):
        account = self.accountdb.create_account("player1")
        self.assertEqual(account["viewer_id"], 1)
        self.assertIsNotNone(self.storage.fortdb.get("player1"))

    def test_viewer_ids_increase(self):
        self.accountdb.create_account("player1")
        account = self.accountdb.create_account("player2")
        self.assertEqual(account["viewer_id"], 2)

    def test_delete_cascades_to_fort_detail(self):
        self.accountdb.create_account("player1")
        self.accountdb.create_account("player2")
        self.accountdb.delete_account("player1")
        self.assertIsNone(self.accountdb.get_account("player1"))
        self.assertIsNone(self.storage.fortdb.get("player1"))
        self.assertIsNotNone(self.storage.fortdb.get("player2"))

    def test_delete_unknown_account(self):
        with self.assertRaises(AccountNotFoundError):
            self.accountdb.delete_account("nobody")

    def test_require_account(self):
        with self.assertRaises(AccountNotFoundError):
            self.accountdb.require_account("nobody")
        self.accountdb.create_account("player1")
        self.assertEqual(self.accountdb.require_account("player1")["_id"], "player1")

    def test_invalid_account_id(self):
        with self.assertRaises(ValidationError):
            self.accountdb.create_account("not a valid id!")


if __name__ == "__main__":
    unittest.main()
