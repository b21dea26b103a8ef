# ruff: noqa: ANN201, ANN206, D100, D101, D102, INP001, PLC0415, PT009

import unittest

import test_support

from dragalia.codec import MEDIA_TYPE, pack, unpack
from dragalia.envelope import ResultCode
from dragalia.fort import DEFAULT_CARPENTER_NUM, DEFAULT_MAX_CARPENTER_COUNT


class TestFortApi(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        test_support.require_fastapi()

    def setUp(self):
        self.storage = test_support.StorageStub()
        self.storage.accountdb.create_account("player1")
        self.client = test_support.make_test_client(storage=self.storage)

    def _post(self, path, body, *, account="player1", content_type=MEDIA_TYPE):
        headers = {"content-type": content_type}
        if account is not None:
            headers["DeviceAccountId"] = account
        return self.client.post(path, content=body, headers=headers)

    def _envelope(self, response):
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.headers["content-type"], MEDIA_TYPE)
        return unpack(response.content)

    def test_get_data(self):
        envelope = self._envelope(self._post("/fort/get_data", pack({})))
        self.assertEqual(
            envelope,
            {
                "result": ResultCode.SUCCESS,
                "data": {
                    "fort_detail": {
                        "carpenter_num": DEFAULT_CARPENTER_NUM,
                        "max_carpenter_count": DEFAULT_MAX_CARPENTER_COUNT,
                        "working_carpenter_num": 0,
                    },
                },
            },
        )

    def test_response_carries_fixed_headers(self):
        response = self._post("/fort/get_data", pack({}))
        self.assertEqual(response.headers["cache-control"], "max-age=0, no-cache, no-store")
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertIn("expires", response.headers)

    def test_build_until_no_idle_carpenter(self):
        for n in range(1, DEFAULT_CARPENTER_NUM + 1):
            envelope = self._envelope(
                self._post("/fort/build_start", pack({"fort_plant_id": 100 + n})),
            )
            self.assertEqual(envelope["result"], ResultCode.SUCCESS)
            self.assertEqual(envelope["data"]["build_id"], 100 + n)
            self.assertEqual(envelope["data"]["fort_detail"]["working_carpenter_num"], n)

        envelope = self._envelope(
            self._post("/fort/build_start", pack({"fort_plant_id": 999})),
        )
        self.assertEqual(
            envelope,
            {"result": ResultCode.FORT_NO_IDLE_CARPENTER, "data": None},
        )
        detail = self.storage.fortdb.get("player1")
        self.assertEqual(detail["working_carpenter_num"], DEFAULT_CARPENTER_NUM)

    def test_build_end(self):
        self._post("/fort/build_start", pack({"fort_plant_id": 1}))
        envelope = self._envelope(self._post("/fort/build_end", pack({"build_id": 1})))
        self.assertEqual(envelope["data"]["fort_detail"]["working_carpenter_num"], 0)

        envelope = self._envelope(self._post("/fort/build_end", pack({"build_id": 1})))
        self.assertEqual(envelope["result"], ResultCode.FORT_NO_WORKING_CARPENTER)

    def test_add_carpenter_up_to_capacity(self):
        for n in range(DEFAULT_CARPENTER_NUM + 1, DEFAULT_MAX_CARPENTER_COUNT + 1):
            envelope = self._envelope(self._post("/fort/add_carpenter", pack({})))
            self.assertEqual(envelope["data"]["fort_detail"]["carpenter_num"], n)

        envelope = self._envelope(self._post("/fort/add_carpenter", pack({})))
        self.assertEqual(envelope["result"], ResultCode.FORT_CARPENTER_LIMIT)

    def test_positional_request_body(self):
        # Clients may send the request object as an array of its members.
        envelope = self._envelope(self._post("/fort/build_start", pack([42])))
        self.assertEqual(envelope["data"]["build_id"], 42)

    def test_unsupported_media_type(self):
        response = self._post(
            "/fort/get_data",
            b'{"a": 1}',
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 415)
        self.assertEqual(response.json()["content_type"], "application/json")

    def test_empty_body(self):
        response = self._post("/fort/get_data", b"")
        self.assertEqual(response.status_code, 400)
        self.assertIn("empty body", response.json()["error"])

    def test_malformed_body(self):
        response = self._post("/fort/build_start", b"\xc1\xc1\xc1")
        self.assertEqual(response.status_code, 400)

    def test_body_missing_member(self):
        response = self._post("/fort/build_start", pack({"unrelated": 1}))
        self.assertEqual(response.status_code, 400)
        self.assertIn("fort_plant_id", response.json()["error"])
        self.assertEqual(
            self.storage.fortdb.get("player1")["working_carpenter_num"],
            0,
        )

    def test_missing_account_header(self):
        response = self._post("/fort/get_data", pack({}), account=None)
        self.assertEqual(response.status_code, 401)

    def test_unknown_account(self):
        envelope = self._envelope(
            self._post("/fort/get_data", pack({}), account="nobody"),
        )
        self.assertEqual(
            envelope,
            {"result": ResultCode.ACCOUNT_NOT_FOUND, "data": None},
        )

    def test_chunked_upload(self):
        payload = pack({"fort_plant_id": 7})

        def chunks():
            yield payload[:3]
            yield payload[3:]

        response = self.client.post(
            "/fort/build_start",
            content=chunks(),
            headers={
                "content-type": MEDIA_TYPE,
                "transfer-encoding": "chunked",
                "DeviceAccountId": "player1",
            },
        )
        envelope = self._envelope(response)
        self.assertEqual(envelope["data"]["build_id"], 7)


class TestFortApiWithoutStorage(unittest.TestCase):
    def test_unhandled_fault_is_500(self):
        client = test_support.make_test_client(storage=None)
        response = client.post(
            "/fort/get_data",
            content=pack({}),
            headers={"content-type": MEDIA_TYPE, "DeviceAccountId": "player1"},
        )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.headers["pragma"], "no-cache")


if __name__ == "__main__":
    unittest.main()
