"""Fort (castle) carpenter bookkeeping.

A fort detail tracks the carpenters of one account:

- ``carpenter_num``: carpenters the player currently has;
- ``max_carpenter_count``: how many carpenters the fort can ever hold;
- ``working_carpenter_num``: carpenters busy on a build.

The storage layer accepts any non-negative counts. This module is the single
place where ``0 <= working <= carpenters <= max`` is enforced, and every
mutation goes through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from dragalia.envelope import ResultCode

if TYPE_CHECKING:
    from dragalia.fortdb import FortDetailDb

DEFAULT_CARPENTER_NUM = 2
DEFAULT_MAX_CARPENTER_COUNT = 5


class FortInvariantError(ValueError):
    """Raised when a fort detail would violate the carpenter ordering."""

    def __init__(self, message: str, result: ResultCode) -> None:
        self.result = result
        super().__init__(message)


class FortDetailNotFoundError(LookupError):
    def __init__(self, device_account_id: str) -> None:
        self.device_account_id = device_account_id
        super().__init__(f"no fort detail for account {device_account_id!r}")


class FortConflictError(RuntimeError):
    """Raised when a concurrent request changed the fort detail first."""


@dataclass(frozen=True, slots=True)
class FortDetail:
    """Wire shape of a fort detail."""

    carpenter_num: int
    max_carpenter_count: int
    working_carpenter_num: int

    @classmethod
    def from_document(cls, document: dict) -> FortDetail:
        return cls(
            carpenter_num=document["carpenter_num"],
            max_carpenter_count=document["max_carpenter_count"],
            working_carpenter_num=document["working_carpenter_num"],
        )

    def counts(self) -> dict:
        return {
            "carpenter_num": self.carpenter_num,
            "max_carpenter_count": self.max_carpenter_count,
            "working_carpenter_num": self.working_carpenter_num,
        }


def check_fort_detail(
    carpenter_num: int,
    max_carpenter_count: int,
    working_carpenter_num: int,
) -> None:
    """Raise FortInvariantError unless 0 <= working <= carpenters <= max."""
    if working_carpenter_num < 0:
        message = f"working carpenters cannot be negative ({working_carpenter_num})"
        raise FortInvariantError(message, ResultCode.FORT_NO_WORKING_CARPENTER)
    if working_carpenter_num > carpenter_num:
        message = (
            f"{working_carpenter_num} working carpenters exceed "
            f"{carpenter_num} available"
        )
        raise FortInvariantError(message, ResultCode.FORT_NO_IDLE_CARPENTER)
    if carpenter_num > max_carpenter_count:
        message = (
            f"{carpenter_num} carpenters exceed the fort capacity "
            f"of {max_carpenter_count}"
        )
        raise FortInvariantError(message, ResultCode.FORT_CARPENTER_LIMIT)


def new_fort_detail(device_account_id: str) -> dict:
    """Return the fort detail document of a freshly provisioned account."""
    check_fort_detail(DEFAULT_CARPENTER_NUM, DEFAULT_MAX_CARPENTER_COUNT, 0)
    return {
        "_id": device_account_id,
        "carpenter_num": DEFAULT_CARPENTER_NUM,
        "max_carpenter_count": DEFAULT_MAX_CARPENTER_COUNT,
        "working_carpenter_num": 0,
    }


class FortService:
    def __init__(self, fortdb: FortDetailDb) -> None:
        self.fortdb = fortdb

    def get(self, device_account_id: str) -> FortDetail:
        document = self.fortdb.get(device_account_id)
        if document is None:
            raise FortDetailNotFoundError(device_account_id)
        return FortDetail.from_document(document)

    def provision(self, device_account_id: str) -> dict:
        document = new_fort_detail(device_account_id)
        self.fortdb.insert(document)
        return document

    def _change_working(self, device_account_id: str, delta: int) -> FortDetail:
        current = self.get(device_account_id)
        working = current.working_carpenter_num + delta
        check_fort_detail(current.carpenter_num, current.max_carpenter_count, working)
        if not self.fortdb.set_working(device_account_id, current.counts(), working):
            message = f"fort detail of {device_account_id!r} changed concurrently"
            raise FortConflictError(message)
        return FortDetail(
            carpenter_num=current.carpenter_num,
            max_carpenter_count=current.max_carpenter_count,
            working_carpenter_num=working,
        )

    def begin_build(self, device_account_id: str) -> FortDetail:
        """Put one idle carpenter to work."""
        return self._change_working(device_account_id, 1)

    def finish_build(self, device_account_id: str) -> FortDetail:
        """Release one working carpenter."""
        return self._change_working(device_account_id, -1)

    def set_carpenters(
        self,
        device_account_id: str,
        carpenter_num: int,
        max_carpenter_count: int | None = None,
    ) -> FortDetail:
        current = self.get(device_account_id)
        if max_carpenter_count is None:
            max_carpenter_count = current.max_carpenter_count
        check_fort_detail(
            carpenter_num,
            max_carpenter_count,
            current.working_carpenter_num,
        )
        updated = FortDetail(
            carpenter_num=carpenter_num,
            max_carpenter_count=max_carpenter_count,
            working_carpenter_num=current.working_carpenter_num,
        )
        document = {"_id": device_account_id, **updated.counts()}
        if not self.fortdb.replace(document, current.counts()):
            message = f"fort detail of {device_account_id!r} changed concurrently"
            raise FortConflictError(message)
        return updated
