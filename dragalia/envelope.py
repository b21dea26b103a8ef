"""Response envelope shared by every API endpoint."""

from dataclasses import dataclass
from enum import IntEnum


class ResultCode(IntEnum):
    SUCCESS = 1
    INVALID_REQUEST = 2
    ACCOUNT_NOT_FOUND = 3
    FORT_NO_IDLE_CARPENTER = 4
    FORT_NO_WORKING_CARPENTER = 5
    FORT_CARPENTER_LIMIT = 6
    SERVER_ERROR = 99


@dataclass(frozen=True)
class Envelope[T]:
    """Status/result wrapper around an arbitrary payload.

    The payload type is a plain type parameter: the codec resolves it from
    ``Envelope[Payload]`` at decode time, nothing is registered per payload.
    """

    result: ResultCode
    data: T


def success[T](data: T) -> Envelope[T]:
    return Envelope(result=ResultCode.SUCCESS, data=data)


def failure(result: ResultCode) -> Envelope[None]:
    return Envelope(result=result, data=None)
