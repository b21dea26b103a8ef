"""Fort endpoints.

Every endpoint takes a MessagePack body decoded with ``decode_body`` and
answers with a MessagePack ``Envelope``. Handlers are plain ``def`` so FastAPI
runs the blocking pymongo calls in its threadpool.

Session handling lives in front of this server; the authenticated account
arrives in the ``DeviceAccountId`` header.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException

from dragalia.accountdb import AccountDb
from dragalia.envelope import Envelope, success
from dragalia.fort import FortDetail, FortService
from dragalia.http.dependencies import get_accountdb, get_fort_service
from dragalia.http.formatters import EnvelopeResponse, decode_body

router = APIRouter(prefix="/fort", tags=["fort"])


@dataclass(frozen=True)
class FortGetDataRequest:
    pass


@dataclass(frozen=True)
class FortBuildStartRequest:
    fort_plant_id: int


@dataclass(frozen=True)
class FortBuildEndRequest:
    build_id: int


@dataclass(frozen=True)
class FortAddCarpenterRequest:
    payment_type: int = 0


@dataclass(frozen=True)
class FortData:
    fort_detail: FortDetail


@dataclass(frozen=True)
class FortBuildData:
    build_id: int
    fort_detail: FortDetail


def current_account_id(
    accountdb: Annotated[AccountDb, Depends(get_accountdb)],
    device_account_id: Annotated[str | None, Header(alias="DeviceAccountId")] = None,
) -> str:
    if not device_account_id:
        raise HTTPException(status_code=401, detail="Missing DeviceAccountId")
    accountdb.require_account(device_account_id)
    return device_account_id


AccountId = Annotated[str, Depends(current_account_id)]
Fort = Annotated[FortService, Depends(get_fort_service)]


@router.post("/get_data", response_class=EnvelopeResponse)
def get_data(
    body: Annotated[FortGetDataRequest, Depends(decode_body(FortGetDataRequest))],
    account_id: AccountId,
    fort: Fort,
) -> EnvelopeResponse:
    _ = body
    envelope: Envelope[FortData] = success(FortData(fort.get(account_id)))
    return EnvelopeResponse(envelope)


@router.post("/build_start", response_class=EnvelopeResponse)
def build_start(
    body: Annotated[FortBuildStartRequest, Depends(decode_body(FortBuildStartRequest))],
    account_id: AccountId,
    fort: Fort,
) -> EnvelopeResponse:
    detail = fort.begin_build(account_id)
    return EnvelopeResponse(success(FortBuildData(body.fort_plant_id, detail)))


@router.post("/build_end", response_class=EnvelopeResponse)
def build_end(
    body: Annotated[FortBuildEndRequest, Depends(decode_body(FortBuildEndRequest))],
    account_id: AccountId,
    fort: Fort,
) -> EnvelopeResponse:
    detail = fort.finish_build(account_id)
    return EnvelopeResponse(success(FortBuildData(body.build_id, detail)))


@router.post("/add_carpenter", response_class=EnvelopeResponse)
def add_carpenter(
    body: Annotated[
        FortAddCarpenterRequest,
        Depends(decode_body(FortAddCarpenterRequest)),
    ],
    account_id: AccountId,
    fort: Fort,
) -> EnvelopeResponse:
    _ = body
    current = fort.get(account_id)
    detail = fort.set_carpenters(account_id, current.carpenter_num + 1)
    return EnvelopeResponse(success(FortData(detail)))
