"""Transfer routes - dispatch, receive and cancel inter-branch transfers."""

from fastapi import APIRouter, Request

from forno.core.rate_limit import limiter
from forno.core.rbac import RequireCashier
from forno.db.session import DbSession
from forno.schemas.inventory import TransferCreate, TransferResponse
from forno.services.transfer_service import TransferService

router = APIRouter()


@router.post("", response_model=TransferResponse, status_code=201)
@limiter.limit("30/minute")
def create_transfer(
    request: Request, data: TransferCreate, db: DbSession, current_user: RequireCashier
):
    return TransferService(db).create_transfer(
        data.source_branch_id,
        data.target_branch_id,
        data.items,
        actor=current_user,
        notes=data.notes,
    )


@router.post("/{transfer_id}/receive", response_model=TransferResponse)
@limiter.limit("30/minute")
def receive_transfer(
    request: Request, transfer_id: int, db: DbSession, current_user: RequireCashier
):
    return TransferService(db).receive_transfer(transfer_id)


@router.post("/{transfer_id}/cancel", response_model=TransferResponse)
@limiter.limit("30/minute")
def cancel_transfer(
    request: Request, transfer_id: int, db: DbSession, current_user: RequireCashier
):
    return TransferService(db).cancel_transfer(transfer_id)
