"""Settlement routes - close an order against its payments."""

from dataclasses import asdict

from fastapi import APIRouter, Request

from forno.core.rate_limit import limiter
from forno.core.rbac import RequireCashier
from forno.db.session import DbSession
from forno.schemas.order import CloseOrderRequest, SettlementResponse
from forno.services.settlement_service import SettlementService

router = APIRouter()


@router.post("/{order_id}/close", response_model=SettlementResponse)
@limiter.limit("30/minute")
def close_order(
    request: Request,
    order_id: int,
    data: CloseOrderRequest,
    db: DbSession,
    current_user: RequireCashier,
):
    """Settle the order: deduct stock, accrue loyalty points and mark it PAID."""
    result = SettlementService(db).close_order(order_id, data.payment_methods, tip=data.tip)
    return SettlementResponse(**asdict(result))
