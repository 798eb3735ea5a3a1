"""Purchase routes - register supplier invoices."""

from fastapi import APIRouter, Request

from forno.core.rate_limit import limiter
from forno.core.rbac import RequireCashier
from forno.db.session import DbSession
from forno.schemas.inventory import PurchaseCreate, PurchaseResponse
from forno.services.purchasing_service import PurchasingService

router = APIRouter()


@router.post("", response_model=PurchaseResponse, status_code=201)
@limiter.limit("30/minute")
def create_purchase(
    request: Request, data: PurchaseCreate, db: DbSession, current_user: RequireCashier
):
    return PurchasingService(db).receive_purchase(
        data.branch_id, data.provider, data.invoice_number, data.items
    )
