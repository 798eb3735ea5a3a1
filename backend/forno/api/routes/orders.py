"""Order routes - open orders, line items, discounts and table operations."""

import logging
from typing import List

from fastapi import APIRouter, Request

from forno.core.rate_limit import limiter
from forno.core.rbac import CurrentUser, RequireCashier, RequireWaiter
from forno.db.session import DbSession
from forno.schemas.order import (
    AddCustomItemRequest, AddItemRequest, ApplyDiscountRequest, AssignCustomerRequest,
    CourtesyRequest, MergeRequest, MoveRequest, OrderCreate, OrderResponse, QuantityChange,
    ServiceChargeRequest, SplitRequest,
)
from forno.schemas.print_job import BillJob, CommandJob, PrintJob
from forno.services.catalog_store import CatalogStore
from forno.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=201)
@limiter.limit("60/minute")
def create_order(request: Request, data: OrderCreate, db: DbSession, current_user: RequireWaiter):
    """Open a new order, occupying its table."""
    return OrderService(db).create_order(
        branch_id=data.branch_id,
        order_type=data.type,
        table_id=data.table_id,
        customer_id=data.customer_id,
        waiter_id=current_user.user_id,
        platform_order_id=data.platform_order_id,
        people_count=data.people_count,
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: DbSession, current_user: CurrentUser):
    return CatalogStore(db).require_order(order_id)


@router.post("/{order_id}/items", response_model=OrderResponse)
@limiter.limit("120/minute")
def add_item(
    request: Request, order_id: int, data: AddItemRequest, db: DbSession, current_user: RequireWaiter
):
    return OrderService(db).add_item(
        order_id,
        data.product_id,
        modifier_option_ids=data.modifier_option_ids,
        excluded_ingredient_ids=data.excluded_ingredient_ids,
        notes=data.notes,
        expected_version=data.expected_version,
    )


@router.post("/{order_id}/custom-items", response_model=OrderResponse)
@limiter.limit("60/minute")
def add_custom_item(
    request: Request,
    order_id: int,
    data: AddCustomItemRequest,
    db: DbSession,
    current_user: RequireWaiter,
):
    return OrderService(db).add_custom_item(
        order_id, data.name, data.price, expected_version=data.expected_version
    )


@router.patch("/{order_id}/items/{item_id}", response_model=OrderResponse)
@limiter.limit("120/minute")
def change_quantity(
    request: Request,
    order_id: int,
    item_id: str,
    data: QuantityChange,
    db: DbSession,
    current_user: RequireWaiter,
):
    """Change a line's quantity by ``delta``; the line is removed at zero."""
    return OrderService(db).change_quantity(
        order_id, item_id, data.delta, expected_version=data.expected_version
    )


@router.delete("/{order_id}/items/{item_id}", response_model=OrderResponse)
@limiter.limit("60/minute")
def remove_item(
    request: Request, order_id: int, item_id: str, db: DbSession, current_user: RequireWaiter
):
    return OrderService(db).remove_item(order_id, item_id)


@router.put("/{order_id}/discount", response_model=OrderResponse)
@limiter.limit("30/minute")
def apply_discount(
    request: Request,
    order_id: int,
    data: ApplyDiscountRequest,
    db: DbSession,
    current_user: RequireWaiter,
):
    """Apply a catalog or manual discount; an empty body removes the discount."""
    return OrderService(db).apply_discount(
        order_id,
        discount_id=data.discount_id,
        manual=data.manual,
        actor=current_user,
        expected_version=data.expected_version,
    )


@router.post("/{order_id}/courtesy", response_model=OrderResponse)
@limiter.limit("30/minute")
def apply_courtesy(
    request: Request,
    order_id: int,
    data: CourtesyRequest,
    db: DbSession,
    current_user: CurrentUser,
):
    return OrderService(db).apply_courtesy(order_id, actor=current_user, reason=data.reason)


@router.put("/{order_id}/service-charge", response_model=OrderResponse)
@limiter.limit("30/minute")
def set_service_charge(
    request: Request,
    order_id: int,
    data: ServiceChargeRequest,
    db: DbSession,
    current_user: RequireWaiter,
):
    return OrderService(db).set_service_charge(order_id, data.amount)


@router.put("/{order_id}/customer", response_model=OrderResponse)
@limiter.limit("30/minute")
def assign_customer(
    request: Request,
    order_id: int,
    data: AssignCustomerRequest,
    db: DbSession,
    current_user: RequireWaiter,
):
    return OrderService(db).assign_customer(order_id, data.customer_id)


@router.post("/{order_id}/move", response_model=OrderResponse)
@limiter.limit("30/minute")
def move_order(
    request: Request, order_id: int, data: MoveRequest, db: DbSession, current_user: RequireWaiter
):
    return OrderService(db).move_order(order_id, data.table_id)


@router.post("/{order_id}/merge", response_model=OrderResponse)
@limiter.limit("30/minute")
def merge_orders(
    request: Request, order_id: int, data: MergeRequest, db: DbSession, current_user: RequireWaiter
):
    """Merge ``source_order_id`` into this order and void the source."""
    return OrderService(db).merge_orders(data.source_order_id, order_id)


@router.post("/{order_id}/split", response_model=OrderResponse, status_code=201)
@limiter.limit("30/minute")
def split_order(
    request: Request, order_id: int, data: SplitRequest, db: DbSession, current_user: RequireWaiter
):
    """Move the given quantities to a new order; returns the new order."""
    return OrderService(db).split_order(order_id, data.quantities)


@router.post("/{order_id}/void", response_model=OrderResponse)
@limiter.limit("30/minute")
def void_order(request: Request, order_id: int, db: DbSession, current_user: RequireCashier):
    logger.info("Order %s voided by %s", order_id, current_user.name)
    return OrderService(db).void_order(order_id)


@router.post("/{order_id}/send", response_model=List[CommandJob])
@limiter.limit("60/minute")
def send_to_kitchen(request: Request, order_id: int, db: DbSession, current_user: RequireWaiter):
    return OrderService(db).send_to_kitchen(order_id)


@router.post("/{order_id}/pre-bill", response_model=BillJob)
@limiter.limit("30/minute")
def print_pre_bill(request: Request, order_id: int, db: DbSession, current_user: RequireWaiter):
    return OrderService(db).print_pre_bill(order_id)


@router.post("/{order_id}/reprint", response_model=PrintJob)
@limiter.limit("30/minute")
def reprint(request: Request, order_id: int, db: DbSession, current_user: RequireWaiter):
    return OrderService(db).reprint(order_id)
