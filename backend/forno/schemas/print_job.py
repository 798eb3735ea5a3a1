"""Print job documents.

A job is a tagged union keyed by ``type``; each variant carries only the
payload its renderer needs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from forno.schemas.inventory import TransferItem
from forno.schemas.order import OrderItem, OrderResponse


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _JobBase(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    printer_name: str
    printer_description: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class CommandJob(_JobBase):
    """Kitchen ticket with only the items routed to this printer."""

    type: Literal["COMMAND"] = "COMMAND"
    order_id: int
    table_id: Optional[int] = None
    items: List[OrderItem]


class BillJob(_JobBase):
    """Pre-check for an unpaid order."""

    type: Literal["BILL"] = "BILL"
    order: OrderResponse


class ReceiptJob(_JobBase):
    type: Literal["RECEIPT"] = "RECEIPT"
    order: OrderResponse


class ShiftReportJob(_JobBase):
    type: Literal["SHIFT_REPORT"] = "SHIFT_REPORT"
    session_id: int
    totals: Dict[str, Decimal] = Field(default_factory=dict)


class TransferTicket(BaseModel):
    transfer_id: int
    source_branch_id: int
    target_branch_id: int
    items: List[TransferItem]
    notes: Optional[str] = None


class TransferJob(_JobBase):
    type: Literal["TRANSFER"] = "TRANSFER"
    transfer: TransferTicket


class IngredientUsage(BaseModel):
    name: str
    qty: Decimal
    unit: str


class ProductionData(BaseModel):
    item_name: str
    cycles: Decimal
    batch_size: Decimal
    expected_qty: Decimal
    actual_qty: Decimal
    unit: str
    ingredients_used: List[IngredientUsage]
    user: str


class ProductionJob(_JobBase):
    type: Literal["PRODUCTION"] = "PRODUCTION"
    production: ProductionData


PrintJob = Annotated[
    Union[CommandJob, BillJob, ReceiptJob, ShiftReportJob, TransferJob, ProductionJob],
    Field(discriminator="type"),
]
