from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class AcceptInput(BaseModel):
    unit_cost: float | None = None
    supplier_notes: str | None = None


class RejectInput(BaseModel):
    supplier_notes: str | None = None
    rejection_reason: str | None = None
    rejection_subcategory: str | None = None


class ModifyInput(BaseModel):
    quantity_ordered: float | None = None
    unit_cost: float | None = None
    delivery_date: date | None = None
    notes: str | None = None
    supplier_notes: str | None = None


class MaterialResponseInput(BaseModel):
    material_request_id: str
    action: Literal["accept", "reject", "modify"]
    notes: str | None = None
    rejection_reason: str | None = None
    rejection_subcategory: str | None = None
    quantity: float | None = None
    unit_cost: float | None = None
    delivery_date: date | None = None


class BulkResponseInput(BaseModel):
    material_responses: list[MaterialResponseInput] = Field(default_factory=list)
    supplier_notes: str | None = None


class TokenResponseRequest(BaseModel):
    """Body posted from the public response page.

    Single orders send ``action`` plus the matching fields; bulk orders send
    ``material_responses``.
    """

    action: Literal["accept", "reject", "modify"] | None = None
    supplier_notes: str | None = None
    unit_cost: float | None = None
    quantity_ordered: float | None = None
    delivery_date: date | None = None
    notes: str | None = None
    rejection_reason: str | None = None
    rejection_subcategory: str | None = None
    material_responses: list[MaterialResponseInput] = Field(default_factory=list)


class ApproveModificationInput(BaseModel):
    approval_notes: str | None = None
    auto_commit: bool = False


class RejectModificationInput(BaseModel):
    rejection_reason: str | None = None
    close_order: bool = False


class ResponseItemView(BaseModel):
    material_request_id: str
    material_name: str
    unit: str | None = None
    quantity: float
    unit_cost: float
    total_cost: float
    response_status: str


class ResponsePageRead(BaseModel):
    """What an unauthenticated supplier sees when opening a response link."""

    purchase_order_number: str
    is_bulk_order: bool
    status: str
    project_name: str
    supplier_name: str
    material_name: str | None = None
    quantity_ordered: float | None = None
    unit: str | None = None
    unit_cost: float | None = None
    total_cost: float
    delivery_date: date | None = None
    terms: str | None = None
    notes: str | None = None
    expires_at: datetime | None = None
    items: list[ResponseItemView] = []


class ResponseResult(BaseModel):
    purchase_order_id: int
    purchase_order_number: str
    status: str
    financial_status: str
    total_cost: float
    message: str
