from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class RetryAdjustments(BaseModel):
    unit_cost: float | None = None
    quantity_ordered: float | None = None
    delivery_date: date | None = None
    terms: str | None = None


class MaterialAdjustment(BaseModel):
    """Per line-item adjustment for bulk retries."""

    material_request_id: str
    quantity: float | None = None
    unit_cost: float | None = None


class RetryInput(BaseModel):
    adjustments: RetryAdjustments = Field(default_factory=RetryAdjustments)
    material_adjustments: list[MaterialAdjustment] = Field(default_factory=list)
    notes: str | None = None


class SupplierSplit(BaseModel):
    supplier_id: int
    quantity: float | None = None
    adjustments: RetryAdjustments = Field(default_factory=RetryAdjustments)


class MaterialAssignment(BaseModel):
    material_request_id: str
    suppliers: list[SupplierSplit] = Field(default_factory=list)


class AlternativesInput(BaseModel):
    supplier_ids: list[int] = Field(default_factory=list)
    adjustments: RetryAdjustments = Field(default_factory=RetryAdjustments)
    material_assignments: list[MaterialAssignment] = Field(default_factory=list)
    notes: str | None = None


class SupplierSuggestion(BaseModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    location: str | None = None
    availability_status: str | None = None
    priority: int = 0
    recommendation_reasons: list[str] = []


class AlternativeSuppliersRead(BaseModel):
    purchase_order_id: int
    mode: Literal["simple", "hybrid", "smart"]
    suppliers: list[SupplierSuggestion]
    fallback_suppliers: list[SupplierSuggestion] = []
    used_fallback: bool = False
    message: str | None = None


class CreatedAlternativeOrder(BaseModel):
    id: int
    purchase_order_number: str
    supplier_id: int
    supplier_name: str
    material_request_ids: list[str]
    total_cost: float
    response_token_expires_at: datetime | None = None


class AlternativesResult(BaseModel):
    original_order_id: int
    original_status: str
    created_orders: list[CreatedAlternativeOrder]


class AutoReassignInput(BaseModel):
    mode: str = "simple"
    limit: int | None = None
    auto_create: bool = False


class AutoReassignResult(BaseModel):
    purchase_order_id: int
    purchase_order_number: str
    mode: Literal["simple", "hybrid", "smart"]
    suppliers: list[SupplierSuggestion]
    used_fallback: bool = False
    message: str
    auto_created: bool = False
    created_order: CreatedAlternativeOrder | None = None
