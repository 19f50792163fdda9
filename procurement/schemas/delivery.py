from __future__ import annotations

from pydantic import BaseModel, Field


class MaterialQuantity(BaseModel):
    material_request_id: str
    quantity: float


class MaterialUnitCost(BaseModel):
    material_request_id: str
    unit_cost: float


class ConfirmDeliveryInput(BaseModel):
    delivery_note_file_url: str | None = None
    actual_quantity_delivered: float | None = None
    actual_unit_cost: float | None = None
    material_quantities: list[MaterialQuantity] = Field(default_factory=list)
    material_unit_costs: list[MaterialUnitCost] = Field(default_factory=list)
    notes: str | None = None


class CreateMaterialInput(BaseModel):
    notes: str | None = None


class MaterialRead(BaseModel):
    id: int
    project_id: int
    purchase_order_id: int
    purchase_order_item_id: int | None = None
    material_request_id: str | None = None
    name: str
    unit: str | None = None
    quantity_received: float
    unit_cost: float
    total_cost: float
    supplier_id: int | None = None
    status: str
    is_automatic: bool

    class Config:
        from_attributes = True


class DeliveryResult(BaseModel):
    purchase_order_id: int
    status: str
    financial_status: str
    delivery_confirmation_method: str | None = None
    material_ids: list[int]
    materials: list[MaterialRead] = []
