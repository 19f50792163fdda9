from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SupplierBase(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    status: str = "active"
    user_id: int | None = None
    sms_enabled: bool = True
    email_enabled: bool = True
    push_enabled: bool = False
    specialties: list[str] | None = None
    location: str | None = None
    availability_status: str | None = None


class SupplierCreate(SupplierBase):
    pass


class SupplierRead(SupplierBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
