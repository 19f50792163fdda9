from fastapi import APIRouter

from procurement.api.v1.endpoints import (
    purchase_order,
    supplier_response,
    reassignment,
    delivery,
    supplier,
)

api_router = APIRouter()

api_router.include_router(purchase_order.router, prefix="/purchase-order", tags=["purchase-order"])
api_router.include_router(supplier_response.portal_router, prefix="/purchase-order", tags=["supplier-response"])
api_router.include_router(reassignment.router, prefix="/purchase-order", tags=["reassignment"])
api_router.include_router(delivery.router, prefix="/purchase-order", tags=["delivery"])
api_router.include_router(supplier_response.router, prefix="/supplier-response", tags=["supplier-response"])
api_router.include_router(supplier.router, prefix="/supplier", tags=["supplier"])
