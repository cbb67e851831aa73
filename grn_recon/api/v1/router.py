from fastapi import APIRouter

from grn_recon.api.v1.endpoints import (
    goods_receipts,
    discrepancy_cases,
    vendor_requests,
    credit_notes,
    audit_trails,
)

api_router = APIRouter()

api_router.include_router(
    goods_receipts.router,
    prefix="/goods-receipts",
    tags=["Goods Receipts"]
)

api_router.include_router(
    discrepancy_cases.router,
    prefix="/discrepancy-cases",
    tags=["Discrepancy Cases"]
)

api_router.include_router(
    vendor_requests.router,
    prefix="/vendor-requests",
    tags=["Vendor Requests"]
)

api_router.include_router(
    credit_notes.router,
    prefix="/credit-notes",
    tags=["Credit Notes"]
)

api_router.include_router(
    audit_trails.router,
    prefix="/audit-trails",
    tags=["Audit Trail"]
)
