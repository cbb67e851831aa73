from grn_recon.models.vendor import Vendor
from grn_recon.models.inventory import InventoryItem, StockMovement, StockMovementType
from grn_recon.models.purchase import (
    PurchaseOrder,
    PurchaseOrderItem,
    GoodsReceiptNote,
    GRNItem,
    DiscrepancyClass,
    VerificationStatus,
)
from grn_recon.models.discrepancy_case import DiscrepancyCase, CaseStatus, ComplaintType
from grn_recon.models.vendor_request import VendorRequest, VendorRequestType
from grn_recon.models.credit_note import CreditNote, CreditNoteType, SettlementMethod
from grn_recon.models.audit_trail import AuditTrail
from grn_recon.models.document_sequence import DocumentSequence

__all__ = [
    "Vendor",
    "InventoryItem",
    "StockMovement",
    "StockMovementType",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "GoodsReceiptNote",
    "GRNItem",
    "DiscrepancyClass",
    "VerificationStatus",
    "DiscrepancyCase",
    "CaseStatus",
    "ComplaintType",
    "VendorRequest",
    "VendorRequestType",
    "CreditNote",
    "CreditNoteType",
    "SettlementMethod",
    "AuditTrail",
    "DocumentSequence",
]
