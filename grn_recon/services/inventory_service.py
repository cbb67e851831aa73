"""
Inventory collaborator for goods receipts.

Receives counted quantities into stock. Runs inside the receipt's
transaction so a failed receipt leaves stock untouched.
"""
import logging
import uuid
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grn_recon.models.inventory import InventoryItem, StockMovement, StockMovementType
from grn_recon.models.purchase import PurchaseOrderItem


logger = logging.getLogger(__name__)


class InventoryService:
    """Applies received quantities to on-hand stock."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def apply_received_quantity(
        self,
        po_item: PurchaseOrderItem,
        quantity: Decimal,
        reference_id: uuid.UUID,
        reference_number: str,
        reference_line_id: uuid.UUID,
        performed_by: str,
    ) -> Dict[str, Any]:
        """
        Add a received quantity to the stock record of a PO line.

        Creates the inventory item on first receipt and links it to the
        PO line. Always writes a stock movement, even for zero quantities,
        so every receipt line is traceable in the ledger.
        """
        inventory = None
        if po_item.inventory_item_id:
            result = await self.db.execute(
                select(InventoryItem).where(InventoryItem.id == po_item.inventory_item_id)
            )
            inventory = result.scalar_one_or_none()

        balance_before = Decimal("0")
        if inventory:
            balance_before = inventory.quantity_on_hand
            inventory.quantity_on_hand = balance_before + quantity
        else:
            inventory = InventoryItem(
                material_name=po_item.material_name,
                color=po_item.color,
                specification=po_item.specification,
                uom=po_item.uom,
                quantity_on_hand=quantity,
            )
            self.db.add(inventory)
            await self.db.flush()
            po_item.inventory_item_id = inventory.id

        movement = StockMovement(
            inventory_item_id=inventory.id,
            movement_type=StockMovementType.RECEIPT.value,
            quantity=quantity,
            balance_after=inventory.quantity_on_hand,
            reference_type="grn",
            reference_id=reference_id,
            reference_number=reference_number,
            reference_line_id=reference_line_id,
            performed_by=performed_by,
        )
        self.db.add(movement)

        logger.debug(
            "Stock %s: %s -> %s (%s)",
            po_item.material_name, balance_before, inventory.quantity_on_hand, reference_number
        )

        return {
            "inventory_item_id": str(inventory.id),
            "material_name": po_item.material_name,
            "quantity_added": str(quantity),
            "balance_before": str(balance_before),
            "balance_after": str(inventory.quantity_on_hand),
        }
