"""Create goods-receipt reconciliation schema

Revision ID: 001_reconciliation
Revises:
Create Date: 2026-10-19

Tables:
- vendors, purchase_orders, purchase_order_items (read-only reference data)
- inventory_items, stock_movements
- goods_receipt_notes, grn_items
- discrepancy_cases, vendor_requests, credit_notes
- audit_trails, document_sequences
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '001_reconciliation'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)
QUANTITY = sa.Numeric(14, 3)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ==================== Reference data ====================
    op.create_table(
        'vendors',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(30), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_vendors_code', 'vendors', ['code'], unique=True)

    op.create_table(
        'inventory_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('material_name', sa.String(255), nullable=False),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('specification', sa.String(255), nullable=True),
        sa.Column('uom', sa.String(20), nullable=True),
        sa.Column('quantity_on_hand', QUANTITY, server_default='0', nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_inventory_items_material_name', 'inventory_items', ['material_name'])

    op.create_table(
        'purchase_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('po_number', sa.String(30), nullable=False),
        sa.Column('po_date', sa.Date, nullable=False),
        sa.Column('status', sa.String(50), server_default='approved', nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_purchase_orders_po_number', 'purchase_orders', ['po_number'], unique=True)
    op.create_index('ix_purchase_orders_vendor_id', 'purchase_orders', ['vendor_id'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer, nullable=True),
        sa.Column('material_name', sa.String(255), nullable=False),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('specification', sa.String(255), nullable=True),
        sa.Column('uom', sa.String(20), nullable=True),
        sa.Column('quantity_ordered', QUANTITY, nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('inventory_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('inventory_items.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])

    op.create_table(
        'stock_movements',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('inventory_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('movement_type', sa.String(30), server_default='receipt', nullable=False),
        sa.Column('quantity', QUANTITY, nullable=False),
        sa.Column('balance_after', QUANTITY, nullable=False),
        sa.Column('reference_type', sa.String(30), server_default='grn', nullable=False),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=False),
        sa.Column('reference_number', sa.String(50), nullable=True),
        sa.Column('reference_line_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('performed_by', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_stock_movements_inventory_item_id', 'stock_movements', ['inventory_item_id'])
    op.create_index('ix_stock_movements_reference_id', 'stock_movements', ['reference_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])

    # ==================== Goods receipts ====================
    op.create_table(
        'goods_receipt_notes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('grn_number', sa.String(50), nullable=False),
        sa.Column('received_date', sa.Date, nullable=False),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('supplier_invoice_number', sa.String(50), nullable=True),
        sa.Column('inward_challan_number', sa.String(50), nullable=True),
        sa.Column('verification_status', sa.String(50), server_default='pending', nullable=False),
        sa.Column('discrepancy_details', sa.JSON, nullable=True),
        sa.Column('verified_by', sa.String(100), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text, nullable=True),
        sa.Column('inventory_added', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('inventory_added_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_received_value', MONEY, server_default='0', nullable=False),
        # FK to vendor_requests added once that table exists
        sa.Column('vendor_request_id', UUID(as_uuid=True), nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('created_by', sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_goods_receipt_notes_grn_number', 'goods_receipt_notes', ['grn_number'], unique=True)
    op.create_index('ix_goods_receipt_notes_received_date', 'goods_receipt_notes', ['received_date'])
    op.create_index('ix_goods_receipt_notes_vendor_id', 'goods_receipt_notes', ['vendor_id'])
    op.create_index('ix_goods_receipt_notes_verification_status', 'goods_receipt_notes', ['verification_status'])
    op.create_index('ix_goods_receipt_notes_created_at', 'goods_receipt_notes', ['created_at'])
    op.create_index('ix_grn_po', 'goods_receipt_notes', ['purchase_order_id'])

    op.create_table(
        'grn_items',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('grn_id', UUID(as_uuid=True),
                  sa.ForeignKey('goods_receipt_notes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('po_item_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_order_items.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('line_number', sa.Integer, nullable=False),
        sa.Column('material_name', sa.String(255), nullable=False),
        sa.Column('color', sa.String(50), nullable=True),
        sa.Column('specification', sa.String(255), nullable=True),
        sa.Column('uom', sa.String(20), nullable=True),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('ordered_qty', QUANTITY, nullable=False),
        sa.Column('invoiced_qty', QUANTITY, nullable=False),
        sa.Column('received_qty', QUANTITY, nullable=False),
        sa.Column('discrepancy_class', sa.String(30), nullable=False),
        sa.Column('shortage_qty', QUANTITY, server_default='0', nullable=True),
        sa.Column('overage_qty', QUANTITY, server_default='0', nullable=True),
        sa.Column('received_value', MONEY, server_default='0', nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
    )
    op.create_index('ix_grn_items_grn_id', 'grn_items', ['grn_id'])
    op.create_index('ix_grn_items_discrepancy_class', 'grn_items', ['discrepancy_class'])

    # ==================== Discrepancy cases ====================
    op.create_table(
        'discrepancy_cases',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('case_number', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), server_default='grn', nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('entity_number', sa.String(50), nullable=False),
        sa.Column('purchase_order_id', UUID(as_uuid=True), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), nullable=False),
        sa.Column('complaint_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('items_affected', sa.JSON, nullable=False),
        sa.Column('total_value', MONEY, server_default='0', nullable=False),
        sa.Column('action_required', sa.Text, nullable=True),
        sa.Column('status', sa.String(50), server_default='pending', nullable=False),
        sa.Column('requested_by', sa.String(100), nullable=False),
        sa.Column('department', sa.String(100), nullable=True),
        sa.Column('resolved_by', sa.String(100), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolution_notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_discrepancy_cases_case_number', 'discrepancy_cases', ['case_number'], unique=True)
    op.create_index('ix_discrepancy_cases_purchase_order_id', 'discrepancy_cases', ['purchase_order_id'])
    op.create_index('ix_discrepancy_cases_vendor_id', 'discrepancy_cases', ['vendor_id'])
    op.create_index('ix_discrepancy_cases_complaint_type', 'discrepancy_cases', ['complaint_type'])
    op.create_index('ix_discrepancy_cases_status', 'discrepancy_cases', ['status'])
    op.create_index('ix_discrepancy_cases_created_at', 'discrepancy_cases', ['created_at'])
    op.create_index('ix_discrepancy_entity', 'discrepancy_cases', ['entity_type', 'entity_id'])
    op.create_index('ix_discrepancy_entity_type_status', 'discrepancy_cases',
                    ['entity_id', 'complaint_type', 'status'])

    # ==================== Vendor requests ====================
    op.create_table(
        'vendor_requests',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('request_number', sa.String(50), nullable=False),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('grn_id', UUID(as_uuid=True),
                  sa.ForeignKey('goods_receipt_notes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('complaint_id', UUID(as_uuid=True),
                  sa.ForeignKey('discrepancy_cases.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('request_type', sa.String(20), nullable=False),
        sa.Column('items', sa.JSON, nullable=False),
        sa.Column('total_value', MONEY, server_default='0', nullable=False),
        sa.Column('status', sa.String(50), server_default='pending', nullable=False),
        sa.Column('message_to_vendor', sa.Text, nullable=True),
        sa.Column('vendor_response', sa.Text, nullable=True),
        sa.Column('expected_fulfillment_date', sa.Date, nullable=True),
        sa.Column('fulfillment_grn_id', UUID(as_uuid=True),
                  sa.ForeignKey('goods_receipt_notes.id', ondelete='RESTRICT'), nullable=True, unique=True),
        sa.Column('created_by', sa.String(100), nullable=False),
        sa.Column('sent_by', sa.String(100), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('in_transit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('fulfilled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text, nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendor_requests_request_number', 'vendor_requests', ['request_number'], unique=True)
    op.create_index('ix_vendor_requests_purchase_order_id', 'vendor_requests', ['purchase_order_id'])
    op.create_index('ix_vendor_requests_grn_id', 'vendor_requests', ['grn_id'])
    op.create_index('ix_vendor_requests_vendor_id', 'vendor_requests', ['vendor_id'])
    op.create_index('ix_vendor_requests_complaint_id', 'vendor_requests', ['complaint_id'])
    op.create_index('ix_vendor_requests_status', 'vendor_requests', ['status'])
    op.create_index('ix_vendor_requests_created_at', 'vendor_requests', ['created_at'])

    op.create_foreign_key(
        'fk_goods_receipt_notes_vendor_request_id', 'goods_receipt_notes', 'vendor_requests',
        ['vendor_request_id'], ['id'], ondelete='SET NULL',
    )

    # ==================== Credit notes ====================
    op.create_table(
        'credit_notes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('credit_note_number', sa.String(50), nullable=False),
        sa.Column('grn_id', UUID(as_uuid=True),
                  sa.ForeignKey('goods_receipt_notes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('purchase_order_id', UUID(as_uuid=True),
                  sa.ForeignKey('purchase_orders.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('complaint_id', UUID(as_uuid=True),
                  sa.ForeignKey('discrepancy_cases.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('credit_note_type', sa.String(30), nullable=False),
        sa.Column('items', sa.JSON, nullable=False),
        sa.Column('subtotal_credit_amount', MONEY, server_default='0', nullable=False),
        sa.Column('tax_percentage', sa.Numeric(5, 2), server_default='0', nullable=False),
        sa.Column('tax_amount', MONEY, server_default='0', nullable=False),
        sa.Column('total_credit_amount', MONEY, server_default='0', nullable=False),
        sa.Column('status', sa.String(50), server_default='draft', nullable=False),
        sa.Column('settlement_method', sa.String(30), server_default='adjust_invoice', nullable=False),
        sa.Column('settlement_status', sa.String(30), server_default='pending', nullable=False),
        sa.Column('vendor_response', sa.Text, nullable=True),
        sa.Column('settlement_notes', sa.Text, nullable=True),
        sa.Column('remarks', sa.Text, nullable=True),
        sa.Column('created_by', sa.String(100), nullable=False),
        sa.Column('issued_by', sa.String(100), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('vendor_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settled_by', sa.String(100), nullable=True),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'total_credit_amount = subtotal_credit_amount + tax_amount',
            name='ck_credit_notes_total',
        ),
        sa.CheckConstraint(
            "settlement_status <> 'completed' OR status = 'settled'",
            name='ck_credit_notes_settlement_completed',
        ),
    )
    op.create_index('ix_credit_notes_credit_note_number', 'credit_notes', ['credit_note_number'], unique=True)
    op.create_index('ix_credit_notes_grn_id', 'credit_notes', ['grn_id'])
    op.create_index('ix_credit_notes_purchase_order_id', 'credit_notes', ['purchase_order_id'])
    op.create_index('ix_credit_notes_vendor_id', 'credit_notes', ['vendor_id'])
    op.create_index('ix_credit_notes_complaint_id', 'credit_notes', ['complaint_id'])
    op.create_index('ix_credit_notes_status', 'credit_notes', ['status'])
    op.create_index('ix_credit_notes_created_at', 'credit_notes', ['created_at'])

    # ==================== Audit trail & numbering ====================
    op.create_table(
        'audit_trails',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('status_before', sa.String(50), nullable=True),
        sa.Column('status_after', sa.String(50), nullable=True),
        sa.Column('performed_by', sa.String(100), nullable=False),
        sa.Column('department', sa.String(100), nullable=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_trails_entity_type', 'audit_trails', ['entity_type'])
    op.create_index('ix_audit_trails_action', 'audit_trails', ['action'])
    op.create_index('ix_audit_trails_created_at', 'audit_trails', ['created_at'])
    op.create_index('ix_audit_trail_entity', 'audit_trails', ['entity_type', 'entity_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('document_type', sa.String(10), nullable=False),
        sa.Column('document_name', sa.String(100), nullable=False),
        sa.Column('company_code', sa.String(10), server_default='APL', nullable=False),
        sa.Column('financial_year', sa.String(10), nullable=False),
        sa.Column('current_number', sa.Integer, server_default='0', nullable=False),
        sa.Column('padding_length', sa.Integer, server_default='5', nullable=True),
        sa.Column('separator', sa.String(5), server_default='/', nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('document_type', 'financial_year', name='uq_document_type_fy'),
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade() -> None:
    op.drop_table('document_sequences')
    op.drop_table('audit_trails')
    op.drop_table('credit_notes')
    op.drop_constraint('fk_goods_receipt_notes_vendor_request_id', 'goods_receipt_notes', type_='foreignkey')
    op.drop_table('vendor_requests')
    op.drop_table('discrepancy_cases')
    op.drop_table('grn_items')
    op.drop_table('goods_receipt_notes')
    op.drop_table('stock_movements')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('inventory_items')
    op.drop_table('vendors')
