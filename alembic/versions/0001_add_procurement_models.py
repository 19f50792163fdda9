"""add procurement models

Revision ID: 0001
Revises: None
Create Date: 2026-10-18 00:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "project",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("capital", sa.Float(), nullable=True),
        sa.Column("committed_cost", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("spent_cost", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "supplier",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("contact_person", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="active"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("specialties", sa.JSON(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("availability_status", sa.String(length=50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "purchase_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_order_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("is_bulk_order", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True, unique=True),
        sa.Column("material_request_id", sa.String(length=100), nullable=True),
        sa.Column("material_name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity_ordered", sa.Float(), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("unit_cost", sa.Float(), nullable=True),
        sa.Column("total_cost", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("committed_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("supplier.id"), nullable=False),
        sa.Column("supplier_name", sa.String(length=255), nullable=False),
        sa.Column("supplier_email", sa.String(length=255), nullable=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("project.id"), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("financial_status", sa.String(length=50), nullable=False),
        sa.Column("supplier_response", sa.String(length=50), nullable=True),
        sa.Column("supplier_response_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("supplier_notes", sa.Text(), nullable=True),
        sa.Column("supplier_modifications", sa.JSON(), nullable=True),
        sa.Column("modification_approved", sa.Boolean(), nullable=True),
        sa.Column("modification_approved_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("modification_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modification_approval_notes", sa.Text(), nullable=True),
        sa.Column("modification_rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=50), nullable=True),
        sa.Column("rejection_subcategory", sa.String(length=100), nullable=True),
        sa.Column("rejection_metadata", sa.JSON(), nullable=True),
        sa.Column("is_retryable", sa.Boolean(), nullable=True),
        sa.Column("retry_recommendation", sa.String(length=255), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("retry_adjustments", sa.JSON(), nullable=True),
        sa.Column("retry_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_requested_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("needs_reassignment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("alternatives_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("alternatives_sent_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("alternative_order_ids", sa.JSON(), nullable=True),
        sa.Column("is_alternative_order", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("original_order_id", sa.Integer(), sa.ForeignKey("purchase_order.id"), nullable=True),
        sa.Column("original_order_number", sa.String(length=50), nullable=True),
        sa.Column("original_rejection_reason", sa.String(length=50), nullable=True),
        sa.Column("delivery_note_file_url", sa.String(length=1000), nullable=True),
        sa.Column("actual_quantity_delivered", sa.Float(), nullable=True),
        sa.Column("actual_unit_cost", sa.Float(), nullable=True),
        sa.Column("delivery_confirmed_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("delivery_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_confirmation_method", sa.String(length=50), nullable=True),
        sa.Column("delivery_notes", sa.Text(), nullable=True),
        sa.Column("linked_material_id", sa.Integer(), nullable=True),
        sa.Column("linked_material_ids", sa.JSON(), nullable=True),
        sa.Column("received_verified_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("received_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_token", sa.String(length=128), nullable=True, unique=True),
        sa.Column("response_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_token_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_index("ix_purchase_order_status", "purchase_order", ["status"])

    op.create_table(
        "purchase_order_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_order_id", sa.Integer(), sa.ForeignKey("purchase_order.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("material_request_id", sa.String(length=100), nullable=False),
        sa.Column("material_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float(), nullable=False),
        sa.Column("total_cost", sa.Float(), nullable=False),
        sa.Column("response_status", sa.String(length=50), nullable=False, server_default="pending"),
        sa.Column("response_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=50), nullable=True),
        sa.Column("rejection_subcategory", sa.String(length=100), nullable=True),
        sa.Column("is_retryable", sa.Boolean(), nullable=True),
        sa.Column("modifications", sa.JSON(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("needs_reassignment", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reassigned_order_ids", sa.JSON(), nullable=True),
        sa.Column("actual_quantity_delivered", sa.Float(), nullable=True),
        sa.Column("actual_unit_cost", sa.Float(), nullable=True),
        sa.Column("linked_material_id", sa.Integer(), nullable=True),
        sa.UniqueConstraint(
            "purchase_order_id",
            "material_request_id",
            name="uq_po_item_po_material_request",
        ),
    )

    op.create_table(
        "material",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("project.id"), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), sa.ForeignKey("purchase_order.id"), nullable=False),
        sa.Column("purchase_order_item_id", sa.Integer(), sa.ForeignKey("purchase_order_item.id"), nullable=True),
        sa.Column("material_request_id", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("quantity_received", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float(), nullable=False),
        sa.Column("total_cost", sa.Float(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("supplier.id"), nullable=True),
        sa.Column("supplier_name", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="received"),
        sa.Column("is_automatic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("project.id"), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_model", sa.String(length=100), nullable=True),
        sa.Column("related_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), sa.ForeignKey("project.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notification_user_id", table_name="notification")
    op.drop_table("notification")
    op.drop_index("ix_audit_log_entity_id", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("material")
    op.drop_table("purchase_order_item")
    op.drop_index("ix_purchase_order_status", table_name="purchase_order")
    op.drop_table("purchase_order")
    op.drop_table("supplier")
    op.drop_table("project")
    op.drop_table("app_user")
