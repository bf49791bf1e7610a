"""Initial stock ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stock_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("owner_name", sa.String(255), nullable=True),
        sa.Column("owner_role", sa.String(64), nullable=True),
        sa.Column("distributor_id", sa.String(128), nullable=True),
        sa.Column("distributor_name", sa.String(255), nullable=True),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("final_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("location", sa.String(128), nullable=True),
        sa.Column("batch_number", sa.String(64), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key", name="uq_stock_entries_idempotency_key"),
        sa.CheckConstraint("available_quantity >= 0", name="ck_stock_entries_available_nonneg"),
        sa.CheckConstraint("available_quantity <= quantity", name="ck_stock_entries_available_le_qty"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_entries", schema=None) as batch_op:
        batch_op.create_index("ix_stock_entries_chain", ["chain"], unique=False)
        batch_op.create_index("ix_stock_entries_owner_id", ["owner_id"], unique=False)
        batch_op.create_index("ix_stock_entries_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_entries_received_at", ["received_at"], unique=False)
        batch_op.create_index("ix_stock_entries_request_id", ["request_id"], unique=False)
        batch_op.create_index(
            "ix_stock_entries_owner_product_received",
            ["chain", "owner_id", "product_id", "received_at"],
            unique=False,
        )

    op.create_table(
        "stock_summaries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("available_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("used_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("average_unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("first_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain", "owner_id", "product_id", name="uq_stock_summaries_owner_product"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_summaries", schema=None) as batch_op:
        batch_op.create_index("ix_stock_summaries_chain", ["chain"], unique=False)
        batch_op.create_index("ix_stock_summaries_owner_id", ["owner_id"], unique=False)

    op.create_table(
        "stock_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("requested_by", sa.String(128), nullable=False),
        sa.Column("requested_by_name", sa.String(255), nullable=True),
        sa.Column("requested_by_role", sa.String(64), nullable=False),
        sa.Column("distributor_id", sa.String(128), nullable=True),
        sa.Column("distributor_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.String(128), nullable=True),
        sa.Column("approved_by_name", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejected_by", sa.String(128), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("dispatched_by", sa.String(128), nullable=True),
        sa.Column("dispatched_by_name", sa.String(255), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatch_notes", sa.Text(), nullable=True),
        sa.Column("claimed_by", sa.String(128), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_requests", schema=None) as batch_op:
        batch_op.create_index("ix_stock_requests_chain", ["chain"], unique=False)
        batch_op.create_index("ix_stock_requests_requested_by", ["requested_by"], unique=False)
        batch_op.create_index("ix_stock_requests_distributor_id", ["distributor_id"], unique=False)
        batch_op.create_index("ix_stock_requests_status", ["status"], unique=False)
        batch_op.create_index(
            "ix_stock_requests_chain_status_created", ["chain", "status", "created_at"], unique=False
        )

    op.create_table(
        "stock_request_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("item_key", sa.String(128), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("dispatched_quantity", sa.Integer(), nullable=True),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("adjustment_type", sa.String(16), nullable=True),
        sa.Column("adjustment_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("final_price", sa.Numeric(12, 2), nullable=True),
        sa.ForeignKeyConstraint(["request_id"], ["stock_requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_id", "item_key", name="uq_stock_request_items_key"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_request_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_request_items_request_id", ["request_id"], unique=False)

    op.create_table(
        "sales_approval_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("requester_id", sa.String(128), nullable=False),
        sa.Column("requester_name", sa.String(255), nullable=True),
        sa.Column("requester_role", sa.String(64), nullable=True),
        sa.Column("distributor_id", sa.String(128), nullable=True),
        sa.Column("distributor_name", sa.String(255), nullable=True),
        sa.Column("approved_by", sa.String(128), nullable=True),
        sa.Column("approved_by_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="sent"),
        sa.Column("is_completed_by_fg", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_by", sa.String(128), nullable=True),
        sa.Column("claimed_by_name", sa.String(255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["request_id"], ["stock_requests.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_id", name="uq_sales_approval_history_request"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sales_approval_history", schema=None) as batch_op:
        batch_op.create_index("ix_sales_approval_history_chain", ["chain"], unique=False)
        batch_op.create_index("ix_sales_approval_history_status", ["status"], unique=False)
        batch_op.create_index(
            "ix_sales_approval_requester_status", ["requester_id", "status"], unique=False
        )

    op.create_table(
        "sales_approval_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("approval_id", sa.Integer(), nullable=False),
        sa.Column("item_key", sa.String(128), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column("adjustment_type", sa.String(16), nullable=True),
        sa.Column("adjustment_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("final_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=True),
        sa.ForeignKeyConstraint(["approval_id"], ["sales_approval_history.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sales_approval_items", schema=None) as batch_op:
        batch_op.create_index("ix_sales_approval_items_approval_id", ["approval_id"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("chain", sa.String(32), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("invoice_no", sa.String(64), nullable=False),
        sa.Column("order_no", sa.String(64), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("bill_to_name", sa.String(255), nullable=True),
        sa.Column("bill_to_address", sa.Text(), nullable=True),
        sa.Column("bill_to_phone", sa.String(64), nullable=True),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("net_total", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="completed"),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.Column("created_by_name", sa.String(255), nullable=True),
        sa.Column("created_by_role", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chain", "owner_id", "invoice_no", name="uq_invoices_owner_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoices", schema=None) as batch_op:
        batch_op.create_index("ix_invoices_chain", ["chain"], unique=False)
        batch_op.create_index("ix_invoices_owner_id", ["owner_id"], unique=False)

    op.create_table(
        "invoice_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(128), nullable=False),
        sa.Column("item_code", sa.String(64), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoice_lines", schema=None) as batch_op:
        batch_op.create_index("ix_invoice_lines_invoice_id", ["invoice_id"], unique=False)

    op.create_table(
        "activity_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("chain", sa.String(32), nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=True),
        sa.Column("actor_name", sa.String(255), nullable=True),
        sa.Column("actor_role", sa.String(64), nullable=True),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("activity_events", schema=None) as batch_op:
        batch_op.create_index("ix_activity_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_activity_events_event_category", ["event_category"], unique=False)
        batch_op.create_index("ix_activity_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_activity_events_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_activity_events_chain_occurred", ["chain", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("activity_events")
    op.drop_table("invoice_lines")
    op.drop_table("invoices")
    op.drop_table("sales_approval_items")
    op.drop_table("sales_approval_history")
    op.drop_table("stock_request_items")
    op.drop_table("stock_requests")
    op.drop_table("stock_summaries")
    op.drop_table("stock_entries")
