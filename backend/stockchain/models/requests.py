from __future__ import annotations

from ..extensions import db
from ..chains import get_chain
from ..money import money_to_json
from ..time_utils import to_utc_z


REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"
REQUEST_STATUS_DISPATCHED = "dispatched"
REQUEST_STATUS_CLAIMED = "claimed"

PRIORITY_NORMAL = "normal"
PRIORITY_URGENT = "urgent"

ADJUSTMENT_PERCENTAGE = "percentage"
ADJUSTMENT_FIXED = "fixed"


class StockRequest(db.Model):
    """
    A demand for products raised against the next actor up a chain.

    LIFECYCLE:
    1. pending: raised by the requester
    2. approved: approver accepted it (optionally with notes)
    3. dispatched: approver released priced items from their own stock
    4. claimed: requester pulled the dispatched items into their ledger
    pending -> rejected is the only other transition, and it is terminal.

    Every field past creation is written by exactly one downstream action;
    requests are never deleted.
    """
    __tablename__ = "stock_requests"
    __table_args__ = (
        db.Index("ix_stock_requests_chain_status_created", "chain", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    chain = db.Column(db.String(32), nullable=False, index=True)

    requested_by = db.Column(db.String(128), nullable=False, index=True)
    requested_by_name = db.Column(db.String(255), nullable=True)
    requested_by_role = db.Column(db.String(64), nullable=False)

    # Set for distributor-scoped chains (representative -> their distributor)
    distributor_id = db.Column(db.String(128), nullable=True, index=True)
    distributor_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING, index=True)
    priority = db.Column(db.String(16), nullable=False, default=PRIORITY_NORMAL)
    notes = db.Column(db.Text, nullable=True)

    approved_by = db.Column(db.String(128), nullable=True)
    approved_by_name = db.Column(db.String(255), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    dispatched_by = db.Column(db.String(128), nullable=True)
    dispatched_by_name = db.Column(db.String(255), nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatch_notes = db.Column(db.Text, nullable=True)

    claimed_by = db.Column(db.String(128), nullable=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "StockRequestItem",
        backref="request",
        lazy=True,
        order_by="StockRequestItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        dispatched = {
            item.item_key: item.dispatched_quantity
            for item in self.items
            if item.dispatched_quantity is not None
        }
        pricing = {
            item.item_key: item.pricing_dict()
            for item in self.items
            if item.adjustment_type is not None
        }
        return {
            "id": self.id,
            "path": get_chain(self.chain).request_path(self.id, self.distributor_id),
            "chain": self.chain,
            "requested_by": self.requested_by,
            "requested_by_name": self.requested_by_name,
            "requested_by_role": self.requested_by_role,
            "distributor_id": self.distributor_id,
            "distributor_name": self.distributor_name,
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "items": {item.item_key: item.to_dict() for item in self.items},
            "approved_by": self.approved_by,
            "approved_by_name": self.approved_by_name,
            "approved_at": to_utc_z(self.approved_at),
            "approval_notes": self.approval_notes,
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "dispatched_by": self.dispatched_by,
            "dispatched_by_name": self.dispatched_by_name,
            "dispatched_at": to_utc_z(self.dispatched_at),
            "dispatch_notes": self.dispatch_notes,
            "dispatched_quantities": dispatched or None,
            "pricing": pricing or None,
            "claimed_by": self.claimed_by,
            "claimed_at": to_utc_z(self.claimed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StockRequestItem(db.Model):
    """One requested product, keyed by the item key the requester used."""
    __tablename__ = "stock_request_items"
    __table_args__ = (
        db.UniqueConstraint("request_id", "item_key", name="uq_stock_request_items_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("stock_requests.id"), nullable=False, index=True)

    item_key = db.Column(db.String(128), nullable=False)
    product_id = db.Column(db.String(128), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # Filled at dispatch
    dispatched_quantity = db.Column(db.Integer, nullable=True)
    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    adjustment_type = db.Column(db.String(16), nullable=True)  # percentage, fixed
    adjustment_value = db.Column(db.Numeric(12, 2), nullable=True)
    final_price = db.Column(db.Numeric(12, 2), nullable=True)

    def pricing_dict(self) -> dict:
        return {
            "unit_price": money_to_json(self.unit_price),
            "adjustment_type": self.adjustment_type,
            "adjustment_value": money_to_json(self.adjustment_value),
            "final_price": money_to_json(self.final_price),
        }

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.product_name,
            "qty": self.quantity,
        }
