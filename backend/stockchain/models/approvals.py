from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


APPROVAL_STATUS_SENT = "sent"
APPROVAL_STATUS_CLAIMED = "claimed"


class SalesApprovalHistory(db.Model):
    """
    Receipt of a dispatch, waiting for the original requester to claim it.

    Bridges the dispatcher's action to the requester's claim when they sit
    in different ledgers (e.g. Head Office dispatching a showroom request).

    INVARIANT: one record per request_id; it moves sent -> claimed once and
    never back. Claiming flips the status before any stock is credited.
    """
    __tablename__ = "sales_approval_history"
    __table_args__ = (
        db.UniqueConstraint("request_id", name="uq_sales_approval_history_request"),
        db.Index("ix_sales_approval_requester_status", "requester_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("stock_requests.id"), nullable=False)

    # Chain whose ledger receives the items on claim
    chain = db.Column(db.String(32), nullable=False, index=True)

    requester_id = db.Column(db.String(128), nullable=False)
    requester_name = db.Column(db.String(255), nullable=True)
    requester_role = db.Column(db.String(64), nullable=True)
    distributor_id = db.Column(db.String(128), nullable=True)
    distributor_name = db.Column(db.String(255), nullable=True)

    approved_by = db.Column(db.String(128), nullable=True)
    approved_by_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=APPROVAL_STATUS_SENT, index=True)
    # Set when Head Office approved and dispatched in one step
    is_completed_by_fg = db.Column(db.Boolean, nullable=False, default=False)

    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    total_value = db.Column(db.Numeric(14, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=False)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    claimed_by = db.Column(db.String(128), nullable=True)
    claimed_by_name = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    request = db.relationship("StockRequest")
    items = db.relationship(
        "SalesApprovalItem",
        backref="approval",
        lazy=True,
        order_by="SalesApprovalItem.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": f"salesApprovalHistory/{self.id}",
            "request_id": self.request_id,
            "chain": self.chain,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "requester_role": self.requester_role,
            "distributor_id": self.distributor_id,
            "distributor_name": self.distributor_name,
            "approved_by": self.approved_by,
            "approved_by_name": self.approved_by_name,
            "status": self.status,
            "is_completed_by_fg": self.is_completed_by_fg,
            "total_quantity": self.total_quantity,
            "total_value": money_to_json(self.total_value),
            "notes": self.notes,
            "dispatch_items": [item.to_dict() for item in self.items],
            "sent_at": to_utc_z(self.sent_at),
            "claimed_at": to_utc_z(self.claimed_at),
            "claimed_by": self.claimed_by,
            "claimed_by_name": self.claimed_by_name,
        }


class SalesApprovalItem(db.Model):
    """A dispatched product line with its resolved unit pricing."""
    __tablename__ = "sales_approval_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    approval_id = db.Column(db.Integer, db.ForeignKey("sales_approval_history.id"), nullable=False, index=True)

    item_key = db.Column(db.String(128), nullable=False)
    product_id = db.Column(db.String(128), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=True)
    adjustment_type = db.Column(db.String(16), nullable=True)
    adjustment_value = db.Column(db.Numeric(12, 2), nullable=True)
    final_price = db.Column(db.Numeric(12, 2), nullable=True)
    total_value = db.Column(db.Numeric(14, 2), nullable=True)

    def to_dict(self) -> dict:
        return {
            "item_key": self.item_key,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": money_to_json(self.unit_price),
            "discount_percent": money_to_json(self.discount_percent),
            "adjustment_type": self.adjustment_type,
            "adjustment_value": money_to_json(self.adjustment_value),
            "final_price": money_to_json(self.final_price),
            "total_value": money_to_json(self.total_value),
        }
