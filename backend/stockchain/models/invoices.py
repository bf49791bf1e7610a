from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z


INVOICE_STATUS_COMPLETED = "completed"


class Invoice(db.Model):
    """
    A sales invoice released by a stock holder to an end customer.

    WHY: releasing an invoice is the last hop of every chain; its lines
    consume the holder's stock FIFO, all lines or none.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("chain", "owner_id", "invoice_no", name="uq_invoices_owner_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    chain = db.Column(db.String(32), nullable=False, index=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)

    invoice_no = db.Column(db.String(64), nullable=False)
    order_no = db.Column(db.String(64), nullable=True)
    invoice_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    bill_to_name = db.Column(db.String(255), nullable=True)
    bill_to_address = db.Column(db.Text, nullable=True)
    bill_to_phone = db.Column(db.String(64), nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_total = db.Column(db.Numeric(14, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_COMPLETED)
    created_by = db.Column(db.String(128), nullable=False)
    created_by_name = db.Column(db.String(255), nullable=True)
    created_by_role = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chain": self.chain,
            "owner_id": self.owner_id,
            "invoice_no": self.invoice_no,
            "order_no": self.order_no,
            "date": self.invoice_date.isoformat() if self.invoice_date else None,
            "payment_method": self.payment_method,
            "bill_to": {
                "name": self.bill_to_name,
                "address": self.bill_to_address,
                "phone": self.bill_to_phone,
            },
            "items": [line.to_dict() for line in self.lines],
            "subtotal": money_to_json(self.subtotal),
            "discount_percent": money_to_json(self.discount_percent),
            "discount_amount": money_to_json(self.discount_amount),
            "net_total": money_to_json(self.net_total),
            "status": self.status,
            "created_by": self.created_by,
            "created_by_name": self.created_by_name,
            "created_by_role": self.created_by_role,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    product_id = db.Column(db.String(128), nullable=False)
    item_code = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "item_code": self.item_code,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": money_to_json(self.unit_price),
            "amount": money_to_json(self.amount),
        }
