# Overview: Service-layer operations for invoices; releasing an invoice consumes the holder's stock.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Mapping

from ..chains import get_chain
from ..errors import ValidationError
from ..extensions import db
from ..identity import Actor
from ..models import Invoice, InvoiceLine
from ..money import quantize, to_decimal
from .activity_service import append_activity
from .concurrency import run_atomic
from .stock_ledger_service import _consume_inner

HUNDRED = Decimal("100")


def _normalize_line(index: int, data) -> dict:
    if not isinstance(data, Mapping):
        raise ValidationError(f"Line {index}: must be an object")
    product_id = data.get("productId") or data.get("product_id")
    if not product_id:
        raise ValidationError(f"Line {index}: productId is required")
    qty = data.get("quantity", data.get("qty"))
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError(f"Line {index}: quantity must be a positive integer")
    unit_price = to_decimal(data.get("unitPrice", data.get("unit_price")), "unit_price")
    if unit_price is None or unit_price < 0:
        raise ValidationError(f"Line {index}: unit_price must be zero or more")
    unit_price = quantize(unit_price)
    return {
        "product_id": str(product_id),
        "item_code": data.get("itemCode") or data.get("item_code"),
        "description": data.get("description") or data.get("name"),
        "quantity": qty,
        "unit_price": unit_price,
        "amount": quantize(unit_price * qty),
    }


def release_invoice(
    *,
    chain: str,
    owner: Actor,
    invoice_no: str,
    items,
    discount_percent=0,
    order_no: str | None = None,
    invoice_date: date | str | None = None,
    payment_method: str | None = None,
    bill_to: Mapping | None = None,
) -> Invoice:
    """
    Release a sales invoice out of the owner's stock.

    Every line consumes its product FIFO ("Invoice: <no>" on the touched
    batches). All lines commit together; one short line raises
    InsufficientStock and nothing is consumed or recorded.
    """
    profile = get_chain(chain)
    if not invoice_no:
        raise ValidationError("invoice_no is required")
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("At least one invoice line is required")
    lines = [_normalize_line(i, line) for i, line in enumerate(items)]

    discount = to_decimal(discount_percent, "discount_percent") or Decimal("0")
    if discount < 0 or discount > HUNDRED:
        raise ValidationError("discount_percent must be between 0 and 100")
    if isinstance(invoice_date, str):
        try:
            invoice_date = date.fromisoformat(invoice_date) if invoice_date else None
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
    bill_to = bill_to or {}

    subtotal = quantize(sum((line["amount"] for line in lines), Decimal("0")))
    discount_amount = quantize(subtotal * discount / HUNDRED)

    def _op():
        exists = db.session.query(Invoice.id).filter_by(
            chain=profile.code, owner_id=owner.id, invoice_no=invoice_no
        ).first()
        if exists:
            raise ValidationError(f"Invoice {invoice_no} already exists")

        reason = f"Invoice: {invoice_no}"
        for line in lines:
            _consume_inner(
                profile=profile,
                owner_id=owner.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                reason=reason,
            )

        invoice = Invoice(
            chain=profile.code,
            owner_id=owner.id,
            invoice_no=invoice_no,
            order_no=order_no,
            invoice_date=invoice_date,
            payment_method=payment_method,
            bill_to_name=bill_to.get("name"),
            bill_to_address=bill_to.get("address"),
            bill_to_phone=bill_to.get("phone"),
            subtotal=subtotal,
            discount_percent=quantize(discount),
            discount_amount=discount_amount,
            net_total=subtotal - discount_amount,
            created_by=owner.id,
            created_by_name=owner.name,
            created_by_role=owner.role,
        )
        for line in lines:
            invoice.lines.append(InvoiceLine(**line))
        db.session.add(invoice)
        db.session.flush()

        append_activity(
            event_type="invoice.released",
            event_category="invoices",
            entity_type="invoice",
            entity_id=invoice.id,
            actor=owner,
            chain=profile.code,
            note=invoice_no,
            payload={
                "lines": {line["product_id"]: line["quantity"] for line in lines},
                "net_total": invoice.net_total,
            },
        )
        return invoice

    return run_atomic(_op, operation="release_invoice")


def list_invoices(*, chain: str, owner_id: str, limit: int = 200) -> list[Invoice]:
    profile = get_chain(chain)
    return (
        db.session.query(Invoice)
        .filter_by(chain=profile.code, owner_id=owner_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
        .all()
    )
