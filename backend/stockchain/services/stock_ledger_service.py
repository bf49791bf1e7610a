# Overview: Service-layer operations for the per-owner stock ledger; batches, FIFO consumption, and summaries.

# backend/stockchain/services/stock_ledger_service.py

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from ..chains import ChainProfile, get_chain
from ..errors import InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..identity import Actor
from ..models import StockEntry, StockSummary
from ..models.stock import ENTRY_SOURCES, SOURCE_REQUEST_CLAIM, SOURCE_TRANSFER
from ..money import quantize
from ..time_utils import normalize_timestamp, utcnow
from .activity_service import append_activity
from .concurrency import lock_for_update, run_atomic
from .pricing import EntryPricing
from .summary_service import _rebuild_product_summary
"""
Stock Ledger Invariants (authoritative)

Entries:
- One StockEntry per received batch; quantity never changes after creation.
- available_quantity + used_quantity == quantity at all times.
- Consumption only moves units from available to used, oldest batch first
  (FIFO by received_at, then id).
- Entries are removed only by delete_entry, which rolls the summary back.

Summaries:
- One StockSummary per (chain, owner, product), updated incrementally in the
  same transaction as the entry change it reflects.
- Totals equal the sums over the owner's entries for the product; when they
  do not, summary_service.recalculate rebuilds them from the entries.

Atomicity:
- Every public mutation runs in one DB transaction (run_atomic). A failed
  consume or transfer leaves every entry and summary as it was.
"""


UPDATABLE_ENTRY_FIELDS = ("notes", "location", "batch_number", "expiry_date")


def _require_quantity(value, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be positive")
    return value


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing or ''}\n{note}".strip()


def _recompute_average(summary: StockSummary) -> None:
    if summary.total_value is not None and summary.total_quantity > 0:
        summary.average_unit_price = quantize(Decimal(summary.total_value) / summary.total_quantity)
    else:
        summary.average_unit_price = None


def _get_summary_row(profile: ChainProfile, owner_id: str, product_id: str, *, lock: bool = False):
    q = db.session.query(StockSummary).filter_by(
        chain=profile.code, owner_id=owner_id, product_id=product_id
    )
    if lock:
        q = lock_for_update(q)
    return q.first()


def _apply_summary_delta(
    profile: ChainProfile,
    owner_id: str,
    product_id: str,
    product_name: str,
    *,
    quantity_change: int = 0,
    used_change: int = 0,
    entry_change: int = 0,
    value_change: Decimal | None = None,
    received_at: datetime | None = None,
) -> StockSummary | None:
    """
    Incrementally apply an entry change to the owner's summary.

    available moves by quantity_change - used_change, mirroring the entry
    rows. A summary whose last entry is gone is removed.
    """
    now = utcnow()
    summary = _get_summary_row(profile, owner_id, product_id, lock=True)

    if summary is None:
        summary = StockSummary(
            chain=profile.code,
            owner_id=owner_id,
            product_id=product_id,
            product_name=product_name,
            total_quantity=0,
            available_quantity=0,
            used_quantity=0,
            entry_count=0,
            first_received_at=received_at or now,
        )
        db.session.add(summary)

    summary.total_quantity += quantity_change
    summary.available_quantity += quantity_change - used_change
    summary.used_quantity += used_change
    summary.entry_count += entry_change
    if value_change is not None:
        summary.total_value = quantize(Decimal(summary.total_value or 0) + value_change)
    if received_at is not None and (
        summary.first_received_at is None or received_at < summary.first_received_at
    ):
        summary.first_received_at = received_at
    summary.last_updated = now
    _recompute_average(summary)

    if summary.entry_count <= 0:
        if summary in db.session.new:
            db.session.expunge(summary)
        else:
            db.session.delete(summary)
        db.session.flush()
        return None

    db.session.flush()
    return summary


def _add_entry_inner(
    *,
    profile: ChainProfile,
    owner: Actor,
    product_id: str,
    product_name: str,
    quantity: int,
    request_id: str | None,
    source: str,
    pricing: EntryPricing | None = None,
    received_at: datetime | None = None,
    location: str | None = None,
    notes: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    idempotency_key: str | None = None,
    total_value: Decimal | None = None,
) -> StockEntry:
    """Core add-entry logic without retry or commit.

    Called by add_entry(), transfer(), and the claim reconciler. total_value
    overrides pricing.total_for(quantity) when the batch value is known exactly.
    """
    _require_quantity(quantity)
    if not product_id:
        raise ValidationError("product_id is required")
    if source not in ENTRY_SOURCES:
        raise ValidationError(f"source must be one of {', '.join(ENTRY_SOURCES)}")

    # Idempotency: a key that already produced a batch returns that batch
    if idempotency_key is not None:
        existing = db.session.query(StockEntry).filter_by(idempotency_key=idempotency_key).first()
        if existing is not None:
            if (
                existing.chain != profile.code
                or existing.owner_id != owner.id
                or existing.product_id != product_id
            ):
                raise ValidationError("idempotency_key already used for a different entry")
            return existing

    now = utcnow()
    received_dt = received_at or now

    if not profile.tracks_pricing:
        pricing = None
    if pricing is None:
        total_value = None
    elif total_value is None:
        total_value = pricing.total_for(quantity)
    else:
        total_value = quantize(total_value)

    entry = StockEntry(
        chain=profile.code,
        owner_id=owner.id,
        owner_name=owner.name,
        owner_role=owner.role,
        distributor_id=owner.distributor_id,
        distributor_name=owner.distributor_name,
        product_id=product_id,
        product_name=product_name or product_id,
        quantity=quantity,
        available_quantity=quantity,
        used_quantity=0,
        unit_price=pricing.unit_price if pricing else None,
        discount_percent=pricing.discount_percent if pricing else None,
        final_price=pricing.effective_price if pricing else None,
        total_value=total_value,
        received_at=received_dt,
        request_id=str(request_id) if request_id is not None else None,
        source=source,
        location=location or owner.location or profile.default_location,
        batch_number=batch_number,
        expiry_date=expiry_date,
        notes=notes,
        idempotency_key=idempotency_key,
        last_updated=now,
    )
    db.session.add(entry)
    db.session.flush()

    _apply_summary_delta(
        profile,
        owner.id,
        product_id,
        entry.product_name,
        quantity_change=quantity,
        entry_change=1,
        value_change=total_value,
        received_at=received_dt,
    )
    return entry


def add_entry(
    *,
    chain: str,
    owner: Actor,
    product_id: str,
    product_name: str,
    quantity: int,
    request_id: str | None,
    source: str,
    pricing: EntryPricing | None = None,
    received_at=None,
    location: str | None = None,
    notes: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    idempotency_key: str | None = None,
    commit: bool = True,
) -> StockEntry:
    """
    Record a received batch and fold it into the owner's summary.

    Entry and summary are written in one transaction. With an
    idempotency_key, repeating the call returns the original batch and
    leaves the summary alone.
    """
    profile = get_chain(chain)
    received_dt = normalize_timestamp(received_at)

    def _op():
        return _add_entry_inner(
            profile=profile,
            owner=owner,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            request_id=request_id,
            source=source,
            pricing=pricing,
            received_at=received_dt,
            location=location,
            notes=notes,
            batch_number=batch_number,
            expiry_date=expiry_date,
            idempotency_key=idempotency_key,
        )

    return run_atomic(_op, operation="add_entry", commit=commit)


def receive_stock(
    *,
    chain: str,
    owner: Actor,
    product_id: str,
    product_name: str,
    quantity: int,
    actor: Actor,
    request_id: str | None = None,
    source: str = SOURCE_REQUEST_CLAIM,
    pricing: EntryPricing | None = None,
    received_at=None,
    location: str | None = None,
    notes: str | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
) -> StockEntry:
    """Direct stock receipt (no request workflow), recorded in the activity feed."""
    profile = get_chain(chain)
    received_dt = normalize_timestamp(received_at)

    def _op():
        entry = _add_entry_inner(
            profile=profile,
            owner=owner,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            request_id=request_id,
            source=source,
            pricing=pricing,
            received_at=received_dt,
            location=location,
            notes=notes,
            batch_number=batch_number,
            expiry_date=expiry_date,
        )
        append_activity(
            event_type="stock.received",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry.id,
            actor=actor,
            chain=profile.code,
            note=notes,
            payload={"owner_id": owner.id, "product_id": product_id, "quantity": quantity},
        )
        return entry

    return run_atomic(_op, operation="receive_stock")


def _plan_consumption(profile: ChainProfile, owner_id: str, product_id: str, quantity: int):
    """
    FIFO deduction plan: [(entry, units_to_take), ...].

    Computed before any write; raises InsufficientStock when the owner's
    available units for the product do not cover quantity.
    """
    entries = (
        lock_for_update(
            db.session.query(StockEntry).filter(
                StockEntry.chain == profile.code,
                StockEntry.owner_id == owner_id,
                StockEntry.product_id == product_id,
                StockEntry.available_quantity > 0,
            )
        )
        .order_by(StockEntry.received_at.asc(), StockEntry.id.asc())
        .all()
    )

    plan = []
    remaining = quantity
    for entry in entries:
        if remaining <= 0:
            break
        take = min(remaining, entry.available_quantity)
        plan.append((entry, take))
        remaining -= take

    if remaining > 0:
        raise InsufficientStock(product_id, quantity, quantity - remaining)
    return plan


def _consume_inner(
    *,
    profile: ChainProfile,
    owner_id: str,
    product_id: str,
    quantity: int,
    reason: str | None = None,
) -> list[dict]:
    """Core FIFO consumption without retry or commit. Returns the allocations applied."""
    _require_quantity(quantity)
    plan = _plan_consumption(profile, owner_id, product_id, quantity)

    now = utcnow()
    allocations = []
    for entry, take in plan:
        entry.available_quantity -= take
        entry.used_quantity += take
        entry.last_updated = now
        if reason:
            entry.notes = _append_note(entry.notes, f"Used {take} units: {reason}")
        allocations.append({
            "entry_id": entry.id,
            "quantity": take,
            "remaining": entry.available_quantity,
            "pricing": EntryPricing.from_entry(entry),
        })
    db.session.flush()

    product_name = plan[0][0].product_name
    if _get_summary_row(profile, owner_id, product_id) is None:
        # Summary missing entirely: rebuild it from the entries just updated
        _rebuild_product_summary(profile, owner_id, product_id)
    else:
        _apply_summary_delta(profile, owner_id, product_id, product_name, used_change=quantity)
    return allocations


def consume(
    *,
    chain: str,
    owner_id: str,
    product_id: str,
    quantity: int,
    reason: str | None = None,
    commit: bool = True,
) -> list[dict]:
    """
    Use quantity units of a product, oldest batches first.

    All-or-nothing: if the owner's available units fall short, raises
    InsufficientStock and no entry is touched.
    """
    profile = get_chain(chain)

    def _op():
        return _consume_inner(
            profile=profile,
            owner_id=owner_id,
            product_id=product_id,
            quantity=quantity,
            reason=reason,
        )

    return run_atomic(_op, operation="consume", commit=commit)


def _blended_pricing(allocations: list[dict]) -> tuple[EntryPricing | None, Decimal | None]:
    """
    Pricing and exact drawn value of the consumed batches.

    (None, None) unless every batch was priced. Mixed prices yield the
    rounded quantity-weighted average as final_price; the value is the exact
    sum of the drawn units so no cents are lost to rounding.
    """
    priced = [a for a in allocations if a["pricing"] is not None]
    if not priced or len(priced) != len(allocations):
        return None, None
    value = sum(
        (a["pricing"].effective_price * a["quantity"] for a in priced), Decimal("0")
    )
    if len({(a["pricing"].unit_price, a["pricing"].final_price) for a in priced}) == 1:
        return priced[0]["pricing"], quantize(value)
    total_units = sum(a["quantity"] for a in allocations)
    return EntryPricing(final_price=quantize(value / total_units)), quantize(value)


def transfer(
    *,
    chain: str,
    from_owner_id: str,
    to_owner: Actor,
    product_id: str,
    quantity: int,
    reason: str | None = None,
    actor: Actor | None = None,
    request_id: str | None = None,
) -> StockEntry:
    """
    Move units between two owners of the same chain.

    Consume from the source (FIFO) and credit one new batch to the
    destination, in one transaction: either both happen or neither does.
    """
    profile = get_chain(chain)
    if from_owner_id == to_owner.id:
        raise ValidationError("Cannot transfer stock to the same owner")

    def _op():
        note = f"Transfer to user {to_owner.id}: {reason or 'Stock transfer'}"
        allocations = _consume_inner(
            profile=profile,
            owner_id=from_owner_id,
            product_id=product_id,
            quantity=quantity,
            reason=note,
        )
        source_entry = db.session.get(StockEntry, allocations[0]["entry_id"])

        pricing, drawn_value = _blended_pricing(allocations)
        now = utcnow()
        entry = _add_entry_inner(
            profile=profile,
            owner=to_owner,
            product_id=product_id,
            product_name=source_entry.product_name,
            quantity=quantity,
            request_id=request_id or f"transfer-{int(now.timestamp() * 1000)}",
            source=SOURCE_TRANSFER,
            pricing=pricing,
            total_value=drawn_value,
            notes=f"Transferred from user {from_owner_id}: {reason or 'Stock transfer'}",
        )

        append_activity(
            event_type="stock.transferred",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry.id,
            actor=actor,
            chain=profile.code,
            note=reason,
            payload={
                "from_owner_id": from_owner_id,
                "to_owner_id": to_owner.id,
                "product_id": product_id,
                "quantity": quantity,
                "source_entries": [a["entry_id"] for a in allocations],
            },
        )
        return entry

    return run_atomic(_op, operation="transfer")


def get_summary(*, chain: str, owner_id: str) -> list[StockSummary]:
    profile = get_chain(chain)
    return (
        db.session.query(StockSummary)
        .filter_by(chain=profile.code, owner_id=owner_id)
        .order_by(StockSummary.product_name.asc(), StockSummary.product_id.asc())
        .all()
    )


def get_entries(*, chain: str, owner_id: str, product_id: str | None = None) -> list[StockEntry]:
    """Owner's batches, newest first, optionally for one product."""
    profile = get_chain(chain)
    q = db.session.query(StockEntry).filter_by(chain=profile.code, owner_id=owner_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    return q.order_by(StockEntry.received_at.desc(), StockEntry.id.desc()).all()


def get_available_quantity(*, chain: str, owner_id: str, product_id: str) -> int:
    """Available units straight from the entries (never from the cached summary)."""
    profile = get_chain(chain)
    total = (
        db.session.query(db.func.coalesce(db.func.sum(StockEntry.available_quantity), 0))
        .filter(
            StockEntry.chain == profile.code,
            StockEntry.owner_id == owner_id,
            StockEntry.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def get_entry(*, chain: str, owner_id: str, entry_id: int, lock: bool = False) -> StockEntry:
    profile = get_chain(chain)
    q = db.session.query(StockEntry).filter_by(id=entry_id, chain=profile.code, owner_id=owner_id)
    if lock:
        q = lock_for_update(q)
    entry = q.first()
    if entry is None:
        raise NotFound(f"Stock entry {entry_id} not found")
    return entry


def update_entry(*, chain: str, owner_id: str, entry_id: int, updates: dict) -> StockEntry:
    """Edit descriptive fields of a batch. Quantities are never editable here."""
    unknown = set(updates) - set(UPDATABLE_ENTRY_FIELDS)
    if unknown:
        raise ValidationError(
            f"Cannot update field(s): {', '.join(sorted(unknown))}. "
            f"Allowed: {', '.join(UPDATABLE_ENTRY_FIELDS)}"
        )

    def _op():
        entry = get_entry(chain=chain, owner_id=owner_id, entry_id=entry_id, lock=True)
        for field, value in updates.items():
            if field == "expiry_date" and isinstance(value, str):
                try:
                    value = date.fromisoformat(value) if value else None
                except ValueError:
                    raise ValidationError("expiry_date must be YYYY-MM-DD")
            setattr(entry, field, value)
        entry.last_updated = utcnow()
        db.session.flush()
        return entry

    return run_atomic(_op, operation="update_entry")


def delete_entry(*, chain: str, owner_id: str, entry_id: int, actor: Actor | None = None) -> dict:
    """
    Admin delete of a batch; rolls its quantities out of the summary.

    Returns the deleted entry's last state.
    """
    profile = get_chain(chain)

    def _op():
        entry = get_entry(chain=chain, owner_id=owner_id, entry_id=entry_id, lock=True)
        snapshot = entry.to_dict()

        _apply_summary_delta(
            profile,
            owner_id,
            entry.product_id,
            entry.product_name,
            quantity_change=-entry.quantity,
            used_change=-entry.used_quantity,
            entry_change=-1,
            value_change=-Decimal(entry.total_value) if entry.total_value is not None else None,
        )
        db.session.delete(entry)
        db.session.flush()

        append_activity(
            event_type="stock.entry_deleted",
            event_category="stock",
            entity_type="stock_entry",
            entity_id=entry_id,
            actor=actor,
            chain=profile.code,
            payload={
                "owner_id": owner_id,
                "product_id": snapshot["product_id"],
                "quantity": snapshot["quantity"],
                "available_quantity": snapshot["available_quantity"],
            },
        )
        return snapshot

    return run_atomic(_op, operation="delete_entry")
