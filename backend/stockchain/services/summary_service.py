# Overview: Summary maintenance; repairs entries and rebuilds cached per-product summaries from the entries.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..chains import ChainProfile, get_chain
from ..extensions import db
from ..identity import Actor
from ..models import StockEntry, StockSummary
from ..money import quantize
from ..time_utils import utcnow
from .activity_service import append_activity
from .concurrency import lock_for_update, run_atomic


def _owner_entries(profile: ChainProfile, owner_id: str, product_id: str | None = None, *, lock: bool = False):
    q = db.session.query(StockEntry).filter_by(chain=profile.code, owner_id=owner_id)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    if lock:
        q = lock_for_update(q)
    return q.order_by(StockEntry.received_at.asc(), StockEntry.id.asc()).all()


def _aggregate(entries: list[StockEntry]) -> dict:
    """Summary totals as they should be for one product's entries."""
    total_value = None
    for e in entries:
        if e.total_value is not None:
            total_value = (total_value or Decimal("0")) + Decimal(e.total_value)
    total_quantity = sum(e.quantity for e in entries)
    return {
        "product_name": entries[0].product_name,
        "total_quantity": total_quantity,
        "available_quantity": sum(e.available_quantity for e in entries),
        "used_quantity": sum(e.used_quantity for e in entries),
        "entry_count": len(entries),
        "total_value": quantize(total_value),
        "average_unit_price": (
            quantize(total_value / total_quantity)
            if total_value is not None and total_quantity > 0
            else None
        ),
        "first_received_at": min(e.received_at for e in entries),
    }


def _group_by_product(entries: list[StockEntry]) -> dict[str, list[StockEntry]]:
    grouped: dict[str, list[StockEntry]] = {}
    for e in entries:
        grouped.setdefault(e.product_id, []).append(e)
    return grouped


def _write_summary(profile: ChainProfile, owner_id: str, product_id: str, totals: dict, summary=None) -> StockSummary:
    if summary is None:
        summary = StockSummary(chain=profile.code, owner_id=owner_id, product_id=product_id)
        db.session.add(summary)
    for field, value in totals.items():
        setattr(summary, field, value)
    summary.last_updated = utcnow()
    return summary


def _rebuild_product_summary(profile: ChainProfile, owner_id: str, product_id: str) -> StockSummary | None:
    """Overwrite one product's summary from its entries (no commit)."""
    entries = _owner_entries(profile, owner_id, product_id)
    summary = (
        db.session.query(StockSummary)
        .filter_by(chain=profile.code, owner_id=owner_id, product_id=product_id)
        .first()
    )
    if not entries:
        if summary is not None:
            db.session.delete(summary)
            db.session.flush()
        return None
    summary = _write_summary(profile, owner_id, product_id, _aggregate(entries), summary)
    db.session.flush()
    return summary


def _fix_entries_inner(profile: ChainProfile, owner_id: str) -> list[dict]:
    fixed = []
    now = utcnow()
    for entry in _owner_entries(profile, owner_id, lock=True):
        expected = entry.quantity - entry.used_quantity
        if entry.available_quantity != expected:
            fixed.append({
                "entry_id": entry.id,
                "product_id": entry.product_id,
                "available_before": entry.available_quantity,
                "available_after": expected,
            })
            entry.available_quantity = expected
            entry.last_updated = now
    db.session.flush()
    return fixed


def fix_entries(*, chain: str, owner_id: str, commit: bool = True) -> list[dict]:
    """
    Repair entries whose available_quantity disagrees with quantity - used_quantity.

    used_quantity is trusted; available is derived from it.
    """
    profile = get_chain(chain)
    return run_atomic(
        lambda: _fix_entries_inner(profile, owner_id),
        operation="fix_entries",
        commit=commit,
    )


def recalculate(*, chain: str, owner_id: str, actor: Actor | None = None) -> dict:
    """
    Rebuild every summary for an owner from the owner's entries.

    Runs fix_entries first. Summaries without entries are deleted; entry
    quantities are not otherwise touched.
    """
    profile = get_chain(chain)

    def _op():
        fixed = _fix_entries_inner(profile, owner_id)
        grouped = _group_by_product(_owner_entries(profile, owner_id))

        existing = {
            s.product_id: s
            for s in lock_for_update(
                db.session.query(StockSummary).filter_by(chain=profile.code, owner_id=owner_id)
            ).all()
        }

        rebuilt = []
        for product_id, entries in grouped.items():
            summary = _write_summary(
                profile, owner_id, product_id, _aggregate(entries), existing.pop(product_id, None)
            )
            rebuilt.append(summary)

        removed = sorted(existing)
        for orphan in existing.values():
            db.session.delete(orphan)
        db.session.flush()

        append_activity(
            event_type="stock.recalculated",
            event_category="maintenance",
            entity_type="owner",
            entity_id=owner_id,
            actor=actor,
            chain=profile.code,
            payload={
                "fixed_entries": len(fixed),
                "summaries": len(rebuilt),
                "removed_summaries": removed,
            },
        )
        return {
            "chain": profile.code,
            "owner_id": owner_id,
            "fixed_entries": fixed,
            "summaries": [s.to_dict() for s in rebuilt],
            "removed_summaries": removed,
        }

    result = run_atomic(_op, operation="recalculate")
    current_app.logger.info(
        "Recalculated %d summaries for %s/%s (%d entries fixed)",
        len(result["summaries"]), chain, owner_id, len(result["fixed_entries"]),
    )
    return result


DRIFT_FIELDS = ("total_quantity", "available_quantity", "used_quantity", "entry_count", "total_value")


def detect_drift(*, chain: str, owner_id: str) -> list[dict]:
    """Read-only: summaries whose cached totals differ from their entries."""
    profile = get_chain(chain)
    grouped = _group_by_product(_owner_entries(profile, owner_id))
    summaries = {
        s.product_id: s
        for s in db.session.query(StockSummary).filter_by(chain=profile.code, owner_id=owner_id).all()
    }

    drift = []
    for product_id in sorted(set(grouped) | set(summaries)):
        entries = grouped.get(product_id)
        summary = summaries.get(product_id)
        if entries is None:
            drift.append({"product_id": product_id, "issue": "summary_without_entries"})
            continue
        if summary is None:
            drift.append({"product_id": product_id, "issue": "missing_summary"})
            continue

        expected = _aggregate(entries)
        diffs = {}
        for field in DRIFT_FIELDS:
            cached = getattr(summary, field)
            if field == "total_value" and cached is not None:
                cached = quantize(Decimal(cached))
            if cached != expected[field]:
                diffs[field] = {"cached": cached, "actual": expected[field]}
        if diffs:
            drift.append({"product_id": product_id, "issue": "mismatch", "fields": diffs})

    if drift:
        current_app.logger.warning(
            "Summary drift for %s/%s: %d product(s) out of step with entries",
            chain, owner_id, len(drift),
        )
    return drift


def consolidate_entries(*, chain: str, owner_id: str, actor: Actor | None = None) -> list[dict]:
    """
    Merge duplicate batches of each product into the oldest one.

    Only batches with the same unit and final price are merged, so the kept
    batch still satisfies total_value == final_price * quantity. Quantities
    and values are summed into the oldest entry of each price group, the
    others are deleted and the product summaries rebuilt. FIFO position of
    the merged units moves to the oldest batch.
    """
    profile = get_chain(chain)

    def _op():
        merged = []
        grouped: dict[tuple, list[StockEntry]] = {}
        for e in _owner_entries(profile, owner_id, lock=True):
            grouped.setdefault((e.product_id, e.unit_price, e.final_price), []).append(e)
        now = utcnow()
        for (product_id, _unit_price, _final_price), entries in grouped.items():
            if len(entries) < 2:
                continue
            keeper, duplicates = entries[0], entries[1:]
            for dup in duplicates:
                keeper.quantity += dup.quantity
                keeper.available_quantity += dup.available_quantity
                keeper.used_quantity += dup.used_quantity
                if dup.total_value is not None:
                    keeper.total_value = quantize(Decimal(keeper.total_value or 0) + Decimal(dup.total_value))
                db.session.delete(dup)
            keeper.notes = f"{keeper.notes or ''}\nConsolidated {len(duplicates)} batch(es)".strip()
            keeper.last_updated = now
            db.session.flush()
            _rebuild_product_summary(profile, owner_id, product_id)
            merged.append({
                "product_id": product_id,
                "kept_entry_id": keeper.id,
                "merged_entry_ids": [d.id for d in duplicates],
                "quantity": keeper.quantity,
                "final_price": keeper.final_price,
            })

        if merged:
            append_activity(
                event_type="stock.consolidated",
                event_category="maintenance",
                entity_type="owner",
                entity_id=owner_id,
                actor=actor,
                chain=profile.code,
                payload={"products": sorted({m["product_id"] for m in merged})},
            )
        return merged

    merged = run_atomic(_op, operation="consolidate_entries")
    current_app.logger.info("Consolidated %d product(s) for %s/%s", len(merged), chain, owner_id)
    return merged
