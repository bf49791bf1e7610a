# Overview: Claim reconciliation; turns a sent approval record into stock entries in the requester's ledger.

# backend/stockchain/services/claim_service.py
"""
Claim flow.

A dispatched request leaves exactly one SalesApprovalHistory record with
status sent. The original requester claims it: the record flips to claimed,
each dispatched line becomes a StockEntry (source "dispatch") in the
requester's ledger for the record's chain, and the request moves
dispatched -> claimed. All of it is one transaction.

Each credited batch carries the idempotency key claim:<request_id>:<product_id>,
so a retried claim can never credit the same line twice.
"""
from __future__ import annotations

from typing import Optional

from ..chains import get_chain
from ..errors import NotClaimable
from ..extensions import db
from ..identity import Actor
from ..models import SalesApprovalHistory, StockRequest
from ..models.approvals import APPROVAL_STATUS_CLAIMED, APPROVAL_STATUS_SENT
from ..models.requests import REQUEST_STATUS_CLAIMED, REQUEST_STATUS_DISPATCHED
from ..models.stock import SOURCE_DISPATCH
from ..time_utils import utcnow
from .activity_service import append_activity
from .concurrency import lock_for_update, run_atomic
from .pricing import EntryPricing
from .stock_ledger_service import _add_entry_inner


def claim_key(request_id: int, product_id: str) -> str:
    return f"claim:{request_id}:{product_id}"


def _find_claimable_record(request_id: int, claimant: Actor, require_completed_by_fg: bool) -> SalesApprovalHistory:
    q = db.session.query(SalesApprovalHistory).filter_by(
        request_id=request_id,
        status=APPROVAL_STATUS_SENT,
    )
    if require_completed_by_fg:
        q = q.filter_by(is_completed_by_fg=True)
    records = lock_for_update(q).all()

    if not records:
        raise NotClaimable(f"Request {request_id} has no dispatch waiting to be claimed")
    if len(records) > 1:
        raise NotClaimable(f"Request {request_id} has {len(records)} sent records; refusing to guess")
    record = records[0]
    if record.requester_id != claimant.id:
        raise NotClaimable(f"Request {request_id} was not raised by {claimant.id}")
    return record


def claim(*, request_id: int, claimant: Actor, require_completed_by_fg: bool = False) -> dict:
    """
    Claim a dispatched request into the claimant's ledger.

    Returns {"request", "approval", "entries"} as dicts.
    Raises NotClaimable when there is not exactly one sent record for the
    request or the claimant is not its requester; a second claim of the
    same request therefore fails without touching stock.
    """
    def _op():
        record = _find_claimable_record(request_id, claimant, require_completed_by_fg)
        profile = get_chain(record.chain)

        # Flip before crediting; a concurrent claim now loses on version_id
        now = utcnow()
        record.status = APPROVAL_STATUS_CLAIMED
        record.claimed_at = now
        record.claimed_by = claimant.id
        record.claimed_by_name = claimant.name
        db.session.flush()

        owner = Actor(
            id=record.requester_id,
            name=record.requester_name or claimant.name,
            role=record.requester_role or claimant.role,
            distributor_id=record.distributor_id,
            distributor_name=record.distributor_name,
            location=claimant.location,
        )

        entries = []
        for item in record.items:
            pricing = EntryPricing(
                unit_price=item.unit_price,
                discount_percent=item.discount_percent,
                final_price=item.final_price,
            ) if item.final_price is not None else None
            entries.append(_add_entry_inner(
                profile=profile,
                owner=owner,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                request_id=str(request_id),
                source=SOURCE_DISPATCH,
                pricing=pricing,
                received_at=now,
                notes=f"Claimed from request {request_id}",
                idempotency_key=claim_key(request_id, item.product_id),
            ))

        req = lock_for_update(db.session.query(StockRequest).filter_by(id=request_id)).first()
        if req is not None and req.status == REQUEST_STATUS_DISPATCHED:
            req.status = REQUEST_STATUS_CLAIMED
            req.claimed_by = claimant.id
            req.claimed_at = now
            req.updated_at = now
        db.session.flush()

        append_activity(
            event_type="request.claimed",
            event_category="claims",
            entity_type="sales_approval",
            entity_id=record.id,
            actor=claimant,
            chain=profile.code,
            request_id=request_id,
            payload={
                "entries": [e.id for e in entries],
                "total_quantity": record.total_quantity,
            },
        )
        return {
            "request": req.to_dict() if req is not None else None,
            "approval": record.to_dict(),
            "entries": [e.to_dict() for e in entries],
        }

    return run_atomic(_op, operation="claim")


def list_claimable(claimant: Actor) -> list[SalesApprovalHistory]:
    """Sent records raised by the claimant, oldest first."""
    return (
        db.session.query(SalesApprovalHistory)
        .filter_by(requester_id=claimant.id, status=APPROVAL_STATUS_SENT)
        .order_by(SalesApprovalHistory.sent_at.asc(), SalesApprovalHistory.id.asc())
        .all()
    )


def list_approval_history(
    *,
    chain: Optional[str] = None,
    requester_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 200,
) -> list[SalesApprovalHistory]:
    q = db.session.query(SalesApprovalHistory)
    if chain is not None:
        q = q.filter(SalesApprovalHistory.chain == get_chain(chain).code)
    if requester_id is not None:
        q = q.filter(SalesApprovalHistory.requester_id == requester_id)
    if status is not None:
        q = q.filter(SalesApprovalHistory.status == status)
    return q.order_by(SalesApprovalHistory.sent_at.desc(), SalesApprovalHistory.id.desc()).limit(limit).all()
