# backend/stockchain/services/request_service.py
"""
Stock request workflow shared by every chain that accepts requests.

WHY: A requester raises a demand against the next actor up their chain;
that actor approves (or rejects), then dispatches priced quantities out of
their own ledger. The dispatch leaves a SalesApprovalHistory record that
the requester later claims (claim_service).

LIFECYCLE:
1. pending: created by the requester
2. approved: approver accepted it
3. dispatched: quantities deducted from the dispatcher's ledger, record sent
4. claimed: requester credited (claim_service)
pending -> rejected is terminal.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from flask import current_app

from ..chains import CHAIN_HEAD_OFFICE, ChainProfile, get_chain
from ..config import DISPATCH_POLICY_CLAMP, DISPATCH_POLICY_STRICT
from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..extensions import db
from ..identity import Actor
from ..models import SalesApprovalHistory, SalesApprovalItem, StockRequest, StockRequestItem
from ..models.approvals import APPROVAL_STATUS_SENT
from ..models.requests import (
    PRIORITY_NORMAL,
    PRIORITY_URGENT,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_DISPATCHED,
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_REJECTED,
)
from ..money import quantize
from ..time_utils import utcnow
from .activity_service import append_activity
from .concurrency import lock_for_update, run_atomic
from .pricing import PriceAdjustment
from .stock_ledger_service import _consume_inner, get_available_quantity


PRIORITIES = (PRIORITY_NORMAL, PRIORITY_URGENT)
DISPATCH_POLICIES = (DISPATCH_POLICY_CLAMP, DISPATCH_POLICY_STRICT)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class DispatchOutcome:
    """What a dispatch wrote, plus any units the dispatcher's ledger could not cover."""
    request: StockRequest
    approval: SalesApprovalHistory
    shortfalls: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "request": self.request.to_dict(),
            "approval": self.approval.to_dict(),
            "shortfalls": self.shortfalls,
        }


def product_id_from_name(name: str) -> str:
    """Derive a product id from a display name: lowercased, whitespace runs -> '_'."""
    return _WHITESPACE.sub("_", name.strip().lower())


def _item_quantity(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Item {key}: quantity must be a positive integer")
    return value


def _normalize_mapping_item(key: str, value) -> dict:
    if isinstance(value, Mapping):
        name = value.get("name") or value.get("productName") or key
        product_id = value.get("productId") or value.get("product_id") or key
        qty = value.get("qty", value.get("quantity"))
    else:
        name, product_id, qty = key, key, value
    return {
        "item_key": str(key),
        "product_id": str(product_id),
        "product_name": str(name),
        "quantity": _item_quantity(qty, key),
    }


def _normalize_list_item(index: int, value) -> dict:
    if not isinstance(value, Mapping):
        raise ValidationError(f"Item {index}: must be an object")
    name = value.get("name") or value.get("productName") or value.get("product_name")
    product_id = value.get("productId") or value.get("product_id")
    if not product_id:
        if not name:
            raise ValidationError(f"Item {index}: productId or name is required")
        product_id = product_id_from_name(name)
    qty = value.get("qty", value.get("quantity"))
    return {
        "item_key": str(product_id),
        "product_id": str(product_id),
        "product_name": str(name or product_id),
        "quantity": _item_quantity(qty, str(product_id)),
    }


def normalize_items(items) -> list[dict]:
    """
    Normalize every request item shape accepted at ingress.

    Accepted:
    - {key: {"name", "qty"}}
    - {key: {"productId", "name", "qty"}}
    - {key: <qty>}
    - [{"productId"?, "name"|"productName", "qty"|"quantity"}, ...]

    Returns [{"item_key", "product_id", "product_name", "quantity"}, ...].
    """
    if isinstance(items, Mapping):
        normalized = [_normalize_mapping_item(key, value) for key, value in items.items()]
    elif isinstance(items, (list, tuple)):
        normalized = [_normalize_list_item(i, value) for i, value in enumerate(items)]
    else:
        raise ValidationError("items must be an object or a list")

    if not normalized:
        raise ValidationError("At least one item is required")

    seen = set()
    for item in normalized:
        if item["product_id"] in seen:
            raise ValidationError(f"Duplicate product: {item['product_id']}")
        seen.add(item["product_id"])
    return normalized


def _get_request_for_update(request_id: int) -> StockRequest:
    req = lock_for_update(db.session.query(StockRequest).filter_by(id=request_id)).first()
    if not req:
        raise NotFound(f"Request {request_id} not found")
    return req


def _require_status(req: StockRequest, action: str, *required: str) -> None:
    if req.status not in required:
        raise InvalidStateTransition(action, req.status, required)


def _require_distributor_scope(profile: ChainProfile, req: StockRequest, actor: Actor) -> None:
    """Distributor-scoped requests are handled only by the distributor they were raised against."""
    if profile.scoped_by_distributor and req.distributor_id != actor.id:
        raise ValidationError(f"Request {req.id} belongs to another distributor")


def create_request(
    *,
    chain: str,
    requester: Actor,
    items,
    priority: str = PRIORITY_NORMAL,
    notes: str | None = None,
) -> StockRequest:
    """
    Raise a new request (status: pending).

    Args:
        chain: Chain code the requester belongs to
        requester: Acting requester
        items: Any accepted item shape (see normalize_items)
        priority: normal or urgent
        notes: Free text for the approver

    Returns:
        StockRequest: The created request

    Raises:
        ValidationError: Unknown chain, chain without requests, bad items
    """
    profile = get_chain(chain)
    if not profile.accepts_requests:
        raise ValidationError(f"Chain {profile.code} does not accept requests")
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of {', '.join(PRIORITIES)}")
    if profile.scoped_by_distributor and not requester.distributor_id:
        raise ValidationError("distributor_id is required for this chain")

    normalized = normalize_items(items)

    def _op():
        req = StockRequest(
            chain=profile.code,
            requested_by=requester.id,
            requested_by_name=requester.name,
            requested_by_role=requester.role,
            distributor_id=requester.distributor_id if profile.scoped_by_distributor else None,
            distributor_name=requester.distributor_name if profile.scoped_by_distributor else None,
            status=REQUEST_STATUS_PENDING,
            priority=priority,
            notes=notes,
            updated_at=utcnow(),
        )
        for item in normalized:
            req.items.append(StockRequestItem(**item))
        db.session.add(req)
        db.session.flush()

        append_activity(
            event_type="request.created",
            event_category="requests",
            entity_type="stock_request",
            entity_id=req.id,
            actor=requester,
            chain=profile.code,
            request_id=req.id,
            note=notes,
            payload={"items": {i["item_key"]: i["quantity"] for i in normalized}, "priority": priority},
        )
        return req

    return run_atomic(_op, operation="create_request")


def _approve_inner(req: StockRequest, approver: Actor, notes: str | None) -> StockRequest:
    profile = get_chain(req.chain)
    _require_status(req, "approve", REQUEST_STATUS_PENDING)
    _require_distributor_scope(profile, req, approver)

    now = utcnow()
    req.status = REQUEST_STATUS_APPROVED
    req.approved_by = approver.id
    req.approved_by_name = approver.name
    req.approved_at = now
    req.approval_notes = notes
    req.updated_at = now
    db.session.flush()

    append_activity(
        event_type="request.approved",
        event_category="requests",
        entity_type="stock_request",
        entity_id=req.id,
        actor=approver,
        chain=req.chain,
        request_id=req.id,
        note=notes,
    )
    return req


def approve(*, request_id: int, approver: Actor, notes: str | None = None) -> StockRequest:
    """pending -> approved. Any other status raises InvalidStateTransition."""
    def _op():
        return _approve_inner(_get_request_for_update(request_id), approver, notes)

    return run_atomic(_op, operation="approve")


def reject(*, request_id: int, approver: Actor, reason: str | None = None) -> StockRequest:
    """pending -> rejected (terminal)."""
    def _op():
        req = _get_request_for_update(request_id)
        _require_status(req, "reject", REQUEST_STATUS_PENDING)
        _require_distributor_scope(get_chain(req.chain), req, approver)

        now = utcnow()
        req.status = REQUEST_STATUS_REJECTED
        req.rejected_by = approver.id
        req.rejected_at = now
        req.rejection_reason = reason
        req.updated_at = now
        db.session.flush()

        append_activity(
            event_type="request.rejected",
            event_category="requests",
            entity_type="stock_request",
            entity_id=req.id,
            actor=approver,
            chain=req.chain,
            request_id=req.id,
            note=reason,
        )
        return req

    return run_atomic(_op, operation="reject")


def _resolve_dispatch_quantities(req: StockRequest, quantities: Mapping | None) -> dict[str, int]:
    """
    Dispatched quantity per item key; items not mentioned ship as requested.

    A line may ship less than requested, never more.
    """
    if quantities is None:
        quantities = {}
    if not isinstance(quantities, Mapping):
        raise ValidationError("quantities must be an object keyed by item")
    unknown = set(quantities) - {item.item_key for item in req.items}
    if unknown:
        raise ValidationError(f"Unknown item(s): {', '.join(sorted(unknown))}")

    resolved = {}
    for item in req.items:
        qty = quantities.get(item.item_key, item.quantity)
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            raise ValidationError(f"Item {item.item_key}: dispatched quantity must be a non-negative integer")
        if qty > item.quantity:
            raise ValidationError(
                f"Item {item.item_key}: cannot dispatch {qty}, only {item.quantity} requested"
            )
        resolved[item.item_key] = qty
    if not any(resolved.values()):
        raise ValidationError("Nothing to dispatch")
    return resolved


def _resolve_pricing(profile: ChainProfile, req: StockRequest, pricing: Mapping | None) -> dict[str, PriceAdjustment]:
    if pricing is not None and not isinstance(pricing, Mapping):
        raise ValidationError("pricing must be an object keyed by item")
    if not profile.tracks_pricing or not pricing:
        return {}
    unknown = set(pricing) - {item.item_key for item in req.items}
    if unknown:
        raise ValidationError(f"Pricing for unknown item(s): {', '.join(sorted(unknown))}")
    return {key: PriceAdjustment.from_mapping(value) for key, value in pricing.items()}


def _deduct_from_dispatcher(
    supplier: ChainProfile,
    owner_id: str,
    req: StockRequest,
    quantities: dict[str, int],
    policy: str,
) -> list[dict]:
    """
    Take dispatched units out of the dispatcher's own ledger.

    strict: any shortfall raises InsufficientStock and nothing is deducted.
    clamp: deduct what is there, report the rest.
    """
    shortfalls = []
    reason = f"Dispatched for request {req.id}"
    for item in req.items:
        qty = quantities[item.item_key]
        if qty == 0:
            continue
        if policy == DISPATCH_POLICY_STRICT:
            _consume_inner(profile=supplier, owner_id=owner_id, product_id=item.product_id, quantity=qty, reason=reason)
            continue

        available = get_available_quantity(chain=supplier.code, owner_id=owner_id, product_id=item.product_id)
        deducted = min(qty, available)
        if deducted > 0:
            _consume_inner(profile=supplier, owner_id=owner_id, product_id=item.product_id, quantity=deducted, reason=reason)
        if deducted < qty:
            shortfalls.append({
                "item_key": item.item_key,
                "product_id": item.product_id,
                "requested": qty,
                "deducted": deducted,
                "shortfall": qty - deducted,
            })

    if shortfalls:
        current_app.logger.warning(
            "Dispatch of request %s clamped at available stock for %s: %s",
            req.id, owner_id, ", ".join(f"{s['product_id']} short {s['shortfall']}" for s in shortfalls),
        )
    return shortfalls


def _write_approval_record(
    req: StockRequest,
    dispatcher: Actor,
    quantities: dict[str, int],
    adjustments: dict[str, PriceAdjustment],
    notes: str | None,
    is_completed_by_fg: bool,
) -> SalesApprovalHistory:
    """Create, or overwrite, the request's single approval record with status sent."""
    record = lock_for_update(
        db.session.query(SalesApprovalHistory).filter_by(request_id=req.id)
    ).first()
    if record is None:
        record = SalesApprovalHistory(request_id=req.id)
        db.session.add(record)
    else:
        record.items.clear()

    total_quantity = 0
    total_value = None
    for item in req.items:
        qty = quantities[item.item_key]
        if qty == 0:
            continue
        adjustment = adjustments.get(item.item_key)
        line_value = quantize(adjustment.final_price * qty) if adjustment else None
        record.items.append(SalesApprovalItem(
            item_key=item.item_key,
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=qty,
            unit_price=adjustment.unit_price if adjustment else None,
            discount_percent=adjustment.discount_percent if adjustment else None,
            adjustment_type=adjustment.adjustment_type if adjustment else None,
            adjustment_value=adjustment.adjustment_value if adjustment else None,
            final_price=adjustment.final_price if adjustment else None,
            total_value=line_value,
        ))
        total_quantity += qty
        if line_value is not None:
            total_value = (total_value or Decimal("0")) + line_value

    record.chain = req.chain
    record.requester_id = req.requested_by
    record.requester_name = req.requested_by_name
    record.requester_role = req.requested_by_role
    record.distributor_id = req.distributor_id
    record.distributor_name = req.distributor_name
    record.approved_by = dispatcher.id
    record.approved_by_name = dispatcher.name
    record.status = APPROVAL_STATUS_SENT
    record.is_completed_by_fg = is_completed_by_fg
    record.total_quantity = total_quantity
    record.total_value = quantize(total_value)
    record.notes = notes
    record.sent_at = utcnow()
    record.claimed_at = None
    record.claimed_by = None
    record.claimed_by_name = None
    db.session.flush()
    return record


def _dispatch_inner(
    req: StockRequest,
    dispatcher: Actor,
    quantities: Mapping | None,
    pricing: Mapping | None,
    notes: str | None,
    *,
    source_owner_id: str | None,
    policy: str,
    is_completed_by_fg: bool,
) -> DispatchOutcome:
    profile = get_chain(req.chain)
    _require_status(req, "dispatch", REQUEST_STATUS_APPROVED)
    _require_distributor_scope(profile, req, dispatcher)

    resolved = _resolve_dispatch_quantities(req, quantities)
    adjustments = _resolve_pricing(profile, req, pricing)

    # (a) request status, dispatched quantities and pricing
    now = utcnow()
    req.status = REQUEST_STATUS_DISPATCHED
    req.dispatched_by = dispatcher.id
    req.dispatched_by_name = dispatcher.name
    req.dispatched_at = now
    req.dispatch_notes = notes
    req.updated_at = now
    for item in req.items:
        item.dispatched_quantity = resolved[item.item_key]
        adjustment = adjustments.get(item.item_key)
        if adjustment is not None:
            item.unit_price = adjustment.unit_price
            item.adjustment_type = adjustment.adjustment_type
            item.adjustment_value = adjustment.adjustment_value
            item.final_price = adjustment.final_price
    db.session.flush()

    # (b) deduct from the dispatcher's ledger in the supplying chain
    supplier = get_chain(profile.supplier_chain)
    shortfalls = _deduct_from_dispatcher(
        supplier, source_owner_id or dispatcher.id, req, resolved, policy
    )

    # (c) + (d) final prices land on the approval record
    record = _write_approval_record(req, dispatcher, resolved, adjustments, notes, is_completed_by_fg)

    append_activity(
        event_type="request.dispatched",
        event_category="requests",
        entity_type="stock_request",
        entity_id=req.id,
        actor=dispatcher,
        chain=req.chain,
        request_id=req.id,
        note=notes,
        payload={
            "quantities": resolved,
            "total_value": record.total_value,
            "shortfalls": shortfalls,
            "is_completed_by_fg": is_completed_by_fg,
        },
    )
    return DispatchOutcome(request=req, approval=record, shortfalls=shortfalls)


def _dispatch_policy(policy: str | None) -> str:
    policy = policy or current_app.config.get("DISPATCH_STOCK_POLICY", DISPATCH_POLICY_CLAMP)
    if policy not in DISPATCH_POLICIES:
        raise ValidationError(f"Dispatch stock policy must be one of {', '.join(DISPATCH_POLICIES)}")
    return policy


def dispatch_with_pricing(
    *,
    request_id: int,
    dispatcher: Actor,
    quantities: Mapping | None = None,
    pricing: Mapping | None = None,
    notes: str | None = None,
    source_owner_id: str | None = None,
    policy: str | None = None,
) -> DispatchOutcome:
    """
    Dispatch an approved request (approved -> dispatched).

    Args:
        request_id: Request to dispatch
        dispatcher: Acting approver
        quantities: {item_key: qty}; items left out ship their requested qty
        pricing: {item_key: {unitPrice, adjustmentType, adjustmentValue}}
        notes: Dispatch notes, copied to the approval record
        source_owner_id: Ledger owner the units leave from (default: dispatcher)
        policy: clamp or strict (default: DISPATCH_STOCK_POLICY)

    Returns:
        DispatchOutcome: request, sent approval record, shortfalls (clamp only)

    Raises:
        InvalidStateTransition: Request not approved
        InsufficientStock: strict policy and the ledger falls short
    """
    policy = _dispatch_policy(policy)

    def _op():
        return _dispatch_inner(
            _get_request_for_update(request_id),
            dispatcher,
            quantities,
            pricing,
            notes,
            source_owner_id=source_owner_id,
            policy=policy,
            is_completed_by_fg=False,
        )

    return run_atomic(_op, operation="dispatch_with_pricing")


def approve_and_dispatch(
    *,
    request_id: int,
    dispatcher: Actor,
    quantities: Mapping | None = None,
    pricing: Mapping | None = None,
    notes: str | None = None,
    source_owner_id: str | None = None,
    policy: str | None = None,
) -> DispatchOutcome:
    """Head Office one-step flow: pending -> approved -> dispatched in a single transaction."""
    policy = _dispatch_policy(policy)

    def _op():
        req = _get_request_for_update(request_id)
        if get_chain(req.chain).supplier_chain != CHAIN_HEAD_OFFICE:
            raise ValidationError("Only requests supplied by Head Office can be approved and dispatched in one step")
        _approve_inner(req, dispatcher, notes)
        return _dispatch_inner(
            req,
            dispatcher,
            quantities,
            pricing,
            notes,
            source_owner_id=source_owner_id,
            policy=policy,
            is_completed_by_fg=True,
        )

    return run_atomic(_op, operation="approve_and_dispatch")


def get_request(request_id: int) -> StockRequest:
    req = db.session.get(StockRequest, request_id)
    if req is None:
        raise NotFound(f"Request {request_id} not found")
    return req


def list_requests(
    *,
    chain: str,
    requested_by: Optional[str] = None,
    status: Optional[str] = None,
    distributor_id: Optional[str] = None,
    limit: int = 200,
) -> list[StockRequest]:
    profile = get_chain(chain)
    q = db.session.query(StockRequest).filter(StockRequest.chain == profile.code)
    if requested_by is not None:
        q = q.filter(StockRequest.requested_by == requested_by)
    if status is not None:
        q = q.filter(StockRequest.status == status)
    if distributor_id is not None:
        q = q.filter(StockRequest.distributor_id == distributor_id)
    return q.order_by(StockRequest.created_at.desc(), StockRequest.id.desc()).limit(limit).all()
