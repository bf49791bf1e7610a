"""
Claim reconciliation tests: exactly-once crediting of dispatched stock.
"""

from decimal import Decimal

import pytest

from stockchain.errors import NotClaimable
from stockchain.extensions import db
from stockchain.models import SalesApprovalHistory, StockEntry
from stockchain.services import claim_service, request_service, stock_ledger_service
from stockchain.services.activity_service import list_activity


def _dispatched_request(requester, head_office, seed_stock, *, one_step=False, chain="distributor", qty=10):
    seed_stock("head_office", head_office, "soap", 50, unit_price=Decimal("60.00"))
    req = request_service.create_request(
        chain=chain, requester=requester, items={"soap": {"name": "Soap", "qty": qty}}
    )
    pricing = {"soap": {"unitPrice": 100, "adjustmentType": "percentage", "adjustmentValue": 10}}
    if one_step:
        request_service.approve_and_dispatch(request_id=req.id, dispatcher=head_office, pricing=pricing)
    else:
        request_service.approve(request_id=req.id, approver=head_office)
        request_service.dispatch_with_pricing(request_id=req.id, dispatcher=head_office, pricing=pricing)
    return req.id


class TestClaim:
    """A sent record is claimed once, by its requester, into their ledger."""

    def test_end_to_end_claim(self, db_session, distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)

        result = claim_service.claim(request_id=request_id, claimant=distributor)

        assert len(result["entries"]) == 1
        entry = result["entries"][0]
        assert entry["quantity"] == 10
        assert entry["available_quantity"] == 10
        assert entry["final_price"] == 90.0
        assert entry["source"] == "dispatch"
        assert entry["request_id"] == str(request_id)
        assert entry["path"].startswith("distributorStock/users/dist-1/entries/")
        assert result["approval"]["status"] == "claimed"
        assert result["approval"]["claimed_by"] == "dist-1"
        assert result["request"]["status"] == "claimed"

        summaries = stock_ledger_service.get_summary(chain="distributor", owner_id="dist-1")
        assert len(summaries) == 1
        assert summaries[0].available_quantity == 10
        assert summaries[0].total_value == Decimal("900.00")

    def test_second_claim_is_refused(self, db_session, distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)
        claim_service.claim(request_id=request_id, claimant=distributor)

        with pytest.raises(NotClaimable):
            claim_service.claim(request_id=request_id, claimant=distributor)

        assert db.session.query(StockEntry).filter_by(chain="distributor").count() == 1

    def test_only_requester_may_claim(self, db_session, distributor, other_distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)

        with pytest.raises(NotClaimable):
            claim_service.claim(request_id=request_id, claimant=other_distributor)

        record = db.session.query(SalesApprovalHistory).filter_by(request_id=request_id).one()
        assert record.status == "sent"

    def test_nothing_to_claim_before_dispatch(self, db_session, distributor, head_office):
        req = request_service.create_request(chain="distributor", requester=distributor, items={"soap": 3})
        request_service.approve(request_id=req.id, approver=head_office)

        with pytest.raises(NotClaimable):
            claim_service.claim(request_id=req.id, claimant=distributor)

    def test_completed_by_fg_filter(self, db_session, direct_rep, head_office, seed_stock):
        request_id = _dispatched_request(direct_rep, head_office, seed_stock, chain="direct_rep")

        with pytest.raises(NotClaimable):
            claim_service.claim(request_id=request_id, claimant=direct_rep, require_completed_by_fg=True)

    def test_one_step_dispatch_claims_with_fg_filter(self, db_session, direct_rep, head_office, seed_stock):
        request_id = _dispatched_request(direct_rep, head_office, seed_stock, chain="direct_rep", one_step=True)

        result = claim_service.claim(request_id=request_id, claimant=direct_rep, require_completed_by_fg=True)

        assert result["approval"]["is_completed_by_fg"] is True
        assert result["entries"][0]["path"].startswith("drstock/users/dr-1/entries/")

    def test_retried_claim_does_not_double_credit(self, db_session, distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)
        first = claim_service.claim(request_id=request_id, claimant=distributor)

        # Record left in sent state, as if the flip had been lost
        record = db.session.query(SalesApprovalHistory).filter_by(request_id=request_id).one()
        record.status = "sent"
        db.session.commit()

        second = claim_service.claim(request_id=request_id, claimant=distributor)

        assert second["entries"][0]["id"] == first["entries"][0]["id"]
        summary = stock_ledger_service.get_summary(chain="distributor", owner_id="dist-1")[0]
        assert summary.total_quantity == 10
        assert summary.entry_count == 1

    def test_rep_claims_distributor_dispatch(self, db_session, dist_rep, distributor, seed_stock):
        seed_stock("distributor", distributor, "soap", 8, unit_price=Decimal("50.00"))
        req = request_service.create_request(chain="distributor_rep", requester=dist_rep, items={"soap": 3})
        request_service.approve(request_id=req.id, approver=distributor)
        request_service.dispatch_with_pricing(
            request_id=req.id,
            dispatcher=distributor,
            pricing={"soap": {"unitPrice": 50, "adjustmentType": "fixed", "adjustmentValue": 45}},
        )

        result = claim_service.claim(request_id=req.id, claimant=dist_rep)

        entry = result["entries"][0]
        assert entry["path"].startswith("disrepstock/users/rep-1/entries/")
        assert entry["final_price"] == 45.0
        assert entry["distributor_id"] == "dist-1"
        assert stock_ledger_service.get_available_quantity(
            chain="distributor", owner_id="dist-1", product_id="soap"
        ) == 5

    def test_activity_trail(self, db_session, distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)
        claim_service.claim(request_id=request_id, claimant=distributor)

        events = [e.event_type for e in list_activity(request_id=request_id)]
        assert sorted(events) == sorted([
            "request.created",
            "request.approved",
            "request.dispatched",
            "request.claimed",
        ])


class TestClaimListings:
    def test_list_claimable(self, db_session, distributor, other_distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)

        mine = claim_service.list_claimable(distributor)
        assert [r.request_id for r in mine] == [request_id]
        assert claim_service.list_claimable(other_distributor) == []

        claim_service.claim(request_id=request_id, claimant=distributor)
        assert claim_service.list_claimable(distributor) == []

    def test_list_approval_history(self, db_session, distributor, head_office, seed_stock):
        request_id = _dispatched_request(distributor, head_office, seed_stock)
        claim_service.claim(request_id=request_id, claimant=distributor)

        claimed = claim_service.list_approval_history(chain="distributor", status="claimed")
        assert [r.request_id for r in claimed] == [request_id]
        assert claim_service.list_approval_history(status="sent") == []
