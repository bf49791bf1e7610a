"""
Summary recalculation, drift detection, and batch consolidation tests.
"""

from decimal import Decimal

from stockchain.extensions import db
from stockchain.models import StockEntry, StockSummary
from stockchain.services import stock_ledger_service, summary_service


def _summary(owner_id, product_id, chain="direct_rep"):
    return (
        db.session.query(StockSummary)
        .filter_by(chain=chain, owner_id=owner_id, product_id=product_id)
        .first()
    )


class TestRecalculate:
    """recalculate() rebuilds cached summaries from the entries."""

    def test_drifted_summary_is_reported_and_rebuilt(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 10, unit_price=Decimal("2.00"))
        seed_stock("direct_rep", direct_rep, "soap", 6, unit_price=Decimal("2.00"), minutes=5)
        stock_ledger_service.consume(chain="direct_rep", owner_id="dr-1", product_id="soap", quantity=4)

        summary = _summary("dr-1", "soap")
        summary.available_quantity = 99
        summary.entry_count = 7
        db.session.commit()

        drift = summary_service.detect_drift(chain="direct_rep", owner_id="dr-1")
        assert len(drift) == 1
        assert drift[0]["issue"] == "mismatch"
        assert drift[0]["fields"]["available_quantity"] == {"cached": 99, "actual": 12}
        assert drift[0]["fields"]["entry_count"] == {"cached": 7, "actual": 2}

        result = summary_service.recalculate(chain="direct_rep", owner_id="dr-1")

        assert result["fixed_entries"] == []
        rebuilt = _summary("dr-1", "soap")
        assert rebuilt.total_quantity == 16
        assert rebuilt.available_quantity == 12
        assert rebuilt.used_quantity == 4
        assert rebuilt.entry_count == 2
        assert rebuilt.total_value == Decimal("32.00")
        assert summary_service.detect_drift(chain="direct_rep", owner_id="dr-1") == []

    def test_recalculate_fixes_entries_first(self, db_session, direct_rep, seed_stock):
        entry = seed_stock("direct_rep", direct_rep, "soap", 10)
        stock_ledger_service.consume(chain="direct_rep", owner_id="dr-1", product_id="soap", quantity=3)

        broken = db.session.get(StockEntry, entry.id)
        broken.available_quantity = 1
        db.session.commit()

        result = summary_service.recalculate(chain="direct_rep", owner_id="dr-1")

        assert result["fixed_entries"] == [{
            "entry_id": entry.id,
            "product_id": "soap",
            "available_before": 1,
            "available_after": 7,
        }]
        assert db.session.get(StockEntry, entry.id).available_quantity == 7
        assert _summary("dr-1", "soap").available_quantity == 7

    def test_summary_without_entries_is_removed(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 2)
        db.session.add(StockSummary(
            chain="direct_rep",
            owner_id="dr-1",
            product_id="ghost",
            product_name="Ghost",
            total_quantity=5,
            available_quantity=5,
            used_quantity=0,
            entry_count=1,
        ))
        db.session.commit()

        drift = summary_service.detect_drift(chain="direct_rep", owner_id="dr-1")
        assert drift == [{"product_id": "ghost", "issue": "summary_without_entries"}]

        result = summary_service.recalculate(chain="direct_rep", owner_id="dr-1")

        assert result["removed_summaries"] == ["ghost"]
        assert _summary("dr-1", "ghost") is None
        assert _summary("dr-1", "soap") is not None

    def test_recalculate_is_scoped_to_owner(self, db_session, direct_rep, seed_stock):
        from stockchain.identity import Actor

        other = Actor(id="dr-2", name="Other Rep", role="DirectRepresentative")
        seed_stock("direct_rep", direct_rep, "soap", 2)
        seed_stock("direct_rep", other, "soap", 3)
        theirs = _summary("dr-2", "soap")
        theirs.available_quantity = 42
        db.session.commit()

        summary_service.recalculate(chain="direct_rep", owner_id="dr-1")

        assert _summary("dr-2", "soap").available_quantity == 42

    def test_consume_rebuilds_missing_summary(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 5)
        db.session.delete(_summary("dr-1", "soap"))
        db.session.commit()

        assert summary_service.detect_drift(chain="direct_rep", owner_id="dr-1") == [
            {"product_id": "soap", "issue": "missing_summary"}
        ]

        stock_ledger_service.consume(chain="direct_rep", owner_id="dr-1", product_id="soap", quantity=2)

        summary = _summary("dr-1", "soap")
        assert summary.total_quantity == 5
        assert summary.available_quantity == 3
        assert summary.used_quantity == 2
        assert summary.entry_count == 1


class TestConsolidate:
    """consolidate_entries() merges duplicate batches into the oldest."""

    def test_duplicates_merge_into_oldest(self, db_session, direct_rep, seed_stock):
        oldest = seed_stock("direct_rep", direct_rep, "soap", 3, unit_price=Decimal("1.00"), minutes=0)
        seed_stock("direct_rep", direct_rep, "soap", 4, unit_price=Decimal("1.00"), minutes=10)
        seed_stock("direct_rep", direct_rep, "soap", 5, unit_price=Decimal("1.00"), minutes=20)
        single = seed_stock("direct_rep", direct_rep, "shampoo", 2, minutes=5)
        stock_ledger_service.consume(chain="direct_rep", owner_id="dr-1", product_id="soap", quantity=2)

        merged = summary_service.consolidate_entries(chain="direct_rep", owner_id="dr-1")

        assert len(merged) == 1
        assert merged[0]["product_id"] == "soap"
        assert merged[0]["kept_entry_id"] == oldest.id
        assert len(merged[0]["merged_entry_ids"]) == 2

        soap = stock_ledger_service.get_entries(chain="direct_rep", owner_id="dr-1", product_id="soap")
        assert len(soap) == 1
        assert soap[0].id == oldest.id
        assert soap[0].quantity == 12
        assert soap[0].available_quantity == 10
        assert soap[0].used_quantity == 2
        assert soap[0].total_value == Decimal("12.00")

        summary = _summary("dr-1", "soap")
        assert summary.entry_count == 1
        assert summary.total_quantity == 12
        assert summary.available_quantity == 10
        assert db.session.get(StockEntry, single.id).quantity == 2
        assert summary_service.detect_drift(chain="direct_rep", owner_id="dr-1") == []

    def test_batches_with_different_prices_stay_apart(self, db_session, distributor, seed_stock):
        cheap = seed_stock("distributor", distributor, "soap", 10, unit_price=Decimal("5.00"), minutes=0)
        dear = seed_stock("distributor", distributor, "soap", 10, unit_price=Decimal("9.00"), minutes=10)
        seed_stock("distributor", distributor, "soap", 4, unit_price=Decimal("5.00"), minutes=20)

        merged = summary_service.consolidate_entries(chain="distributor", owner_id="dist-1")

        assert [(m["kept_entry_id"], m["quantity"]) for m in merged] == [(cheap.id, 14)]
        soap = stock_ledger_service.get_entries(chain="distributor", owner_id="dist-1", product_id="soap")
        assert len(soap) == 2
        for entry in soap:
            assert entry.total_value == entry.final_price * entry.quantity
        assert db.session.get(StockEntry, dear.id).total_value == Decimal("90.00")

        summary = _summary("dist-1", "soap", chain="distributor")
        assert summary.total_quantity == 24
        assert summary.total_value == Decimal("160.00")
        assert summary_service.detect_drift(chain="distributor", owner_id="dist-1") == []
