from decimal import Decimal

import pytest

from stockchain.errors import InsufficientStock, ValidationError
from stockchain.extensions import db
from stockchain.models import Invoice
from stockchain.services import invoice_service, stock_ledger_service


class TestReleaseInvoice:
    """Invoice lines consume the holder's stock FIFO, all lines or none."""

    def test_release_consumes_every_line(self, db_session, direct_rep, seed_stock):
        first = seed_stock("direct_rep", direct_rep, "soap", 5, minutes=0)
        second = seed_stock("direct_rep", direct_rep, "soap", 5, minutes=10)
        seed_stock("direct_rep", direct_rep, "shampoo", 3)

        invoice = invoice_service.release_invoice(
            chain="direct_rep",
            owner=direct_rep,
            invoice_no="INV-1",
            items=[
                {"productId": "soap", "quantity": 7, "unitPrice": 12, "description": "Soap"},
                {"productId": "shampoo", "quantity": 2, "unitPrice": "20.00"},
            ],
            discount_percent=10,
            invoice_date="2026-03-01",
            bill_to={"name": "Corner Shop", "phone": "555-0100"},
        )

        assert invoice.subtotal == Decimal("124.00")
        assert invoice.discount_amount == Decimal("12.40")
        assert invoice.net_total == Decimal("111.60")
        data = invoice.to_dict()
        assert data["bill_to"]["name"] == "Corner Shop"
        assert data["date"] == "2026-03-01"
        assert [line["amount"] for line in data["items"]] == [84.0, 40.0]

        soap_first = stock_ledger_service.get_entry(chain="direct_rep", owner_id="dr-1", entry_id=first.id)
        soap_second = stock_ledger_service.get_entry(chain="direct_rep", owner_id="dr-1", entry_id=second.id)
        assert soap_first.available_quantity == 0
        assert soap_second.available_quantity == 3
        assert "Used 2 units: Invoice: INV-1" in soap_second.notes
        assert stock_ledger_service.get_available_quantity(
            chain="direct_rep", owner_id="dr-1", product_id="shampoo"
        ) == 1

    def test_short_line_releases_nothing(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 10)
        seed_stock("direct_rep", direct_rep, "shampoo", 1)

        with pytest.raises(InsufficientStock):
            invoice_service.release_invoice(
                chain="direct_rep",
                owner=direct_rep,
                invoice_no="INV-2",
                items=[
                    {"productId": "soap", "quantity": 4, "unitPrice": 12},
                    {"productId": "shampoo", "quantity": 2, "unitPrice": 20},
                ],
            )

        assert stock_ledger_service.get_available_quantity(
            chain="direct_rep", owner_id="dr-1", product_id="soap"
        ) == 10
        assert db.session.query(Invoice).count() == 0

    def test_duplicate_invoice_number(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 10)
        line = [{"productId": "soap", "quantity": 1, "unitPrice": 12}]
        invoice_service.release_invoice(chain="direct_rep", owner=direct_rep, invoice_no="INV-3", items=line)

        with pytest.raises(ValidationError):
            invoice_service.release_invoice(chain="direct_rep", owner=direct_rep, invoice_no="INV-3", items=line)

        assert stock_ledger_service.get_available_quantity(
            chain="direct_rep", owner_id="dr-1", product_id="soap"
        ) == 9

    @pytest.mark.parametrize("items, discount", [
        ([], 0),
        ([{"quantity": 1, "unitPrice": 1}], 0),
        ([{"productId": "soap", "quantity": 0, "unitPrice": 1}], 0),
        ([{"productId": "soap", "quantity": 1}], 0),
        ([{"productId": "soap", "quantity": 1, "unitPrice": 1}], 120),
    ])
    def test_invalid_invoices(self, db_session, direct_rep, items, discount):
        with pytest.raises(ValidationError):
            invoice_service.release_invoice(
                chain="direct_rep", owner=direct_rep, invoice_no="INV-X", items=items, discount_percent=discount
            )

    def test_list_invoices(self, db_session, direct_rep, seed_stock):
        seed_stock("direct_rep", direct_rep, "soap", 10)
        for number in ("INV-10", "INV-11"):
            invoice_service.release_invoice(
                chain="direct_rep",
                owner=direct_rep,
                invoice_no=number,
                items=[{"productId": "soap", "quantity": 1, "unitPrice": 5}],
            )

        invoices = invoice_service.list_invoices(chain="direct_rep", owner_id="dr-1")
        assert {i.invoice_no for i in invoices} == {"INV-10", "INV-11"}
        assert invoice_service.list_invoices(chain="direct_rep", owner_id="someone-else") == []
