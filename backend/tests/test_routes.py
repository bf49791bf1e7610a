"""
HTTP route tests through the Flask test client.
"""

from decimal import Decimal


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["details"]["stock_entries"] == 0

    def test_chain_profiles(self, client):
        response = client.get("/api/stock/chains")
        assert response.status_code == 200
        by_code = {c["code"]: c for c in response.json["chains"]}
        assert by_code["direct_showroom"]["tracks_pricing"] is False
        assert by_code["distributor_rep"]["request_collection"] == "disRefReqs"
        assert by_code["head_office"]["stock_prefix"] == "hostock"


class TestActorAndRoleGates:
    def test_missing_actor_is_401(self, client, db_session):
        response = client.get("/api/stock/distributor/dist-1/summary")
        assert response.status_code == 401

    def test_role_cannot_request_in_other_chain(self, client, db_session, showroom_manager, headers_for):
        response = client.post(
            "/api/requests/distributor",
            json={"items": {"soap": 1}},
            headers=headers_for(showroom_manager),
        )
        assert response.status_code == 403
        assert response.json["chain"] == "distributor"

    def test_unknown_chain_is_404(self, client, db_session, distributor, headers_for):
        response = client.post(
            "/api/requests/warehouse",
            json={"items": {"soap": 1}},
            headers=headers_for(distributor),
        )
        assert response.status_code == 404

    def test_cannot_read_another_ledger(self, client, db_session, distributor, headers_for):
        response = client.get("/api/stock/distributor/dist-2/entries", headers=headers_for(distributor))
        assert response.status_code == 403

    def test_head_office_reads_any_ledger(self, client, db_session, distributor, head_office, seed_stock, headers_for):
        seed_stock("distributor", distributor, "soap", 3)
        response = client.get("/api/stock/distributor/dist-1/entries", headers=headers_for(head_office))
        assert response.status_code == 200
        assert len(response.json["entries"]) == 1

    def test_delete_requires_head_office(self, client, db_session, distributor, seed_stock, headers_for):
        entry = seed_stock("distributor", distributor, "soap", 3)
        response = client.delete(
            f"/api/stock/distributor/dist-1/entries/{entry.id}", headers=headers_for(distributor)
        )
        assert response.status_code == 403


class TestStockRoutes:
    def test_receive_and_consume(self, client, db_session, distributor, headers_for):
        headers = headers_for(distributor)
        response = client.post(
            "/api/stock/distributor/dist-1/entries",
            json={
                "product_id": "soap",
                "product_name": "Soap",
                "quantity": 6,
                "pricing": {"unitPrice": 10},
                "expiry_date": "2027-06-30",
            },
            headers=headers,
        )
        assert response.status_code == 201
        assert response.json["available_quantity"] == 6
        assert response.json["total_value"] == 60.0
        assert response.json["expiry_date"] == "2027-06-30"

        response = client.post(
            "/api/stock/distributor/dist-1/consume",
            json={"product_id": "soap", "quantity": 4, "reason": "Display"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json["allocations"][0]["remaining"] == 2

        response = client.get("/api/stock/distributor/dist-1/summary", headers=headers)
        assert response.json["summary"][0]["available_quantity"] == 2
        assert response.json["summary"][0]["used_quantity"] == 4

    def test_over_consumption_is_409(self, client, db_session, distributor, seed_stock, headers_for):
        seed_stock("distributor", distributor, "soap", 3)
        response = client.post(
            "/api/stock/distributor/dist-1/consume",
            json={"product_id": "soap", "quantity": 5},
            headers=headers_for(distributor),
        )
        assert response.status_code == 409
        assert response.json["code"] == "InsufficientStock"
        assert response.json["available"] == 3

    def test_missing_field_is_400(self, client, db_session, distributor, headers_for):
        response = client.post(
            "/api/stock/distributor/dist-1/consume",
            json={"quantity": 5},
            headers=headers_for(distributor),
        )
        assert response.status_code == 400

    def test_transfer(self, client, db_session, dist_rep, seed_stock, headers_for):
        seed_stock("distributor_rep", dist_rep, "soap", 5)
        response = client.post(
            "/api/stock/distributor_rep/rep-1/transfer",
            json={
                "to_owner": {"id": "rep-2", "name": "Rita Rep", "role": "DistributorRepresentative"},
                "product_id": "soap",
                "quantity": 2,
            },
            headers=headers_for(dist_rep),
        )
        assert response.status_code == 201
        assert response.json["owner_id"] == "rep-2"
        assert response.json["source"] == "transfer"

    def test_recalculate_and_drift(self, client, db_session, distributor, head_office, seed_stock, headers_for):
        seed_stock("distributor", distributor, "soap", 3)
        headers = headers_for(head_office)

        response = client.get("/api/stock/distributor/dist-1/drift", headers=headers)
        assert response.status_code == 200
        assert response.json["drift"] == []

        response = client.post("/api/stock/distributor/dist-1/recalculate", headers=headers)
        assert response.status_code == 200
        assert response.json["summaries"][0]["total_quantity"] == 3


class TestWorkflowRoutes:
    """Request -> approve -> dispatch -> claim over HTTP."""

    def test_full_flow(self, client, db_session, distributor, head_office, seed_stock, headers_for):
        seed_stock("head_office", head_office, "soap", 50, unit_price=Decimal("60.00"))

        response = client.post(
            "/api/requests/distributor",
            json={"items": [{"name": "Soap", "qty": 10}], "priority": "urgent"},
            headers=headers_for(distributor),
        )
        assert response.status_code == 201
        request_id = response.json["id"]
        assert response.json["priority"] == "urgent"

        response = client.post(
            f"/api/requests/distributor/{request_id}/dispatch",
            json={},
            headers=headers_for(head_office),
        )
        assert response.status_code == 409
        assert response.json["current_status"] == "pending"

        response = client.post(
            f"/api/requests/distributor/{request_id}/approve",
            json={"notes": "Fine"},
            headers=headers_for(head_office),
        )
        assert response.status_code == 200
        assert response.json["status"] == "approved"

        response = client.post(
            f"/api/requests/distributor/{request_id}/dispatch",
            json={"pricing": {"soap": {"unitPrice": 100, "adjustmentType": "percentage", "adjustmentValue": 10}}},
            headers=headers_for(head_office),
        )
        assert response.status_code == 200
        assert response.json["approval"]["total_quantity"] == 10
        assert response.json["approval"]["total_value"] == 900.0
        assert response.json["shortfalls"] == []

        response = client.get("/api/claims", headers=headers_for(distributor))
        assert [r["request_id"] for r in response.json["claimable"]] == [request_id]

        response = client.post(f"/api/claims/{request_id}", headers=headers_for(distributor))
        assert response.status_code == 200
        assert response.json["entries"][0]["final_price"] == 90.0

        response = client.post(f"/api/claims/{request_id}", headers=headers_for(distributor))
        assert response.status_code == 409
        assert response.json["code"] == "NotClaimable"

        response = client.get("/api/stock/distributor/dist-1/summary", headers=headers_for(distributor))
        assert response.json["summary"][0]["available_quantity"] == 10

        response = client.get(
            f"/api/activity?request_id={request_id}", headers=headers_for(head_office)
        )
        assert len(response.json["events"]) == 4

    def test_dispatch_with_list_quantities_is_400(self, client, db_session, distributor, head_office, headers_for):
        response = client.post(
            "/api/requests/distributor",
            json={"items": {"soap": 2}},
            headers=headers_for(distributor),
        )
        request_id = response.json["id"]
        client.post(
            f"/api/requests/distributor/{request_id}/approve", json={}, headers=headers_for(head_office)
        )

        response = client.post(
            f"/api/requests/distributor/{request_id}/dispatch",
            json={"quantities": ["soap"]},
            headers=headers_for(head_office),
        )
        assert response.status_code == 400
        assert response.json["code"] == "ValidationError"

    def test_request_in_wrong_chain_is_404(self, client, db_session, distributor, head_office, headers_for):
        response = client.post(
            "/api/requests/distributor",
            json={"items": {"soap": 1}},
            headers=headers_for(distributor),
        )
        request_id = response.json["id"]

        response = client.post(
            f"/api/requests/direct_rep/{request_id}/approve",
            json={},
            headers=headers_for(head_office),
        )
        assert response.status_code == 404

    def test_invoice_release(self, client, db_session, direct_rep, seed_stock, headers_for):
        seed_stock("direct_rep", direct_rep, "soap", 4)
        response = client.post(
            "/api/invoices/direct_rep",
            json={
                "invoice_no": "INV-100",
                "items": [{"productId": "soap", "quantity": 3, "unitPrice": 10}],
                "discount_percent": 5,
            },
            headers=headers_for(direct_rep),
        )
        assert response.status_code == 201
        assert response.json["net_total"] == 28.5

        response = client.get("/api/invoices/direct_rep", headers=headers_for(direct_rep))
        assert [i["invoice_no"] for i in response.json["invoices"]] == ["INV-100"]


class TestCli:
    def test_chains_command(self, app):
        result = app.test_cli_runner().invoke(args=["stock", "chains"])
        assert result.exit_code == 0
        assert "distributorStock" in result.output

    def test_recalculate_command(self, app, db_session, distributor, seed_stock):
        seed_stock("distributor", distributor, "soap", 3)
        result = app.test_cli_runner().invoke(
            args=["stock", "recalculate", "--chain", "distributor", "--owner", "dist-1"]
        )
        assert result.exit_code == 0
        assert "Recalculated 1 summaries for distributor/dist-1" in result.output

    def test_drift_command(self, app, db_session, distributor, seed_stock):
        seed_stock("distributor", distributor, "soap", 3)
        result = app.test_cli_runner().invoke(
            args=["stock", "drift", "--chain", "distributor", "--owner", "dist-1"]
        )
        assert result.exit_code == 0
        assert "No drift for distributor/dist-1" in result.output
