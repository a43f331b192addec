"""Integration tests for the transactions endpoints."""

import pytest


@pytest.fixture
def stock(fake_db):
    fake_db.seed("otcProducts", "otc-1", {"name": "Shampoo", "price": 250, "quantity": 20, "branch_id": "b1"})
    return fake_db


TRANSACTION = {
    "client_id": "c1",
    "branch_id": "b1",
    "items": [
        {"item_id": "otc-1", "type": "otc_product", "quantity": 4, "price": 250},
        {"item_id": "svc-1", "type": "service", "price": 600},
    ],
    "payment_method": "cash",
}


class TestTransactionEndpoints:
    def test_create_void_get(self, api_client, stock):
        created = api_client.post("/api/transactions/createTransaction", json=TRANSACTION)

        assert created.status_code == 201
        transaction_id = created.json()["id"]
        assert created.json()["total"] == 1600
        assert stock.doc("otcProducts", "otc-1")["quantity"] == 16

        voided = api_client.put(
            f"/api/transactions/voidTransaction/{transaction_id}", json={"void_reason": "Wrong client"}
        )
        assert voided.status_code == 200
        assert voided.json()["void_reason"] == "Wrong client"
        assert stock.doc("otcProducts", "otc-1")["quantity"] == 20

        fetched = api_client.get(f"/api/transactions/getTransaction/{transaction_id}")
        assert fetched.json()["payment_status"] == "void"

        again = api_client.put(f"/api/transactions/voidTransaction/{transaction_id}")
        assert again.status_code == 400
        assert again.json() == {"error": "Transaction is already voided"}

    def test_missing_reference_400(self, api_client, stock):
        response = api_client.post("/api/transactions/createTransaction", json={**TRANSACTION, "payment_method": "gcash"})

        assert response.status_code == 400
        assert response.json()["error"] == "Reference number is required when payment method is not cash"

    def test_void_missing_404(self, api_client):
        response = api_client.put("/api/transactions/voidTransaction/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Transaction not found"}

    def test_commissions_recorded_and_removed(self, api_client, stock):
        stock.seed("accounts", "acc-1", {"email": "rina@salon.ph", "role": "cashier"})

        created = api_client.post(
            "/api/transactions/createTransaction",
            json={**TRANSACTION, "accounts": [{"account_email": "rina@salon.ph", "commissionAmount": 160}]},
        )

        assert created.status_code == 201
        assert created.json()["total_commission_amount"] == 160
        assert created.json()["net_sales"] == 1440
        assert stock.doc("accounts", "acc-1")["total_commissions"] == 160

        api_client.put(f"/api/transactions/voidTransaction/{created.json()['id']}")
        assert stock.doc("accounts", "acc-1")["total_commissions"] == 0
        assert stock.docs("commissions") == {}

    def test_invalid_accounts_400(self, api_client, stock):
        response = api_client.post(
            "/api/transactions/createTransaction", json={**TRANSACTION, "accounts": [{"commissionAmount": 5}]}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Account email is required for each account in the accounts array"}


class TestTransactionReadEndpoints:
    @pytest.fixture
    def sales(self, api_client, stock):
        ids = []
        for _ in range(3):
            ids.append(api_client.post("/api/transactions/createTransaction", json=TRANSACTION).json()["id"])
        api_client.put(f"/api/transactions/voidTransaction/{ids[0]}", json={"void_reason": "Test"})
        return ids

    def test_get_all_transactions(self, api_client, sales):
        response = api_client.get("/api/transactions/getAllTransactions", params={"branch_id": "b1", "pageSize": 2})

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["totalCount"] == 3
        assert body["totalPages"] == 2
        assert body["totalCountPaid"] == 2
        assert body["totalCountVoid"] == 1
        assert body["data"][0]["branch_name"] == "Unknown Branch"

    def test_transaction_stats(self, api_client, sales):
        response = api_client.get("/api/transactions/transactionStats/b1")

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["total_transactions"] == 2
        assert stats["total_revenue"] == 3200
        assert stats["payment_method_breakdown"] == {"cash": 2}

    @pytest.mark.parametrize("method", ["get", "put"])
    def test_voided_transactions(self, api_client, sales, method):
        response = getattr(api_client, method)("/api/transactions/voidedTransactions/b1")

        assert response.status_code == 200
        assert [t["id"] for t in response.json()["data"]] == [sales[0]]
        assert response.json()["branch_id"] == "b1"

    def test_bad_date_400(self, api_client):
        response = api_client.get("/api/transactions/getAllTransactions", params={"date_to": "soon"})

        assert response.status_code == 400
        assert response.json() == {"error": "date_to must be YYYY-MM-DD"}
