"""
Integration tests - HTTP surface.
"""

from decimal import Decimal


def create_customer(client, code="C001", name="Acme Trading", credit_limit=0):
    response = client.post("/api/v1/customers", json={"code": code, "name": name, "credit_limit": credit_limit})
    assert response.status_code == 201
    return response.json()


def approved_sale(client, customer_id, code, when, amount):
    response = client.post(
        "/api/v1/sales",
        json={"customer_id": customer_id, "code": code, "date": when, "amount": amount},
    )
    assert response.status_code == 201
    sale_id = response.json()["record"]["id"]
    return client.post(f"/api/v1/sales/{sale_id}/approve", json={"user": "manager"})


def approved_payment(client, customer_id, code, when, amount):
    response = client.post(
        "/api/v1/payments",
        json={"customer_id": customer_id, "code": code, "date": when, "amount": amount},
    )
    payment_id = response.json()["record"]["id"]
    return client.post(f"/api/v1/payments/{payment_id}/approve")


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_sample_scenario_over_http(client):
    customer = create_customer(client)
    cid = customer["id"]

    assert approved_sale(client, cid, "1001", "2025-01-10T10:00:00", 100).status_code == 200
    assert approved_payment(client, cid, "2001", "2025-01-20T10:00:00", 60).status_code == 200

    response = client.post(
        "/api/v1/returns",
        json={"customer_id": cid, "code": "3001", "date": "2025-02-05T10:00:00", "amount": 20},
    )
    return_id = response.json()["record"]["id"]
    assert client.post(f"/api/v1/returns/{return_id}/approve").json()["posting"] is None
    received = client.post(f"/api/v1/returns/{return_id}/receive")
    assert received.json()["posting"]["period"] == "2025-02"

    note = client.post(
        "/api/v1/credit-debit-notes",
        json={"customer_id": cid, "code": "4001", "type": "credit", "date": "2025-01-15T10:00:00", "amount": 5},
    )
    assert note.status_code == 201
    assert note.json()["record"]["prefix"] == "CRN"
    assert note.json()["posting"]["months_shifted"] == 1

    january = client.get(f"/api/v1/customers/{cid}/balances/monthly/2025/1").json()
    february = client.get(f"/api/v1/customers/{cid}/balances/monthly/2025/2").json()
    assert Decimal(january["closing_balance"]) == Decimal("-35")
    assert Decimal(february["closing_balance"]) == Decimal("-15")

    balance = client.get(f"/api/v1/customers/{cid}/balance").json()
    assert Decimal(balance["current_balance"]) == Decimal("-15")
    assert balance["status"] == "debit"
    assert Decimal(balance["owed"]) == Decimal("15")

    statement = client.get(f"/api/v1/customers/{cid}/statement").json()
    assert Decimal(statement["stats"]["balance"]) == Decimal("-15")
    assert statement["sort_direction"] == "desc"
    assert [line["type"] for line in statement["transactions"]] == [
        "Sales Return", "Payment", "Credit Note", "Sale Invoice",
    ]

    yearly = client.get(f"/api/v1/customers/{cid}/balances/yearly/2025").json()
    assert Decimal(yearly["closing_balance"]) == Decimal("-15")


def test_statement_pagination_and_sorting(client):
    cid = create_customer(client)["id"]
    for day in range(1, 21):
        approved_sale(client, cid, f"S{day}", f"2025-03-{day:02d}T09:00:00", 10)

    response = client.get(
        f"/api/v1/customers/{cid}/statement",
        params={"with_page": True, "page": 2, "per_page": 15, "sort_direction": "desc"},
    )
    body = response.json()
    assert body["pagination"] == {"total": 20, "per_page": 15, "current_page": 2, "last_page": 2}
    assert len(body["transactions"]) == 5
    assert Decimal(body["transactions"][-1]["balance"]) == Decimal("-10")
    assert Decimal(body["stats"]["balance"]) == Decimal("-200")


def test_statement_rejects_bad_filters(client):
    cid = create_customer(client)["id"]

    response = client.get(
        f"/api/v1/customers/{cid}/statement",
        params={"from_date": "2025-02-01", "to_date": "2025-01-01"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_DATE_RANGE"

    response = client.get(f"/api/v1/customers/{cid}/statement", params={"transaction_type": "refund"})
    assert response.status_code == 400


def test_statement_unknown_customer(client):
    response = client.get("/api/v1/customers/999/statement")
    assert response.status_code == 404
    assert response.json()["code"] == "CUSTOMER_NOT_FOUND"


def test_statement_lookup(client):
    cid = create_customer(client, code="C042", name="Northwind")["id"]
    approved_sale(client, cid, "1001", "2025-01-10T10:00:00", 70)

    body = client.get("/api/v1/statements", params={"customer": "north"}).json()
    assert body["customer"]["code"] == "C042"
    assert len(body["transactions"]) == 1

    empty = client.get("/api/v1/statements", params={"customer": "missing"}).json()
    assert empty["customer"] is None
    assert empty["transactions"] == []


def test_credit_limit_blocks_sale_approval(client):
    cid = create_customer(client, credit_limit=150)["id"]
    assert approved_sale(client, cid, "1001", "2025-01-10T10:00:00", 100).status_code == 200

    response = approved_sale(client, cid, "1002", "2025-01-11T10:00:00", 60)
    assert response.status_code == 409
    assert response.json()["code"] == "CREDIT_LIMIT_EXCEEDED"

    balance = client.get(f"/api/v1/customers/{cid}/balance").json()
    assert Decimal(balance["current_balance"]) == Decimal("-100")


def test_receive_before_approve_is_rejected(client):
    cid = create_customer(client)["id"]
    response = client.post(
        "/api/v1/returns",
        json={"customer_id": cid, "code": "3001", "date": "2025-02-05T10:00:00", "amount": 20},
    )
    return_id = response.json()["record"]["id"]

    response = client.post(f"/api/v1/returns/{return_id}/receive")
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SOURCE_STATE"


def test_foreign_currency_is_normalised(client):
    cid = create_customer(client)["id"]
    response = client.post(
        "/api/v1/payments",
        json={
            "customer_id": cid,
            "code": "2001",
            "date": "2025-01-20T10:00:00",
            "amount": 150000,
            "currency": "IQD",
            "currency_rate": 1500,
        },
    )
    assert Decimal(response.json()["record"]["amount_usd"]) == Decimal("100")


def test_void_sale(client):
    cid = create_customer(client)["id"]
    sale_id = approved_sale(client, cid, "1001", "2025-01-10T10:00:00", 100).json()["record"]["id"]

    response = client.post(f"/api/v1/sales/{sale_id}/void")
    assert response.status_code == 200
    assert response.json()["record"]["approved_at"] is None
    assert Decimal(response.json()["posting"]["current_balance"]) == Decimal("0")


def test_rebuild_and_recalculate_endpoints(client):
    cid = create_customer(client)["id"]
    approved_sale(client, cid, "1001", "2025-01-10T10:00:00", 100)
    approved_payment(client, cid, "2001", "2025-03-10T10:00:00", 40)

    rebuild = client.post(f"/api/v1/customers/{cid}/balances/rebuild").json()
    assert rebuild["months_rebuilt"] == 3
    assert Decimal(rebuild["drift"]) == Decimal("0")

    months = client.get(f"/api/v1/customers/{cid}/balances/monthly", params={"year": 2025}).json()
    assert [m["month"] for m in months] == [1, 2, 3]
    assert all(m["last_verified_at"] for m in months)

    recalc = client.post("/api/v1/customers/balances/recalculate").json()
    assert recalc["total_customers"] == 1
    assert recalc["updated_count"] == 0

    closing = client.post("/api/v1/customers/balances/yearly-closing", params={"year": 2025}).json()
    assert closing["processed"] == 1


def test_missing_month_is_404(client):
    cid = create_customer(client)["id"]
    assert client.get(f"/api/v1/customers/{cid}/balances/monthly/2025/1").status_code == 404
    assert client.get(f"/api/v1/customers/{cid}/balances/monthly/2025/13").status_code == 400
