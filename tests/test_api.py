from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import main
from config import get_settings
from database import Base, create_db_engine, get_db
from services import VoiceAgentService

NOW = datetime(2025, 4, 10, 9, 0)


@pytest.fixture
def client():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[get_db] = override_db
    main.app.dependency_overrides[main.get_now] = lambda: NOW
    main.app.dependency_overrides[main.get_usd_to_cad] = lambda: Decimal("1.4")
    # no context manager: startup would launch the FX scheduler
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def _create_rent(client) -> dict:
    response = client.post(
        "/api/transactions",
        json={
            "date": "2025-01-31",
            "type": "expense",
            "amount": "100",
            "category": "Rent",
            "is_recurring": True,
        },
    )
    assert response.status_code == 201
    return response.json()


def test_periods_endpoint(client):
    response = client.get("/api/periods")

    assert response.status_code == 200
    rows = {row["period"]: row for row in response.json()["periods"]}
    assert set(rows) == {"this-month", "last-month", "this-year", "all-time"}
    assert rows["last-month"]["label"] == "March 2025"
    assert rows["last-month"]["start"] == "2025-03-01T00:00:00"
    assert rows["all-time"]["start"] == "2000-01-01T00:00:00"


def test_create_defaults_frequency_to_monthly(client):
    record = _create_rent(client)

    assert record["recurring_frequency"] == "monthly"
    assert record["amount"] == 100.0
    assert record["date"] == "2025-01-31"
    assert record["currency"] == "CAD"


def test_last_month_listing_projects_month_end(client):
    rent = _create_rent(client)

    response = client.get("/api/transactions", params={"period": "last-month"})

    body = response.json()
    assert body["period"] == "last-month"
    assert body["items"] == [
        {
            "id": f"{rent['id']}-2025-03",
            "originalId": rent["id"],
            "date": "2025-03-31",
            "type": "expense",
            "amount": 100.0,
            "currency": "CAD",
            "category": "Rent",
            "description": None,
            "isProjected": True,
        }
    ]


def test_this_month_listing_excludes_future_occurrence(client):
    _create_rent(client)

    response = client.get("/api/transactions", params={"period": "this-month"})

    assert response.json()["items"] == []


def test_unknown_period_lists_all_time(client):
    _create_rent(client)

    body = client.get("/api/transactions", params={"period": "decade"}).json()

    assert body["period"] == "all-time"
    assert [i["date"] for i in body["items"]] == [
        "2025-01-31",
        "2025-02-28",
        "2025-03-31",
    ]


def test_create_rejects_unknown_fields(client):
    response = client.post(
        "/api/transactions",
        json={
            "date": "2025-01-31",
            "type": "expense",
            "amount": "10",
            "category": "Rent",
            "colour": "red",
        },
    )
    assert response.status_code == 422


def test_create_with_missing_asset_is_bad_request(client):
    response = client.post(
        "/api/transactions",
        json={
            "date": "2025-01-31",
            "type": "expense",
            "amount": "10",
            "category": "Rent",
            "linked_asset_id": 99,
        },
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Linked asset not found"


def test_delete_transaction(client):
    rent = _create_rent(client)

    assert client.delete(f"/api/transactions/{rent['id']}").status_code == 204
    assert client.delete(f"/api/transactions/{rent['id']}").status_code == 404


def test_voice_spending_uses_period_param(client):
    _create_rent(client)

    body = client.get("/api/voice-agent/spending", params={"period": "last-month"}).json()

    assert body["label"] == "March 2025"
    assert body["totalSpending"] == 100.0
    assert body["topCategory"] == "Rent"


def test_voice_transactions_limit_is_bounded(client):
    assert client.get("/api/voice-agent/transactions", params={"limit": 0}).status_code == 422
    assert client.get("/api/voice-agent/transactions", params={"limit": 101}).status_code == 422

    _create_rent(client)
    body = client.get("/api/voice-agent/transactions", params={"limit": 2}).json()
    assert body["count"] == 2
    assert body["totalCount"] == 1
    assert body["transactions"][0]["date"] == "2025-03-31"


def test_voice_errors_become_json_500(client, monkeypatch):
    def boom(self, period):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(VoiceAgentService, "spending", boom)

    response = client.get("/api/voice-agent/spending")

    assert response.status_code == 500
    assert response.json() == {"error": "ledger unavailable"}


@pytest.mark.parametrize(
    "path",
    [
        "/api/voice-agent/income",
        "/api/voice-agent/compare",
        "/api/voice-agent/overview",
        "/api/voice-agent/financial-summary",
        "/api/voice-agent/net-worth",
        "/api/voice-agent/recurring",
        "/api/voice-agent/goals",
        "/api/voice-agent/investments",
        "/api/voice-agent/assets",
        "/api/voice-agent/liabilities",
        "/api/voice-agent/profile",
    ],
)
def test_voice_endpoints_answer_on_empty_data(client, path):
    response = client.get(path)
    assert response.status_code == 200
    assert "error" not in response.json()


def test_misconfigured_fx_provider_still_answers_with_fallback(client, monkeypatch):
    del main.app.dependency_overrides[main.get_usd_to_cad]
    monkeypatch.setattr(get_settings(), "fx_provider", "ecb")

    response = client.get("/api/voice-agent/financial-summary")

    assert response.status_code == 200
    assert response.json()["usdToCadRate"] == float(get_settings().fx_fallback_rate)


def test_update_transaction_through_projected_id(client):
    rent = _create_rent(client)

    response = client.put(
        f"/api/transactions/{rent['id']}-2025-03",
        json={
            "date": "2025-01-31",
            "type": "expense",
            "amount": "125.50",
            "category": "Rent",
            "is_recurring": True,
        },
    )

    assert response.status_code == 200
    assert response.json()["id"] == rent["id"]
    assert response.json()["amount"] == 125.5
    body = client.get("/api/transactions", params={"period": "last-month"}).json()
    assert body["items"][0]["amount"] == 125.5


def test_update_unknown_transaction_is_not_found(client):
    response = client.put(
        "/api/transactions/missing",
        json={"date": "2025-01-31", "type": "expense", "amount": "1", "category": "X"},
    )
    assert response.status_code == 404


def test_investment_routes_feed_voice_summary(client):
    created = client.post(
        "/api/investments",
        json={"symbol": "vfv", "quantity": "10", "avg_cost": "100"},
    )
    assert created.status_code == 201
    investment = created.json()
    assert investment["symbol"] == "VFV"
    assert investment["account_label"] == "Margin"

    price = client.put("/api/market-prices/vfv", json={"price": "120"})
    assert price.json() == {"symbol": "VFV", "price": 120.0}

    updated = client.put(
        f"/api/investments/{investment['id']}",
        json={"symbol": "VFV", "quantity": "20", "avg_cost": "100"},
    )
    assert updated.json()["quantity"] == 20.0

    summary = client.get("/api/voice-agent/investments").json()
    assert summary["totalValueUSD"] == 2400.0
    assert summary["totalValueCAD"] == 3360.0

    assert client.delete(f"/api/investments/{investment['id']}").status_code == 204
    assert client.get("/api/investments").json() == {"items": []}
    assert client.delete(f"/api/investments/{investment['id']}").status_code == 404


def test_liability_route_creates_payment_series(client):
    created = client.post(
        "/api/assets",
        json={
            "name": "Car loan",
            "category": "liability",
            "subcategory": "car_loan",
            "current_value": "18000",
            "monthly_payment": "450",
            "payment_day": 31,
            "create_recurring_transaction": True,
        },
    )
    assert created.status_code == 201
    loan = created.json()
    assert loan["is_liability"] is True
    assert loan["linked_transaction_id"] is not None

    items = client.get("/api/transactions", params={"period": "this-month"}).json()["items"]
    assert items == []  # April 30 is after the injected now

    recurring = client.get("/api/voice-agent/recurring").json()
    assert recurring["totalRecurringExpenses"] == 450.0
    assert recurring["expenses"][0]["category"] == "Transportation"

    liabilities = client.get("/api/voice-agent/liabilities").json()
    assert liabilities["estimatedPayoffMonths"] == 40

    assert client.delete(f"/api/assets/{loan['id']}").status_code == 204
    assert client.get("/api/assets").json() == {"items": []}
    assert client.get("/api/voice-agent/recurring").json()["count"] == 0


def test_goal_and_milestone_routes(client):
    created = client.post(
        "/api/goals",
        json={"name": "First 100k", "target_amount": "100000", "is_primary": True},
    )
    assert created.status_code == 201
    goal = created.json()
    assert goal["goal_type"] == "net_worth"

    milestone = client.post(
        f"/api/goals/{goal['id']}/milestones",
        json={"name": "Halfway", "target_amount": "50000"},
    )
    assert milestone.status_code == 201
    milestone_id = milestone.json()["id"]

    patched = client.patch(f"/api/milestones/{milestone_id}", json={"is_achieved": True})
    assert patched.json()["is_achieved"] is True

    renamed = client.patch(f"/api/goals/{goal['id']}", json={"name": "Six figures"})
    assert renamed.json()["name"] == "Six figures"
    assert renamed.json()["milestones"][0]["is_achieved"] is True

    assert client.patch(f"/api/goals/{goal['id']}", json={"name": None}).status_code == 400

    voice = client.get("/api/voice-agent/goals").json()
    assert voice["primaryGoal"]["name"] == "Six figures"
    assert voice["primaryGoal"]["milestones"][0]["isAchieved"] is True

    assert client.delete(f"/api/milestones/{milestone_id}").status_code == 204
    assert client.delete(f"/api/goals/{goal['id']}").status_code == 204
    assert client.get("/api/goals").json() == {"items": []}
    assert client.post(
        f"/api/goals/{goal['id']}/milestones",
        json={"name": "Late", "target_amount": "1"},
    ).status_code == 404


def test_profile_routes(client):
    assert client.get("/api/profile").json()["full_name"] is None

    response = client.put(
        "/api/profile",
        json={"full_name": "Sam Rivera", "birthday": "1990-04-11"},
    )

    assert response.status_code == 200
    assert response.json()["birthday"] == "1990-04-11"
    voice = client.get("/api/voice-agent/profile").json()
    assert voice["firstName"] == "Sam"
    assert voice["age"] == 34
