from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete, select

from category_tree import EXPENSE_ID, OVERALL_ID
from main import app, get_db, scheduler_manager
from models import Transaction
from schemas import BudgetIn, CurrencyIn
from services import BudgetService, CurrencyService, PreferenceService
from settings_store import SettingsStore


@pytest.fixture()
def client(session, monkeypatch):
    monkeypatch.setattr("services.today_local", lambda: date(2024, 7, 15))

    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    scheduler_manager.snapshot = None
    yield TestClient(app)
    app.dependency_overrides.clear()
    scheduler_manager.snapshot = None


def _this_month(client) -> None:
    response = client.put("/api/period", json={"period": 1})
    assert response.status_code == 200


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_settings_round_trip(client, ledger) -> None:
    assert client.get("/api/settings").json()["budget_name"] == "Budget"

    response = client.put(
        "/api/settings", json={"use_full_names": True, "warning_level": 95.0}
    )

    assert response.status_code == 200
    body = client.get("/api/settings").json()
    assert body["use_full_names"] is True
    assert body["warning_level"] == 95.0
    assert body["version"] == 3


def test_settings_validation(client, ledger) -> None:
    bad_levels = client.put(
        "/api/settings", json={"warning_level": 120.0, "over_budget_level": 100.0}
    )
    assert bad_levels.status_code == 422

    too_wide = client.put("/api/settings", json={"over_budget_level": 190.0})
    assert too_wide.status_code == 400

    comma = client.put("/api/settings", json={"budget_name": "Home, 2024"})
    assert comma.status_code == 422

    unknown = client.put("/api/settings", json={"budget_name": "Nope"})
    assert unknown.status_code == 400

    extra = client.put("/api/settings", json={"colour": "red"})
    assert extra.status_code == 422


def test_period_update(client, ledger) -> None:
    response = client.put("/api/period", json={"period": 2})
    assert response.json() == {"period": 2, "label": "Last Month"}

    assert client.put("/api/period", json={"period": 7}).status_code == 422


def test_bars_for_selected_categories(client, ledger) -> None:
    _this_month(client)
    response = client.put(
        "/api/categories/selected",
        json={"category_ids": [EXPENSE_ID, ledger["housing"].uuid]},
    )
    assert response.status_code == 200

    body = client.get("/api/bars").json()

    assert body["budget_name"] == "Budget"
    assert body["period"] == "This Month"
    assert (body["year"], body["start_month"], body["month_count"]) == (2024, 7, 1)
    assert [bar["label"] for bar in body["bars"]] == ["Expenses", "Housing"]
    housing = body["bars"][1]
    assert housing["spent_cents"] == 130_000
    assert housing["budget_cents"] == 120_000
    assert housing["status"] == "over"
    assert housing["color"] == "#820000"
    assert housing["percent"] == "108.33%"
    assert [row["label"] for row in housing["rows"]] == [
        "Housing",
        "Rent",
        "Utilities",
    ]
    assert housing["rows"][0]["percent"] == "N/A"


def test_bars_text(client, ledger) -> None:
    _this_month(client)
    client.put("/api/categories/selected", json={"category_ids": [OVERALL_ID]})

    response = client.get("/api/bars/text")

    assert response.status_code == 200
    assert response.text.splitlines()[0] == "Income-Expenses"
    assert "Expenses" in response.text


def test_selecting_unknown_category_is_rejected(client, ledger) -> None:
    response = client.put(
        "/api/categories/selected", json={"category_ids": ["not-a-category"]}
    )
    assert response.status_code == 400


def test_categories_list_marks_selection(client, ledger) -> None:
    client.put("/api/categories/selected", json={"category_ids": [EXPENSE_ID]})

    categories = client.get("/api/categories").json()

    by_name = {c["full_name"]: c for c in categories}
    assert by_name["Expenses"]["selected"] is True
    assert by_name["Food:Groceries"]["indent"] == 3
    assert by_name["Food:Groceries"]["selected"] is False
    assert by_name["Expenses"]["synthetic"] is True
    assert by_name["Food:Groceries"]["synthetic"] is False
    assert "Gifts" not in by_name
    assert client.get("/api/categories/selected").json() == {
        "category_ids": [EXPENSE_ID]
    }


def test_budget_choice_is_required_with_several_budgets(
    client, session, ledger
) -> None:
    BudgetService(session).create(BudgetIn(name="Another"))
    SettingsStore(PreferenceService(session)).update(budget_name="Household")

    response = client.get("/api/bars")

    assert response.status_code == 409
    assert response.json()["detail"]["choices"] == ["Another", "Budget"]

    chosen = client.put("/api/budgets/selected", json={"budget_name": "Another"})
    assert chosen.status_code == 200
    assert client.get("/api/bars").json()["budget_name"] == "Another"
    assert client.get("/api/budgets").json() == {
        "selected": "Another",
        "budgets": ["Another", "Budget"],
    }
    missing = client.put("/api/budgets/selected", json={"budget_name": "Nope"})
    assert missing.status_code == 404


def test_no_budgets(client) -> None:
    response = client.get("/api/bars")
    assert response.status_code == 409
    assert "No monthly style budgets" in response.json()["detail"]["message"]


def test_manual_refresh(client, ledger) -> None:
    client.get("/api/bars")
    assert scheduler_manager.snapshot is not None

    response = client.post("/api/refresh")

    assert response.status_code == 202
    assert response.json() == {"queued": True}
    assert scheduler_manager.snapshot is None


def test_bars_without_base_currency_is_a_conflict(client, session) -> None:
    CurrencyService(session).upsert(
        CurrencyIn(code="EUR", name="Euro", rate_micros=900_000)
    )
    BudgetService(session).create(BudgetIn(name="Budget"))

    response = client.get("/api/bars")

    assert response.status_code == 409
    assert "base currency" in response.json()["detail"]["message"]


def test_settings_update_is_all_or_nothing(client, session, ledger) -> None:
    BudgetService(session).create(BudgetIn(name="Other"))

    response = client.put(
        "/api/settings", json={"budget_name": "Other", "warning_level": 300.0}
    )

    assert response.status_code == 400
    body = client.get("/api/settings").json()
    assert body["budget_name"] == "Budget"
    assert body["warning_level"] != 300.0

    response = client.put(
        "/api/settings", json={"budget_name": "Other", "warning_level": 95.0}
    )
    assert response.status_code == 200
    assert response.json()["budget_name"] == "Other"


def test_ledger_routes_build_a_book(client) -> None:
    assert (
        client.post(
            "/api/currencies",
            json={"code": "usd", "name": "US Dollar", "symbol": "$", "is_base": True},
        ).json()["code"]
        == "USD"
    )
    food = client.post(
        "/api/accounts",
        json={"name": "Food", "type": "expense", "currency_code": "USD"},
    ).json()
    groceries = client.post(
        "/api/accounts",
        json={
            "name": "Groceries",
            "type": "expense",
            "currency_code": "USD",
            "parent_id": food["id"],
        },
    ).json()
    budget = client.post("/api/budgets", json={"name": "Budget"}).json()
    item = client.put(
        "/api/budget-items",
        json={
            "budget_id": budget["id"],
            "account_id": groceries["id"],
            "year": 2024,
            "month": 7,
            "amount_cents": 40_000,
        },
    )
    assert item.status_code == 200
    txn = client.post(
        "/api/transactions",
        json={
            "account_id": groceries["id"],
            "date": "2024-07-05",
            "amount_cents": 30_000,
        },
    )
    assert txn.status_code == 201
    _this_month(client)
    client.put("/api/categories/selected", json={"category_ids": [food["uuid"]]})

    bar = client.get("/api/bars").json()["bars"][0]

    assert (bar["label"], bar["spent_cents"], bar["budget_cents"]) == (
        "Food",
        30_000,
        40_000,
    )


def test_ledger_route_errors(client, session, ledger) -> None:
    duplicate = client.post("/api/budgets", json={"name": "Budget"})
    assert duplicate.status_code == 400

    not_base_rate = client.post(
        "/api/currencies",
        json={"code": "GBP", "name": "Pound", "rate_micros": 2, "is_base": True},
    )
    assert not_base_rate.status_code == 400

    unknown_currency = client.post(
        "/api/accounts",
        json={"name": "Travel", "type": "expense", "currency_code": "XYZ"},
    )
    assert unknown_currency.status_code == 400

    assert client.post("/api/accounts/9999/flags", json={}).status_code == 404
    assert client.post("/api/accounts/9999/delete").status_code == 404
    housing = ledger["housing"].id
    assert client.post(f"/api/accounts/{housing}/delete").status_code == 400
    rent = ledger["rent"].id
    assert client.post(f"/api/accounts/{rent}/delete").status_code == 400

    assert client.post("/api/budgets/9999/delete").status_code == 404
    missing_item = client.put(
        "/api/budget-items",
        json={
            "budget_id": 9999,
            "account_id": ledger["rent"].id,
            "year": 2024,
            "month": 7,
            "amount_cents": 1,
        },
    )
    assert missing_item.status_code == 404
    checking_item = client.put(
        "/api/budget-items",
        json={
            "budget_id": ledger["budget"].id,
            "account_id": ledger["checking"].id,
            "year": 2024,
            "month": 7,
            "amount_cents": 1,
        },
    )
    assert checking_item.status_code == 400

    missing_account = client.post(
        "/api/transactions",
        json={"account_id": 9999, "date": "2024-07-05", "amount_cents": 1},
    )
    assert missing_account.status_code == 404
    assert client.post("/api/transactions/9999/delete").status_code == 404


def test_account_flags_hide_a_category(client, ledger) -> None:
    food = ledger["food"]

    response = client.post(
        f"/api/accounts/{food.id}/flags", json={"hide_on_home_page": True}
    )

    assert response.status_code == 200
    assert response.json() == {
        "id": food.id,
        "is_inactive": False,
        "hide_on_home_page": True,
    }
    names = {c["full_name"] for c in client.get("/api/categories").json()}
    assert "Food" not in names
    assert "Food:Groceries" not in names


def test_delete_routes(client, session, ledger) -> None:
    budget = client.post("/api/budgets", json={"name": "Spare"}).json()
    assert client.post(f"/api/budgets/{budget['id']}/delete").status_code == 204
    assert "Spare" not in client.get("/api/budgets").json()["budgets"]

    older = ledger["older"]
    session.execute(delete(Transaction).where(Transaction.account_id == older.id))
    session.commit()
    assert client.post(f"/api/accounts/{older.id}/delete").status_code == 204

    txn = session.scalars(
        select(Transaction).where(Transaction.account_id == ledger["rent"].id)
    ).first()
    response = client.post(f"/api/transactions/{txn.id}/delete")

    assert response.status_code == 204
    session.refresh(txn)
    assert txn.deleted_at is not None
    assert client.post(f"/api/transactions/{txn.id}/delete").status_code == 404
