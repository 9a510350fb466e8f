from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from database import Base
from models import Account, AccountType
from schemas import AccountIn, BudgetIn, BudgetItemIn, CurrencyIn, TransactionIn
from services import (
    AccountService,
    BudgetService,
    CurrencyService,
    TransactionService,
)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


def seed_ledger(session: Session) -> dict[str, object]:
    """A small book in USD with one EUR category.

    Income: Salary, Bonus (unbudgeted). Expenses: Housing (Rent, Utilities),
    Food (Groceries, Dining in EUR), a hidden and an inactive branch.
    """
    currencies = CurrencyService(session)
    currencies.upsert(
        CurrencyIn(code="USD", name="US Dollar", symbol="$", is_base=True)
    )
    currencies.upsert(
        CurrencyIn(code="EUR", name="Euro", symbol="€", rate_micros=900_000)
    )

    accounts = AccountService(session)

    def add(name, type_, parent=None, currency="USD", **flags) -> Account:
        return accounts.create(
            AccountIn(
                name=name,
                type=type_,
                currency_code=currency,
                parent_id=parent.id if parent else None,
                **flags,
            )
        )

    salary = add("Salary", AccountType.income, order=0)
    bonus = add("Bonus", AccountType.income, order=1)
    housing = add("Housing", AccountType.expense, order=0)
    rent = add("Rent", AccountType.expense, housing, order=0)
    utilities = add("Utilities", AccountType.expense, housing, order=1)
    food = add("Food", AccountType.expense, order=1)
    groceries = add("Groceries", AccountType.expense, food, order=0)
    dining = add("Dining", AccountType.expense, food, currency="EUR", order=1)
    gifts = add("Gifts", AccountType.expense, order=2, hide_on_home_page=True)
    old = add("Old", AccountType.expense, order=3, is_inactive=True)
    older = add("Older", AccountType.expense, old)
    checking = add("Checking", AccountType.bank)

    budgets = BudgetService(session)
    budget = budgets.create(BudgetIn(name="Budget"))
    monthly = {
        salary: 500_000,
        rent: 100_000,
        utilities: 20_000,
        groceries: 40_000,
        dining: 10_000,
        gifts: 5_000,
        older: 5_000,
    }
    for account, amount in monthly.items():
        for month in range(1, 13):
            budgets.set_item(
                BudgetItemIn(
                    budget_id=budget.id,
                    account_id=account.id,
                    year=2024,
                    month=month,
                    amount_cents=amount,
                )
            )

    txns = TransactionService(session)
    postings = [
        (salary, date(2024, 7, 1), 500_000),
        (bonus, date(2024, 7, 2), 20_000),
        (rent, date(2024, 7, 1), 100_000),
        (utilities, date(2024, 7, 10), 25_000),
        (housing, date(2024, 7, 31), 5_000),
        (groceries, date(2024, 7, 5), 30_000),
        (dining, date(2024, 7, 6), 9_000),
        (gifts, date(2024, 7, 7), 7_000),
        (older, date(2024, 7, 8), 3_000),
        (checking, date(2024, 7, 9), 1_000),
        (rent, date(2024, 6, 1), 100_000),
        (groceries, date(2024, 6, 20), 45_000),
        (rent, date(2024, 8, 1), 100_000),
    ]
    for account, on_date, amount in postings:
        txns.create(
            TransactionIn(account_id=account.id, date=on_date, amount_cents=amount)
        )

    return {
        "budget": budget,
        "salary": salary,
        "bonus": bonus,
        "housing": housing,
        "rent": rent,
        "utilities": utilities,
        "food": food,
        "groceries": groceries,
        "dining": dining,
        "gifts": gifts,
        "old": old,
        "older": older,
        "checking": checking,
    }


@pytest.fixture()
def ledger(session) -> dict[str, object]:
    return seed_ledger(session)
