from datetime import date

from sqlalchemy.orm import Session

from models import Currency, Preference
from notifications import DataChanged, DataChangeKind, watch_session_changes
from schemas import TransactionIn
from services import TransactionService


def test_one_notification_per_commit(engine) -> None:
    received: list[DataChanged] = []
    with Session(engine) as session:
        stop = watch_session_changes(session, received.append)
        session.add(Currency(code="USD", name="US Dollar", is_base=True))
        session.flush()
        session.add(Currency(code="EUR", name="Euro", rate_micros=900_000))
        session.commit()
        stop()

    assert received == [DataChanged(frozenset({DataChangeKind.currency}))]
    assert received[0].source == "currency"


def test_preferences_and_rollbacks_are_not_reported(engine) -> None:
    received: list[DataChanged] = []
    with Session(engine) as session:
        stop = watch_session_changes(session, received.append)
        session.add(Currency(code="USD", name="US Dollar", is_base=True))
        session.flush()
        session.rollback()

        session.add(Preference(key="MonthlyBudgetBars_cats", value=""))
        session.commit()
        stop()

    assert received == []


def test_kinds_are_collected_across_flushes(session, ledger) -> None:
    received: list[DataChanged] = []
    stop = watch_session_changes(session, received.append)
    try:
        TransactionService(session).create(
            TransactionIn(
                account_id=ledger["rent"].id, date=date(2024, 7, 20), amount_cents=100
            )
        )
        ledger["rent"].name = "Mortgage"
        session.add(Preference(key="other", value="x"))
        session.flush()
        ledger["food"].order = 9
        session.commit()
    finally:
        stop()

    assert received[0].kinds == {DataChangeKind.transaction}
    assert received[1].kinds == {DataChangeKind.account}
    assert received[1].source == "account"


def test_removed_listener_stays_quiet(engine) -> None:
    received: list[DataChanged] = []
    with Session(engine) as session:
        stop = watch_session_changes(session, received.append)
        stop()
        session.add(Currency(code="USD", name="US Dollar", is_base=True))
        session.commit()

    assert received == []


def test_source_lists_kinds_alphabetically() -> None:
    change = DataChanged(
        frozenset({DataChangeKind.transaction, DataChangeKind.account})
    )
    assert change.source == "account,transaction"
