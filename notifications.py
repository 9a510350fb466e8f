from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import chain
from typing import Any, Callable

from sqlalchemy import event

from models import Account, Budget, BudgetItem, Currency, Transaction

logger = logging.getLogger(__name__)

_PENDING_KEY = "budgetbars_pending_changes"


class DataChangeKind(str, Enum):
    account = "account"
    transaction = "transaction"
    budget = "budget"
    currency = "currency"


_MODEL_KINDS: dict[type, DataChangeKind] = {
    Account: DataChangeKind.account,
    Transaction: DataChangeKind.transaction,
    Budget: DataChangeKind.budget,
    BudgetItem: DataChangeKind.budget,
    Currency: DataChangeKind.currency,
}


@dataclass(frozen=True)
class DataChanged:
    kinds: frozenset[DataChangeKind]

    @property
    def source(self) -> str:
        return ",".join(sorted(kind.value for kind in self.kinds))


def watch_session_changes(
    target: Any, callback: Callable[[DataChanged], None]
) -> Callable[[], None]:
    """Report committed ledger changes made through ``target``.

    ``target`` is a ``sessionmaker``, a ``Session`` class or instance. Every
    flush inside a transaction is collected and a single ``DataChanged`` is
    delivered after commit. Returns a function that removes the listeners.
    """

    def _after_flush(session, _flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, set())
        for obj in chain(session.new, session.dirty, session.deleted):
            kind = _MODEL_KINDS.get(type(obj))
            if kind is not None:
                pending.add(kind)

    def _after_commit(session) -> None:
        pending = session.info.pop(_PENDING_KEY, None)
        if pending:
            change = DataChanged(frozenset(pending))
            logger.debug(f"data_changed: kinds={change.source}")
            callback(change)

    def _after_rollback(session) -> None:
        session.info.pop(_PENDING_KEY, None)

    listeners = [
        ("after_flush", _after_flush),
        ("after_commit", _after_commit),
        ("after_rollback", _after_rollback),
    ]
    for name, fn in listeners:
        event.listen(target, name, fn)

    def remove() -> None:
        for name, fn in listeners:
            event.remove(target, name, fn)

    return remove
