from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Optional

from category_tree import (
    EXPENSE_ID,
    INCOME_ID,
    OVERALL_ID,
    AccountRecord,
    CategoryKind,
    CategoryNode,
    CategoryTree,
)
from fx_rates import CurrencyConverter
from models import AccountType
from periods import PeriodSelection, resolve_period
from settings_store import WidgetSettings

if TYPE_CHECKING:  # pragma: no cover
    from services import LedgerReader

logger = logging.getLogger(__name__)


class AggregationEngine:
    """Builds a fully rolled-up category tree for one budget and period."""

    def __init__(
        self,
        ledger: "LedgerReader",
        converter: CurrencyConverter,
        settings: WidgetSettings,
        budget_id: int,
    ) -> None:
        self.ledger = ledger
        self.converter = converter
        self.settings = settings
        self.budget_id = budget_id

    def build(
        self, *, today: Optional[date] = None
    ) -> tuple[CategoryTree, PeriodSelection]:
        selection = resolve_period(self.settings.period, today=today)
        accounts = list(self.ledger.iter_accounts())

        tree = CategoryTree(self.converter.base_code)
        tree.add_synthetic(OVERALL_ID, "Income-Expenses", CategoryKind.root, 0)
        tree.add_synthetic(
            INCOME_ID, "Income", CategoryKind.income, 1, parent_id=OVERALL_ID
        )
        self._run_pass(tree, accounts, AccountType.income, selection)
        tree.add_synthetic(
            EXPENSE_ID, "Expenses", CategoryKind.expense, 1, parent_id=OVERALL_ID
        )
        self._run_pass(tree, accounts, AccountType.expense, selection)

        logger.info(
            f"aggregation_built: budget_id={self.budget_id} "
            f"year={selection.year} start_month={selection.start_month} "
            f"months={selection.month_count} categories={len(tree)}"
        )
        return tree, selection

    def _run_pass(
        self,
        tree: CategoryTree,
        accounts: list[AccountRecord],
        account_type: AccountType,
        selection: PeriodSelection,
    ) -> None:
        admitted: list[tuple[AccountRecord, CategoryNode]] = []
        for account in accounts:
            node = tree.add_from_account(account, account_type)
            if node is not None:
                admitted.append((account, node))

        # Accounts arrive in pre-order, so a parent is checked against
        # ignore_unbudgeted before its children's budgets have rolled up.
        for account, node in admitted:
            if not node.has_children():
                self._load_budget(tree, node, account, selection)
            if node.budget_total == 0 and self.settings.ignore_unbudgeted:
                continue
            actual = self.ledger.actual_total(
                account.id, selection.start, selection.end
            )
            if actual:
                tree.propagate_actual(node.id, actual, self.converter.convert)

    def _load_budget(
        self,
        tree: CategoryTree,
        node: CategoryNode,
        account: AccountRecord,
        selection: PeriodSelection,
    ) -> None:
        for month in selection.months:
            amount = self.ledger.amount_budgeted(
                self.budget_id, account.id, selection.year, month
            )
            if amount:
                tree.propagate_budget(node.id, amount, self.converter.convert)
