from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from aggregation import AggregationEngine
from breakdown import (
    STATUS_COLORS,
    BarStatus,
    BreakdownRow,
    breakdown_rows,
    classify,
    display_amount,
    percent_text,
    progress_value,
    render_breakdown_text,
)
from category_tree import AccountRecord, CategoryNode, CategoryTree
from config import get_settings
from fx_rates import CurrencyConverter
from models import (
    Account,
    AccountType,
    Budget,
    BudgetItem,
    BudgetPeriodType,
    Currency,
    Preference,
    Transaction,
)
from periods import PeriodSelection
from schemas import AccountIn, BudgetIn, BudgetItemIn, CurrencyIn, TransactionIn
from settings_store import SettingsStore, WidgetSettings

logger = logging.getLogger(__name__)


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


class PreferenceService:
    """Raw preference strings stored alongside the ledger."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        pref = self.session.get(Preference, key)
        return pref.value if pref is not None else default

    def set(self, key: str, value: str) -> None:
        pref = self.session.get(Preference, key)
        if pref is None:
            self.session.add(Preference(key=key, value=value))
        else:
            pref.value = value
        self.session.commit()


class CurrencyService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Currency]:
        return self.session.scalars(select(Currency).order_by(Currency.code)).all()

    def get_by_code(self, code: str) -> Currency:
        currency = self.session.scalar(
            select(Currency).where(Currency.code == code.upper())
        )
        if not currency:
            raise ValueError(f"Currency not found: {code}")
        return currency

    def upsert(self, data: CurrencyIn) -> Currency:
        currency = self.session.scalar(
            select(Currency).where(Currency.code == data.code)
        )
        if data.is_base:
            if data.rate_micros != 1_000_000:
                raise ValueError("The base currency must have a rate of 1")
            for other in self.list_all():
                if other.code != data.code:
                    other.is_base = False
        if currency is None:
            currency = Currency(code=data.code)
            self.session.add(currency)
        currency.name = data.name
        currency.symbol = data.symbol
        currency.decimal_places = data.decimal_places
        currency.rate_micros = data.rate_micros
        currency.is_base = data.is_base
        self.session.commit()
        self.session.refresh(currency)
        return currency


class AccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Account]:
        return self.session.scalars(
            select(Account).order_by(Account.order, Account.name, Account.id)
        ).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        currency = CurrencyService(self.session).get_by_code(data.currency_code)
        if data.parent_id is not None:
            parent = self.get(data.parent_id)
            if parent.type != data.type:
                raise ValueError("Sub-accounts must have the same type as their parent")
        same_parent = (
            Account.parent_id.is_(None)
            if data.parent_id is None
            else Account.parent_id == data.parent_id
        )
        clash = self.session.scalar(
            select(Account).where(
                same_parent,
                Account.type == data.type,
                Account.name == data.name.strip(),
            )
        )
        if clash:
            raise ValueError(f"Account already exists: {data.name.strip()}")
        account = Account(
            uuid=data.uuid or str(uuid.uuid4()),
            name=data.name.strip(),
            type=data.type,
            parent_id=data.parent_id,
            currency_id=currency.id,
            order=data.order,
            is_inactive=data.is_inactive,
            hide_on_home_page=data.hide_on_home_page,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def set_flags(
        self,
        account_id: int,
        *,
        is_inactive: Optional[bool] = None,
        hide_on_home_page: Optional[bool] = None,
    ) -> Account:
        account = self.get(account_id)
        if is_inactive is not None:
            account.is_inactive = is_inactive
        if hide_on_home_page is not None:
            account.hide_on_home_page = hide_on_home_page
        self.session.commit()
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        if account.children:
            raise ValueError("Cannot delete an account that has sub-accounts")
        if account.transactions:
            raise ValueError("Cannot delete an account that has transactions")
        self.session.execute(
            delete(BudgetItem).where(BudgetItem.account_id == account.id)
        )
        self.session.delete(account)
        self.session.commit()


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_monthly(self) -> list[Budget]:
        return self.session.scalars(
            select(Budget)
            .where(Budget.period_type == BudgetPeriodType.monthly)
            .order_by(Budget.name)
        ).all()

    def get_monthly_by_name(self, name: str) -> Optional[Budget]:
        return self.session.scalar(
            select(Budget).where(
                Budget.name == name, Budget.period_type == BudgetPeriodType.monthly
            )
        )

    def create(self, data: BudgetIn) -> Budget:
        existing = self.session.scalar(select(Budget).where(Budget.name == data.name))
        if existing:
            raise ValueError(f"Budget already exists: {data.name}")
        budget = Budget(name=data.name, period_type=data.period_type)
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.session.get(Budget, budget_id)
        if not budget:
            raise ValueError("Budget not found")
        self.session.delete(budget)
        self.session.commit()

    def set_item(self, data: BudgetItemIn) -> BudgetItem:
        if not self.session.get(Budget, data.budget_id):
            raise ValueError("Budget not found")
        account = AccountService(self.session).get(data.account_id)
        if account.type not in (AccountType.income, AccountType.expense):
            raise ValueError("Budgets can only be set for income or expense categories")

        item = self.session.scalar(
            select(BudgetItem).where(
                BudgetItem.budget_id == data.budget_id,
                BudgetItem.account_id == data.account_id,
                BudgetItem.year == data.year,
                BudgetItem.month == data.month,
            )
        )
        if item is None:
            item = BudgetItem(
                budget_id=data.budget_id,
                account_id=data.account_id,
                year=data.year,
                month=data.month,
                amount_cents=data.amount_cents,
            )
            self.session.add(item)
        else:
            item.amount_cents = data.amount_cents
        self.session.commit()
        self.session.refresh(item)
        return item


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, data: TransactionIn) -> Transaction:
        AccountService(self.session).get(data.account_id)
        txn = Transaction(
            account_id=data.account_id,
            date=data.date,
            amount_cents=data.amount_cents,
            note=data.note.strip() if data.note else None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def soft_delete(self, transaction_id: int) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.deleted_at is not None:
            raise ValueError("Transaction not found")
        txn.deleted_at = datetime.now(timezone.utc)
        self.session.commit()


class LedgerReader:
    """Read-only view of the ledger used while aggregating.

    Budget items and transaction totals are loaded once per budget/year and
    per date window, so the aggregation itself works from memory.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._budget_cache: dict[tuple[int, int], dict[tuple[str, int], int]] = {}
        self._actual_cache: dict[tuple[date, date], dict[str, int]] = {}

    def iter_accounts(self) -> Iterator[AccountRecord]:
        """Accounts in depth-first pre-order, siblings by order then name."""
        accounts = self.session.scalars(
            select(Account)
            .options(joinedload(Account.currency))
            .order_by(Account.order, Account.name, Account.id)
        ).all()
        by_parent: dict[Optional[int], list[Account]] = {}
        for account in accounts:
            by_parent.setdefault(account.parent_id, []).append(account)

        def walk(
            parent_id: Optional[int],
            parent_uuid: Optional[str],
            prefix: str,
            inactive: bool,
            hidden: bool,
        ) -> Iterator[AccountRecord]:
            for account in by_parent.get(parent_id, []):
                full_name = f"{prefix}:{account.name}" if prefix else account.name
                is_inactive = inactive or account.is_inactive
                is_hidden = hidden or account.hide_on_home_page
                yield AccountRecord(
                    id=account.uuid,
                    name=account.name,
                    full_name=full_name,
                    account_type=account.type,
                    currency=account.currency.code,
                    parent_id=parent_uuid,
                    inactive=is_inactive,
                    hidden=is_hidden,
                )
                yield from walk(
                    account.id, account.uuid, full_name, is_inactive, is_hidden
                )

        return walk(None, None, "", False, False)

    def amount_budgeted(
        self, budget_id: int, account_id: str, year: int, month: int
    ) -> Optional[int]:
        key = (budget_id, year)
        if key not in self._budget_cache:
            rows = self.session.execute(
                select(Account.uuid, BudgetItem.month, BudgetItem.amount_cents)
                .join(Account, BudgetItem.account_id == Account.id)
                .where(BudgetItem.budget_id == budget_id, BudgetItem.year == year)
            )
            self._budget_cache[key] = {
                (row.uuid, row.month): int(row.amount_cents) for row in rows
            }
        return self._budget_cache[key].get((account_id, month))

    def actual_total(self, account_id: str, start: date, end: date) -> int:
        key = (start, end)
        if key not in self._actual_cache:
            rows = self.session.execute(
                select(
                    Account.uuid,
                    func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                )
                .join(Account, Transaction.account_id == Account.id)
                .where(
                    Transaction.deleted_at.is_(None),
                    Transaction.date.between(start, end),
                )
                .group_by(Account.uuid)
            )
            self._actual_cache[key] = {row.uuid: int(row.total or 0) for row in rows}
        return self._actual_cache[key].get(account_id, 0)


class BudgetBarsError(ValueError):
    pass


class NoMonthlyBudgetsError(BudgetBarsError):
    pass


class BudgetSelectionRequired(BudgetBarsError):
    def __init__(self, message: str, choices: list[str]) -> None:
        super().__init__(message)
        self.choices = choices


@dataclass(frozen=True)
class BarView:
    category_id: str
    label: str
    short_name: str
    currency: str
    spent_cents: int
    budget_cents: int
    progress: int
    status: BarStatus
    percent: str
    spent: str
    remaining: str
    budget: str
    rows: tuple[BreakdownRow, ...] = ()
    breakdown_text: str = ""

    @property
    def color(self) -> str:
        return STATUS_COLORS[self.status]

    @property
    def tooltip_text(self) -> str:
        parts = [self.short_name, self.percent]
        if self.breakdown_text:
            parts.append(self.breakdown_text)
        return "\n".join(parts)


@dataclass(frozen=True)
class BarsSnapshot:
    """Everything one refresh produced. Never mutated after publishing."""

    settings: WidgetSettings
    selection: PeriodSelection
    budget_name: str
    tree: CategoryTree
    converter: CurrencyConverter
    bars: tuple[BarView, ...]
    notice: Optional[str] = None
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def text(self) -> str:
        return "\n\n".join(bar.tooltip_text for bar in self.bars)


class BudgetBarsService:
    def __init__(
        self,
        session: Session,
        *,
        today: Optional[date] = None,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self.session = session
        self.today = today
        self.settings_store = settings_store or SettingsStore(
            PreferenceService(session)
        )

    def resolve_budget(self) -> tuple[Budget, Optional[str]]:
        settings = self.settings_store.current
        budgets = BudgetService(self.session)
        budget = budgets.get_monthly_by_name(settings.budget_name)
        if budget is not None:
            return budget, None

        candidates = budgets.list_monthly()
        if not candidates:
            raise NoMonthlyBudgetsError(
                "No monthly style budgets have been created. Create a monthly "
                "budget before using budget bars."
            )
        if len(candidates) > 1:
            raise BudgetSelectionRequired(
                "Select the monthly budget to use for budget bars.",
                [b.name for b in candidates],
            )

        budget = candidates[0]
        notice = (
            f"The budget '{settings.budget_name}' does not exist. "
            f"Using the budget named '{budget.name}' instead."
        )
        logger.info(
            f"budget_substituted: missing={settings.budget_name!r} "
            f"used={budget.name!r}"
        )
        try:
            self.settings_store.update(budget_name=budget.name)
        except ValueError as exc:
            logger.warning(
                f"budget_substitute_not_saved: name={budget.name!r} error={exc}"
            )
        return budget, notice

    def ensure_monthly_budget(self, name: str) -> Budget:
        budget = BudgetService(self.session).get_monthly_by_name(name)
        if budget is None:
            raise ValueError(f"Monthly budget not found: {name}")
        return budget

    def select_budget(self, name: str) -> WidgetSettings:
        self.ensure_monthly_budget(name)
        return self.settings_store.update(budget_name=name)

    def build(self) -> BarsSnapshot:
        budget, notice = self.resolve_budget()
        settings = self.settings_store.current
        converter = CurrencyConverter.from_session(self.session)
        engine = AggregationEngine(
            LedgerReader(self.session), converter, settings, budget.id
        )
        tree, selection = engine.build(today=self.today or today_local())
        bars = tuple(
            self.bar_view(tree, node, settings, converter)
            for node in self.selected_categories(tree)
        )
        return BarsSnapshot(
            settings=settings,
            selection=selection,
            budget_name=budget.name,
            tree=tree,
            converter=converter,
            bars=bars,
            notice=notice,
        )

    def selected_categories(self, tree: CategoryTree) -> list[CategoryNode]:
        selected: list[CategoryNode] = []
        for category_id in self.settings_store.load_selected():
            node = tree.lookup(category_id)
            if node is None:
                logger.info(f"selected_category_dropped: id={category_id}")
                continue
            selected.append(node)
        return selected

    def save_selected(self, category_ids: list[str], tree: CategoryTree) -> list[str]:
        unknown = [c for c in category_ids if c not in tree]
        if unknown:
            raise ValueError(f"Unknown categories: {', '.join(unknown)}")
        if len(set(category_ids)) != len(category_ids):
            raise ValueError("Categories can only be selected once")
        self.settings_store.save_selected(category_ids)
        return category_ids

    @staticmethod
    def bar_view(
        tree: CategoryTree,
        node: CategoryNode,
        settings: WidgetSettings,
        converter: CurrencyConverter,
    ) -> BarView:
        budget = node.budget_total
        actual = node.actual_total
        use_own = settings.use_category_currency
        rows = breakdown_rows(tree, node.id, settings.all_ancestors, converter)
        return BarView(
            category_id=node.id,
            label=node.full_name if settings.use_full_names else node.short_name,
            short_name=node.short_name,
            currency=node.currency,
            spent_cents=actual,
            budget_cents=budget,
            progress=progress_value(actual, budget),
            status=classify(
                actual, budget, settings.warning_level, settings.over_budget_level
            ),
            percent=percent_text(actual, budget),
            spent=display_amount(converter, actual, node.currency, use_own),
            remaining=display_amount(
                converter, budget - actual, node.currency, use_own
            ),
            budget=display_amount(converter, budget, node.currency, use_own),
            rows=rows,
            breakdown_text=render_breakdown_text(rows, converter, use_own),
        )
