from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

from models import AccountType

OVERALL_ID = "00000000-0000-0000-0000-000000000001"
INCOME_ID = "00000000-0000-0000-0000-000000000002"
EXPENSE_ID = "00000000-0000-0000-0000-000000000003"

Converter = Callable[[int, str, str], int]


class CategoryKind(str, Enum):
    root = "root"
    income = "income"
    expense = "expense"
    normal = "normal"


@dataclass(frozen=True)
class AccountRecord:
    """A ledger account as seen by the aggregation code.

    ``inactive`` and ``hidden`` already include the flags inherited from
    ancestor accounts.
    """

    id: str
    name: str
    full_name: str
    account_type: AccountType
    currency: str
    parent_id: Optional[str] = None
    inactive: bool = False
    hidden: bool = False


@dataclass
class CategoryNode:
    id: str
    short_name: str
    full_name: str
    kind: CategoryKind
    indent_level: int
    currency: str
    budget_total: int = 0
    actual_total: int = 0
    children: list[str] = field(default_factory=list)
    # Expenses are subtracted when they roll into the Income-Expenses root
    rollup_sign: int = 1

    @property
    def is_synthetic(self) -> bool:
        return self.kind != CategoryKind.normal

    def has_children(self) -> bool:
        return bool(self.children)

    def add_budget(self, amount: int) -> None:
        self.budget_total += amount

    def add_actual(self, amount: int) -> None:
        self.actual_total += amount


class CategoryTree:
    """Arena of category nodes keyed by id, with a separate parent index."""

    def __init__(self, base_currency: str) -> None:
        self.base_currency = base_currency
        self._nodes: dict[str, CategoryNode] = {}
        self._parents: dict[str, str] = {}
        self._aggregates: dict[AccountType, str] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[CategoryNode]:
        return iter(self._nodes.values())

    def ids(self) -> list[str]:
        return list(self._nodes)

    def _insert(self, node: CategoryNode, parent_id: Optional[str]) -> CategoryNode:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate category id: {node.id}")
        if parent_id is not None:
            parent = self._nodes.get(parent_id)
            if parent is None:
                raise ValueError(f"Unknown parent category: {parent_id}")
            parent.children.append(node.id)
            self._parents[node.id] = parent_id
        self._nodes[node.id] = node
        return node

    def add_synthetic(
        self,
        node_id: str,
        label: str,
        kind: CategoryKind,
        indent_level: int,
        parent_id: Optional[str] = None,
    ) -> CategoryNode:
        if kind == CategoryKind.normal:
            raise ValueError("Synthetic categories cannot be of the normal kind")
        if parent_id is not None:
            parent = self._nodes.get(parent_id)
            if parent is not None and parent.indent_level + 1 != indent_level:
                raise ValueError("Indent level must be one below the parent")
        node = CategoryNode(
            id=node_id,
            short_name=label,
            full_name=label,
            kind=kind,
            indent_level=indent_level,
            currency=self.base_currency,
            rollup_sign=-1 if kind == CategoryKind.expense else 1,
        )
        self._insert(node, parent_id)
        if kind == CategoryKind.income:
            self._aggregates[AccountType.income] = node_id
        elif kind == CategoryKind.expense:
            self._aggregates[AccountType.expense] = node_id
        return node

    def add_from_account(
        self, account: AccountRecord, account_type: AccountType
    ) -> Optional[CategoryNode]:
        """Add a category for ``account`` when it belongs to this pass.

        Returns ``None`` when the account is skipped: wrong type, inactive or
        hidden (directly or through an ancestor).
        """
        if account.account_type != account_type:
            return None
        if account.inactive or account.hidden:
            return None

        parent_id = account.parent_id
        if parent_id is None or parent_id not in self._nodes:
            parent_id = self._aggregates.get(account_type)
        parent = self._nodes.get(parent_id) if parent_id is not None else None
        node = CategoryNode(
            id=account.id,
            short_name=account.name,
            full_name=account.full_name,
            kind=CategoryKind.normal,
            indent_level=parent.indent_level + 1 if parent is not None else 0,
            currency=account.currency,
        )
        return self._insert(node, parent_id)

    def lookup(self, node_id: str) -> Optional[CategoryNode]:
        return self._nodes.get(node_id)

    def parent_of(self, node_id: str) -> Optional[CategoryNode]:
        parent_id = self._parents.get(node_id)
        return self._nodes[parent_id] if parent_id is not None else None

    def ancestors_of(self, node_id: str) -> list[CategoryNode]:
        ancestors: list[CategoryNode] = []
        parent_id = self._parents.get(node_id)
        while parent_id is not None:
            ancestors.append(self._nodes[parent_id])
            parent_id = self._parents.get(parent_id)
        return ancestors

    def children_of(
        self, node_id: str, include_all_descendants: bool = False
    ) -> list[CategoryNode]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        result: list[CategoryNode] = []
        for child_id in node.children:
            child = self._nodes[child_id]
            result.append(child)
            if include_all_descendants:
                result.extend(self.children_of(child_id, True))
        return result

    def _propagate(
        self,
        node_id: str,
        amount: int,
        convert: Optional[Converter],
        apply: Callable[[CategoryNode, int], None],
    ) -> None:
        node = self._nodes[node_id]
        apply(node, amount)
        sign = node.rollup_sign
        for ancestor in self.ancestors_of(node_id):
            value = amount
            if convert is not None and ancestor.currency != node.currency:
                value = convert(amount, node.currency, ancestor.currency)
            apply(ancestor, sign * value)
            sign *= ancestor.rollup_sign

    def propagate_budget(
        self, node_id: str, amount: int, convert: Optional[Converter] = None
    ) -> None:
        """Add a budgeted amount to a node and every ancestor."""
        self._propagate(node_id, amount, convert, CategoryNode.add_budget)

    def propagate_actual(
        self, node_id: str, amount: int, convert: Optional[Converter] = None
    ) -> None:
        """Add an actual amount to a node and every ancestor.

        Each ancestor receives the posted amount converted straight into its
        own currency.
        """
        self._propagate(node_id, amount, convert, CategoryNode.add_actual)
