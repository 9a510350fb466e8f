from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Sequence

from category_tree import CategoryNode, CategoryTree
from fx_rates import CurrencyConverter

NOT_AVAILABLE = "N/A"
INDENT = "   "


class BarStatus(str, Enum):
    under = "under"
    warning = "warning"
    over = "over"


STATUS_COLORS = {
    BarStatus.under: "#285a28",
    BarStatus.warning: "#cd5900",
    BarStatus.over: "#820000",
}


@dataclass(frozen=True)
class BreakdownRow:
    node_id: str
    label: str
    indent: int
    spent: int
    budget: int
    currency: str
    show_amounts: bool = True

    @property
    def remaining(self) -> int:
        return self.budget - self.spent

    @property
    def percent(self) -> Optional[Decimal]:
        return percent_of_budget(self.spent, self.budget)


def classify(
    actual: int, budget: int, warning_level: float, over_budget_level: float
) -> BarStatus:
    if Decimal(actual) * 100 <= Decimal(str(warning_level)) * budget:
        return BarStatus.under
    if Decimal(actual) * 100 <= Decimal(str(over_budget_level)) * budget:
        return BarStatus.warning
    return BarStatus.over


def progress_value(actual: int, budget: int) -> int:
    if budget == 0:
        return 100 if actual > 0 else 0
    value = (Decimal(100 * actual) / Decimal(budget)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return max(0, min(100, int(value)))


def percent_of_budget(actual: int, budget: int) -> Optional[Decimal]:
    if budget == 0:
        return None
    return Decimal(100 * actual) / Decimal(budget)


def percent_text(actual: int, budget: int) -> str:
    percent = percent_of_budget(actual, budget)
    if percent is None:
        return NOT_AVAILABLE
    return f"{percent.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"


def format_amount(minor_units: int, symbol: str, decimal_places: int) -> str:
    major = Decimal(abs(minor_units)).scaleb(-decimal_places)
    text = f"{symbol}{major:,.{decimal_places}f}"
    return f"-{text}" if minor_units < 0 else text


def display_amount(
    converter: CurrencyConverter,
    value: int,
    currency: str,
    use_category_currency: bool,
) -> str:
    """Format ``value`` in its own currency or converted to the base one."""
    if not use_category_currency:
        value = converter.to_base(value, currency)
        currency = converter.base_code
    info = converter.info(currency)
    return format_amount(value, info.symbol, info.decimal_places)


def breakdown_rows(
    tree: CategoryTree,
    root_id: str,
    all_ancestors: bool,
    converter: CurrencyConverter,
) -> tuple[BreakdownRow, ...]:
    """Rows describing what makes up the total of ``root_id``.

    Each parent's own row comes before the rows of its children. Children
    with neither spending nor budget are left out.
    """
    root = tree.lookup(root_id)
    if root is None:
        return ()
    return tuple(
        _category_rows(tree, root, root.indent_level, True, all_ancestors, converter)
    )


def _category_rows(
    tree: CategoryTree,
    node: CategoryNode,
    root_indent: int,
    is_root: bool,
    all_ancestors: bool,
    converter: CurrencyConverter,
) -> list[BreakdownRow]:
    if not node.has_children():
        return []

    rows: list[BreakdownRow] = []
    child_spent = 0
    for child in tree.children_of(node.id):
        if child.actual_total == 0 and child.budget_total == 0:
            continue
        child_spent += child.rollup_sign * converter.convert(
            child.actual_total, child.currency, node.currency
        )
        if child.has_children():
            rows.extend(
                _category_rows(
                    tree, child, root_indent, False, all_ancestors, converter
                )
            )
        elif is_root or all_ancestors:
            rows.append(
                _row(
                    child,
                    child.budget_total,
                    child.actual_total,
                    root_indent,
                    show_amounts=True,
                )
            )

    contribution = node.actual_total - child_spent
    if (is_root and contribution > 0) or (not is_root and all_ancestors):
        rows.insert(0, _row(node, 0, contribution, root_indent))
    elif node.indent_level == root_indent + 1:
        rows.insert(
            0, _row(node, node.budget_total, node.actual_total, root_indent)
        )
    return rows


def _row(
    node: CategoryNode,
    budget: int,
    actual: int,
    root_indent: int,
    show_amounts: Optional[bool] = None,
) -> BreakdownRow:
    if show_amounts is None:
        show_amounts = actual > 0 or budget > 0
    return BreakdownRow(
        node_id=node.id,
        label=node.short_name,
        indent=max(0, node.indent_level - root_indent - 1),
        spent=actual,
        budget=budget,
        currency=node.currency,
        show_amounts=show_amounts,
    )


def row_cells(
    row: BreakdownRow,
    converter: CurrencyConverter,
    use_category_currency: bool,
) -> tuple[str, str, str, str]:
    """Spent, percent, remaining and budget strings for one row."""
    if not row.show_amounts:
        return ("", "", "", "")

    def amount(value: int) -> str:
        return display_amount(converter, value, row.currency, use_category_currency)

    return (
        amount(row.spent),
        percent_text(row.spent, row.budget),
        amount(row.remaining),
        amount(row.budget),
    )


def render_breakdown_text(
    rows: Sequence[BreakdownRow],
    converter: CurrencyConverter,
    use_category_currency: bool,
) -> str:
    if not rows:
        return ""
    table = [("Category", "Spent", "%", "Remaining", "Budget")]
    for row in rows:
        label = INDENT * row.indent + row.label
        table.append((label, *row_cells(row, converter, use_category_currency)))
    widths = [max(len(line[col]) for line in table) for col in range(5)]
    lines = []
    for line in table:
        cells = [line[0].ljust(widths[0])]
        cells.extend(cell.rjust(width) for cell, width in zip(line[1:], widths[1:]))
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)
