"""Totals shown under the transactions table."""
import math
from typing import Sequence

from models.schemas import CategorySummary, TableSummary, Transaction


def net_total(transactions: Sequence[Transaction]) -> float:
    return math.fsum(t.amount for t in transactions)


def summary_by_category(transactions: Sequence[Transaction]) -> list[tuple[str, float]]:
    """Group transactions by category and sum amounts, largest absolute total first."""
    totals: dict[str, float] = {}
    for t in transactions:
        cat = t.category.strip() or "Other"
        totals[cat] = totals.get(cat, 0) + t.amount
    return sorted(totals.items(), key=lambda x: -abs(x[1]))


def format_currency(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def summarize(transactions: Sequence[Transaction]) -> TableSummary:
    total = net_total(transactions)
    return TableSummary(
        count=len(transactions),
        net_total=total,
        net_total_display=format_currency(total),
        summary_by_category=[CategorySummary(category=c, total=t) for c, t in summary_by_category(transactions)],
    )
