"""Turn a list of transactions into CSV text for download or clipboard copy."""
from typing import Any, Iterable, Union

from models.schemas import Transaction

CSV_HEADER = ["Date", "Description", "Amount", "Category", "Notes"]
CSV_FILENAME = "transactions.csv"
CSV_MEDIA_TYPE = "text/csv;charset=utf-8;"


def _quoted(value: Any) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', '""') + '"'


def format_amount(amount: Any) -> str:
    """Plain number text: 100 rather than 100.0, -4.5 rather than -4.50."""
    if isinstance(amount, float) and amount.is_integer():
        return str(int(amount))
    return str(amount)


def _row(t: Union[Transaction, dict[str, Any]]) -> list[str]:
    if isinstance(t, Transaction):
        t = t.model_dump()
    return [
        str(t.get("date", "")),
        _quoted(t.get("description", "")),
        format_amount(t.get("amount", "")),
        str(t.get("category", "")),
        _quoted(t.get("notes") or ""),
    ]


def transactions_to_csv(transactions: Iterable[Union[Transaction, dict[str, Any]]]) -> str:
    """
    Header Date,Description,Amount,Category,Notes followed by one row per transaction, in order.
    Description and notes are always quoted with inner quotes doubled; other fields are written as-is.
    """
    lines = [",".join(CSV_HEADER)]
    lines.extend(",".join(_row(t)) for t in transactions)
    return "\n".join(lines)
