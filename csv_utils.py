import re
from io import StringIO
from typing import Mapping, Optional, Sequence

from models import Transaction


HEADER = ("Date", "Type", "Category", "Description", "Amount")
UNCATEGORIZED = "Uncategorized"


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _minimal(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return quote(value)
    return value


def category_cell(txn: Transaction, category_names: Mapping[int, str]) -> str:
    name: Optional[str] = None
    if txn.category_id is not None:
        name = category_names.get(txn.category_id)
    cleaned = sanitize_csv_value(name or "")
    return _minimal(cleaned) if cleaned else UNCATEGORIZED


def description_cell(txn: Transaction) -> str:
    cleaned = sanitize_csv_value(txn.description or "")
    return quote(cleaned) if cleaned else ""


def export_transactions(
    transactions: Sequence[Transaction], category_names: Mapping[int, str]
) -> str:
    # Rows are joined by hand: csv.writer cannot quote the description column
    # unconditionally while leaving the other columns minimally quoted.
    output = StringIO()
    output.write(",".join(HEADER) + "\n")
    for txn in transactions:
        row = [
            txn.occurred_at.date().isoformat(),
            txn.type.value.capitalize(),
            category_cell(txn, category_names),
            description_cell(txn),
            f"{txn.amount_cents / 100:.2f}",
        ]
        output.write(",".join(row) + "\n")
    return output.getvalue()
