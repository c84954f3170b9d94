from datetime import datetime

from csv_utils import HEADER, export_transactions, sanitize_csv_value
from models import Transaction, TransactionType


def row(cents, when, type_=TransactionType.expense, category_id=None, description=None):
    return Transaction(
        amount_cents=cents,
        type=type_,
        occurred_at=when,
        category_id=category_id,
        description=description,
    )


def lines(text: str) -> list[str]:
    assert text.endswith("\n")
    return text.split("\n")[:-1]


def test_export_formats_each_column() -> None:
    text = export_transactions(
        [row(1250, datetime(2024, 3, 1, 12, 30), category_id=1, description="Lunch, with friends")],
        {1: "Food"},
    )
    assert lines(text) == [
        "Date,Type,Category,Description,Amount",
        '2024-03-01,Expense,Food,"Lunch, with friends",12.50',
    ]


def test_export_with_no_rows_is_just_the_header() -> None:
    assert export_transactions([], {}) == ",".join(HEADER) + "\n"


def test_missing_or_unknown_category_is_uncategorized() -> None:
    text = export_transactions(
        [
            row(100, datetime(2024, 3, 2), TransactionType.income),
            row(200, datetime(2024, 3, 1), category_id=99),
        ],
        {1: "Food"},
    )
    assert lines(text)[1:] == [
        "2024-03-02,Income,Uncategorized,,1.00",
        "2024-03-01,Expense,Uncategorized,,2.00",
    ]


def test_description_quotes_are_doubled() -> None:
    text = export_transactions(
        [row(999, datetime(2024, 3, 1), description='Dinner at "Luigi\'s"')], {}
    )
    assert lines(text)[1] == '2024-03-01,Expense,Uncategorized,"Dinner at ""Luigi\'s""",9.99'


def test_category_with_comma_is_quoted() -> None:
    text = export_transactions(
        [row(100_000, datetime(2024, 3, 1), category_id=1)], {1: "Rent, utilities"}
    )
    assert lines(text)[1] == '2024-03-01,Expense,"Rent, utilities",,1000.00'


def test_rows_keep_input_order() -> None:
    text = export_transactions(
        [
            row(1, datetime(2024, 1, 1)),
            row(2, datetime(2024, 5, 1)),
            row(3, datetime(2024, 3, 1)),
        ],
        {},
    )
    assert [line.split(",")[0] for line in lines(text)[1:]] == [
        "2024-01-01",
        "2024-05-01",
        "2024-03-01",
    ]


def test_formula_like_text_is_neutralised() -> None:
    assert sanitize_csv_value("=SUM(A1:A3)") == "\t=SUM(A1:A3)"
    assert sanitize_csv_value("https://example.com") == "\thttps://example.com"
    assert sanitize_csv_value("  Groceries ") == "Groceries"
    assert sanitize_csv_value("   ") == ""

    text = export_transactions(
        [row(100, datetime(2024, 3, 1), description="=HYPERLINK(1)")], {}
    )
    assert lines(text)[1] == '2024-03-01,Expense,Uncategorized,"\t=HYPERLINK(1)",1.00'
