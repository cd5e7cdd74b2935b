from models.schemas import Transaction
from services.csv_export import format_amount, transactions_to_csv


def test_quotes_in_description_are_doubled():
    csv_text = transactions_to_csv(
        [{"date": "2024-01-05", "description": 'Coffee "Shop"', "amount": -4.50, "category": "Dining", "notes": ""}]
    )
    assert csv_text == 'Date,Description,Amount,Category,Notes\n2024-01-05,"Coffee ""Shop""",-4.5,Dining,""'


def test_accepts_transaction_models_and_keeps_order():
    rows = [
        Transaction(date="2024-02-01", description="Rent", amount=-1200, category="Bills", notes='Ref "A1"'),
        Transaction(date="2024-02-03", description="Refund, partial", amount=15.25, category="Shopping"),
    ]
    lines = transactions_to_csv(rows).split("\n")
    assert lines == [
        "Date,Description,Amount,Category,Notes",
        '2024-02-01,"Rent",-1200,Bills,"Ref ""A1"""',
        '2024-02-03,"Refund, partial",15.25,Shopping,""',
    ]


def test_missing_and_empty_notes_render_the_same():
    with_none = transactions_to_csv([{"date": "2024-01-01", "description": "x", "amount": 1, "category": "Other"}])
    with_empty = transactions_to_csv(
        [{"date": "2024-01-01", "description": "x", "amount": 1, "category": "Other", "notes": ""}]
    )
    assert with_none == with_empty


def test_empty_collection_is_header_only():
    assert transactions_to_csv([]) == "Date,Description,Amount,Category,Notes"


def test_projection_is_deterministic():
    rows = [{"date": "2024-01-01", "description": "a", "amount": -1.1, "category": "Dining", "notes": "n"}]
    assert transactions_to_csv(rows) == transactions_to_csv(rows)


def test_format_amount():
    assert format_amount(100.0) == "100"
    assert format_amount(-4.5) == "-4.5"
    assert format_amount(7) == "7"
