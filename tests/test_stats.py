from datetime import date
from itertools import count

import pytest

from models import TransactionKind, classify_transaction
from schemas import Transaction
from stats import (
    category_breakdown,
    monthly_rollup,
    savings_rate,
    split_amounts,
    summarize,
    top_categories,
)

_ids = count(1)
TODAY = date(2024, 3, 20)


def txn(day: str, amount: float, category: str = "Home", subcategory: str = "Rent", **extra):
    return Transaction(
        id=next(_ids),
        date=day,
        category=category,
        subcategory=subcategory,
        amount=amount,
        **extra,
    )


def test_worked_example_month_summary() -> None:
    transactions = [
        txn("2024-03-10", 3000, "Salary", "Fixed"),
        txn("2024-03-05", -1000),
    ]

    summary = summarize(transactions, year_month="2024-03", today=TODAY)

    assert summary.year_month == "2024-03"
    assert summary.total_income == 3000
    assert summary.total_expenses == 1000
    assert summary.balance == 2000
    assert summary.savings_rate == pytest.approx(66.67, abs=0.01)
    assert summary.transaction_count == 2
    assert summary.average_transaction == 1000
    assert len(summary.category_stats) == 1
    home = summary.category_stats[0]
    assert home.category == "Home"
    assert home.percentage == pytest.approx(100)
    assert home.subcategories[0].name == "Rent"
    assert home.subcategories[0].count == 1


def test_summary_defaults_to_current_month() -> None:
    summary = summarize([txn("2024-03-01", -5)], today=TODAY)
    assert summary.year_month == "2024-03"
    assert summary.total_expenses == 5


def test_untracked_transactions_are_ignored_everywhere() -> None:
    transactions = [
        txn("2024-03-05", -100),
        txn("2024-03-06", -900, track=False),
        txn("2024-03-07", 500, "Salary", "Fixed", track=False),
    ]

    summary = summarize(transactions, year_month="2024-03", today=TODAY)

    assert summary.total_expenses == 100
    assert summary.total_income == 0
    assert summary.transaction_count == 1
    assert summary.savings_rate == 0
    assert summary.monthly_stats[-1].expenses == 100


def test_average_is_zero_without_expenses() -> None:
    summary = summarize(
        [txn("2024-03-10", 3000, "Salary", "Fixed")], year_month="2024-03", today=TODAY
    )
    assert summary.average_transaction == 0
    assert summary.category_stats == []
    assert summary.savings_rate == 100


def test_empty_input_gives_zeroed_summary() -> None:
    summary = summarize([], year_month="2024-03", today=TODAY)
    assert summary.total_income == 0
    assert summary.total_expenses == 0
    assert summary.transaction_count == 0
    assert len(summary.monthly_stats) == 12
    assert all(m.income == 0 and m.expenses == 0 for m in summary.monthly_stats)


def test_monthly_rollup_covers_trailing_twelve_months() -> None:
    transactions = [
        txn("2023-03-31", -999),  # outside the window
        txn("2023-04-01", -10),
        txn("2024-01-15", 200, "Salary", "Fixed"),
        txn("2024-01-20", -50),
        txn("2024-03-20", -1),
    ]

    rollup = monthly_rollup(transactions, today=TODAY)

    assert [m.month for m in rollup][:2] == ["2023-04", "2023-05"]
    assert rollup[-1].month == "2024-03"
    assert len(rollup) == 12
    assert rollup[0].expenses == 10
    january = next(m for m in rollup if m.month == "2024-01")
    assert january.income == 200
    assert january.savings == 150
    assert january.savings_rate == pytest.approx(75)
    assert sum(m.expenses for m in rollup) == 61


def test_rollup_window_crosses_year_boundary() -> None:
    rollup = monthly_rollup([], today=date(2025, 1, 31))
    assert rollup[0].month == "2024-02"
    assert rollup[-1].month == "2025-01"


def test_category_breakdown_percentages_sum_to_hundred() -> None:
    transactions = [
        txn("2024-03-01", -300, "Groceries", "Supermarket"),
        txn("2024-03-02", -100, "Groceries", "Meat/Fish"),
        txn("2024-03-03", -500),
        txn("2024-03-04", -100, "Health", "Gym"),
        txn("2024-03-05", 2000, "Salary", "Fixed"),
        txn("2024-02-28", -700),
    ]

    breakdown = category_breakdown(transactions, "2024-03")

    assert [c.category for c in breakdown] == ["Home", "Groceries", "Health"]
    assert [c.total_amount for c in breakdown] == [500, 400, 100]
    assert sum(c.percentage for c in breakdown) == pytest.approx(100)
    groceries = breakdown[1]
    assert groceries.total_count == 2
    assert {s.name: s.amount for s in groceries.subcategories} == {
        "Supermarket": 300,
        "Meat/Fish": 100,
    }


def test_breakdown_ties_are_ordered_by_category_name() -> None:
    transactions = [
        txn("2024-03-01", -50, "Taxes", "Other"),
        txn("2024-03-01", -50, "Gifts", "Friends"),
        txn("2024-03-01", -50, "Clothing", "Shoes"),
    ]
    breakdown = category_breakdown(transactions, "2024-03")
    assert [c.category for c in breakdown] == ["Clothing", "Gifts", "Taxes"]


def test_transfers_count_as_outgoing_expenses() -> None:
    transfer = txn("2024-03-01", -250, "Other", "Miscellaneous", from_="Checking", to="Savings")
    assert transfer.kind == TransactionKind.transfer

    summary = summarize([transfer], year_month="2024-03", today=TODAY)
    assert summary.total_expenses == 250
    assert summary.category_stats[0].category == "Other"


def test_top_categories_keeps_five_largest() -> None:
    names = ["Home", "Groceries", "Health", "Gifts", "Taxes", "Education", "Clothing"]
    transactions = [
        txn("2024-03-01", -(index + 1) * 10, name, "Other")
        for index, name in enumerate(names)
    ]

    summary = summarize(transactions, year_month="2024-03", today=TODAY)

    assert len(summary.category_stats) == 7
    assert [c.category for c in summary.top_categories] == [
        "Clothing",
        "Education",
        "Taxes",
        "Gifts",
        "Health",
    ]
    assert top_categories(summary.category_stats, limit=2) == summary.category_stats[:2]


def test_savings_rate_and_split_amounts() -> None:
    assert savings_rate(0, 100) == 0
    assert savings_rate(100, 150) == pytest.approx(-50)
    income, expenses = split_amounts(
        [txn("2024-03-01", 10), txn("2024-03-01", -4), txn("2024-03-01", -6)]
    )
    assert (income, expenses) == (10, 10)


@pytest.mark.parametrize(
    ("category", "amount", "from_", "to", "expected"),
    [
        ("Salary", -100, "", "", TransactionKind.income),
        ("Stipendio", -100, "Boss", "Me", TransactionKind.income),
        ("Gifts", 50, "Aunt", "Me", TransactionKind.income),
        ("Other", -200, "Checking", "Savings", TransactionKind.transfer),
        ("Other", -200, "Checking", "", TransactionKind.expense),
        ("Home", -1000, "", "", TransactionKind.expense),
    ],
)
def test_classify_transaction(category, amount, from_, to, expected) -> None:
    assert classify_transaction(category, amount, from_, to) == expected
