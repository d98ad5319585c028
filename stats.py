"""Derived statistics over an in-memory list of transactions.

Everything here is synchronous and side-effect free. Only tracked
transactions count. Callers pin ``today`` to make the output reproducible;
otherwise the current date in the configured timezone is used.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from periods import month_key, today_local, trailing_months
from schemas import Transaction

TOP_CATEGORY_LIMIT = 5


@dataclass(frozen=True)
class MonthlyStats:
    month: str
    income: float
    expenses: float
    savings: float
    savings_rate: float


@dataclass(frozen=True)
class SubcategoryStats:
    name: str
    amount: float
    count: int


@dataclass(frozen=True)
class CategoryStats:
    category: str
    subcategories: list[SubcategoryStats]
    total_amount: float
    total_count: int
    percentage: float


@dataclass(frozen=True)
class StatsSummary:
    year_month: str
    total_income: float
    total_expenses: float
    balance: float
    savings_rate: float
    transaction_count: int
    average_transaction: float
    monthly_stats: list[MonthlyStats] = field(default_factory=list)
    category_stats: list[CategoryStats] = field(default_factory=list)
    top_categories: list[CategoryStats] = field(default_factory=list)


def savings_rate(income: float, expenses: float) -> float:
    if income > 0:
        return (income - expenses) / income * 100
    return 0.0


def tracked(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [txn for txn in transactions if txn.track is True]


def split_amounts(transactions: Iterable[Transaction]) -> tuple[float, float]:
    """(income, expenses) where expenses are absolute values."""
    income = 0.0
    expenses = 0.0
    for txn in transactions:
        if txn.amount > 0:
            income += txn.amount
        else:
            expenses += abs(txn.amount)
    return income, expenses


def monthly_rollup(
    transactions: Iterable[Transaction], *, today: Optional[date] = None
) -> list[MonthlyStats]:
    today = today or today_local()
    buckets: dict[str, list[float]] = {
        month: [0.0, 0.0] for month in trailing_months(today, 12)
    }

    for txn in tracked(transactions):
        bucket = buckets.get(txn.date[:7])
        if bucket is None:
            continue
        if txn.amount > 0:
            bucket[0] += txn.amount
        else:
            bucket[1] += abs(txn.amount)

    return [
        MonthlyStats(
            month=month,
            income=income,
            expenses=expenses,
            savings=income - expenses,
            savings_rate=savings_rate(income, expenses),
        )
        for month, (income, expenses) in sorted(buckets.items())
    ]


def month_transactions(
    transactions: Iterable[Transaction], year_month: str
) -> list[Transaction]:
    return [txn for txn in tracked(transactions) if txn.date.startswith(year_month)]


def category_breakdown(
    transactions: Iterable[Transaction], year_month: str
) -> list[CategoryStats]:
    """Expense totals per category and subcategory for one month."""
    totals: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    subs: dict[str, dict[str, list]] = defaultdict(dict)

    for txn in month_transactions(transactions, year_month):
        if txn.amount >= 0:
            continue
        amount = abs(txn.amount)
        totals[txn.category] += amount
        counts[txn.category] += 1
        sub = subs[txn.category].setdefault(txn.subcategory, [0.0, 0])
        sub[0] += amount
        sub[1] += 1

    grand_total = sum(totals.values())
    breakdown = [
        CategoryStats(
            category=name,
            subcategories=[
                SubcategoryStats(name=sub_name, amount=amount, count=count)
                for sub_name, (amount, count) in subs[name].items()
            ],
            total_amount=total,
            total_count=counts[name],
            percentage=(total / grand_total * 100) if grand_total else 0.0,
        )
        for name, total in totals.items()
    ]
    breakdown.sort(key=lambda item: (-item.total_amount, item.category))
    return breakdown


def top_categories(
    breakdown: Sequence[CategoryStats], limit: int = TOP_CATEGORY_LIMIT
) -> list[CategoryStats]:
    return list(breakdown[:limit])


def summarize(
    transactions: Sequence[Transaction],
    *,
    year_month: Optional[str] = None,
    today: Optional[date] = None,
) -> StatsSummary:
    today = today or today_local()
    target = year_month or month_key(today)

    month_txns = month_transactions(transactions, target)
    income, expenses = split_amounts(month_txns)
    expense_count = sum(1 for txn in month_txns if txn.amount < 0)
    breakdown = category_breakdown(transactions, target)

    return StatsSummary(
        year_month=target,
        total_income=income,
        total_expenses=expenses,
        balance=income - expenses,
        savings_rate=savings_rate(income, expenses),
        transaction_count=len(month_txns),
        average_transaction=(expenses / expense_count) if expense_count else 0.0,
        monthly_stats=monthly_rollup(transactions, today=today),
        category_stats=breakdown,
        top_categories=top_categories(breakdown),
    )
