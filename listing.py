from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Generic, Iterable, Mapping, Optional, Sequence, TypeVar

from errors import ValidationError
from models import TransactionKind
from schemas import Transaction

DEFAULT_PAGE_SIZE = 20

T = TypeVar("T")


@dataclass
class TransactionFilters:
    category: Optional[str] = None
    subcategory: Optional[str] = None
    tag: Optional[str] = None
    type: Optional[TransactionKind] = None
    year_month: Optional[str] = None
    search: Optional[str] = None

    def is_empty(self) -> bool:
        return all(not getattr(self, f.name) for f in fields(self))


def matches_search(txn: Transaction, query: str) -> bool:
    needle = query.lower()
    haystack = (txn.category, txn.subcategory, txn.note, txn.from_, txn.to)
    return any(value and needle in value.lower() for value in haystack)


def apply_filters(
    transactions: Sequence[Transaction], filters: TransactionFilters
) -> list[Transaction]:
    """Keep the transactions matching every set filter, in input order."""
    result = list(transactions)
    if filters.category:
        result = [t for t in result if t.category == filters.category]
    if filters.subcategory:
        result = [t for t in result if t.subcategory == filters.subcategory]
    if filters.tag:
        result = [t for t in result if t.tag == filters.tag]
    if filters.type:
        result = [t for t in result if t.kind == filters.type]
    if filters.year_month:
        result = [t for t in result if t.date.startswith(filters.year_month)]
    if filters.search:
        result = [t for t in result if matches_search(t, filters.search)]
    return result


def merge_references(
    categories: Mapping[str, Sequence[str]],
    tags: Sequence[str],
    transactions: Iterable[Transaction],
) -> tuple[dict[str, list[str]], list[str]]:
    """Registry names plus the ones transactions still point at.

    Deleting a category or tag does not touch its transactions, so those
    names stay valid filter values.
    """
    merged = {name: list(subs) for name, subs in categories.items()}
    all_tags = list(tags)
    for txn in transactions:
        subs = merged.setdefault(txn.category, [])
        if txn.subcategory not in subs:
            subs.append(txn.subcategory)
        if txn.tag and txn.tag not in all_tags:
            all_tags.append(txn.tag)
    return merged, all_tags


def validate_filters(
    filters: TransactionFilters,
    categories: Mapping[str, Sequence[str]],
    tags: Optional[Sequence[str]] = None,
) -> None:
    if filters.category and filters.category not in categories:
        raise ValidationError(f"Unknown category: {filters.category}")
    if filters.subcategory:
        if filters.category:
            allowed = categories[filters.category]
        else:
            allowed = [sub for subs in categories.values() for sub in subs]
        if filters.subcategory not in allowed:
            raise ValidationError(f"Unknown subcategory: {filters.subcategory}")
    if filters.tag and tags is not None and filters.tag not in tags:
        raise ValidationError(f"Unknown tag: {filters.tag}")


def total_pages(count: int, page_size: int) -> int:
    return max(1, math.ceil(count / page_size))


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[T], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> Page[T]:
    """Slice one 1-indexed page. Pages past the end come back empty."""
    if page < 1:
        raise ValueError("Page numbers start at 1")
    if page_size < 1:
        raise ValueError("Page size must be positive")
    start = (page - 1) * page_size
    return Page(
        items=list(items[start : start + page_size]),
        page=page,
        page_size=page_size,
        total_items=len(items),
        total_pages=total_pages(len(items), page_size),
    )


class TransactionListing:
    """Filter and page state over the latest transaction snapshot."""

    def __init__(
        self,
        transactions: Sequence[Transaction] = (),
        *,
        filters: Optional[TransactionFilters] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.page_size = page_size
        self._transactions = list(transactions)
        self._filters = filters or TransactionFilters()
        self._filtered = apply_filters(self._transactions, self._filters)
        self._page = 1

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def filters(self) -> TransactionFilters:
        return self._filters

    @property
    def filtered(self) -> list[Transaction]:
        return list(self._filtered)

    @property
    def page(self) -> int:
        return self._page

    @property
    def total_pages(self) -> int:
        return total_pages(len(self._filtered), self.page_size)

    def current(self) -> Page[Transaction]:
        return paginate(self._filtered, self._page, self.page_size)

    def set_page(self, page: int) -> None:
        self._page = min(max(page, 1), self.total_pages)

    def set_filters(self, filters: TransactionFilters) -> None:
        self._filters = filters
        self._filtered = apply_filters(self._transactions, filters)
        self._page = 1

    def clear_filters(self) -> None:
        self.set_filters(TransactionFilters())

    def update_snapshot(self, transactions: Sequence[Transaction]) -> None:
        self._transactions = list(transactions)
        self._filtered = apply_filters(self._transactions, self._filters)
        self._page = min(self._page, self.total_pages)
