from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

from pydantic import ValidationError as SchemaValidationError

from csv_utils import export_transactions, parse_csv
from defaults import (
    CATEGORY_COLORS,
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_GLOBAL_FILTER,
    DEFAULT_SUBCATEGORY,
    DEFAULT_TAGS,
    DEFAULT_USER_SETTINGS,
    SETTINGS_ID,
)
from errors import AlreadyExists, NotFound, StoreIOError, ValidationError
from listing import (
    DEFAULT_PAGE_SIZE,
    Page,
    TransactionFilters,
    apply_filters,
    matches_search,
    merge_references,
    paginate,
    validate_filters,
)
from live import LiveQuery
from models import TransactionKind
from periods import Period, month_period, today_local, year_months, year_period
from schemas import (
    Category,
    CategoryIn,
    GlobalFilter,
    Tag,
    Transaction,
    TransactionIn,
    TransactionUpdate,
    UserSettings,
)
from stats import StatsSummary, split_amounts, summarize, tracked
from store import RecordStore

logger = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
CATEGORIES = "categories"
TAGS = "tags"
SETTINGS = "settings"

REQUIRED_TRANSACTION_FIELDS = frozenset(
    {"date", "category", "subcategory", "amount", "from_", "to", "track"}
)


def newest_first(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda t: (t.date, t.id), reverse=True)


def _transactions(records: Iterable[dict[str, Any]]) -> list[Transaction]:
    return [Transaction.model_validate(record) for record in records]


async def initialize(store: RecordStore) -> None:
    """Create the settings record and seed default categories and tags.

    Each collection is seeded only while empty, so calling this repeatedly is
    harmless.
    """
    settings = await SettingsService(store).get_settings()
    locale = settings.locale

    if await store.count(CATEGORIES) == 0:
        for name, subcategories in DEFAULT_CATEGORIES[locale].items():
            await store.insert(
                CATEGORIES, {"name": name, "subcategories": list(subcategories)}
            )
        logger.info(f"seeded_categories: locale={locale}")

    if await store.count(TAGS) == 0:
        for name in DEFAULT_TAGS[locale]:
            await store.insert(TAGS, {"name": name})
        logger.info(f"seeded_tags: locale={locale}")


class SettingsService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def _record(self) -> dict[str, Any]:
        record = await self.store.get(SETTINGS, SETTINGS_ID)
        if record is not None:
            return record
        await self.store.insert(
            SETTINGS,
            {
                "id": SETTINGS_ID,
                "user_settings": dict(DEFAULT_USER_SETTINGS),
                "global_filter": dict(DEFAULT_GLOBAL_FILTER),
            },
        )
        logger.info("settings_created: defaults applied")
        record = await self.store.get(SETTINGS, SETTINGS_ID)
        if record is None:
            raise NotFound("Settings record missing after creation")
        return record

    async def get_settings(self) -> UserSettings:
        record = await self._record()
        return UserSettings.model_validate(record["user_settings"] or {})

    async def update_settings(self, patch: dict[str, Any]) -> UserSettings:
        current = await self.get_settings()
        try:
            merged = UserSettings.model_validate({**current.model_dump(), **patch})
        except SchemaValidationError as exc:
            raise ValidationError(str(exc)) from exc
        await self.store.update(
            SETTINGS, SETTINGS_ID, {"user_settings": merged.model_dump()}
        )
        logger.info(f"settings_updated: fields={sorted(patch)}")
        return merged

    async def get_global_filter(self) -> GlobalFilter:
        record = await self._record()
        return GlobalFilter.model_validate(record["global_filter"] or {})

    async def update_global_filter(self, patch: dict[str, Any]) -> GlobalFilter:
        current = await self.get_global_filter()
        try:
            merged = GlobalFilter.model_validate({**current.model_dump(), **patch})
        except SchemaValidationError as exc:
            raise ValidationError(str(exc)) from exc
        await self.store.update(
            SETTINGS, SETTINGS_ID, {"global_filter": merged.model_dump()}
        )
        logger.info(f"global_filter_updated: enabled={merged.enabled}")
        return merged


class CategoryService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    @staticmethod
    def color_for(category_name: str) -> str:
        return CATEGORY_COLORS.get(category_name, DEFAULT_CATEGORY_COLOR)

    async def list_all(self) -> list[Category]:
        records = await self.store.scan_all(CATEGORIES)
        return [Category.model_validate(record) for record in records]

    async def as_mapping(self) -> dict[str, list[str]]:
        return {c.name: list(c.subcategories) for c in await self.list_all()}

    async def get(self, category_id: int) -> Category:
        record = await self.store.get(CATEGORIES, category_id)
        if record is None:
            raise NotFound("Category not found")
        return Category.model_validate(record)

    async def get_by_name(self, name: str) -> Optional[Category]:
        records = await self.store.equality_query(CATEGORIES, "name", name)
        if not records:
            return None
        return Category.model_validate(records[0])

    async def _require(self, name: str) -> Category:
        category = await self.get_by_name(name)
        if category is None:
            raise NotFound(f'Category "{name}" not found')
        return category

    async def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        if await self.get_by_name(name):
            raise AlreadyExists(f'Category "{name}" already exists')

        subcategories = data.subcategories
        if subcategories is None:
            subcategories = [DEFAULT_SUBCATEGORY]
        subcategories = list(dict.fromkeys(s.strip() for s in subcategories if s.strip()))

        category_id = await self.store.insert(
            CATEGORIES, {"name": name, "subcategories": subcategories}
        )
        logger.info(f"category_created: id={category_id} name={name}")
        return await self.get(category_id)

    async def update(self, category_id: int, data: CategoryIn) -> Category:
        category = await self.get(category_id)
        name = data.name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        clash = await self.get_by_name(name)
        if clash and clash.id != category.id:
            raise AlreadyExists(f'Category "{name}" already exists')

        patch: dict[str, Any] = {"name": name}
        if data.subcategories is not None:
            patch["subcategories"] = list(
                dict.fromkeys(s.strip() for s in data.subcategories if s.strip())
            )
        await self.store.update(CATEGORIES, category.id, patch)
        logger.info(f"category_updated: id={category.id} name={name}")
        return await self.get(category.id)

    async def delete(self, category_id: int) -> None:
        # transactions keep pointing at the name; nothing cascades
        await self.store.delete(CATEGORIES, category_id)
        logger.info(f"category_deleted: id={category_id}")

    async def add_subcategory(self, category_name: str, subcategory: str) -> Category:
        category = await self._require(category_name)
        if subcategory in category.subcategories:
            raise AlreadyExists(f'Subcategory "{subcategory}" already exists')
        await self.store.update(
            CATEGORIES,
            category.id,
            {"subcategories": [*category.subcategories, subcategory]},
        )
        logger.info(
            f"subcategory_added: category={category_name} subcategory={subcategory}"
        )
        return await self.get(category.id)

    async def remove_subcategory(
        self, category_name: str, subcategory: str
    ) -> Category:
        category = await self._require(category_name)
        remaining = [s for s in category.subcategories if s != subcategory]
        if remaining != category.subcategories:
            await self.store.update(
                CATEGORIES, category.id, {"subcategories": remaining}
            )
            logger.info(
                f"subcategory_removed: category={category_name} subcategory={subcategory}"
            )
        return await self.get(category.id)


class TagService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def list_all(self) -> list[Tag]:
        records = await self.store.scan_all(TAGS)
        return [Tag.model_validate(record) for record in records]

    async def names(self) -> list[str]:
        return [tag.name for tag in await self.list_all()]

    async def create(self, name: str) -> Tag:
        clean_name = name.strip()
        if not clean_name:
            raise ValidationError("Tag name cannot be empty")
        if await self.store.equality_query(TAGS, "name", clean_name):
            raise AlreadyExists(f'Tag "{clean_name}" already exists')
        tag_id = await self.store.insert(TAGS, {"name": clean_name})
        logger.info(f"tag_created: id={tag_id} name={clean_name}")
        return Tag(id=tag_id, name=clean_name)

    async def delete(self, tag_id: int) -> None:
        await self.store.delete(TAGS, tag_id)
        logger.info(f"tag_deleted: id={tag_id}")


class TransactionService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.categories = CategoryService(store)

    async def check_references(self, category_name: str, subcategory: str) -> None:
        category = await self.categories.get_by_name(category_name)
        if category is None:
            raise ValidationError(f'Unknown category "{category_name}"')
        if subcategory not in category.subcategories:
            raise ValidationError(
                f'Unknown subcategory "{subcategory}" for category "{category_name}"'
            )

    async def get_all(
        self, global_filter: Optional[GlobalFilter] = None
    ) -> list[Transaction]:
        start, end = global_filter.bounds() if global_filter else (None, None)
        if start or end:
            records = await self.store.range_query(TRANSACTIONS, "date", start, end)
        else:
            records = await self.store.scan_all(TRANSACTIONS)
        return newest_first(_transactions(records))

    async def get(self, transaction_id: int) -> Transaction:
        record = await self.store.get(TRANSACTIONS, transaction_id)
        if record is None:
            raise NotFound("Transaction not found")
        return Transaction.model_validate(record)

    async def get_by_month(self, year_month: str) -> list[Transaction]:
        period = month_period(year_month)
        records = await self.store.range_query(
            TRANSACTIONS, "date", period.start, period.end
        )
        return newest_first(_transactions(records))

    async def get_by_category(self, category: str) -> list[Transaction]:
        records = await self.store.equality_query(TRANSACTIONS, "category", category)
        return newest_first(_transactions(records))

    async def search(self, query: str) -> list[Transaction]:
        records = await self.store.scan_all(TRANSACTIONS)
        return newest_first(t for t in _transactions(records) if matches_search(t, query))

    async def create(self, data: TransactionIn) -> Transaction:
        if data.amount == 0:
            raise ValidationError("Amount cannot be zero")
        await self.check_references(data.category, data.subcategory)

        transaction_id = await self.store.insert(TRANSACTIONS, data.model_dump())
        record = await self.store.get(TRANSACTIONS, transaction_id)
        if record is None:
            raise NotFound("Transaction not found after insert")
        logger.info(
            f"transaction_created: id={transaction_id} date={data.date} amount={data.amount}"
        )
        return Transaction.model_validate(record)

    async def _check_patch(
        self, changes: dict[str, Any], current: Optional[Transaction]
    ) -> None:
        missing = sorted(
            key for key in REQUIRED_TRANSACTION_FIELDS & changes.keys()
            if changes[key] is None
        )
        if missing:
            raise ValidationError(f"Fields cannot be cleared: {', '.join(missing)}")
        if changes.get("amount") == 0:
            raise ValidationError("Amount cannot be zero")
        if current is not None and ("category" in changes or "subcategory" in changes):
            await self.check_references(
                changes.get("category", current.category),
                changes.get("subcategory", current.subcategory),
            )

    async def update(self, data: TransactionUpdate) -> Transaction:
        changes = data.changes()
        current = await self.store.get(TRANSACTIONS, data.id)
        await self._check_patch(
            changes, Transaction.model_validate(current) if current else None
        )

        await self.store.update(TRANSACTIONS, data.id, changes)
        record = await self.store.get(TRANSACTIONS, data.id)
        if record is None:
            raise NotFound("Transaction not found")
        logger.info(f"transaction_updated: id={data.id} fields={sorted(changes)}")
        return Transaction.model_validate(record)

    async def bulk_update(self, transaction_ids: list[int], changes: dict[str, Any]) -> int:
        # every target is checked before the first write
        existing = []
        for transaction_id in transaction_ids:
            record = await self.store.get(TRANSACTIONS, transaction_id)
            if record is None:
                continue
            await self._check_patch(changes, Transaction.model_validate(record))
            existing.append(transaction_id)

        updated = await self.store.bulk_update(TRANSACTIONS, existing, changes)
        logger.info(f"transactions_bulk_updated: count={updated}")
        return updated

    async def delete(self, transaction_id: int) -> None:
        await self.store.delete(TRANSACTIONS, transaction_id)
        logger.info(f"transaction_deleted: id={transaction_id}")

    async def bulk_delete(self, transaction_ids: list[int]) -> None:
        await self.store.bulk_delete(TRANSACTIONS, transaction_ids)
        logger.info(f"transactions_bulk_deleted: count={len(transaction_ids)}")

    async def _tracked_between(self, start: str, end: str) -> list[Transaction]:
        records = await self.store.range_query(TRANSACTIONS, "date", start, end)
        return tracked(_transactions(records))

    async def get_stats(self, start: str, end: str) -> dict[str, float]:
        transactions = await self._tracked_between(start, end)
        income, expenses = split_amounts(transactions)
        return {
            "total_income": income,
            "total_expenses": expenses,
            "net_balance": income - expenses,
            "transaction_count": len(transactions),
        }

    async def get_category_breakdown(
        self, start: str, end: str, kind: TransactionKind
    ) -> dict[str, float]:
        if kind == TransactionKind.income:
            sign = 1
        elif kind == TransactionKind.expense:
            sign = -1
        else:
            raise ValidationError("Breakdown is only available for income or expense")

        breakdown: dict[str, float] = {}
        for txn in await self._tracked_between(start, end):
            if txn.amount * sign > 0:
                breakdown[txn.category] = breakdown.get(txn.category, 0.0) + abs(
                    txn.amount
                )
        return breakdown

    async def get_monthly_totals(self, year: int) -> list[dict[str, object]]:
        period = year_period(year)
        totals = {month: [0.0, 0.0] for month in year_months(year)}
        for txn in await self._tracked_between(period.start, period.end):
            bucket = totals.get(txn.date[:7])
            if bucket is None:
                continue
            if txn.amount > 0:
                bucket[0] += txn.amount
            else:
                bucket[1] += abs(txn.amount)
        return [
            {"month": month, "income": income, "expenses": expenses}
            for month, (income, expenses) in sorted(totals.items())
        ]


class ListingService:
    """Read side of the transactions view: global filter, local filters, pages."""

    def __init__(
        self, store: RecordStore, page_size: int = DEFAULT_PAGE_SIZE
    ) -> None:
        self.store = store
        self.page_size = page_size
        self.transactions = TransactionService(store)

    async def _load(self) -> list[Transaction]:
        global_filter = await SettingsService(self.store).get_global_filter()
        return await self.transactions.get_all(global_filter)

    async def snapshot(self) -> list[Transaction]:
        try:
            return await self._load()
        except StoreIOError as exc:
            logger.warning(f"listing_snapshot: store_error={exc}; serving empty list")
            return []

    async def validate(
        self, filters: TransactionFilters, transactions: Iterable[Transaction] = ()
    ) -> None:
        """Check filters against the registries and the names ``transactions`` use."""
        try:
            categories = await CategoryService(self.store).as_mapping()
            tags = await TagService(self.store).names()
        except StoreIOError as exc:
            logger.warning(f"listing_validate: store_error={exc}; skipping checks")
            return
        categories, tags = merge_references(categories, tags, transactions)
        validate_filters(filters, categories, tags)

    async def page(
        self, filters: Optional[TransactionFilters] = None, page: int = 1
    ) -> Page[Transaction]:
        filters = filters or TransactionFilters()
        transactions = await self.snapshot()
        await self.validate(filters, transactions)
        filtered = apply_filters(transactions, filters)
        return paginate(filtered, page, self.page_size)

    def live(self) -> LiveQuery[list[Transaction]]:
        return LiveQuery(
            self.store,
            (TRANSACTIONS, SETTINGS),
            self._load,
            list,
            name="live_transactions",
        )


class MetricsService:
    """Dashboard statistics. Reads never raise store errors."""

    def __init__(self, store: RecordStore, *, today: Optional[date] = None) -> None:
        self.store = store
        self.today = today

    def _today(self) -> date:
        return self.today or today_local()

    async def _all_transactions(self) -> list[Transaction]:
        return _transactions(await self.store.scan_all(TRANSACTIONS))

    def _empty(self, year_month: Optional[str]) -> StatsSummary:
        return summarize([], year_month=year_month, today=self._today())

    async def summary(self, year_month: Optional[str] = None) -> StatsSummary:
        try:
            transactions = await self._all_transactions()
        except StoreIOError as exc:
            logger.warning(f"metrics_summary: store_error={exc}; serving empty stats")
            return self._empty(year_month)
        return summarize(transactions, year_month=year_month, today=self._today())

    async def dashboard(self, year_month: Optional[str] = None) -> dict[str, object]:
        summary = await self.summary(year_month)
        try:
            settings = await SettingsService(self.store).get_settings()
        except StoreIOError as exc:
            logger.warning(f"metrics_dashboard: store_error={exc}; default settings")
            settings = UserSettings()
        return {
            "summary": summary,
            "savings_goal": settings.savings_goal,
            "goal_met": summary.savings_rate >= settings.savings_goal,
        }

    async def range_stats(self, period: Period) -> dict[str, float]:
        try:
            return await TransactionService(self.store).get_stats(
                period.start, period.end
            )
        except StoreIOError as exc:
            logger.warning(f"metrics_range_stats: store_error={exc}; serving zeros")
            return {
                "total_income": 0.0,
                "total_expenses": 0.0,
                "net_balance": 0.0,
                "transaction_count": 0,
            }

    def live_summary(self, year_month: Optional[str] = None) -> LiveQuery[StatsSummary]:
        async def compute() -> StatsSummary:
            return summarize(
                await self._all_transactions(),
                year_month=year_month,
                today=self._today(),
            )

        return LiveQuery(
            self.store,
            (TRANSACTIONS,),
            compute,
            lambda: self._empty(year_month),
            name="live_summary",
        )


class CSVService:
    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.transactions = TransactionService(store)

    def preview(self, content: str) -> tuple[list[dict[str, object]], list[str]]:
        rows, errors = parse_csv(content)
        return [row.model_dump(by_alias=True) for row in rows], errors

    async def commit(self, content: str) -> int:
        rows, errors = parse_csv(content)
        if errors:
            raise ValidationError("; ".join(errors))
        problems = []
        for idx, row in enumerate(rows, start=1):
            try:
                await self.transactions.check_references(row.category, row.subcategory)
            except ValidationError as exc:
                problems.append(f"Row {idx}: {exc}")
        if problems:
            raise ValidationError("; ".join(problems))

        records = [TransactionIn(**row.model_dump()).model_dump() for row in rows]
        created = len(await self.store.insert_many(TRANSACTIONS, records))
        logger.info(f"csv_import: rows={created}")
        return created

    def export(self, transactions: list[Transaction]) -> str:
        return export_transactions(transactions)


async def export_snapshot(store: RecordStore) -> dict[str, object]:
    """Everything in the store as plain JSON-ready data."""
    transactions = await TransactionService(store).get_all()
    categories = await CategoryService(store).as_mapping()
    tags = await TagService(store).names()
    settings_service = SettingsService(store)
    return {
        "transactions": [t.model_dump(by_alias=True) for t in transactions],
        "categories": categories,
        "tags": tags,
        "global_filter": (await settings_service.get_global_filter()).model_dump(),
        "settings": (await settings_service.get_settings()).model_dump(),
    }
