from datetime import date

import anyio

from live import LiveQuery
from schemas import GlobalFilter, TransactionIn
from services import (
    ListingService,
    MetricsService,
    SettingsService,
    TransactionService,
    initialize,
)
from store import RecordStore


def rent(day: str, amount: float = -1000) -> TransactionIn:
    return TransactionIn(date=day, category="Home", subcategory="Rent", amount=amount)


def test_refresh_only_recomputes_when_stale() -> None:
    calls: list[int] = []

    async def scenario():
        async with RecordStore("sqlite://") as store:

            async def compute() -> int:
                calls.append(1)
                return await store.count("tags")

            query = LiveQuery(store, ("tags",), compute, lambda: -1)
            assert query.is_stale
            assert query.value == -1

            assert await query.refresh() == 0
            assert await query.refresh() == 0
            assert len(calls) == 1

            await store.insert("categories", {"name": "Pets", "subcategories": []})
            assert not query.is_stale

            await store.insert("tags", {"name": "Urgent"})
            assert query.is_stale
            assert await query.refresh() == 1
            assert query.value == 1
            assert len(calls) == 2

            await query.refresh(force=True)
            assert len(calls) == 3

    anyio.run(scenario)


def test_subscribers_receive_new_values_until_unsubscribed() -> None:
    received: list[int] = []

    async def scenario():
        async with RecordStore("sqlite://") as store:
            query = LiveQuery(store, ("tags",), lambda: store.count("tags"), lambda: 0)
            unsubscribe = query.subscribe(received.append)

            await store.insert("tags", {"name": "Urgent"})
            await query.refresh()
            unsubscribe()
            unsubscribe()
            await store.insert("tags", {"name": "Later"})
            await query.refresh()

    anyio.run(scenario)
    assert received == [1]


def test_store_failure_falls_back() -> None:
    async def scenario():
        store = RecordStore("sqlite://")
        query = LiveQuery(store, ("tags",), lambda: store.count("tags"), lambda: -1)
        assert await query.refresh() == -1

        metrics = MetricsService(store, today=date(2024, 3, 20))
        summary = await metrics.summary()
        assert summary.year_month == "2024-03"
        assert summary.total_expenses == 0
        assert len(summary.monthly_stats) == 12

        live = metrics.live_summary("2024-03")
        assert (await live.refresh()).transaction_count == 0

        assert await ListingService(store).snapshot() == []

    anyio.run(scenario)


def test_live_listing_tracks_global_filter_changes() -> None:
    async def scenario():
        async with RecordStore("sqlite://") as store:
            await initialize(store)
            service = TransactionService(store)
            await service.create(rent("2024-01-05"))
            await service.create(rent("2024-02-05"))

            live = ListingService(store).live()
            assert len(await live.refresh()) == 2

            await SettingsService(store).update_global_filter(
                GlobalFilter(enabled=True, start_date="2024-02-01").model_dump()
            )
            assert live.is_stale
            assert [t.date for t in await live.refresh()] == ["2024-02-05"]

    anyio.run(scenario)


def test_watch_yields_on_each_relevant_change() -> None:
    seen: list[float] = []

    async def scenario():
        async with RecordStore("sqlite://") as store:
            await initialize(store)
            service = TransactionService(store)
            live = MetricsService(store, today=date(2024, 3, 20)).live_summary("2024-03")

            async def consume() -> None:
                async for summary in live.watch():
                    seen.append(summary.total_expenses)
                    if len(seen) == 3:
                        break

            with anyio.fail_after(10):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(consume)
                    await anyio.wait_all_tasks_blocked()
                    await service.create(rent("2024-03-05"))
                    await anyio.wait_all_tasks_blocked()
                    await store.insert("tags", {"name": "Ignored"})
                    await service.create(rent("2024-03-06", -500))

    anyio.run(scenario)
    assert seen == [0, 1000, 1500]
