"""Async record store over SQLite.

Every operation runs its blocking SQLAlchemy work in a worker thread and all
of them share a capacity limiter of one, so writes are applied in the order
they were awaited. Records travel in and out as plain dicts keyed by the ORM
attribute names.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Iterable, Optional, TypeVar

import anyio
from sqlalchemy import delete, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import Base, create_db_engine, make_session_factory, session_scope
from errors import StoreIOError
from models import COLLECTIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")
ChangeListener = Callable[[str], None]

TIMESTAMP_FIELDS = ("created_at", "updated_at")


def _to_dict(obj: Base) -> dict[str, Any]:
    return {
        attr.key: getattr(obj, attr.key)
        for attr in inspect(obj).mapper.column_attrs
        if attr.key not in TIMESTAMP_FIELDS
    }


class RecordStore:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._engine = None
        self._sessions = None
        self._limiter: Optional[anyio.CapacityLimiter] = None
        self._versions: dict[str, int] = defaultdict(int)
        self._listeners: list[ChangeListener] = []

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self) -> None:
        if self.is_open:
            return
        self._limiter = anyio.CapacityLimiter(1)
        self._engine = create_db_engine(self.database_url)
        self._sessions = make_session_factory(self._engine)
        try:
            await anyio.to_thread.run_sync(
                Base.metadata.create_all, self._engine, limiter=self._limiter
            )
        except SQLAlchemyError as exc:
            self._engine.dispose()
            self._engine = None
            raise StoreIOError(f"Could not open store: {exc}") from exc
        logger.info(f"store_open: url={self.database_url}")

    async def close(self) -> None:
        if not self.is_open:
            return
        engine = self._engine
        self._engine = None
        self._sessions = None
        await anyio.to_thread.run_sync(engine.dispose)
        logger.info(f"store_closed: url={self.database_url}")

    async def __aenter__(self) -> "RecordStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # change notification

    def version(self, collection: str) -> int:
        return self._versions[collection]

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _changed(self, collection: str) -> None:
        self._versions[collection] += 1
        for listener in list(self._listeners):
            listener(collection)

    # plumbing

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise StoreIOError(f"Unknown collection: {collection}") from None

    def _column(self, collection: str, field: str):
        model = self._model(collection)
        column = getattr(model, field, None)
        if column is None:
            raise StoreIOError(f"Unknown field {field!r} on {collection}")
        return column

    def _check_patch(self, collection: str, patch: dict[str, Any]) -> None:
        model = self._model(collection)
        known = {attr.key for attr in inspect(model).column_attrs}
        unknown = sorted(key for key in patch if key not in known)
        if unknown:
            raise StoreIOError(f"Unknown field(s) {', '.join(unknown)} on {collection}")

    async def _run(self, fn: Callable[[Session], T]) -> T:
        if not self.is_open:
            raise StoreIOError("Store is not open")

        def work() -> T:
            with session_scope(self._sessions) as session:
                return fn(session)

        try:
            return await anyio.to_thread.run_sync(work, limiter=self._limiter)
        except SQLAlchemyError as exc:
            logger.warning(f"store_error: {exc.__class__.__name__}: {exc}")
            raise StoreIOError(str(exc)) from exc

    # record operations

    async def insert(self, collection: str, record: dict[str, Any]) -> Any:
        model = self._model(collection)

        def work(session: Session) -> Any:
            obj = model(**record)
            session.add(obj)
            session.flush()
            return obj.id

        new_id = await self._run(work)
        self._changed(collection)
        return new_id

    async def insert_many(
        self, collection: str, records: list[dict[str, Any]]
    ) -> list[Any]:
        """Insert every record in one transaction; either all land or none."""
        model = self._model(collection)
        if not records:
            return []

        def work(session: Session) -> list[Any]:
            objs = [model(**record) for record in records]
            session.add_all(objs)
            session.flush()
            return [obj.id for obj in objs]

        new_ids = await self._run(work)
        self._changed(collection)
        return new_ids

    async def get(self, collection: str, record_id: Any) -> Optional[dict[str, Any]]:
        model = self._model(collection)

        def work(session: Session) -> Optional[dict[str, Any]]:
            obj = session.get(model, record_id)
            return _to_dict(obj) if obj is not None else None

        return await self._run(work)

    async def update(
        self, collection: str, record_id: Any, patch: dict[str, Any]
    ) -> None:
        """Merge ``patch`` into the record. A missing id is a no-op."""
        await self.bulk_update(collection, [record_id], patch)

    async def bulk_update(
        self, collection: str, record_ids: Iterable[Any], patch: dict[str, Any]
    ) -> int:
        """Merge ``patch`` into every existing record in one transaction.

        Unknown ids are skipped. Returns how many records were updated.
        """
        model = self._model(collection)
        self._check_patch(collection, patch)
        ids = list(record_ids)
        changes = {key: value for key, value in patch.items() if key != "id"}

        def work(session: Session) -> int:
            updated = 0
            for record_id in ids:
                obj = session.get(model, record_id)
                if obj is None:
                    continue
                for key, value in changes.items():
                    setattr(obj, key, value)
                updated += 1
            return updated

        updated = await self._run(work)
        if updated:
            self._changed(collection)
        return updated

    async def delete(self, collection: str, record_id: Any) -> None:
        await self.bulk_delete(collection, [record_id])

    async def bulk_delete(self, collection: str, record_ids: Iterable[Any]) -> None:
        model = self._model(collection)
        ids = list(record_ids)
        if not ids:
            return

        def work(session: Session) -> int:
            result = session.execute(delete(model).where(model.id.in_(ids)))
            return result.rowcount or 0

        if await self._run(work):
            self._changed(collection)

    async def range_query(
        self,
        collection: str,
        field: str,
        lower: Any = None,
        upper: Any = None,
    ) -> list[dict[str, Any]]:
        """Records with ``lower <= field <= upper``; a ``None`` bound is open."""
        model = self._model(collection)
        column = self._column(collection, field)
        stmt = select(model).order_by(column.asc(), model.id.asc())
        if lower is not None:
            stmt = stmt.where(column >= lower)
        if upper is not None:
            stmt = stmt.where(column <= upper)
        return await self._run(partial(self._select_dicts, stmt))

    async def equality_query(
        self, collection: str, field: str, value: Any
    ) -> list[dict[str, Any]]:
        model = self._model(collection)
        column = self._column(collection, field)
        stmt = select(model).where(column == value).order_by(model.id.asc())
        return await self._run(partial(self._select_dicts, stmt))

    async def scan_all(self, collection: str) -> list[dict[str, Any]]:
        model = self._model(collection)
        stmt = select(model).order_by(model.id.asc())
        return await self._run(partial(self._select_dicts, stmt))

    async def count(self, collection: str) -> int:
        model = self._model(collection)
        stmt = select(func.count(model.id))
        return await self._run(lambda session: int(session.scalar(stmt) or 0))

    @staticmethod
    def _select_dicts(stmt, session: Session) -> list[dict[str, Any]]:
        return [_to_dict(obj) for obj in session.scalars(stmt).all()]
