import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from config import get_settings
from errors import AlreadyExists, NotFound, StoreIOError, ValidationError
from listing import TransactionFilters, apply_filters
from models import TransactionKind
from periods import resolve_period
from schemas import (
    BulkDeleteIn,
    BulkUpdateIn,
    CategoryIn,
    GlobalFilter,
    SubcategoryIn,
    TagIn,
    TransactionIn,
    TransactionUpdate,
    UserSettings,
)
from services import (
    CategoryService,
    CSVService,
    ListingService,
    MetricsService,
    SettingsService,
    TagService,
    TransactionService,
    export_snapshot,
    initialize,
)
from store import RecordStore


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AlreadyExists):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreIOError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params
    type_param = params.get("type")
    try:
        kind = TransactionKind(type_param) if type_param else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid transaction type") from exc
    return TransactionFilters(
        category=params.get("category") or None,
        subcategory=params.get("subcategory") or None,
        tag=params.get("tag") or None,
        type=kind,
        year_month=params.get("month") or None,
        search=params.get("q") or None,
    )


def create_app(store: Optional[RecordStore] = None) -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    record_store = store or RecordStore(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await record_store.open()
        await initialize(record_store)
        try:
            yield
        finally:
            await record_store.close()

    app = FastAPI(title="Expense Ledger", lifespan=lifespan)
    app.state.store = record_store
    page_size = settings.page_size

    @app.get("/api/transactions")
    async def api_transactions(request: Request, db: RecordStore = Depends(get_store)):
        filters = filters_from_request(request)
        try:
            page = max(int(request.query_params.get("page", "1")), 1)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid page") from exc
        try:
            result = await ListingService(db, page_size).page(filters, page)
        except ValidationError as exc:
            raise _http_error(exc) from exc
        return {
            "items": [
                {**txn.model_dump(by_alias=True), "kind": txn.kind.value}
                for txn in result.items
            ],
            "page": result.page,
            "page_size": result.page_size,
            "total_items": result.total_items,
            "total_pages": result.total_pages,
        }

    @app.get("/api/transactions/{transaction_id}")
    async def api_get_transaction(
        transaction_id: int, db: RecordStore = Depends(get_store)
    ):
        try:
            txn = await TransactionService(db).get(transaction_id)
        except (NotFound, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return txn.model_dump(by_alias=True)

    @app.post("/api/transactions", status_code=201)
    async def api_create_transaction(
        data: TransactionIn, db: RecordStore = Depends(get_store)
    ):
        try:
            txn = await TransactionService(db).create(data)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return txn.model_dump(by_alias=True)

    @app.patch("/api/transactions/{transaction_id}")
    async def api_update_transaction(
        transaction_id: int,
        patch: dict = Body(...),
        db: RecordStore = Depends(get_store),
    ):
        try:
            data = TransactionUpdate.model_validate({**patch, "id": transaction_id})
            txn = await TransactionService(db).update(data)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return txn.model_dump(by_alias=True)

    @app.delete("/api/transactions/{transaction_id}", status_code=204)
    async def api_delete_transaction(
        transaction_id: int, db: RecordStore = Depends(get_store)
    ):
        try:
            await TransactionService(db).delete(transaction_id)
        except StoreIOError as exc:
            raise _http_error(exc) from exc
        return Response(status_code=204)

    @app.post("/api/transactions/bulk-delete")
    async def api_bulk_delete(data: BulkDeleteIn, db: RecordStore = Depends(get_store)):
        try:
            await TransactionService(db).bulk_delete(data.ids)
        except StoreIOError as exc:
            raise _http_error(exc) from exc
        return {"deleted": len(data.ids)}

    @app.post("/api/transactions/bulk-update")
    async def api_bulk_update(data: BulkUpdateIn, db: RecordStore = Depends(get_store)):
        changes = data.model_dump(exclude_unset=True, exclude={"ids"})
        try:
            updated = await TransactionService(db).bulk_update(data.ids, changes)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return {"updated": updated}

    @app.get("/transactions/export.csv")
    async def api_export_csv(request: Request, db: RecordStore = Depends(get_store)):
        filters = filters_from_request(request)
        transactions = apply_filters(await ListingService(db, page_size).snapshot(), filters)
        csv_text = CSVService(db).export(transactions)
        return StreamingResponse(
            iter([csv_text]),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
        )

    @app.post("/transactions/import")
    async def api_import_csv(request: Request, db: RecordStore = Depends(get_store)):
        content = (await request.body()).decode("utf-8-sig")
        service = CSVService(db)
        if request.query_params.get("preview"):
            rows, errors = service.preview(content)
            return {"rows": rows, "errors": errors}
        try:
            created = await service.commit(content)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        logging.info(f"Imported {created} transactions from CSV")
        return {"created": created}

    @app.get("/api/stats")
    async def api_stats(request: Request, db: RecordStore = Depends(get_store)):
        data = await MetricsService(db).dashboard(request.query_params.get("month"))
        return {**data, "summary": asdict(data["summary"])}

    @app.get("/api/stats/range")
    async def api_range_stats(request: Request, db: RecordStore = Depends(get_store)):
        params = request.query_params
        try:
            period = resolve_period(params.get("period"), params.get("start"), params.get("end"))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return await MetricsService(db).range_stats(period)

    @app.get("/api/stats/breakdown")
    async def api_breakdown(request: Request, db: RecordStore = Depends(get_store)):
        params = request.query_params
        try:
            period = resolve_period(params.get("period"), params.get("start"), params.get("end"))
            kind = TransactionKind(params.get("kind", "expense"))
            return await TransactionService(db).get_category_breakdown(
                period.start, period.end, kind
            )
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc

    @app.get("/api/stats/monthly-totals/{year}")
    async def api_monthly_totals(year: int, db: RecordStore = Depends(get_store)):
        try:
            return await TransactionService(db).get_monthly_totals(year)
        except StoreIOError:
            return []

    @app.get("/api/categories")
    async def api_categories(db: RecordStore = Depends(get_store)):
        try:
            categories = await CategoryService(db).list_all()
        except StoreIOError:
            categories = []
        return [
            {**c.model_dump(), "color": CategoryService.color_for(c.name)}
            for c in categories
        ]

    @app.post("/api/categories", status_code=201)
    async def api_create_category(data: CategoryIn, db: RecordStore = Depends(get_store)):
        try:
            category = await CategoryService(db).create(data)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return category.model_dump()

    @app.put("/api/categories/{category_id}")
    async def api_update_category(
        category_id: int, data: CategoryIn, db: RecordStore = Depends(get_store)
    ):
        try:
            category = await CategoryService(db).update(category_id, data)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return category.model_dump()

    @app.delete("/api/categories/{category_id}", status_code=204)
    async def api_delete_category(category_id: int, db: RecordStore = Depends(get_store)):
        try:
            await CategoryService(db).delete(category_id)
        except StoreIOError as exc:
            raise _http_error(exc) from exc
        return Response(status_code=204)

    @app.post("/api/categories/{category_name}/subcategories", status_code=201)
    async def api_add_subcategory(
        category_name: str, data: SubcategoryIn, db: RecordStore = Depends(get_store)
    ):
        try:
            category = await CategoryService(db).add_subcategory(category_name, data.name)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return category.model_dump()

    @app.delete("/api/categories/{category_name}/subcategories/{subcategory}")
    async def api_remove_subcategory(
        category_name: str, subcategory: str, db: RecordStore = Depends(get_store)
    ):
        try:
            category = await CategoryService(db).remove_subcategory(
                category_name, subcategory
            )
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return category.model_dump()

    @app.get("/api/tags")
    async def api_tags(db: RecordStore = Depends(get_store)):
        try:
            tags = await TagService(db).list_all()
        except StoreIOError:
            tags = []
        return [tag.model_dump() for tag in tags]

    @app.post("/api/tags", status_code=201)
    async def api_create_tag(data: TagIn, db: RecordStore = Depends(get_store)):
        try:
            tag = await TagService(db).create(data.name)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return tag.model_dump()

    @app.delete("/api/tags/{tag_id}", status_code=204)
    async def api_delete_tag(tag_id: int, db: RecordStore = Depends(get_store)):
        try:
            await TagService(db).delete(tag_id)
        except StoreIOError as exc:
            raise _http_error(exc) from exc
        return Response(status_code=204)

    @app.get("/api/settings")
    async def api_settings(db: RecordStore = Depends(get_store)):
        service = SettingsService(db)
        try:
            user_settings = await service.get_settings()
            global_filter = await service.get_global_filter()
        except StoreIOError:
            user_settings, global_filter = UserSettings(), GlobalFilter()
        return {
            "settings": user_settings.model_dump(),
            "global_filter": global_filter.model_dump(),
        }

    @app.patch("/api/settings")
    async def api_update_settings(
        patch: dict = Body(...), db: RecordStore = Depends(get_store)
    ):
        try:
            settings_out = await SettingsService(db).update_settings(patch)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return settings_out.model_dump()

    @app.patch("/api/global-filter")
    async def api_update_global_filter(
        patch: dict = Body(...), db: RecordStore = Depends(get_store)
    ):
        try:
            global_filter = await SettingsService(db).update_global_filter(patch)
        except (ValueError, StoreIOError) as exc:
            raise _http_error(exc) from exc
        return global_filter.model_dump()

    @app.get("/api/export")
    async def api_export(db: RecordStore = Depends(get_store)):
        try:
            return await export_snapshot(db)
        except StoreIOError as exc:
            raise _http_error(exc) from exc

    return app
