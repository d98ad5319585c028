import anyio
import pytest

from csv_utils import (
    CSV_HEADER,
    export_transactions,
    parse_amount,
    parse_csv,
    parse_date,
    sanitize_csv_value,
)
from errors import ValidationError
from schemas import Transaction
from services import CSVService, TransactionService, initialize
from store import RecordStore

HEADER = ",".join(CSV_HEADER)


def test_parse_amount_variants() -> None:
    assert parse_amount("-1000") == -1000
    assert parse_amount("€ 12,50") == 12.5
    assert parse_amount("-1.234,56") == -1234.56
    assert parse_amount("$3.10") == 3.1
    with pytest.raises(ValueError, match="zero"):
        parse_amount("0,00")
    with pytest.raises(ValueError):
        parse_amount("abc")


def test_parse_date_accepts_iso_and_dotted() -> None:
    assert parse_date("2024-03-05") == "2024-03-05"
    assert parse_date(" 05.03.2024 ") == "2024-03-05"
    with pytest.raises(ValueError):
        parse_date("2024/03/05")


def test_parse_csv_collects_row_errors() -> None:
    content = "\n".join(
        [
            HEADER,
            "2024-03-05,Home,Rent,-1000,,,March rent,Recurring,1",
            "2024-03-10,Salary,Fixed,3000,,,,,",
            "bad-date,Home,Rent,-5,,,,,1",
            "2024-03-11,Home,,-5,,,,,1",
            "2024-03-12,Other,Miscellaneous,-50,Checking,Savings,,,no",
        ]
    )

    rows, errors = parse_csv(content)

    assert len(rows) == 3
    assert rows[0].note == "March rent"
    assert rows[0].tag == "Recurring"
    assert rows[1].track is True
    assert rows[1].note is None
    assert rows[2].from_ == "Checking"
    assert rows[2].track is False
    assert [e.split(":")[0] for e in errors] == ["Row 3", "Row 4"]


def test_sanitize_neutralizes_formulas() -> None:
    assert sanitize_csv_value("=SUM(A1)") == "\t=SUM(A1)"
    assert sanitize_csv_value("https://example.com") == "\thttps://example.com"
    assert sanitize_csv_value("  Rent ") == "Rent"
    assert sanitize_csv_value("") == ""


def test_export_writes_header_and_rows() -> None:
    txn = Transaction(
        id=1,
        date="2024-03-05",
        category="Home",
        subcategory="Rent",
        amount=-1000,
        note="=cmd",
        track=False,
    )

    lines = export_transactions([txn]).splitlines()

    assert lines[0] == HEADER
    assert lines[1] == "2024-03-05,Home,Rent,-1000.00,,,\t=cmd,,0"


def test_commit_imports_rows_in_order() -> None:
    content = "\n".join(
        [
            HEADER,
            "2024-03-05,Home,Rent,-1000,,,,,1",
            "2024-03-10,Salary,Fixed,3000,,,,,1",
        ]
    )

    async def scenario():
        async with RecordStore("sqlite://") as store:
            await initialize(store)
            service = CSVService(store)

            preview, errors = service.preview(content)
            assert errors == []
            assert preview[0]["from"] == ""
            assert await store.count("transactions") == 0

            assert await service.commit(content) == 2
            dates = [t.date for t in await TransactionService(store).get_all()]
            assert dates == ["2024-03-10", "2024-03-05"]

            exported = service.export(await TransactionService(store).get_all())
            assert exported.splitlines()[1].startswith("2024-03-10,Salary,Fixed,3000.00")

    anyio.run(scenario)


def test_commit_rejects_files_with_errors() -> None:
    content = "\n".join([HEADER, "2024-03-05,Home,Rent,abc,,,,,1"])

    async def scenario():
        async with RecordStore("sqlite://") as store:
            await initialize(store)
            with pytest.raises(ValidationError, match="Row 1"):
                await CSVService(store).commit(content)
            assert await store.count("transactions") == 0

    anyio.run(scenario)


def test_commit_with_unknown_category_saves_nothing() -> None:
    content = "\n".join(
        [
            HEADER,
            "2024-03-05,Home,Rent,-10,,,,,1",
            "2024-03-06,Nope,X,-5,,,,,1",
        ]
    )

    async def scenario():
        async with RecordStore("sqlite://") as store:
            await initialize(store)
            with pytest.raises(ValidationError, match="Row 2"):
                await CSVService(store).commit(content)
            assert await TransactionService(store).get_all() == []

    anyio.run(scenario)
