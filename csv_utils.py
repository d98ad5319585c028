import csv
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence

from schemas import CSVRow, Transaction

CSV_HEADER = [
    "Date",
    "Category",
    "Subcategory",
    "Amount",
    "From",
    "To",
    "Note",
    "Tag",
    "Track",
]

TRUTHY = {"1", "true", "yes", "y", "on"}


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_date(value: str) -> str:
    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date().isoformat()
    except ValueError:
        return datetime.strptime(value, "%d.%m.%Y").date().isoformat()


def parse_amount(value: str) -> float:
    """Signed amount; accepts a currency symbol and a decimal comma."""
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if amount == 0:
        raise ValueError("Amount cannot be zero")
    return float(amount.quantize(Decimal("0.01")))


def parse_csv(content: str) -> tuple[list[CSVRow], list[str]]:
    reader = csv.DictReader(StringIO(content))
    rows: list[CSVRow] = []
    errors: list[str] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            date_value = parse_date(raw.get("Date") or "")
            amount_value = parse_amount(raw.get("Amount") or "0")
            category = (raw.get("Category") or "").strip()
            subcategory = (raw.get("Subcategory") or "").strip()
            if not category or not subcategory:
                raise ValueError("Category and subcategory are required")
            note = (raw.get("Note") or "").strip() or None
            tag = (raw.get("Tag") or "").strip() or None
            track_raw = (raw.get("Track") or "1").strip().lower()
            rows.append(
                CSVRow(
                    date=date_value,
                    category=category,
                    subcategory=subcategory,
                    amount=amount_value,
                    from_=(raw.get("From") or "").strip(),
                    to=(raw.get("To") or "").strip(),
                    note=note,
                    tag=tag,
                    track=track_raw in TRUTHY,
                )
            )
        except Exception as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    for txn in transactions:
        writer.writerow(
            [
                txn.date,
                sanitize_csv_value(txn.category),
                sanitize_csv_value(txn.subcategory),
                f"{txn.amount:.2f}",
                sanitize_csv_value(txn.from_),
                sanitize_csv_value(txn.to),
                sanitize_csv_value(txn.note or ""),
                sanitize_csv_value(txn.tag or ""),
                "1" if txn.track else "0",
            ]
        )
    return output.getvalue()
