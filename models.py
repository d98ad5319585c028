from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base
from defaults import SALARY_CATEGORIES


class TransactionKind(str, Enum):
    income = "income"
    expense = "expense"
    transfer = "transfer"


class Locale(str, Enum):
    en = "en"
    it = "it"


def classify_transaction(
    category: str, amount: float, from_: Optional[str], to: Optional[str]
) -> TransactionKind:
    # order matters: a positive amount with both parties set is still income
    if category in SALARY_CATEGORIES or amount > 0:
        return TransactionKind.income
    if from_ and to:
        return TransactionKind.transfer
    return TransactionKind.expense


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class TransactionRecord(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    from_: Mapped[str] = mapped_column("from", String(200), nullable=False, default="")
    to: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    note: Mapped[Optional[str]] = mapped_column(Text)
    tag: Mapped[Optional[str]] = mapped_column(String(50))
    track: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_category", "category"),
        Index("ix_transactions_subcategory", "subcategory"),
        Index("ix_transactions_tag", "tag"),
        Index("ix_transactions_track", "track"),
    )


class CategoryRecord(Base, TimestampMixin):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("name", name="uq_category_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class TagRecord(Base, TimestampMixin):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("name", name="uq_tag_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)


class SettingsRecord(Base, TimestampMixin):
    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    user_settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    global_filter: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_sync: Mapped[Optional[str]] = mapped_column(String(40))


COLLECTIONS: dict[str, type[Base]] = {
    "transactions": TransactionRecord,
    "categories": CategoryRecord,
    "tags": TagRecord,
    "settings": SettingsRecord,
}
