import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from models import TransactionKind, classify_transaction

ISO_DATE = r"^\d{4}-\d{2}-\d{2}$"
YEAR_MONTH = r"^\d{4}-\d{2}$"


def real_date(value: str) -> str:
    """Reject well-formed strings that name no calendar day, like 2024-13-45."""
    try:
        datetime.date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc
    return value


IsoDate = Annotated[str, StringConstraints(pattern=ISO_DATE), AfterValidator(real_date)]


class TransactionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: IsoDate
    category: str = Field(..., min_length=1, max_length=100)
    subcategory: str = Field(..., min_length=1, max_length=100)
    amount: float
    from_: str = Field(default="", alias="from", max_length=200)
    to: str = Field(default="", max_length=200)
    note: Optional[str] = None
    tag: Optional[str] = Field(default=None, max_length=50)
    track: bool = True


class Transaction(TransactionIn):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    id: int

    @property
    def kind(self) -> TransactionKind:
        return classify_transaction(self.category, self.amount, self.from_, self.to)

    @property
    def year_month(self) -> str:
        return self.date[:7]


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    date: Optional[IsoDate] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    subcategory: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[float] = None
    from_: Optional[str] = Field(default=None, alias="from", max_length=200)
    to: Optional[str] = Field(default=None, max_length=200)
    note: Optional[str] = None
    tag: Optional[str] = Field(default=None, max_length=50)
    track: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller, keyed by record field."""
        return self.model_dump(exclude_unset=True, exclude={"id"})


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    subcategories: Optional[list[str]] = None


class Category(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    subcategories: list[str] = Field(default_factory=list)


class SubcategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class TagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)


class Tag(BaseModel):
    id: int
    name: str


class UserSettings(BaseModel):
    locale: Literal["en", "it"] = "en"
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    savings_goal: float = Field(default=20, ge=0, le=100)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str) -> str:
        return value.upper()


class GlobalFilter(BaseModel):
    enabled: bool = False
    start_date: Optional[IsoDate] = None
    end_date: Optional[IsoDate] = None

    def bounds(self) -> tuple[Optional[str], Optional[str]]:
        if not self.enabled:
            return None, None
        return self.start_date, self.end_date


class BulkDeleteIn(BaseModel):
    ids: list[int]


class BulkUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ids: list[int]
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    subcategory: Optional[str] = Field(default=None, min_length=1, max_length=100)
    tag: Optional[str] = Field(default=None, max_length=50)
    track: Optional[bool] = None


class CSVRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: IsoDate
    category: str
    subcategory: str
    amount: float
    from_: str = Field(default="", alias="from")
    to: str = ""
    note: Optional[str] = None
    tag: Optional[str] = None
    track: bool = True

