"""
Invoice payload schemas and validation helpers.

Create/update payloads arrive from forms or JSON bodies and are validated
here before anything touches the database. Validation never raises: callers
get a ValidationResult carrying either the normalized record or a
field-path -> message map (e.g. {"items.0.quantity": "..."}).
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_core import PydanticCustomError

InvoiceStatus = Literal["paid", "pending", "overdue", "cancelled"]
PaymentMethod = Literal["credit_card", "bank_transfer", "paypal", "cash", "other"]

MAX_ITEMS = 100
MAX_NOTES_LENGTH = 1000
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CENTS = Decimal("0.01")


def _parse_calendar_date(value: Any, label: str) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise PydanticCustomError(
            "date_format", "{label} must be in YYYY-MM-DD format", {"label": label}
        )
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise PydanticCustomError(
            "date_invalid", "Invalid {label}", {"label": label.lower()}
        )


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _require_number(value: Any) -> Any:
    # bool is an int subclass.
    if value is None:
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise PydanticCustomError("number_type", "Input should be a number")
    return value


def _check_date_order(issue_date: Optional[date], due_date: Optional[date]) -> None:
    if issue_date is not None and due_date is not None and due_date < issue_date:
        raise PydanticCustomError(
            "date_order", "Due date must be on or after issue date"
        )


class InvoiceItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    quantity: StrictInt = Field(..., ge=1)
    price: float = Field(..., ge=0, allow_inf_nan=False)

    @field_validator("price", mode="before")
    @classmethod
    def _price_is_number(cls, v: Any) -> Any:
        return _require_number(v)


class _InvoiceFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("customer_email", "notes", mode="before", check_fields=False)
    @classmethod
    def _empty_string_is_absent(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def _amount_is_number(cls, v: Any) -> Any:
        return _require_number(v)

    @field_validator("issue_date", mode="before", check_fields=False)
    @classmethod
    def _issue_date_format(cls, v: Any) -> Any:
        if v is None:
            return v
        return _parse_calendar_date(v, "Issue date")

    @field_validator("due_date", mode="before", check_fields=False)
    @classmethod
    def _due_date_format(cls, v: Any) -> Any:
        if v is None:
            return v
        return _parse_calendar_date(v, "Due date")

    # issue_date is declared before due_date so it is present in info.data.
    @field_validator("due_date", check_fields=False)
    @classmethod
    def _due_after_issue(cls, v: Optional[date], info: ValidationInfo) -> Optional[date]:
        _check_date_order(info.data.get("issue_date"), v)
        return v

    @field_validator("amount", check_fields=False)
    @classmethod
    def _round_to_cents(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        return v.quantize(_CENTS, rounding=ROUND_HALF_UP)


class InvoiceCreate(_InvoiceFields):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    amount: Decimal = Field(..., ge=_CENTS, le=Decimal("99999999.99"))
    status: InvoiceStatus
    issue_date: date
    due_date: date
    items: List[InvoiceItem] = Field(..., min_length=1, max_length=MAX_ITEMS)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)


class InvoiceUpdate(_InvoiceFields):
    id: uuid.UUID
    customer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    amount: Optional[Decimal] = Field(None, ge=_CENTS, le=Decimal("99999999.99"))
    status: Optional[InvoiceStatus] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    items: Optional[List[InvoiceItem]] = Field(None, min_length=1, max_length=MAX_ITEMS)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(None, max_length=MAX_NOTES_LENGTH)

    @field_validator("customer_name", "amount", "status", "issue_date", "due_date", "items")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        # Optional means "may be omitted"; an explicit null would clear a NOT NULL column.
        if v is None:
            raise PydanticCustomError("not_null", "Field cannot be cleared")
        return v

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually supplied, minus the identifier."""
        return self.model_dump(exclude_unset=True, exclude={"id"})


class InvoiceResponse(BaseModel):
    id: str
    invoice_number: str
    organization_id: str
    user_id: str
    customer_name: str
    customer_email: Optional[str] = None
    amount: float
    status: str
    issue_date: str
    due_date: str
    items: List[InvoiceItem] = []
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


SortField = Literal[
    "created_at", "issue_date", "due_date", "amount", "customer_name", "invoice_number", "status"
]


class InvoiceListQuery(BaseModel):
    search: Optional[str] = Field(None, max_length=255)
    status: Optional[InvoiceStatus] = None
    sort: SortField = "created_at"
    order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1, le=100)

    @field_validator("search", mode="before")
    @classmethod
    def _blank_search(cls, v: Any) -> Any:
        return _blank_to_none(v)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    success: bool
    data: Optional[BaseModel] = None
    errors: Dict[str, str] = field(default_factory=dict)


def format_validation_errors(exc: ValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into {"dotted.path": "message"}; first message wins."""
    errors: Dict[str, str] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"]) or "_schema"
        errors.setdefault(path, err["msg"])
    return errors


def _validate(model: type, data: Any) -> ValidationResult:
    try:
        return ValidationResult(success=True, data=model.model_validate(data))
    except ValidationError as exc:
        return ValidationResult(success=False, errors=format_validation_errors(exc))


def validate_create_invoice(data: Any) -> ValidationResult:
    return _validate(InvoiceCreate, data)


def validate_update_invoice(data: Any) -> ValidationResult:
    return _validate(InvoiceUpdate, data)


def check_date_order(issue_date: Optional[date], due_date: Optional[date]) -> Dict[str, str]:
    """Cross-field rule for partial updates merged with stored values."""
    try:
        _check_date_order(issue_date, due_date)
    except PydanticCustomError as exc:
        return {"due_date": exc.message()}
    return {}
