"""Invoice data models for structured extraction.

Field names follow Python conventions; the camelCase aliases match the JSON
shape returned by the extraction prompt and consumed by the assistant context.
Validators are lenient: anything that cannot be read becomes ``None``
instead of failing the whole record.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _normalize_separators(text: str) -> str:
    """Rewrite an amount so that its only separator is a decimal ``.``.

    With both marks present the last one is the decimal mark ("1.234,56",
    "1,234.56"). A mark repeated more than once groups thousands. A single
    comma on its own is a European decimal comma ("211,77").
    """
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if text.count(",") > 1:
        return text.replace(",", "")
    if text.count(".") > 1:
        return text.replace(".", "")
    return text.replace(",", ".")


def parse_amount(value: Any) -> Decimal | None:
    """Read a currency amount, returning None when it is absent or unreadable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int | float):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = value.strip().replace(" ", "")
    if not text:
        return None
    text = _normalize_separators(text)
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_date(value: Any) -> date | None:
    """Read an ISO 8601 calendar date, returning None when unreadable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        # Text is kept verbatim; grouping downstream is exact-match
        return value if value.strip() else None
    if isinstance(value, int | float | Decimal) and not isinstance(value, bool):
        return str(value)
    return None


class LineItem(BaseModel):
    """A single billed concept on an invoice."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    description: str | None = Field(None, description="Concept text (grouping key)")
    quantity: Decimal | None = Field(None, description="Billed quantity")
    unit_price: Decimal | None = Field(None, description="Price per unit")
    total_price: Decimal | None = Field(None, description="Line total")

    @field_validator("description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("quantity", "unit_price", "total_price", mode="before")
    @classmethod
    def _amounts(cls, value: Any) -> Decimal | None:
        return parse_amount(value)


class InvoiceData(BaseModel):
    """Structured invoice data extracted from a document.

    Every field is optional: the extraction service may leave any of them out.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    provider: str | None = Field(None, description="Issuing provider name")
    tax_id: str | None = Field(None, description="Provider tax identifier")
    invoice_number: str | None = Field(None, description="Invoice identifier")
    issue_date: date | None = Field(None, description="Date invoice was issued")
    due_date: date | None = Field(None, description="Payment due date")

    # Financial details; None means unknown, not zero
    total: Decimal | None = Field(None, description="Total amount including tax")
    taxable_base: Decimal | None = Field(None, description="Subtotal before tax")
    tax_amount: Decimal | None = Field(None, description="Tax amount")

    line_items: list[LineItem] = Field(default_factory=list, description="Billed concepts")

    @field_validator("provider", "tax_id", "invoice_number", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("issue_date", "due_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> date | None:
        return parse_date(value)

    @field_validator("total", "taxable_base", "tax_amount", mode="before")
    @classmethod
    def _amounts(cls, value: Any) -> Decimal | None:
        return parse_amount(value)

    @field_validator("line_items", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[Any]:
        if not isinstance(value, list | tuple):
            return []
        return [item for item in value if isinstance(item, dict | LineItem)]


class InvoiceRecord(InvoiceData):
    """Extracted invoice bound to the document it came from."""

    id: str = Field(..., description="Stable identifier of the source document")
