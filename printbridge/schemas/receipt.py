"""Receipt description schemas (the ``POST /print`` body).

Field names follow the POS JSON contract (camelCase) through aliases; Python
code uses the snake_case attribute names.
"""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from printbridge.services.formatting import CURRENCY_SYMBOLS, DEFAULT_CURRENCY

MAX_ITEMS = 100
MAX_PAYMENTS = 10


class _ReceiptModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class LineItem(_ReceiptModel):
    name: str
    quantity: int = Field(default=1, ge=1)
    unit_price: Optional[float] = Field(default=None, ge=0)
    total: float = Field(default=0, ge=0)
    modifiers: Optional[str] = None


class Payment(_ReceiptModel):
    type: str = "payment"
    amount: float = Field(default=0, ge=0)
    transaction_id: Optional[str] = None


class ReceiptDescription(_ReceiptModel):
    """Everything the compiler needs to lay out one customer receipt."""

    language: str = "en"

    # Business identity
    business_name: Optional[str] = None
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    tax_id: Optional[str] = None

    # Order metadata
    order_number: Optional[Union[str, int]] = None
    date: Optional[str] = None
    cashier: Optional[str] = None
    customer: Optional[str] = None

    items: List[LineItem] = Field(default_factory=list, max_length=MAX_ITEMS)

    # Monetary summary
    subtotal: float = Field(default=0, ge=0)
    discount: Optional[float] = Field(default=None, ge=0)
    discount_percent: Optional[float] = Field(default=None, ge=0)
    tax: Optional[float] = Field(default=None, ge=0)
    tax_rate: Optional[float] = Field(default=None, ge=0)
    total: float = Field(default=0, ge=0)

    payments: List[Payment] = Field(default_factory=list, max_length=MAX_PAYMENTS)
    change: Optional[float] = Field(default=None, ge=0)
    currency: str = DEFAULT_CURRENCY

    # Layout hints (accepted, not rendered)
    font_size: Optional[Union[str, int]] = None
    font_family: Optional[str] = None
    logo_size: Optional[Union[str, int]] = None
    logo_url: Optional[str] = None

    # Flags
    open_cash_drawer: bool = False
    cut_paper: bool = True
    coupon_enabled: bool = False
    coupon_text: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, v) -> str:
        """Unknown or missing currency codes become USD."""
        code = str(v or "").strip().upper()
        return code if code in CURRENCY_SYMBOLS else DEFAULT_CURRENCY

    @field_validator("language", mode="before")
    @classmethod
    def normalize_language(cls, v) -> str:
        lang = str(v or "").strip().lower()[:2]
        return lang if lang in ("en", "es", "pt") else "en"


class PrintRequest(BaseModel):
    """``POST /print`` body; the receipt is validated separately."""

    receipt: Optional[dict] = None


class KitchenPrintRequest(BaseModel):
    """``POST /print-kitchen`` body; the ticket uses the receipt layout."""

    ticket: Optional[dict] = None


class PrintRawRequest(BaseModel):
    """``POST /print-raw`` body: ESC/POS bytes encoded as base64."""

    data: Optional[str] = None


__all__ = [
    "LineItem",
    "Payment",
    "ReceiptDescription",
    "PrintRequest",
    "KitchenPrintRequest",
    "PrintRawRequest",
    "MAX_ITEMS",
    "MAX_PAYMENTS",
]
