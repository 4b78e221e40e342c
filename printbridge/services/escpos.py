"""ESC/POS receipt compiler.

Turns a ReceiptDescription into the byte stream understood by Epson, Star
and other ESC/POS compatible thermal printers. Compilation is pure: the same
receipt and paper width always produce the same bytes.
"""

import logging
from io import BytesIO
from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError

from printbridge.core.errors import InvalidReceiptError
from printbridge.schemas.receipt import LineItem, Payment, ReceiptDescription
from printbridge.services.formatting import (
    chars_per_line,
    format_money,
    pad_line_to_width,
    rule,
    sanitize_text,
    truncate_item_name,
)

logger = logging.getLogger(__name__)

# Code page 858 is 850 plus the euro sign
TEXT_ENCODING = "cp858"


# ============================================================================
# ESC/POS Command Constants
# ============================================================================

class ESC:
    """ESC/POS command bytes."""
    ESC = b'\x1b'
    GS = b'\x1d'
    LF = b'\n'

    # Printer control
    INIT = b'\x1b\x40'  # Initialize printer
    CUT = b'\x1d\x56\x00'  # Full cut

    # Print mode (ESC !)
    MODE_TITLE = b'\x1b\x21\x38'  # Emphasized, double height, double width
    MODE_TOTAL = b'\x1b\x21\x18'  # Emphasized, double height
    MODE_NORMAL = b'\x1b\x21\x00'

    BOLD_ON = b'\x1b\x45\x01'
    BOLD_OFF = b'\x1b\x45\x00'

    # Text alignment
    ALIGN_LEFT = b'\x1b\x61\x00'
    ALIGN_CENTER = b'\x1b\x61\x01'

    # Character sets
    CHARSET_PC858 = b'\x1b\x74\x13'  # Multilingual + euro

    # Cash drawer: pin 2, 25 x 2 ms on, 250 x 2 ms off
    DRAWER_KICK = b'\x1b\x70\x00\x19\xfa'


LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "order": "Order: #",
        "date": "Date:",
        "cashier": "Cashier:",
        "customer": "Customer:",
        "subtotal": "Subtotal:",
        "discount": "Discount",
        "tax": "Tax",
        "total": "TOTAL:",
        "change": "Change:",
        "ref": "Ref:",
        "each": "each",
        "tel": "Tel:",
        "tax_id": "Tax ID:",
        "cash": "Cash",
        "card": "Card",
        "coupon": "COUPON",
    },
    "es": {
        "order": "Orden: #",
        "date": "Fecha:",
        "cashier": "Cajero:",
        "customer": "Cliente:",
        "subtotal": "Subtotal:",
        "discount": "Descuento",
        "tax": "Impuesto",
        "total": "TOTAL:",
        "change": "Cambio:",
        "ref": "Ref:",
        "each": "c/u",
        "tel": "Tel:",
        "tax_id": "NIT/ID:",
        "cash": "Efectivo",
        "card": "Tarjeta",
        "coupon": "CUPON",
    },
    "pt": {
        "order": "Pedido: #",
        "date": "Data:",
        "cashier": "Caixa:",
        "customer": "Cliente:",
        "subtotal": "Subtotal:",
        "discount": "Desconto",
        "tax": "Imposto",
        "total": "TOTAL:",
        "change": "Troco:",
        "ref": "Ref:",
        "each": "cada",
        "tel": "Tel:",
        "tax_id": "CNPJ/CPF:",
        "cash": "Dinheiro",
        "card": "Cartão",
        "coupon": "CUPOM",
    },
}

TEST_RECEIPT: Dict[str, Any] = {
    "businessName": "Flowp PrintBridge",
    "headerText": "Test Receipt",
    "items": [
        {"name": "Test Item 1", "quantity": 2, "unitPrice": 5.00, "total": 10.00},
        {"name": "Test Item 2", "quantity": 1, "unitPrice": 15.00, "total": 15.00},
    ],
    "subtotal": 25.00,
    "tax": 2.50,
    "taxRate": 10,
    "total": 27.50,
    "payments": [{"type": "cash", "amount": 30.00}],
    "change": 2.50,
    "currency": "USD",
    "footerText": "PrintBridge is working!",
    "cutPaper": True,
}


def _format_rate(value: float) -> str:
    # 10.0 -> "10", 8.5 -> "8.5"
    return f"{value:g}"


def parse_receipt(data: Union[ReceiptDescription, Mapping[str, Any]]) -> ReceiptDescription:
    """Validate a raw receipt body, raising InvalidReceiptError on bad shapes."""
    if isinstance(data, ReceiptDescription):
        return data
    if not isinstance(data, Mapping):
        raise InvalidReceiptError("Receipt data must be an object")
    try:
        return ReceiptDescription.model_validate(dict(data))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'receipt'}: {err['msg']}"
            for err in e.errors()[:5]
        )
        raise InvalidReceiptError(f"Invalid receipt: {problems}")


class _ReceiptWriter:
    """Byte buffer with line helpers bound to one paper width."""

    def __init__(self, width: int):
        self.width = width
        self._data = BytesIO()

    def command(self, *commands: bytes) -> None:
        for cmd in commands:
            self._data.write(cmd)

    def text(self, text: str) -> None:
        self._data.write(text.encode(TEXT_ENCODING, errors="replace"))

    def line(self, text: str = "") -> None:
        self.text(text)
        self._data.write(ESC.LF)

    def amount_line(self, label: str, value: str) -> None:
        self.line(pad_line_to_width(label, value, self.width))

    def divider(self, char: str = "-") -> None:
        self.line(rule(self.width, char))

    def getvalue(self) -> bytes:
        return self._data.getvalue()


def _write_item(out: _ReceiptWriter, item: LineItem, currency: str, labels: Dict[str, str]) -> None:
    qty = str(item.quantity)[:5]
    total = format_money(item.total, currency)
    name = truncate_item_name(sanitize_text(item.name), qty, total, out.width)

    head = f"{qty}x {name}"
    out.line(pad_line_to_width(head, total, out.width))

    if item.unit_price is not None and item.quantity > 1:
        out.line(f"   @ {format_money(item.unit_price, currency)} {labels['each']}")

    if item.modifiers:
        out.line("   " + sanitize_text(item.modifiers, out.width - 3))


def _payment_label(payment: Payment, labels: Dict[str, str]) -> str:
    kind = sanitize_text(payment.type or "payment", 20)
    if kind.lower() in ("cash", "card"):
        return labels[kind.lower()] + ":"
    return kind[:1].upper() + kind[1:] + ":"


def compile_receipt(
    receipt: Union[ReceiptDescription, Mapping[str, Any]],
    paper_width: int = 80,
) -> bytes:
    """Build the complete receipt as ESC/POS commands."""
    receipt = parse_receipt(receipt)
    out = _ReceiptWriter(chars_per_line(paper_width))
    labels = LABELS.get(receipt.language, LABELS["en"])
    currency = receipt.currency

    # Initialize printer
    out.command(ESC.INIT, ESC.CHARSET_PC858, ESC.ALIGN_CENTER)

    # Header - business identity
    if receipt.business_name:
        out.command(ESC.MODE_TITLE)
        out.line(sanitize_text(receipt.business_name, 100))
        out.command(ESC.MODE_NORMAL)
    if receipt.header_text:
        out.line(sanitize_text(receipt.header_text, 200))
    if receipt.address and receipt.address.strip():
        out.line(sanitize_text(receipt.address, 200))
    if receipt.phone and receipt.phone.strip():
        out.line(f"{labels['tel']} {sanitize_text(receipt.phone, 30)}")
    if receipt.tax_id and receipt.tax_id.strip():
        out.line(f"{labels['tax_id']} {sanitize_text(receipt.tax_id, 30)}")

    out.line()
    out.divider()

    # Order info
    out.command(ESC.ALIGN_LEFT)
    if receipt.order_number not in (None, ""):
        out.line(labels["order"] + sanitize_text(receipt.order_number, 20))
    if receipt.date:
        out.line(f"{labels['date']} {sanitize_text(receipt.date, 30)}")
    if receipt.cashier:
        out.line(f"{labels['cashier']} {sanitize_text(receipt.cashier, 50)}")
    if receipt.customer:
        out.line(f"{labels['customer']} {sanitize_text(receipt.customer, 50)}")

    out.divider()

    # Items
    for item in receipt.items:
        try:
            _write_item(out, item, currency, labels)
        except (TypeError, ValueError) as e:
            raise InvalidReceiptError(f"Cannot print item {item.name!r}: {e}")

    out.divider()

    # Totals
    out.amount_line(labels["subtotal"], format_money(receipt.subtotal, currency))

    if receipt.discount:
        if receipt.discount_percent:
            label = f"{labels['discount']} ({_format_rate(receipt.discount_percent)}%):"
        else:
            label = f"{labels['discount']}:"
        out.amount_line(label, "-" + format_money(receipt.discount, currency))

    if receipt.tax:
        if receipt.tax_rate:
            label = f"{labels['tax']} ({_format_rate(receipt.tax_rate)}%):"
        else:
            label = f"{labels['tax']}:"
        out.amount_line(label, format_money(receipt.tax, currency))

    out.command(ESC.MODE_TOTAL)
    out.amount_line(labels["total"], format_money(receipt.total, currency))
    out.command(ESC.MODE_NORMAL)

    out.divider()

    # Payments
    for payment in receipt.payments:
        out.amount_line(_payment_label(payment, labels), format_money(payment.amount, currency))
        if payment.transaction_id:
            out.line(f"    {labels['ref']} {sanitize_text(payment.transaction_id, 40)}")

    if receipt.change:
        out.amount_line(labels["change"], format_money(receipt.change, currency))

    # Footer
    out.line()
    out.command(ESC.ALIGN_CENTER)
    if receipt.footer_text:
        out.line(sanitize_text(receipt.footer_text, 200))

    if receipt.coupon_enabled and receipt.coupon_text:
        out.line()
        out.divider("=")
        out.command(ESC.BOLD_ON)
        out.line(labels["coupon"])
        out.command(ESC.BOLD_OFF)
        out.line(sanitize_text(receipt.coupon_text, 500))
        out.divider("=")

    # Feed for tear-off
    out.line()
    out.line()
    out.line()

    if receipt.cut_paper:
        out.command(ESC.CUT)

    if receipt.open_cash_drawer:
        out.command(ESC.DRAWER_KICK)

    data = out.getvalue()
    logger.debug(f"Compiled receipt: {len(receipt.items)} items, {len(data)} bytes, width {out.width}")
    return data


def drawer_kick() -> bytes:
    """Payload that only pulses the cash drawer."""
    return ESC.DRAWER_KICK


def build_test_page(paper_width: int = 80) -> bytes:
    """Compile the built-in test receipt."""
    return compile_receipt(TEST_RECEIPT, paper_width)
