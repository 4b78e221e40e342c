"""Money and fixed-width text helpers for thermal receipts.

Receipts are laid out in monospaced columns: 32 characters per line on
58 mm paper and 48 on 80 mm paper.
"""

import math
import re
from decimal import Decimal
from typing import Any

DEFAULT_CURRENCY = "USD"

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "COP": "$",
    "MXN": "$",
    "BRL": "R$",
    "ARS": "$",
    "PEN": "S/",
    "CLP": "$",
}
FALLBACK_SYMBOL = "$"

CHARS_PER_LINE = {58: 32, 80: 48}

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def chars_per_line(paper_width: int) -> int:
    """Columns available for the given paper width in mm."""
    return CHARS_PER_LINE.get(paper_width, 48)


def _to_number(amount: Any) -> float:
    if isinstance(amount, bool):
        return float(amount)
    if isinstance(amount, (int, float, Decimal)):
        value = float(amount)
    else:
        try:
            value = float(str(amount).strip())
        except (TypeError, ValueError):
            return 0.0
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def format_money(amount: Any, currency_code: str = DEFAULT_CURRENCY) -> str:
    """Render an amount as ``<symbol><1,234.56>``.

    Never raises: anything that is not a finite number prints as 0.00 and
    unknown currency codes use the ``$`` symbol.
    """
    symbol = CURRENCY_SYMBOLS.get(str(currency_code or "").upper(), FALLBACK_SYMBOL)
    return f"{symbol}{_to_number(amount):,.2f}"


def pad_line_to_width(label: str, value: str, width: int) -> str:
    """Left label, right-aligned value, spaces in between.

    The filler is clamped to one space, so an oversized label/value pair
    overflows ``width`` instead of being cut.
    """
    filler = max(1, width - len(label) - len(value))
    return f"{label}{' ' * filler}{value}"


def truncate_item_name(name: str, qty: str, total_str: str, width: int) -> str:
    """Cut an item name so ``"{qty}x {name}  {total}"`` fits in ``width``."""
    max_len = max(0, width - len(qty) - len(total_str) - 4)
    return name[:max_len]


def sanitize_text(value: Any, max_length: int = 255) -> str:
    """Printable single-line text.

    Strips ASCII control characters so receipt text can never smuggle
    ESC/POS commands to the printer, then limits the length.
    """
    if value is None:
        return ""
    return _CONTROL_CHARS.sub("", str(value)[:max_length])


def rule(width: int, char: str = "-") -> str:
    """A horizontal divider of ``width`` characters."""
    return char * width
