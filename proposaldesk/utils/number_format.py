"""Number parsing utilities for wizard payloads."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_QUANT = Decimal('0.01')
_GROUPED_NUMBER_PATTERN = re.compile(r"^-?\d{1,3}(?:,\d{3})+(?:\.\d+)?$")


def parse_decimal(value, default: Decimal = Decimal('0')) -> Decimal:
    """
    Parse a loosely typed number (int, float, str, None) coming from the wizard.

    Accepts plain numbers ("1234.5"), grouped numbers ("1,234.50") and a leading
    "$". Empty or invalid input yields `default`, which mirrors how the form
    treats unfilled pricing fields as zero.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    cleaned = str(value).strip().lstrip('$').strip()
    if not cleaned:
        return default
    if _GROUPED_NUMBER_PATTERN.match(cleaned):
        cleaned = cleaned.replace(',', '')

    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return default


def parse_money(value, default: Decimal = Decimal('0')) -> Decimal:
    """Parse a monetary value and round it to cents."""
    return parse_decimal(value, default).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def parse_int(value, default=None):
    """Parse an integer field, returning `default` when absent or invalid."""
    if value is None or value == '' or isinstance(value, bool):
        return default
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return default
