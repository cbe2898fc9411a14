import re
from decimal import Decimal, InvalidOperation

from .schemas import DEFAULT_MIN_QTY

_CURRENCY = re.compile(r"[€$£\s]")


def parse_price(raw: str) -> Decimal:
    """
    Convert a price-list price token to Decimal; never raises.

    "1.234,56" -> 1234.56, "1,234.56" -> 1234.56, "19,90" -> 19.90, "€ 5" -> 5
    When both separators appear the later one is the decimal point; a lone
    comma is the decimal point. Anything unparseable is 0.
    """
    s = _CURRENCY.sub("", raw or "")
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".")
    s = re.sub(r"[^0-9.-]", "", s)
    try:
        value = Decimal(s)
    except InvalidOperation:
        return Decimal("0")
    if not value.is_finite() or value < 0:
        return Decimal("0")
    return value


def parse_min_qty(raw: str) -> float:
    s = (raw or "").replace(",", ".")
    s = re.sub(r"[^0-9.]", "", s)
    try:
        qty = float(s)
    except ValueError:
        return DEFAULT_MIN_QTY
    return qty if qty > 0 else DEFAULT_MIN_QTY


def clean_ean(raw: str) -> str:
    # Empty result is valid, callers substitute the code
    return re.sub(r"[^0-9A-Za-z]", "", raw or "")
