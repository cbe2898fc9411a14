import re
from decimal import Decimal
from typing import List, Optional

from .logging_config import get_logger
from .normalize import parse_price, parse_min_qty, clean_ean
from .schemas import Product, UNIT_PIECE, LEGACY_BRAND, DEFAULT_MIN_QTY

logger = get_logger("parsers")

TAB, PIPE, SEMICOLON = "\t", "|", ";"

# Delimited column order: brand, code, ean, description, min qty, price
COL_BRAND, COL_CODE, COL_EAN, COL_DESC, COL_MIN_QTY, COL_PRICE = range(6)

# Fixed-width legacy layout (character offsets)
FW_MIN_LENGTH = 50
FW_BRAND = slice(0, 3)
FW_CODE = slice(4, 20)
FW_EAN = slice(20, 33)
FW_DESC = slice(33, 76)
FW_PRICE = re.compile(r"[0-9]{1,6}[.,][0-9]{2}")

FIXED_WIDTH_MIN_LINE = 100
BINARY_PROBE_CHARS = 100
BINARY_MAX_CONTROL = 10


def looks_binary(text: str) -> bool:
    """ZIP header (xlsx read as text) or too many control chars in the first bytes."""
    if text.startswith("PK"):
        return True
    probe = text[:BINARY_PROBE_CHARS]
    control = sum(1 for ch in probe if ord(ch) < 32 and ch not in "\t\n\r")
    return control > BINARY_MAX_CONTROL


def detect_separator(line: str) -> str:
    if line.count(TAB) >= 2:
        return TAB
    if line.count(PIPE) >= 2:
        return PIPE
    return SEMICOLON


def _is_header(cols: List[str]) -> bool:
    c0 = cols[0].lower()
    c1 = cols[1].lower() if len(cols) > 1 else ""
    return "sigla" in c0 or "marchio" in c0 or c0 == "brand" or "codice" in c1


def _col(cols: List[str], i: int, default: str = "") -> str:
    return cols[i] if len(cols) > i and cols[i] else default


def _parse_delimited_row(line: str, separator: str) -> Optional[Product]:
    cols = [c.strip() for c in line.split(separator)]
    if _is_header(cols):
        return None
    if len(cols) < 2:
        return None

    brand = cols[COL_BRAND]
    code = cols[COL_CODE]
    if not code:
        return None

    description = _col(cols, COL_DESC)
    if len(description) < 2:
        description = f"{brand} - Art. {code}"

    return Product(
        ean=clean_ean(_col(cols, COL_EAN)) or code,
        code=code,
        description=description,
        brand=brand,
        price=parse_price(_col(cols, COL_PRICE, "0")),
        unit=UNIT_PIECE,
        min_qty=parse_min_qty(_col(cols, COL_MIN_QTY, "1")),
    )


def parse_delimited(lines: List[str], separator: str) -> List[Product]:
    products: List[Product] = []
    for line in lines:
        product = _parse_delimited_row(line, separator)
        if product is not None:
            products.append(product)
    return products


def _fixed_width_price(line: str, ean: str) -> Decimal:
    # Last match wins; a number equal to the EAN digits is not a price
    last = None
    for m in FW_PRICE.finditer(line):
        if re.sub(r"[^0-9]", "", m.group(0)) != ean:
            last = m.group(0)
    if last is None:
        return Decimal("0")
    return parse_price(last.replace(",", "."))


def _parse_fixed_width_row(line: str) -> Optional[Product]:
    if len(line) < FW_MIN_LENGTH:
        return None

    brand = line[FW_BRAND].strip()
    code = line[FW_CODE].strip()
    ean = line[FW_EAN].strip()
    description = line[FW_DESC].strip()
    if not code:
        return None

    return Product(
        ean=ean or code,
        code=code,
        # Raw brand here; the METEL default applies to the brand field only
        description=description or f"{brand} {code}",
        brand=brand or LEGACY_BRAND,
        price=_fixed_width_price(line, ean),
        unit=UNIT_PIECE,
        min_qty=DEFAULT_MIN_QTY,
    )


def parse_fixed_width(lines: List[str]) -> List[Product]:
    products: List[Product] = []
    for line in lines:
        product = _parse_fixed_width_row(line)
        if product is not None:
            products.append(product)
    return products


def parse_price_list(text: str) -> List[Product]:
    """
    Parse one price-list file (already decoded to text) into products.

    Supported layouts:
      - delimited rows (tab, pipe or semicolon, detected from the first line)
        with columns: brand, code, ean, description, min qty, price
      - fixed-width legacy rows (no separator, first line longer than 100 chars)

    Malformed rows are skipped; an empty list means nothing usable was found.
    """
    if not text:
        return []

    if looks_binary(text):
        logger.warning("[PARSE] Binary content detected in text parser, aborting")
        return []

    lines = [l for l in re.split(r"\r?\n", text) if len(l.strip()) > 2]
    if not lines:
        return []

    first = lines[0]
    separator = detect_separator(first)

    if separator == SEMICOLON and first.count(SEMICOLON) < 1 and len(first) > FIXED_WIDTH_MIN_LINE:
        products = parse_fixed_width(lines)
        layout = "fixed-width"
    else:
        products = parse_delimited(lines, separator)
        layout = f"delimited({separator!r})"

    logger.info(f"[PARSE] layout={layout} lines={len(lines)} products={len(products)}")
    return products
