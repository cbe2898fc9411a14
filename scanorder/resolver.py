# scanorder/resolver.py
from decimal import Decimal
from typing import Optional, Tuple

from .inventory import InventoryIndex
from .schemas import Product, UNKNOWN_DESCRIPTION, GENERIC_BRAND, UNIT_PIECE

# Substring search on codes only kicks in from this many characters
MIN_PARTIAL_LENGTH = 3


def unknown_product(code: str) -> Product:
    """Placeholder for a code that is not in any imported price list."""
    return Product(
        ean=code,
        code=code,
        description=UNKNOWN_DESCRIPTION,
        brand=GENERIC_BRAND,
        price=Decimal("0"),
        unit=UNIT_PIECE,
    )


def _matches(p: Product, code: str, code_lower: str) -> bool:
    if p.ean == code:
        return True
    candidate = p.code.lower()
    if candidate == code_lower:
        return True
    return len(code) >= MIN_PARTIAL_LENGTH and code_lower in candidate


def find_product(raw_input: str, index: InventoryIndex) -> Optional[Product]:
    """
    Direct key lookup, then a linear scan over all indexed products:
    exact EAN -> case-insensitive code -> code containing the input
    (manual entry, >= 3 chars). First hit in index order wins.
    """
    code = (raw_input or "").strip()
    if not code:
        return None

    product = index.get(code)
    if product is not None:
        return product

    code_lower = code.lower()
    for p in index.products():
        if _matches(p, code, code_lower):
            return p
    return None


def resolve_with_status(raw_input: str, index: InventoryIndex) -> Optional[Tuple[Product, bool]]:
    code = (raw_input or "").strip()
    if not code:
        return None
    product = find_product(code, index)
    if product is None:
        return unknown_product(code), False
    return product, True


def resolve(raw_input: str, index: InventoryIndex) -> Optional[Product]:
    """
    Resolve a scanned or typed code to a product; never fails.

    Empty input is a no-op (returns None) since callers guard it. A miss
    returns the unknown-item placeholder so the scan flow keeps going.
    """
    result = resolve_with_status(raw_input, index)
    return result[0] if result else None
