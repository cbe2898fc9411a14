# scanorder/cart.py
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .schemas import CartLine, Product, utcnow


class CartLedger:
    """
    Order lines keyed by resolution key (EAN, or code when the EAN is empty).

    Scanning the same key twice bumps one line instead of adding another.
    A line whose quantity would drop to zero or below is removed, so every
    line present has a strictly positive quantity.
    """

    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self._lines: Dict[str, CartLine] = {}
        for line in lines or []:
            self._lines[line.key] = line

    @classmethod
    def from_lines(cls, lines: Iterable[CartLine]) -> "CartLedger":
        return cls(lines)

    def to_lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def apply_scan(self, product: Product) -> CartLine:
        key = product.key
        existing = self._lines.get(key)
        if existing is not None:
            line = existing.model_copy(update={"quantity": existing.quantity + 1, "timestamp": utcnow()})
        else:
            fields = {name: getattr(product, name) for name in Product.model_fields}
            line = CartLine(**fields, quantity=1, timestamp=utcnow())
        self._lines[key] = line
        return line

    def adjust_quantity(self, key: str, delta: int) -> Optional[CartLine]:
        """Returns the updated line, or None when the key is absent or the line was removed."""
        existing = self._lines.get(key)
        if existing is None:
            return None
        new_qty = existing.quantity + delta
        if new_qty <= 0:
            del self._lines[key]
            return None
        line = existing.model_copy(update={"quantity": new_qty})
        self._lines[key] = line
        return line

    def remove(self, key: str) -> bool:
        existing = self._lines.get(key)
        if existing is None:
            return False
        self.adjust_quantity(key, -existing.quantity)
        return True

    def clear(self) -> None:
        self._lines.clear()

    def get(self, key: str) -> Optional[CartLine]:
        return self._lines.get(key)

    def lines(self) -> List[CartLine]:
        """Most recently touched first."""
        return sorted(self._lines.values(), key=lambda l: l.timestamp, reverse=True)

    @property
    def total_items(self) -> int:
        return sum(l.quantity for l in self._lines.values())

    @property
    def total_value(self) -> Decimal:
        return sum((l.line_total for l in self._lines.values()), Decimal("0.00"))

    def __contains__(self, key: object) -> bool:
        return key in self._lines

    def __len__(self) -> int:
        return len(self._lines)
