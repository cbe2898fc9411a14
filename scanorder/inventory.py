# scanorder/inventory.py
from typing import Dict, Iterable, Iterator, Optional

from .schemas import ImportBatch, Product


class InventoryIndex:
    """
    Lookup table over every imported batch, keyed by barcode and by code.

    Built from scratch each time batch history changes. Batches are applied
    in import order, so a later batch (or a later row) silently replaces an
    earlier product registered under the same key.
    """

    def __init__(self, entries: Optional[Dict[str, Product]] = None):
        self._entries: Dict[str, Product] = entries if entries is not None else {}

    @classmethod
    def build(cls, batches: Iterable[ImportBatch]) -> "InventoryIndex":
        entries: Dict[str, Product] = {}
        for batch in batches:
            for p in batch.products:
                key = p.index_key
                if not key:
                    continue
                entries[key] = p
                if p.code and p.code != key:
                    entries[p.code] = p
        return cls(entries)

    def get(self, key: str) -> Optional[Product]:
        return self._entries.get(key)

    def products(self) -> Iterator[Product]:
        """Indexed products in key insertion order (one entry per key)."""
        return iter(self._entries.values())

    def keys(self) -> Iterator[str]:
        return iter(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"<InventoryIndex(keys={len(self._entries)})>"
