"""
Order session: owns batch history, the derived inventory index and the cart.

All mutation goes through one lock so batch history, index rebuilds and
cart changes have a single writer even when the HTTP layer runs handlers
on a thread pool.
"""
import threading
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from . import assist
from .cart import CartLedger
from .config import settings
from .error_handlers import (
    EmptyInputError,
    NoProductsFoundError,
    ResourceNotFoundError,
    UnreadableFileError,
)
from .inventory import InventoryIndex
from .logging_config import get_logger
from .parsers import parse_price_list, looks_binary
from .resolver import resolve_with_status
from .schemas import CartLine, ImportBatch, Product
from .spreadsheet import is_spreadsheet, spreadsheet_to_text
from .storage import BatchStore

logger = get_logger("session")


def decode_text(payload: bytes) -> str:
    # Legacy exports are often latin-1; utf-8 (with or without BOM) first
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        return payload.decode("latin-1")


class OrderSession:
    def __init__(self, store: BatchStore):
        self._store = store
        self._lock = threading.RLock()
        self._batches: List[ImportBatch] = []
        self._index: Optional[InventoryIndex] = None
        self._cart = CartLedger()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def load(self) -> "OrderSession":
        with self._lock:
            self._batches = self._store.load_batches()
            self._cart = CartLedger.from_lines(self._store.load_cart_lines())
            self._index = None
        logger.info(f"[SESSION] Loaded {len(self._batches)} batches, {len(self._cart)} cart lines")
        return self

    # ------------------------------------------------------------------
    # batches
    # ------------------------------------------------------------------
    @property
    def batches(self) -> List[ImportBatch]:
        with self._lock:
            return list(self._batches)

    def get_batch(self, batch_id: str) -> ImportBatch:
        with self._lock:
            for b in self._batches:
                if b.id == batch_id:
                    return b
        raise ResourceNotFoundError("ImportBatch", batch_id)

    def search_batch(self, batch_id: str, term: Optional[str] = None, limit: Optional[int] = None) -> List[Product]:
        """Products of one batch filtered by code, brand, EAN or description."""
        batch = self.get_batch(batch_id)
        if limit is None:
            limit = settings.search_limit
        items = batch.products
        if term:
            lower = term.lower()
            items = [
                p for p in items
                if lower in p.code.lower()
                or lower in p.brand.lower()
                or lower in p.ean
                or lower in p.description.lower()
            ]
        return items[:limit]

    def import_text(self, text: str, file_name: str, use_assist: bool = False) -> ImportBatch:
        if use_assist and settings.assist_enabled:
            products = assist.extract_products(text)
        else:
            if use_assist:
                logger.warning("[IMPORT] Assist requested but disabled; using the rule-based parser")
            products = parse_price_list(text)

        if not products:
            logger.warning(f"[IMPORT] No products found in {file_name}")
            raise NoProductsFoundError(file_name)

        batch = ImportBatch(file_name=file_name, products=products)
        with self._lock:
            self._store.add_batch(batch)
            self._batches.append(batch)
            self._index = None
        logger.info(f"[IMPORT] Imported {len(products)} products from {file_name} as batch {batch.id}")
        return batch

    def import_file(self, payload: bytes, file_name: str, use_assist: bool = False) -> ImportBatch:
        if is_spreadsheet(file_name):
            text = spreadsheet_to_text(payload)
        else:
            text = decode_text(payload)
            if looks_binary(text):
                raise UnreadableFileError(file_name)
        return self.import_text(text, file_name, use_assist=use_assist)

    def delete_batch(self, batch_id: str) -> None:
        with self._lock:
            remaining = [b for b in self._batches if b.id != batch_id]
            if len(remaining) == len(self._batches):
                raise ResourceNotFoundError("ImportBatch", batch_id)
            self._store.delete_batch(batch_id)
            self._batches = remaining
            self._index = None
        logger.info(f"[IMPORT] Deleted batch {batch_id}")

    # ------------------------------------------------------------------
    # index
    # ------------------------------------------------------------------
    @property
    def index(self) -> InventoryIndex:
        """Current index; rebuilt on first read after batch history changes."""
        with self._lock:
            if self._index is None:
                self._index = InventoryIndex.build(self._batches)
                logger.debug(f"[INDEX] Rebuilt index with {len(self._index)} keys")
            return self._index

    def reindex(self) -> InventoryIndex:
        with self._lock:
            self._index = None
            return self.index

    # ------------------------------------------------------------------
    # cart
    # ------------------------------------------------------------------
    @property
    def cart(self) -> CartLedger:
        return self._cart

    def _save_cart(self) -> None:
        # Best-effort; in-memory cart stays authoritative for this session
        try:
            self._store.save_cart_lines(self._cart.to_lines())
        except SQLAlchemyError as e:
            logger.error(f"[CART] Failed to save cart: {e}")

    def scan(self, raw_code: str) -> Tuple[Product, CartLine, bool]:
        code = (raw_code or "").strip()
        if not code:
            raise EmptyInputError()
        with self._lock:
            product, matched = resolve_with_status(code, self.index)
            line = self._cart.apply_scan(product)
            self._save_cart()
        logger.info(f"[SCAN] code={code} matched={matched} key={line.key} qty={line.quantity}")
        return product, line, matched

    def adjust_quantity(self, key: str, delta: int) -> Optional[CartLine]:
        with self._lock:
            if key not in self._cart:
                raise ResourceNotFoundError("CartLine", key)
            line = self._cart.adjust_quantity(key, delta)
            self._save_cart()
        logger.info(f"[CART] key={key} delta={delta} qty={line.quantity if line else 0}")
        return line

    def remove_line(self, key: str) -> None:
        with self._lock:
            if not self._cart.remove(key):
                raise ResourceNotFoundError("CartLine", key)
            self._save_cart()
        logger.info(f"[CART] Removed key={key}")

    def clear_cart(self) -> None:
        with self._lock:
            self._cart.clear()
            self._save_cart()
        logger.info("[CART] Cleared")
