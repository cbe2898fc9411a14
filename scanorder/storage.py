"""
Persistence for import batches and the current cart.

The core only needs a small key-value style contract (see ``BatchStore``);
``SqlBatchStore`` implements it on top of the SQLAlchemy session factory.
"""
from datetime import timezone
from typing import List, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from .logging_config import get_logger
from .models import ImportBatchRecord, CartStateRecord
from .schemas import ImportBatch, CartLine, Product

logger = get_logger("storage")

CURRENT_CART_KEY = "current_cart"


class BatchStore(Protocol):
    """Persistence operations required by the order session."""

    def load_batches(self) -> List[ImportBatch]:
        ...

    def add_batch(self, batch: ImportBatch) -> None:
        ...

    def delete_batch(self, batch_id: str) -> None:
        ...

    def load_cart_lines(self) -> List[CartLine]:
        ...

    def save_cart_lines(self, lines: List[CartLine]) -> None:
        ...


def _to_batch(rec: ImportBatchRecord) -> ImportBatch:
    ts = rec.created_at
    if ts is not None and ts.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC
        ts = ts.replace(tzinfo=timezone.utc)
    return ImportBatch(
        id=rec.id,
        file_name=rec.file_name,
        timestamp=ts,
        products=[Product.model_validate(p) for p in rec.products or []],
    )


def _products_json(batch: ImportBatch) -> list:
    return [p.model_dump(mode="json") for p in batch.products]


class SqlBatchStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def load_batches(self) -> List[ImportBatch]:
        with self._session_factory() as db:
            rows = db.query(ImportBatchRecord).order_by(ImportBatchRecord.seq, ImportBatchRecord.created_at).all()
            return [_to_batch(r) for r in rows]

    def _put(self, db: Session, batch: ImportBatch, seq: int) -> None:
        db.merge(ImportBatchRecord(
            id=batch.id,
            seq=seq,
            file_name=batch.file_name,
            created_at=batch.timestamp,
            products=_products_json(batch),
        ))

    def add_batch(self, batch: ImportBatch) -> None:
        """Upsert by id; a new batch goes after every stored one."""
        with self._session_factory() as db:
            existing = db.get(ImportBatchRecord, batch.id)
            if existing is not None:
                seq = existing.seq
            else:
                seq = (db.query(func.max(ImportBatchRecord.seq)).scalar() or 0) + 1
            self._put(db, batch, seq)
            db.commit()
        logger.info(f"[STORE] Saved batch id={batch.id} products={len(batch.products)}")

    def delete_batch(self, batch_id: str) -> None:
        with self._session_factory() as db:
            db.query(ImportBatchRecord).filter(ImportBatchRecord.id == batch_id).delete(synchronize_session=False)
            db.commit()
        logger.info(f"[STORE] Deleted batch id={batch_id}")

    def load_cart_lines(self) -> List[CartLine]:
        with self._session_factory() as db:
            rec = db.get(CartStateRecord, CURRENT_CART_KEY)
            if rec is None:
                return []
            return [CartLine.model_validate(l) for l in rec.lines or []]

    def save_cart_lines(self, lines: List[CartLine]) -> None:
        with self._session_factory() as db:
            db.merge(CartStateRecord(
                key=CURRENT_CART_KEY,
                lines=[l.model_dump(mode="json") for l in lines],
            ))
            db.commit()
