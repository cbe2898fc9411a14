from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone

from .db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ImportBatchRecord(Base):
    __tablename__ = "import_batches"
    id = Column(String(64), primary_key=True)
    seq = Column(Integer, index=True, nullable=False, default=0)  # import order
    file_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    products = Column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<ImportBatchRecord(id={self.id}, file_name={self.file_name}, seq={self.seq})>"


class CartStateRecord(Base):
    __tablename__ = "cart_state"
    key = Column(String(64), primary_key=True)
    lines = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
