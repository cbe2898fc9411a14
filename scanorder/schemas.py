"""
Pydantic schemas for catalog products, import batches and order lines.
"""
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
import uuid
from pydantic import BaseModel, Field, ConfigDict

# Catalog defaults
UNIT_PIECE = "PZ"
UNKNOWN_DESCRIPTION = "Articolo sconosciuto"
GENERIC_BRAND = "GEN"
LEGACY_BRAND = "METEL"
DEFAULT_MIN_QTY = 1.0

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_batch_id() -> str:
    return uuid.uuid4().hex


class Product(BaseModel):
    """Immutable catalog entry."""
    model_config = ConfigDict(frozen=True)

    ean: str
    code: str
    description: str
    brand: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = UNIT_PIECE
    min_qty: Optional[float] = Field(default=None, gt=0)

    @property
    def key(self) -> str:
        """Resolution key used by the cart."""
        return self.ean or self.code

    @property
    def index_key(self) -> str:
        """Primary key used by the inventory index."""
        return self.ean if len(self.ean) > 3 else self.code


class ImportBatch(BaseModel):
    """One imported price list."""
    id: str = Field(default_factory=new_batch_id)
    file_name: str
    timestamp: datetime = Field(default_factory=utcnow)
    products: list[Product] = Field(default_factory=list)


class CartLine(Product):
    """Product on the order with its quantity."""
    quantity: int = Field(default=1, ge=1)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def line_total(self) -> Decimal:
        return (self.price * self.quantity).quantize(CENTS, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class ScanRequest(BaseModel):
    code: str = Field(..., max_length=200)


class ScanResponse(BaseModel):
    product: Product
    line: CartLine
    matched: bool


class QuantityUpdate(BaseModel):
    delta: int


class CartResponse(BaseModel):
    lines: list[CartLine]
    total_items: int
    total_value: Decimal


class BatchSummary(BaseModel):
    """Batch metadata without its products."""
    id: str
    file_name: str
    timestamp: datetime
    product_count: int

    @classmethod
    def from_batch(cls, batch: ImportBatch) -> "BatchSummary":
        return cls(
            id=batch.id,
            file_name=batch.file_name,
            timestamp=batch.timestamp,
            product_count=len(batch.products),
        )


class BatchDetail(BatchSummary):
    products: list[Product]


class ImportResponse(BaseModel):
    batch: BatchSummary
    imported: int


class IdentifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=200)


class IdentifyResponse(BaseModel):
    description: str
    brand: str
    price_estimate: Decimal
