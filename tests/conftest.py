"""Shared test fixtures for all tests."""
import io
import pytest
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from openpyxl import Workbook

from scanorder import models  # noqa: F401 register tables
from scanorder.db import Base
from scanorder.main import app, get_order_session
from scanorder.schemas import ImportBatch, Product
from scanorder.session import OrderSession
from scanorder.storage import SqlBatchStore


SAMPLE_PRICE_LIST = (
    "ACME;CODE1;8001234567890;Widget;1;19,90\n"
    "ACME;CODE2;;Gadget;5;9,99"
)


def _fixed_width_line(brand: str, code: str, ean: str, desc: str, tail: str) -> str:
    # brand[0:3] code[4:20] ean[20:33] desc[33:76] + tail
    return brand.ljust(3) + " " + code.ljust(16) + ean.ljust(13) + desc.ljust(43) + tail


def _make_xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _make_product(code: str, ean: str = None, description: str = None, price: str = "1.00", brand: str = "ACME") -> Product:
    return Product(
        ean=ean if ean is not None else code,
        code=code,
        description=description or f"{brand} - Art. {code}",
        brand=brand,
        price=Decimal(price),
    )


def _make_batch(file_name: str, *products: Product) -> ImportBatch:
    return ImportBatch(file_name=file_name, products=list(products))


@pytest.fixture
def sample_text():
    return SAMPLE_PRICE_LIST


@pytest.fixture
def fixed_width_line():
    """Factory for legacy fixed-width rows."""
    return _fixed_width_line


@pytest.fixture
def make_xlsx():
    """Factory for in-memory .xlsx payloads."""
    return _make_xlsx


@pytest.fixture
def make_product():
    return _make_product


@pytest.fixture
def make_batch():
    return _make_batch


@pytest.fixture(scope="function")
def session_factory():
    """Fresh in-memory SQLite database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlBatchStore(session_factory)


@pytest.fixture
def order_session(store):
    return OrderSession(store).load()


@pytest.fixture
def loaded_session(order_session):
    """Order session with the two-row sample price list imported."""
    order_session.import_text(SAMPLE_PRICE_LIST, "listino.csv")
    return order_session


@pytest.fixture
def client(order_session):
    """Test client bound to the per-test order session."""
    app.dependency_overrides[get_order_session] = lambda: order_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
