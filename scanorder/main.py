"""
FastAPI application for ScanOrder.

Price-list import, barcode/code resolution and order cart.
To run: uvicorn scanorder.main:app --reload
"""
import threading
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, UploadFile, File, Depends, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from .assist import identify_code, unknown_identity
from .config import settings
from .db import SessionLocal, init_db
from .error_handlers import register_exception_handlers, UploadTooLargeError
from .exports import order_csv, legacy_csv, share_text, export_filename
from .logging_config import setup_logging, get_logger
from .middleware import RequestLoggingMiddleware
from .schemas import (
    BatchDetail, BatchSummary, CartResponse, IdentifyRequest, IdentifyResponse,
    ImportResponse, QuantityUpdate, ScanRequest, ScanResponse,
)
from .session import OrderSession
from .storage import SqlBatchStore

logger = get_logger("main")

_order_session: Optional[OrderSession] = None
_order_session_lock = threading.Lock()


def get_order_session() -> OrderSession:
    """Process-wide order session, loaded from the store on first use."""
    global _order_session
    if _order_session is None:
        with _order_session_lock:
            if _order_session is None:
                _order_session = OrderSession(SqlBatchStore(SessionLocal)).load()
    return _order_session


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_dir)
    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.app_env})")
    init_db()
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="ScanOrder - price-list import, barcode scanning and order export",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)


@app.get("/health")
async def health():
    return {"status": "ok", "version": settings.app_version}


def _cart_response(session: OrderSession) -> CartResponse:
    cart = session.cart
    return CartResponse(lines=cart.lines(), total_items=cart.total_items, total_value=cart.total_value)


def _csv_response(text: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


# -----------------------------
# Price lists
# -----------------------------
@app.post("/batches", response_model=ImportResponse, status_code=status.HTTP_201_CREATED)
async def import_batch(
    file: UploadFile = File(...),
    use_assist: bool = False,
    session: OrderSession = Depends(get_order_session),
):
    """
    Import a price list (.txt/.csv delimited or fixed-width, .xls/.xlsx).

    - **use_assist**: let the LLM extract rows instead of the rule-based parser
    """
    payload = await file.read()
    limit = settings.max_upload_size_mb * 1024 * 1024
    if len(payload) > limit:
        raise UploadTooLargeError(len(payload), settings.max_upload_size_mb)

    # Parsing and the store write are blocking
    batch = await run_in_threadpool(
        session.import_file, payload, file.filename or "upload.txt", use_assist=use_assist
    )
    return ImportResponse(batch=BatchSummary.from_batch(batch), imported=len(batch.products))


@app.get("/batches", response_model=List[BatchSummary])
def list_batches(session: OrderSession = Depends(get_order_session)):
    return [BatchSummary.from_batch(b) for b in session.batches]


@app.get("/batches/{batch_id}", response_model=BatchDetail)
def get_batch(
    batch_id: str,
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    session: OrderSession = Depends(get_order_session),
):
    batch = session.get_batch(batch_id)
    products = session.search_batch(batch_id, search, limit)
    return BatchDetail(**BatchSummary.from_batch(batch).model_dump(), products=products)


@app.delete("/batches/{batch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_batch(batch_id: str, session: OrderSession = Depends(get_order_session)):
    session.delete_batch(batch_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Scanning
# -----------------------------
@app.post("/scan", response_model=ScanResponse)
def scan(req: ScanRequest, session: OrderSession = Depends(get_order_session)):
    product, line, matched = session.scan(req.code)
    return ScanResponse(product=product, line=line, matched=matched)


@app.post("/identify", response_model=IdentifyResponse)
def identify(req: IdentifyRequest):
    if not settings.assist_enabled:
        return IdentifyResponse(**unknown_identity())
    return IdentifyResponse(**identify_code(req.code.strip()))


# -----------------------------
# Cart
# -----------------------------
@app.get("/cart", response_model=CartResponse)
def get_cart(session: OrderSession = Depends(get_order_session)):
    return _cart_response(session)


@app.delete("/cart", response_model=CartResponse)
def clear_cart(session: OrderSession = Depends(get_order_session)):
    session.clear_cart()
    return _cart_response(session)


@app.get("/cart/export.csv")
def export_order_csv(session: OrderSession = Depends(get_order_session)):
    return _csv_response(order_csv(session.cart.lines()), export_filename("ordine", "csv"))


@app.get("/cart/export/legacy.csv")
def export_legacy_csv(session: OrderSession = Depends(get_order_session)):
    return _csv_response(legacy_csv(session.cart.lines()), export_filename("import_erp", "csv"))


@app.get("/cart/share")
def share_cart(session: OrderSession = Depends(get_order_session)):
    return {"text": share_text(session.cart.lines())}


@app.patch("/cart/{key:path}", response_model=CartResponse)
def update_quantity(key: str, body: QuantityUpdate, session: OrderSession = Depends(get_order_session)):
    session.adjust_quantity(key, body.delta)
    return _cart_response(session)


@app.delete("/cart/{key:path}", response_model=CartResponse)
def remove_line(key: str, session: OrderSession = Depends(get_order_session)):
    session.remove_line(key)
    return _cart_response(session)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scanorder.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug
    )
