# scanorder/exports.py
import csv
import io
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from .normalize import parse_price
from .schemas import CartLine, CENTS

ORDER_CSV_HEADER = ["Codice", "Descrizione", "Marca", "Quantità", "Prezzo Unitario", "Totale"]


def _money(value: Decimal) -> str:
    return str(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def _legacy_price(value: Decimal) -> str:
    # At least two decimals; sub-cent unit prices are kept as-is
    if value.as_tuple().exponent > -2:
        value = value.quantize(CENTS)
    return format(value, "f").replace(".", ",")


def order_csv(lines: Iterable[CartLine]) -> str:
    """Semicolon-separated order with a header row and 2-decimal prices."""
    buf = io.StringIO()
    w = csv.writer(buf, delimiter=";", lineterminator="\n")
    w.writerow(ORDER_CSV_HEADER)
    for l in lines:
        w.writerow([l.code, l.description, l.brand, l.quantity, _money(l.price), _money(l.line_total)])
    return buf.getvalue()


def legacy_csv(lines: Iterable[CartLine]) -> str:
    """
    Legacy ERP import: code;quantity;price per line, comma as decimal
    separator, CRLF line endings, no header.
    """
    rows = [f"{l.code};{l.quantity};{_legacy_price(l.price)}" for l in lines]
    return "\r\n".join(rows)


def parse_legacy_csv(text: str) -> List[Tuple[str, int, Decimal]]:
    out: List[Tuple[str, int, Decimal]] = []
    for row in (text or "").splitlines():
        parts = row.split(";")
        if len(parts) != 3:
            continue
        code, qty, price = parts
        try:
            quantity = int(qty)
        except ValueError:
            continue
        out.append((code, quantity, parse_price(price)))
    return out


def legacy_line_totals(text: str) -> List[Tuple[str, Decimal]]:
    """Re-derive quantity x price per line from a legacy export."""
    return [
        (code, (price * qty).quantize(CENTS, rounding=ROUND_HALF_UP))
        for code, qty, price in parse_legacy_csv(text)
    ]


def share_text(lines: Iterable[CartLine]) -> str:
    return "\n".join(f"{l.quantity}pz - {l.code} - {l.description}" for l in lines)


def export_filename(prefix: str, ext: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{prefix}_{today.isoformat()}.{ext}"
