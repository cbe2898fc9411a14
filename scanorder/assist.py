"""
Best-effort LLM assist for price lists the rule-based parser cannot read.

Everything here degrades to an empty result on failure (no key, network,
quota, malformed JSON), so callers report "no products found" exactly as
they would for an empty parse.
"""
import json
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .config import settings
from .logging_config import get_logger
from .normalize import parse_price, clean_ean
from .schemas import Product, UNIT_PIECE, UNKNOWN_DESCRIPTION, GENERIC_BRAND

logger = get_logger("assist")

EXTRACTION_SYSTEM_PROMPT = (
    "You extract product rows from supplier price-list fragments "
    "(fixed-width legacy exports or malformed CSV). Output ONLY valid JSON."
)

IDENTIFY_SYSTEM_PROMPT = (
    "You identify electrical and industrial supply products from a barcode "
    "or article code. Output ONLY valid JSON."
)

_client: Optional[OpenAI] = None


def get_client() -> OpenAI:
    """Return a singleton OpenAI client instance."""
    global _client
    if _client is None:
        _client = OpenAI(api_key=settings.openai_api_key, timeout=settings.assist_timeout_seconds)
    return _client


def build_extraction_prompt(raw_text: str) -> str:
    return (
        "Extract a list of products with the fields: ean (barcode), code (article code), "
        "description, price (number), brand. Leave a field empty or 0 if it is missing.\n"
        'Respond as {"products": [{"ean": "", "code": "", "description": "", "price": 0, "brand": ""}]}\n\n'
        f"Data:\n{raw_text[:settings.assist_max_chars]}"
    )


def build_identify_prompt(code: str) -> str:
    return (
        f'Barcode or article code: "{code}".\n'
        "Guess which product this is. Respond as "
        '{"description": "", "brand": "", "price_estimate": 0} with the price in euro.'
    )


def _extract_json_from_text(text: str) -> str:
    """Extract the first JSON object from a response that may include markdown or extra text."""
    text = (text or "").strip()
    if "```" in text:
        match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, flags=re.DOTALL)
        if match:
            return match.group(1)
        text = re.sub(r"```(?:json)?", "", text).strip()
    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    return match.group(0) if match else text


def _complete_json(system_prompt: str, user_prompt: str) -> Dict[str, Any]:
    client = get_client()
    response = client.chat.completions.create(
        model=settings.assist_model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        temperature=0,
        response_format={"type": "json_object"},
    )
    raw_output = response.choices[0].message.content
    if not raw_output:
        raise ValueError("LLM returned empty response")
    parsed = json.loads(_extract_json_from_text(raw_output))
    if not isinstance(parsed, dict):
        raise ValueError("LLM response is not a JSON object")
    return parsed


def _to_price(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        return Decimal("0")
    if isinstance(value, (int, float)):
        value = str(value)
    return parse_price(str(value))


def _to_product(item: Dict[str, Any]) -> Optional[Product]:
    if not isinstance(item, dict):
        return None
    code = str(item.get("code") or "").strip()
    if not code:
        return None
    brand = str(item.get("brand") or "").strip()
    description = str(item.get("description") or "").strip()
    return Product(
        ean=clean_ean(str(item.get("ean") or "")) or code,
        code=code,
        description=description if len(description) >= 2 else f"{brand} - Art. {code}",
        brand=brand,
        price=_to_price(item.get("price")),
        unit=UNIT_PIECE,
    )


def extract_products(raw_text: str) -> List[Product]:
    """Ask the model for products in the first ``assist_max_chars`` characters of the file."""
    if not raw_text:
        return []
    try:
        parsed = _complete_json(EXTRACTION_SYSTEM_PROMPT, build_extraction_prompt(raw_text))
        items = parsed.get("products") or []
        products = [p for p in (_to_product(i) for i in items) if p is not None]
    except Exception as e:
        logger.error(f"[ASSIST] Extraction failed: {e}")
        return []
    logger.info(f"[ASSIST] Extracted {len(products)} products")
    return products


def unknown_identity() -> Dict[str, Any]:
    return {"description": UNKNOWN_DESCRIPTION, "brand": GENERIC_BRAND, "price_estimate": Decimal("0")}


def identify_code(code: str) -> Dict[str, Any]:
    """Best-effort description/brand/price guess for an unknown code."""
    fallback = unknown_identity()
    try:
        parsed = _complete_json(IDENTIFY_SYSTEM_PROMPT, build_identify_prompt(code))
    except Exception as e:
        logger.error(f"[ASSIST] Identify failed for code={code}: {e}")
        return fallback
    return {
        "description": str(parsed.get("description") or fallback["description"]),
        "brand": str(parsed.get("brand") or fallback["brand"]),
        "price_estimate": _to_price(parsed.get("price_estimate")),
    }
