"""Decoding of marketplace prices and collection total-asset counts.

Provider APIs disagree on response shapes, so both decoders are table
driven: classify the raw value, then hand it to the matching decoder.
Anything that matches no known shape decodes to ``None``.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Mapping, Optional, Tuple

DEFAULT_PRECISION = 8
MAX_COUNT = 2 ** 63 - 1

_NUMBER_IN_TEXT = re.compile(r"\d+(?:\.\d+)?|\.\d+")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse an int/float/str into a finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def to_count(value: Any) -> int:
    """Parse an asset count; missing or non-numeric values count as zero."""
    number = to_decimal(value)
    if number is None or number < 0 or number > MAX_COUNT:
        return 0
    return int(number)


def _precision(value: Any, default: int) -> int:
    number = to_decimal(value)
    if number is None or number < 0 or number != number.to_integral_value():
        return default
    return int(number)


def _finite_price(number: Optional[Decimal]) -> Optional[float]:
    if number is None or number < 0:
        return None
    # A finite Decimal can still overflow a float
    value = float(number)
    return value if math.isfinite(value) else None


# Price shapes

def decode_text_price(raw: str, precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """'123.45670000 WAX' -> 123.4567 (first decimal number in the string)."""
    match = _NUMBER_IN_TEXT.search(raw)
    if not match:
        return None
    return _finite_price(to_decimal(match.group(0)))


def decode_fixed_point(raw: Any, precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """12345000000 -> 123.45 with 8 implied decimal places."""
    number = to_decimal(raw)
    if number is None:
        return None
    try:
        scaled = number.scaleb(-precision)
    except ArithmeticError:
        return None
    return _finite_price(scaled)


def decode_price_object(raw: Mapping[str, Any], precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """{'amount': '5000000000', 'token_precision': 8} -> 50.0"""
    return decode_fixed_point(
        raw.get("amount"),
        _precision(raw.get("token_precision"), precision),
    )


def price_shape(raw: Any) -> Optional[str]:
    """Classify a raw price value: 'text', 'fixed_point', 'object' or None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        return "text"
    if isinstance(raw, int):
        return "fixed_point"
    if isinstance(raw, Mapping) and raw.get("amount") not in (None, ""):
        return "object"
    return None


PRICE_DECODERS = {
    "text": decode_text_price,
    "fixed_point": decode_fixed_point,
    "object": decode_price_object,
}


def decode_price(raw: Any, precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """Decode a listing price in any known shape to a token amount."""
    shape = price_shape(raw)
    if shape is None:
        return None
    return PRICE_DECODERS[shape](raw, precision)


def sale_price_v1(sale: Mapping[str, Any], precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """Floor price from a v1 sale record, trying each price field in turn."""
    price = sale.get("price")
    candidates = []
    if isinstance(price, Mapping):
        candidates.append(price)
    candidates.append(sale.get("listing_price"))
    if not isinstance(price, Mapping):
        candidates.append(price)

    for raw in candidates:
        if raw in (None, ""):
            continue
        value = decode_price(raw, precision)
        if value is not None:
            return value
    return None


def sale_price_v2(sale: Mapping[str, Any], precision: int = DEFAULT_PRECISION) -> Optional[float]:
    """Floor price from a v2 sale record: raw token units, no currency text."""
    price = sale.get("price")
    price = price if isinstance(price, Mapping) else {}

    raw = price.get("amount") or sale.get("listing_price")
    if raw in (None, "") or isinstance(raw, bool):
        return None
    return decode_fixed_point(raw, _precision(price.get("token_precision"), precision))


# Collection total-asset count

def _field(name: str) -> Callable[[Mapping[str, Any]], Any]:
    return lambda payload: payload.get(name)


# Tried in order; the first populated field wins
TOTAL_ASSET_FIELDS: List[Tuple[str, Callable[[Mapping[str, Any]], Any]]] = [
    ("assets", _field("assets")),
    ("assets_count", _field("assets_count")),
    ("num_assets", _field("num_assets")),
    ("assetsTotal", _field("assetsTotal")),
]


def extract_total_assets(payload: Any) -> Optional[int]:
    """Total asset count from a collection stats payload, or None."""
    if not isinstance(payload, Mapping):
        return None

    raw = None
    for _, extractor in TOTAL_ASSET_FIELDS:
        raw = extractor(payload)
        if raw is not None:
            break

    total = to_decimal(raw)
    if total is None or total <= 0 or total > MAX_COUNT:
        return None
    return int(total)
