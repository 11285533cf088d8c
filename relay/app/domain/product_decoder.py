"""Decode a queue message body into a Product."""
from __future__ import annotations

import json
from decimal import Decimal

from pydantic import ValidationError

from relay.app.domain.models import Product


class ProductDecodeError(ValueError):
    """Raised when a message body is not a valid product. Permanent for that delivery."""


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def decode_product(body: str | bytes) -> Product:
    if isinstance(body, (bytes, bytearray)):
        try:
            text = bytes(body).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProductDecodeError("message body is not valid utf-8") from exc
    else:
        text = body

    if not text or not text.strip():
        raise ProductDecodeError("message body is empty")

    try:
        # Decimals straight from the JSON text keep every digit of the price.
        data = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise ProductDecodeError(f"invalid product message: body is not valid JSON ({exc.msg})") from exc

    try:
        return Product.model_validate(data)
    except ValidationError as exc:
        raise ProductDecodeError(f"invalid product message: {_summarize(exc)}") from exc
