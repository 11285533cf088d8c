"""Product forwarder: submits a decoded Product to the downstream products API.

Uses the HTTP port (AbstractHttpClient); client is built in the composition root.
Domain depends only on ports, not on infrastructure. The downstream echoes the
created record back, including the id it assigned.
"""
from __future__ import annotations

import json
from decimal import Decimal

from loguru import logger
from pydantic import ValidationError

from relay.app.constants import PRODUCTS_ENDPOINT
from relay.app.domain.models import Product
from relay.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    RequestTimeout,
)


class ProductForwardError(Exception):
    """Base error for downstream forwarding failures."""


class ProductForwardTimeoutError(ProductForwardError):
    """Raised when the downstream request times out."""


class ProductForwarder:
    """Forwards products to ``POST <base_url>/api/products`` using an injectable AbstractHttpClient.

    Transport errors, non-2xx responses and unreadable echoes are mapped to
    ProductForwardError. A missing product or base URL is a caller bug and raises ValueError.
    """

    def __init__(
        self,
        client: AbstractHttpClient,
        base_url: str,
        connect_timeout_seconds: float,
        read_timeout_seconds: float,
        *,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        base = (base_url or "").strip().rstrip("/")
        if not base:
            raise ValueError("downstream base url is required")
        self._client = client
        self._endpoint = f"{base}{PRODUCTS_ENDPOINT}"
        self._timeout = RequestTimeout(
            connect_seconds=connect_timeout_seconds,
            read_seconds=read_timeout_seconds,
        )
        self._default_headers = dict(default_headers) if default_headers else {}

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def create_product(self, product: Product) -> Product:
        if product is None:
            raise ValueError("product cannot be None")
        if not isinstance(product, Product):
            raise ValueError(f"expected Product, got {type(product).__name__}")

        payload = product.to_forward_payload()
        try:
            response = await self._client.post_json(
                self._endpoint,
                payload,
                timeout=self._timeout,
                headers=self._default_headers or None,
            )
            response.raise_for_status()
        except HttpClientTimeoutError as exc:
            raise ProductForwardTimeoutError(str(exc)) from exc
        except HttpClientError as exc:
            raise ProductForwardError(str(exc)) from exc

        logger.debug(
            "downstream response: status={} elapsed={} body={}",
            response.status_code,
            response.elapsed_seconds,
            response.text,
        )

        try:
            created = Product.model_validate(json.loads(response.text, parse_float=Decimal))
        except (ValueError, ValidationError) as exc:
            raise ProductForwardError(f"unreadable downstream response from {self._endpoint}") from exc
        if created.id is None:
            raise ProductForwardError(f"downstream response from {self._endpoint} has no id")
        return created
