"""Unit tests for ProductForwarder over HttpxHttpClient with a mocked transport."""
from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from relay.app.domain.models import Product
from relay.app.domain.product_forwarder import (
    ProductForwarder,
    ProductForwardError,
    ProductForwardTimeoutError,
)
from relay.app.infrastructure.http.httpx_client import HttpxHttpClient


def _forwarder(handler, base_url: str = "http://inventory.local/") -> ProductForwarder:
    client = HttpxHttpClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return ProductForwarder(
        client,
        base_url,
        connect_timeout_seconds=1,
        read_timeout_seconds=2,
    )


def _widget(**overrides) -> Product:
    data = {"name": "Widget", "price": Decimal("9.99"), "quantity": 3}
    data.update(overrides)
    return Product(**data)


@pytest.mark.asyncio
async def test_posts_payload_and_returns_created_product():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(201, json={"id": 17, **body})

    forwarder = _forwarder(handler)
    created = await forwarder.create_product(_widget(description="blue"))

    assert created.id == 17
    assert created.name == "Widget"
    assert created.price == Decimal("9.99")
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://inventory.local/api/products"
    assert json.loads(request.content) == {
        "name": "Widget",
        "description": "blue",
        "price": 9.99,
        "quantity": 3,
    }


@pytest.mark.asyncio
async def test_description_and_id_are_omitted_when_absent():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return httpx.Response(200, json={"id": 1, "name": "Widget", "price": 9.99, "quantity": 3})

    await _forwarder(handler).create_product(_widget(id=99))

    assert "description" not in captured
    assert "id" not in captured


@pytest.mark.parametrize("status", [400, 404, 409, 500, 503])
@pytest.mark.asyncio
async def test_non_2xx_is_forward_error(status):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "nope"})

    with pytest.raises(ProductForwardError, match=str(status)):
        await _forwarder(handler).create_product(_widget())


@pytest.mark.asyncio
async def test_timeout_is_forward_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(ProductForwardTimeoutError):
        await _forwarder(handler).create_product(_widget())


@pytest.mark.asyncio
async def test_connection_failure_is_forward_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProductForwardError) as excinfo:
        await _forwarder(handler).create_product(_widget())

    assert not isinstance(excinfo.value, ProductForwardTimeoutError)


@pytest.mark.parametrize(
    "response_body",
    [
        b"not json",
        json.dumps({"name": "Widget", "price": 9.99, "quantity": 3}).encode(),
    ],
)
@pytest.mark.asyncio
async def test_unusable_echo_is_forward_error(response_body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, content=response_body)

    with pytest.raises(ProductForwardError):
        await _forwarder(handler).create_product(_widget())


@pytest.mark.asyncio
async def test_none_product_is_rejected_before_any_request():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(201)

    with pytest.raises(ValueError):
        await _forwarder(handler).create_product(None)  # type: ignore[arg-type]

    assert calls == []


@pytest.mark.parametrize("base_url", ["", "   ", "/"])
def test_blank_base_url_is_rejected(base_url):
    client = HttpxHttpClient(httpx.AsyncClient())
    with pytest.raises(ValueError):
        ProductForwarder(client, base_url, connect_timeout_seconds=1, read_timeout_seconds=1)


def test_endpoint_strips_trailing_slash():
    forwarder = _forwarder(lambda request: httpx.Response(201), base_url=" http://inventory.local:8080/ ")

    assert forwarder.endpoint == "http://inventory.local:8080/api/products"


@pytest.mark.asyncio
async def test_price_is_sent_and_read_back_with_every_digit():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        # Echo the raw body so the price digits come back exactly as sent.
        return httpx.Response(
            201,
            content=b'{"id": 17, ' + request.content.lstrip()[1:],
            headers={"Content-Type": "application/json"},
        )

    price = Decimal("12345678901234567.89")
    created = await _forwarder(handler).create_product(_widget(price=price))

    assert created.price == price
    assert b'"price": 12345678901234567.89' in seen[0].content
    assert seen[0].headers["content-type"] == "application/json"
    assert json.loads(seen[0].content, parse_float=Decimal)["price"] == price
