"""
Tests for API route endpoints.

Tests: health, payment → order creation, order lookup and status changes,
product reads and stock checks, and the error envelope.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from database import get_db
from deps import get_cache, get_coordinator, get_dispatcher
from main import app


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, coordinator, read_cache, dispatcher):
    """Test client wired to the per-test database and collaborators."""

    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_cache] = lambda: read_cache
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


def _payment_body(reference, lines, **extra):
    body = {
        "paymentReference": reference,
        "amount": str(sum(product.price * quantity for product, quantity in lines)),
        "items": [
            {"productId": product.id, "quantity": quantity, "unitPrice": str(product.price)}
            for product, quantity in lines
        ],
    }
    body.update(extra)
    return body


class TestHealthEndpoint:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True


class TestPaymentEndpoints:
    """Tests for /payment/* endpoints."""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_create_order(self, client, make_product, read_stock):
        product = await make_product(stock=5)

        response = await client.post("/payment/create-order", json=_payment_body("pi_api", [(product, 3)]))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["paymentReference"] == "pi_api"
        assert body["data"]["paymentStatus"] == "succeeded"
        assert body["data"]["items"][0]["productId"] == product.id
        assert await read_stock(product.id) == (2, "Low Stock")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_redelivered_payment_returns_existing(self, client, make_product, read_stock):
        product = await make_product(stock=5)
        body = _payment_body("pi_redelivered", [(product, 1)])

        first = (await client.post("/payment/create-order", json=body)).json()
        second = (await client.post("/payment/create-order", json=body)).json()

        assert second["data"]["id"] == first["data"]["id"]
        assert second["meta"] == {"created": False}
        assert await read_stock(product.id) == (4, "Low Stock")

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_insufficient_stock_is_409_with_details(self, client, make_product):
        product = await make_product(name="Kenya AA", stock=3)

        response = await client.post("/payment/create-order", json=_payment_body("pi_409", [(product, 5)]))

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "insufficientstock"
        assert error["details"] == {
            "product_id": product.id,
            "product": "Kenya AA",
            "available": 3,
            "requested": 5,
        }

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_product_is_404(self, client, make_product):
        product = await make_product()
        body = _payment_body("pi_404", [(product, 1)])
        body["items"][0]["productId"] = 99999

        response = await client.post("/payment/create-order", json=body)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "productnotfound"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_malformed_payment_rejected(self, client):
        response = await client.post(
            "/payment/create-order", json={"paymentReference": "  ", "amount": "1.00", "items": []}
        )
        assert response.status_code == 422

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_order_by_payment_reference(self, client, make_product):
        product = await make_product()
        await client.post("/payment/create-order", json=_payment_body("pi_lookup", [(product, 1)]))

        found = await client.get("/payment/orders/pi_lookup")
        missing = await client.get("/payment/orders/pi_never")

        assert found.status_code == 200
        assert found.json()["data"]["paymentReference"] == "pi_lookup"
        assert missing.status_code == 404
        assert missing.json()["success"] is False


class TestOrderEndpoints:
    """Tests for /orders/* endpoints."""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_get_and_update_status(self, client, make_product, read_stock, notifier):
        product = await make_product(stock=10)
        created = (
            await client.post(
                "/payment/create-order",
                json=_payment_body("pi_orders", [(product, 2)], customerEmail="guest@example.com"),
            )
        ).json()["data"]

        listing = await client.get("/orders")
        assert [o["id"] for o in listing.json()["data"]] == [created["id"]]

        fetched = await client.get(f"/orders/{created['id']}")
        assert fetched.json()["data"]["status"] == "Processing"

        updated = await client.patch(f"/orders/{created['id']}/status", json={"status": "Shipped"})
        assert updated.status_code == 200
        assert updated.json()["data"]["status"] == "Shipped"
        assert await read_stock(product.id) == (8, "Low Stock")
        assert notifier.sent[-1].kind == "status_update"

        refetched = await client.get(f"/orders/{created['id']}")
        assert refetched.json()["data"]["status"] == "Shipped"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_invalid_status_is_400(self, client, make_product):
        product = await make_product()
        created = (
            await client.post("/payment/create-order", json=_payment_body("pi_bad_status", [(product, 1)]))
        ).json()["data"]

        response = await client.patch(f"/orders/{created['id']}/status", json={"status": "Lost"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_order_is_404(self, client):
        response = await client.get("/orders/424242")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "notfound"


class TestProductEndpoints:
    """Tests for /products/* endpoints."""

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_list_products(self, client, make_product):
        await make_product(name="Guji", stock=12)
        await make_product(name="Sold out", stock=0)

        storefront = (await client.get("/products")).json()
        everything = (await client.get("/products", params={"includeOutOfStock": "true"})).json()

        assert [p["name"] for p in storefront["data"]] == ["Guji"]
        assert storefront["meta"]["total"] == 1
        assert everything["meta"]["total"] == 2

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_get_product(self, client, make_product):
        product = await make_product(name="Guji", stock=12)

        response = await client.get(f"/products/{product.id}")

        assert response.json()["data"]["stock"] == 12
        assert response.json()["data"]["status"] == "In Stock"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_check_stock(self, client, make_product):
        product = await make_product(name="Kenya AA", stock=3)

        ok = (await client.post("/products/check-stock", json={"productId": product.id, "quantity": 3})).json()
        short = (await client.post("/products/check-stock", json={"productId": product.id, "quantity": 4})).json()

        assert ok["data"] == {"available": True, "currentStock": 3, "message": "Stock available"}
        assert short["data"]["available"] is False
        assert short["data"]["currentStock"] == 3
