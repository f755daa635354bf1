"""API tests for POST /api/v1/checkout/payment-intent."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from src.main import app
from src.mk_checkout.api.router import get_checkout_service
from src.mk_checkout.application.schemas import CheckoutResponse
from src.mk_common.errors import AddressNotFoundError, EmptyCartError, PaymentGatewayError
from src.mk_gateway.auth.jwt_handler import create_access_token

URL = "/api/v1/checkout/payment-intent"


def bearer(account_type: str = "buyer", org: str | None = "buyer-org") -> dict[str, str]:
    token = create_access_token("buyer-user", organization_id=org, account_type=account_type)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def service() -> AsyncMock:
    svc = AsyncMock()
    svc.checkout.return_value = CheckoutResponse(client_secret="pi_1_secret", order_ids=["o1", "o2"])
    app.dependency_overrides[get_checkout_service] = lambda: svc
    return svc


class TestCheckoutEndpoint:
    async def test_success(self, client: AsyncClient, service: AsyncMock) -> None:
        resp = await client.post(URL, json={"shipping_address_id": "addr-1"}, headers=bearer())

        assert resp.status_code == 200
        body = resp.json()
        assert body["code"] == 0
        assert body["data"] == {"client_secret": "pi_1_secret", "order_ids": ["o1", "o2"]}
        assert body["request_id"] == resp.headers["X-Request-ID"]
        kwargs = service.checkout.await_args.kwargs
        assert kwargs["buyer_org_id"] == "buyer-org"
        assert kwargs["buyer_user_id"] == "buyer-user"
        assert kwargs["currency"] == "usd"

    async def test_requires_token(self, client: AsyncClient, service: AsyncMock) -> None:
        resp = await client.post(URL, json={"shipping_address_id": "addr-1"})
        assert resp.status_code == 401

    async def test_seller_forbidden(self, client: AsyncClient, service: AsyncMock) -> None:
        resp = await client.post(
            URL, json={"shipping_address_id": "addr-1"}, headers=bearer("seller")
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == 1002

    async def test_buyer_without_org_forbidden(self, client: AsyncClient, service: AsyncMock) -> None:
        resp = await client.post(
            URL, json={"shipping_address_id": "addr-1"}, headers=bearer(org=None)
        )
        assert resp.status_code == 403

    async def test_missing_body_field_422(self, client: AsyncClient, service: AsyncMock) -> None:
        resp = await client.post(URL, json={}, headers=bearer())
        assert resp.status_code == 422

    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (EmptyCartError(), 400, 2001),
            (AddressNotFoundError("addr-x"), 404, 2002),
            (PaymentGatewayError("down"), 502, 3004),
        ],
    )
    async def test_errors_use_envelope(
        self, client: AsyncClient, service: AsyncMock, error, status: int, code: int
    ) -> None:
        service.checkout.side_effect = error
        resp = await client.post(URL, json={"shipping_address_id": "addr-1"}, headers=bearer())
        assert resp.status_code == status
        body = resp.json()
        assert body["code"] == code
        assert body["data"] is None
