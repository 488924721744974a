"""Tests for MercadoPagoProvider over httpx.MockTransport."""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from pixtokens.exceptions import GatewayError
from pixtokens.models.domain import ChargeRequest
from pixtokens.services.mercado_pago_provider import MercadoPagoProvider

PAYMENT_RESPONSE = {
    "id": 1319876543,
    "status": "pending",
    "status_detail": "pending_waiting_transfer",
    "live_mode": True,
    "date_of_expiration": "2026-01-16T12:00:00.000-04:00",
    "point_of_interaction": {
        "transaction_data": {
            "qr_code": "00020126580014br.gov.bcb.pix",
            "qr_code_base64": "iVBORw0KGgo=",
            "ticket_url": "https://www.mercadopago.com.br/payments/1319876543/ticket",
        }
    },
}


@pytest.fixture
def charge_request() -> ChargeRequest:
    return ChargeRequest(
        amount=Decimal("100.00"),
        description="Compra de 150 tokens - Plano VIP",
        payer_email="pro@example.com",
        idempotency_key="7b1f3c1e-0000-4000-8000-000000000001",
        metadata_purchase_id="7b1f3c1e-0000-4000-8000-000000000001",
        metadata_user_id="user-pro-123",
        metadata_plan_id="vip",
        metadata_tokens=150,
    )


def _provider(handler, access_token: str = "APP_USR-123", notification_url: str = "") -> MercadoPagoProvider:
    return MercadoPagoProvider(
        access_token=access_token,
        notification_url=notification_url,
        api_base_url="https://mp.test/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestCreateCharge:
    """Tests for create_charge."""

    async def test_request_shape(self, charge_request: ChargeRequest):
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json=PAYMENT_RESPONSE)

        provider = _provider(handler, notification_url="https://hooks.test/mp")
        await provider.create_charge(charge_request)

        (request,) = captured
        assert request.method == "POST"
        assert str(request.url) == "https://mp.test/v1/payments"
        assert request.headers["Authorization"] == "Bearer APP_USR-123"
        assert request.headers["X-Idempotency-Key"] == charge_request.idempotency_key

        body = json.loads(request.content)
        assert body["transaction_amount"] == 100.0
        assert body["payment_method_id"] == "pix"
        assert body["payer"] == {"email": "pro@example.com"}
        assert body["external_reference"] == charge_request.metadata_purchase_id
        assert body["description"] == "Compra de 150 tokens - Plano VIP"
        assert body["metadata"] == {
            "purchase_id": charge_request.metadata_purchase_id,
            "user_id": "user-pro-123",
            "plan_id": "vip",
            "tokens": 150,
        }
        assert body["notification_url"] == "https://hooks.test/mp"

    async def test_notification_url_omitted_when_unset(self, charge_request: ChargeRequest):
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json=PAYMENT_RESPONSE)

        await _provider(handler).create_charge(charge_request)
        assert "notification_url" not in bodies[0]

    async def test_parses_pix_payload(self, charge_request: ChargeRequest):
        provider = _provider(lambda request: httpx.Response(201, json=PAYMENT_RESPONSE))

        charge = await provider.create_charge(charge_request)

        assert charge.gateway_id == "1319876543"
        assert charge.status == "pending"
        assert charge.qr_code == "00020126580014br.gov.bcb.pix"
        assert charge.qr_code_base64 == "iVBORw0KGgo="
        assert charge.ticket_url.endswith("/ticket")
        assert charge.expires_at == datetime(
            2026, 1, 16, 12, 0, tzinfo=timezone(timedelta(hours=-4))
        )

    async def test_rejection_carries_status_and_raw_body(self, charge_request: ChargeRequest):
        error_body = {"message": "payer.email invalid", "status": 400, "error": "bad_request"}
        provider = _provider(lambda request: httpx.Response(400, json=error_body))

        with pytest.raises(GatewayError) as exc_info:
            await provider.create_charge(charge_request)

        exc = exc_info.value
        assert exc.rejected is True
        assert exc.http_status == 400
        assert exc.gateway_status == "400"
        assert json.loads(exc.raw_response or "") == error_body

    async def test_transport_failure(self, charge_request: ChargeRequest):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayError) as exc_info:
            await _provider(handler).create_charge(charge_request)
        assert exc_info.value.rejected is False

    async def test_payment_without_id(self, charge_request: ChargeRequest):
        provider = _provider(lambda request: httpx.Response(201, json={"status": "pending"}))

        with pytest.raises(GatewayError):
            await provider.create_charge(charge_request)


class TestGetChargeStatus:
    """Tests for get_charge_status."""

    async def test_live_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/v1/payments/1319876543"
            return httpx.Response(
                200, json={"id": 1319876543, "status": "approved", "status_detail": "accredited"}
            )

        status = await _provider(handler).get_charge_status("1319876543")

        assert status.status == "approved"
        assert status.status_detail == "accredited"
        assert status.gateway_id == "1319876543"

    async def test_lookup_failure(self):
        provider = _provider(lambda request: httpx.Response(404, json={"message": "not found"}))

        with pytest.raises(GatewayError) as exc_info:
            await provider.get_charge_status("999")
        assert exc_info.value.http_status == 404


class TestTestMode:
    @pytest.mark.parametrize(
        "token,expected", [("TEST-123", True), ("APP_USR-123", False), ("", False)]
    )
    def test_sandbox_detection(self, token: str, expected: bool):
        provider = MercadoPagoProvider(access_token=token)
        assert provider.is_test_mode is expected
