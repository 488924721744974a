"""
Mercado Pago Pix Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.
"""

import json
import time
from datetime import datetime
from typing import Any

import httpx
from structlog import get_logger

from pixtokens.exceptions import GatewayError
from pixtokens.models.domain import ChargeRequest, GatewayPaymentStatus, PixCharge
from pixtokens.observability.metrics import metrics

logger = get_logger(__name__)


def _parse_expiry(value: Any) -> datetime | None:
    """Parse Mercado Pago's ISO-8601 date_of_expiration."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("mercado_pago_unparseable_expiry", value=str(value))
        return None


class MercadoPagoProvider:
    """
    Mercado Pago payments API client for Pix charges.

    Implements the PaymentGateway protocol.
    """

    def __init__(
        self,
        access_token: str,
        notification_url: str = "",
        api_base_url: str = "https://api.mercadopago.com",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize Mercado Pago provider.

        Args:
            access_token: APP_USR-... production token (TEST-... is sandbox)
            notification_url: Optional webhook URL attached to every charge
            api_base_url: API root, overridable for tests
            timeout: Per-request timeout in seconds
            http_client: Shared client; one is created lazily otherwise
        """
        self.access_token = access_token
        self.notification_url = notification_url
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def is_test_mode(self) -> bool:
        """Sandbox tokens cannot settle real Pix payments."""
        return self.access_token.startswith("TEST-")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def create_charge(self, request: ChargeRequest) -> PixCharge:
        """
        Create a Pix payment.

        Raises:
            GatewayError: Rejected by Mercado Pago, or transport failure
        """
        payload: dict[str, Any] = {
            "transaction_amount": float(request.amount),
            "description": request.description,
            "payment_method_id": "pix",
            "payer": {"email": request.payer_email},
            "external_reference": request.metadata_purchase_id,
            "metadata": {
                "purchase_id": request.metadata_purchase_id,
                "user_id": request.metadata_user_id,
                "plan_id": request.metadata_plan_id,
                "tokens": request.metadata_tokens,
            },
        }
        if self.notification_url:
            payload["notification_url"] = self.notification_url

        logger.info(
            "mercado_pago_create_payment_request",
            purchase_id=request.metadata_purchase_id,
            plan_id=request.metadata_plan_id,
            amount=str(request.amount),
        )

        headers = self._headers()
        headers["X-Idempotency-Key"] = request.idempotency_key

        data = await self._request(
            "POST", "/v1/payments", operation="create_payment", json=payload, headers=headers
        )

        transaction_data = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        charge = PixCharge(
            gateway_id=str(data.get("id") or ""),
            status=str(data.get("status") or "pending"),
            status_detail=str(data.get("status_detail") or ""),
            qr_code=str(transaction_data.get("qr_code") or ""),
            qr_code_base64=str(transaction_data.get("qr_code_base64") or ""),
            ticket_url=str(transaction_data.get("ticket_url") or ""),
            expires_at=_parse_expiry(data.get("date_of_expiration")),
        )

        logger.info(
            "mercado_pago_create_payment_response",
            gateway_id=charge.gateway_id,
            live_mode=data.get("live_mode"),
            status=charge.status,
            status_detail=charge.status_detail,
            has_qr_code=bool(charge.qr_code),
            has_qr_code_base64=bool(charge.qr_code_base64),
        )

        if not charge.gateway_id:
            raise GatewayError(
                "Mercado Pago returned a payment without id.",
                http_status=200,
                gateway_status=charge.status,
                raw_response=json.dumps(data),
            )
        return charge

    async def get_charge_status(self, gateway_id: str) -> GatewayPaymentStatus:
        """
        Fetch live payment status.

        Raises:
            GatewayError: Lookup failed
        """
        data = await self._request(
            "GET",
            f"/v1/payments/{gateway_id}",
            operation="get_payment",
            headers=self._headers(),
        )
        status = GatewayPaymentStatus(
            gateway_id=gateway_id,
            status=str(data.get("status") or "pending"),
            status_detail=str(data.get("status_detail") or ""),
        )
        logger.info(
            "mercado_pago_payment_status",
            gateway_id=gateway_id,
            status=status.status,
            status_detail=status.status_detail,
        )
        return status

    async def _request(
        self, method: str, path: str, operation: str, **kwargs: Any
    ) -> dict[str, Any]:
        """Make a request and return the decoded JSON body."""
        url = f"{self.api_base_url}{path}"
        start_time = time.time()
        try:
            response = await self.http_client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            metrics.record_gateway_request(operation, "transport_error", time.time() - start_time)
            logger.error(
                "mercado_pago_transport_error",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise GatewayError(f"Mercado Pago unreachable: {exc}") from exc

        metrics.record_gateway_request(
            operation, str(response.status_code), time.time() - start_time
        )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not isinstance(data, dict):
            data = {"body": data}

        if response.is_error:
            logger.error(
                "mercado_pago_request_failed",
                operation=operation,
                status=response.status_code,
                error=response.text[:500],
            )
            raise GatewayError(
                f"Mercado Pago {operation} failed with HTTP {response.status_code}",
                http_status=response.status_code,
                gateway_status=str(data.get("status") or "failed"),
                raw_response=response.text,
            )

        return data

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
