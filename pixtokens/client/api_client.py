"""
Token Purchase API Client - httpx client for the purchase endpoints.

Used by the polling controller and by anything that drives a purchase
from outside the browser (operator tools, integration tests).
"""

from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

logger = get_logger(__name__)

SESSION_EXPIRED_MESSAGE = "Sessão expirada. Por favor, faça login novamente."
CHARGE_FAILED_MESSAGE = "Não foi possível iniciar a cobrança Pix agora. Tente novamente."
INCOMPLETE_PIX_MESSAGE = (
    "A cobrança foi iniciada, mas os dados Pix não foram retornados corretamente."
)


class PurchaseClientError(Exception):
    """Raised when a call to the purchase API fails."""

    def __init__(
        self, message: str, status_code: int | None = None, reason: str | None = None
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class SessionExpiredError(PurchaseClientError):
    """Raised when the API rejects the bearer credential."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(SESSION_EXPIRED_MESSAGE, status_code=401, reason=reason)


class IncompletePixDataError(PurchaseClientError):
    """Raised when a created purchase comes back without a Pix payload."""

    def __init__(self) -> None:
        super().__init__(INCOMPLETE_PIX_MESSAGE)


@dataclass(frozen=True)
class StartedPurchase:
    """Pix payload of a freshly created purchase."""

    purchase_id: str
    qr_code: str
    qr_code_base64: str
    ticket_url: str
    expires_at: str | None


@dataclass(frozen=True)
class StatusReply:
    """Reconciliation response as seen by the client."""

    status: str
    new_balance: int | None = None
    approved_at: str | None = None


class TokenPurchaseClient:
    """Async client for POST /v1/token-purchases and /v1/token-purchases/status."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        api_key: str = "",
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
        return headers

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.http_client.post(
                f"{self.base_url}{path}", json=body, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            logger.warning("purchase_api_unreachable", path=path, error=str(exc))
            raise PurchaseClientError(str(exc)) from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code == 401:
            raise SessionExpiredError(reason=data.get("reason"))
        if response.is_error:
            raise PurchaseClientError(
                str(data.get("error") or f"HTTP {response.status_code}"),
                status_code=response.status_code,
                reason=data.get("reason"),
            )
        return data

    async def create_purchase(self, plan_id: str) -> StartedPurchase:
        """
        Start a purchase for a plan.

        Raises:
            SessionExpiredError: Credential rejected
            PurchaseClientError: Charge could not be created
            IncompletePixDataError: Response lacks a purchase id or Pix payload
        """
        try:
            data = await self._post("/v1/token-purchases", {"planId": plan_id})
        except SessionExpiredError:
            raise
        except PurchaseClientError as exc:
            raise PurchaseClientError(
                CHARGE_FAILED_MESSAGE, status_code=exc.status_code, reason=exc.reason
            ) from exc

        purchase_id = str(data.get("purchaseId") or "")
        qr_code = str(data.get("qrCode") or "")
        qr_code_base64 = str(data.get("qrCodeBase64") or "")
        if not purchase_id or not (qr_code or qr_code_base64):
            raise IncompletePixDataError()

        return StartedPurchase(
            purchase_id=purchase_id,
            qr_code=qr_code,
            qr_code_base64=qr_code_base64,
            ticket_url=str(data.get("ticketUrl") or ""),
            expires_at=data.get("expiresAt"),
        )

    async def check_purchase_status(self, purchase_id: str) -> StatusReply:
        """
        Ask the service to reconcile a purchase.

        Raises:
            PurchaseClientError: Transport or service failure
        """
        data = await self._post("/v1/token-purchases/status", {"purchaseId": purchase_id})

        new_balance = data.get("newBalance")
        return StatusReply(
            status=str(data.get("status") or "pending"),
            new_balance=int(new_balance) if isinstance(new_balance, (int, float)) else None,
            approved_at=data.get("approvedAt"),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
