"""
Payment Gateway Protocol - Provider-agnostic Pix charge interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from typing import Protocol

from pixtokens.models.domain import ChargeRequest, GatewayPaymentStatus, PixCharge


class PaymentGateway(Protocol):
    """
    Payment gateway protocol.

    Any Pix-capable gateway must implement this interface so the purchase
    services stay provider-agnostic.
    """

    @property
    def is_test_mode(self) -> bool:
        """True when configured with sandbox credentials."""
        ...

    async def create_charge(self, request: ChargeRequest) -> PixCharge:
        """
        Create a Pix charge.

        The request's idempotency key must be forwarded so retried
        requests for the same purchase never create a second charge.

        Raises:
            GatewayError: If the gateway rejects the charge or is unreachable
        """
        ...

    async def get_charge_status(self, gateway_id: str) -> GatewayPaymentStatus:
        """
        Fetch the live status of a charge.

        Raises:
            GatewayError: If the status cannot be fetched
        """
        ...
