"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
Every exception carries a machine-checkable reason code and the HTTP
status the API surfaces it with.
"""

from uuid import UUID


class PurchaseError(Exception):
    """Base exception for all token purchase errors."""

    status_code: int = 400
    reason: str = "purchase_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnauthorizedError(PurchaseError):
    """Raised when the bearer credential is missing, invalid or expired."""

    status_code = 401

    def __init__(self, reason: str = "invalid_or_expired_token", details: str | None = None) -> None:
        self.reason = reason
        self.details = details
        super().__init__("Unauthorized")


class IdentityProviderUnavailableError(UnauthorizedError):
    """Raised when the identity provider round-trip itself fails (network, 5xx)."""

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class InvalidPlanError(PurchaseError):
    """Raised when the requested plan id is not in the catalog."""

    reason = "invalid_plan"

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__("Invalid plan selected.")


class ProfileNotFoundError(PurchaseError):
    """Raised when no purchaser profile matches the authenticated email."""

    status_code = 404
    reason = "profile_not_found"

    def __init__(self, email: str | None) -> None:
        self.email = email
        super().__init__("User profile not found.")


class ForbiddenError(PurchaseError):
    """Raised for wrong role or wrong purchase owner."""

    status_code = 403

    def __init__(self, message: str, reason: str) -> None:
        self.reason = reason
        super().__init__(message)


class MissingPurchaseIdError(PurchaseError):
    """Raised when a status check carries no purchase id."""

    reason = "missing_purchase_id"

    def __init__(self) -> None:
        super().__init__("Missing purchase id.")


class PurchaseNotFoundError(PurchaseError):
    """Raised when the purchase id is unknown."""

    status_code = 404
    reason = "purchase_not_found"

    def __init__(self, purchase_id: str) -> None:
        self.purchase_id = purchase_id
        super().__init__("Purchase not found.")


class MissingGatewayReferenceError(PurchaseError):
    """Raised when a purchase has no gateway payment id to reconcile against."""

    reason = "missing_gateway_reference"

    def __init__(self, purchase_id: UUID) -> None:
        self.purchase_id = purchase_id
        super().__init__("PIX payment id is missing for this purchase.")


class GatewayError(PurchaseError):
    """Raised when the payment gateway fails or rejects a request."""

    status_code = 502
    reason = "gateway_error"

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        gateway_status: str | None = None,
        raw_response: str | None = None,
    ) -> None:
        self.http_status = http_status
        self.gateway_status = gateway_status
        self.raw_response = raw_response
        super().__init__(message)

    @property
    def rejected(self) -> bool:
        """True when the gateway answered with an error (vs. a transport failure)."""
        return self.http_status is not None


class GatewayTestModeError(PurchaseError):
    """Raised when the gateway credential is a sandbox token."""

    reason = "mercado_pago_test_mode"

    def __init__(self) -> None:
        super().__init__(
            "Mercado Pago token is in TEST mode. "
            "Use production APP_USR token for real Pix payments."
        )


class GatewayNotConfiguredError(PurchaseError):
    """Raised when the gateway or identity provider settings are missing."""

    status_code = 500
    reason = "missing_configuration"

    def __init__(self) -> None:
        super().__init__("Missing payment environment configuration.")


class PersistenceError(PurchaseError):
    """Raised when a data backend write fails."""

    status_code = 500
    reason = "persistence_error"


class CreditFailedError(PurchaseError):
    """
    Raised when a payment is approved but the balance was not credited.

    Never downgraded to "pending": the caller must see it.
    """

    status_code = 500
    reason = "credit_failed"

    def __init__(self, purchase_id: UUID, message: str) -> None:
        self.purchase_id = purchase_id
        super().__init__(message)
