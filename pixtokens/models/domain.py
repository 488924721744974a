"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pixtokens.models.api import PurchaseStatus
from pixtokens.models.plans import Plan


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity resolved from a bearer credential."""

    id: str  # identity-provider subject
    email: str | None
    source: str = "provider"  # "provider" or "claims"

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.id:
            raise ValueError("User id cannot be empty")


@dataclass(frozen=True)
class PurchaserProfile:
    """Marketplace profile that owns the token balance."""

    id: UUID
    email: str
    role: str
    tokens: int


@dataclass(frozen=True)
class PurchaseTerms:
    """Commercial terms frozen onto a purchase at creation time."""

    plan_id: str
    plan_name: str
    tokens_amount: int
    amount: Decimal
    rate: Decimal

    @classmethod
    def from_plan(cls, plan: Plan) -> "PurchaseTerms":
        """Snapshot the live catalog entry."""
        return cls(
            plan_id=plan.id,
            plan_name=plan.name,
            tokens_amount=plan.tokens,
            amount=plan.amount,
            rate=plan.rate,
        )


@dataclass(frozen=True)
class PurchaseRecord:
    """Immutable snapshot of a token_purchases row."""

    id: UUID
    user_id: str
    profile_id: UUID
    user_email: str
    role: str
    plan_id: str
    plan_name: str
    tokens_amount: int
    amount: Decimal
    rate: Decimal
    status: PurchaseStatus
    gateway_payment_id: str | None
    gateway_status: str | None
    gateway_status_detail: str | None
    pix_qr_code: str | None
    pix_qr_code_base64: str | None
    pix_ticket_url: str | None
    pix_expires_at: datetime | None
    tokens_credited: bool
    tokens_credited_at: datetime | None
    approved_at: datetime | None
    created_at: datetime
    updated_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """Whether the persisted Pix expiry has passed."""
        return self.pix_expires_at is not None and now > self.pix_expires_at


# ============================================================================
# Gateway Models
# ============================================================================


@dataclass(frozen=True)
class ChargeRequest:
    """Provider-agnostic request to create a Pix charge."""

    amount: Decimal
    description: str
    payer_email: str
    idempotency_key: str
    metadata_purchase_id: str
    metadata_user_id: str
    metadata_plan_id: str
    metadata_tokens: int

    def __post_init__(self) -> None:
        """Validate charge constraints."""
        if self.amount <= 0:
            raise ValueError(f"Charge amount must be positive: {self.amount}")
        if not self.idempotency_key:
            raise ValueError("idempotency_key cannot be empty")


@dataclass(frozen=True)
class PixCharge:
    """A Pix charge accepted by the gateway."""

    gateway_id: str
    status: str
    status_detail: str
    qr_code: str
    qr_code_base64: str
    ticket_url: str
    expires_at: datetime | None


@dataclass(frozen=True)
class GatewayPaymentStatus:
    """Live status of a gateway payment."""

    gateway_id: str
    status: str
    status_detail: str


# ============================================================================
# Service Results
# ============================================================================


@dataclass(frozen=True)
class PurchaseCreated:
    """Result of a successful purchase initiation."""

    purchase_id: UUID
    plan: Plan
    qr_code: str
    qr_code_base64: str
    ticket_url: str
    expires_at: datetime | None
    status: PurchaseStatus = PurchaseStatus.PENDING


@dataclass(frozen=True)
class CreditOutcome:
    """Result of passing the credit gate."""

    credited: bool  # False when another call already credited the purchase
    balance: int


@dataclass(frozen=True)
class ReconciliationResult:
    """Result of one reconciliation pass."""

    purchase_id: UUID
    status: PurchaseStatus
    new_balance: int | None = None
    approved_at: datetime | None = None
