"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Wire names are camelCase to match the browser client.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class PurchaseStatus(str, Enum):
    """Purchase lifecycle status enumeration."""

    PENDING = "pending"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Terminal purchases never change status again."""
        return self is not PurchaseStatus.PENDING


class PurchaserRole(str, Enum):
    """Marketplace profile roles."""

    CLIENTE = "cliente"
    PROFISSIONAL = "profissional"
    ESTABELECIMENTO = "estabelecimento"


# Only providers of services may buy tokens
ELIGIBLE_ROLES: frozenset[str] = frozenset(
    {PurchaserRole.PROFISSIONAL.value, PurchaserRole.ESTABELECIMENTO.value}
)


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases while accepting field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _coerce_identifier(value: Any) -> str:
    """Any JSON value becomes a string; falsy values become empty."""
    if not value:
        return ""
    return value if isinstance(value, str) else str(value)


# ============================================================================
# Plan Models
# ============================================================================


class PlanResponse(CamelModel):
    """A plan from the catalog."""

    id: str
    name: str
    amount: Decimal
    tokens: int
    rate: Decimal
    benefits: list[str] = Field(default_factory=list)
    fee_schedule: str


class PlanListResponse(CamelModel):
    """GET /v1/token-plans response."""

    plans: list[PlanResponse]


# ============================================================================
# Purchase Initiation Models
# ============================================================================


class CreatePurchaseRequest(CamelModel):
    """POST /v1/token-purchases request body."""

    plan_id: str = ""

    @field_validator("plan_id", mode="before")
    @classmethod
    def coerce_plan_id(cls, value: Any) -> str:
        return _coerce_identifier(value)


class CreatePurchaseResponse(CamelModel):
    """POST /v1/token-purchases response."""

    purchase_id: UUID
    status: Literal["pending"] = "pending"
    qr_code: str
    qr_code_base64: str
    ticket_url: str
    expires_at: datetime | None = None
    plan: PlanResponse


# ============================================================================
# Reconciliation Models
# ============================================================================


class CheckPurchaseStatusRequest(CamelModel):
    """POST /v1/token-purchases/status request body."""

    purchase_id: str = ""

    @field_validator("purchase_id", mode="before")
    @classmethod
    def coerce_purchase_id(cls, value: Any) -> str:
        return _coerce_identifier(value)


class CheckPurchaseStatusResponse(CamelModel):
    """POST /v1/token-purchases/status response."""

    status: PurchaseStatus
    purchase_id: UUID
    new_balance: int | None = None
    approved_at: datetime | None = None


# ============================================================================
# Error / Health Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Body returned for every handled error."""

    status: Literal["error"] = "error"
    error: str
    reason: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
