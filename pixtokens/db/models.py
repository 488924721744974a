"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Profile(Base):
    """
    ORM model for profiles table.

    Marketplace profile holding the purchaser's token balance.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="cliente")

    # Token balance - mutated for purchases only through the credit gate
    tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("tokens >= 0", name="ck_profile_tokens_non_negative"),
        CheckConstraint(
            "role IN ('cliente', 'profissional', 'estabelecimento')",
            name="ck_profile_role",
        ),
        Index("idx_profiles_email_created_at", "email", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Profile(id={self.id}, email={self.email}, role={self.role}, tokens={self.tokens})>"


class TokenPurchase(Base):
    """
    ORM model for token_purchases table.

    One row per purchase attempt. Never deleted.
    """

    __tablename__ = "token_purchases"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Actor
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False
    )
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)

    # Commercial terms frozen at creation
    plan_id: Mapped[str] = mapped_column(String(32), nullable=False)
    plan_name: Mapped[str] = mapped_column(String(64), nullable=False)
    tokens_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Gateway linkage
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_status_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_qr_code_base64: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_ticket_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Crediting
    tokens_credited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tokens_credited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'cancelled', 'expired', 'failed')",
            name="ck_token_purchase_status",
        ),
        CheckConstraint(
            "role IN ('profissional', 'estabelecimento')",
            name="ck_token_purchase_role",
        ),
        CheckConstraint("tokens_amount > 0", name="ck_token_purchase_tokens_positive"),
        CheckConstraint("amount > 0", name="ck_token_purchase_amount_positive"),
        Index("idx_token_purchases_user_id", "user_id"),
        Index("idx_token_purchases_profile_id", "profile_id"),
        Index(
            "idx_token_purchases_pending",
            "created_at",
            postgresql_where=text("status = 'pending'"),
        ),
        Index(
            "idx_token_purchases_gateway_payment_id",
            "gateway_payment_id",
            postgresql_where=text("gateway_payment_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<TokenPurchase(id={self.id}, plan={self.plan_id}, status={self.status}, "
            f"credited={self.tokens_credited})>"
        )
