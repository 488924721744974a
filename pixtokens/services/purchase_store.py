"""
Purchase Store - token_purchases and profiles access over async SQLAlchemy.

NO DICTIONARIES - All reads return strongly typed domain snapshots.

Every write that can race with a concurrent reconciliation is a single
conditional UPDATE; the database row is the only coordination point.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from pixtokens.db.models import Profile, TokenPurchase, utc_now
from pixtokens.exceptions import CreditFailedError, PersistenceError
from pixtokens.models.api import PurchaseStatus
from pixtokens.models.domain import (
    AuthenticatedUser,
    CreditOutcome,
    PixCharge,
    PurchaseRecord,
    PurchaserProfile,
    PurchaseTerms,
)

logger = get_logger(__name__)


class PurchaseStore:
    """Persistence for purchases and purchaser balances."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    # ========================================================================
    # Profiles
    # ========================================================================

    async def find_profile_by_email(self, email: str) -> PurchaserProfile | None:
        """Most recently created profile for an email."""
        stmt = (
            select(Profile)
            .where(Profile.email == email)
            .order_by(Profile.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        profile = result.scalar_one_or_none()
        if profile is None:
            return None
        return PurchaserProfile(
            id=profile.id,
            email=profile.email,
            role=profile.role,
            tokens=profile.tokens,
        )

    async def get_balance(self, profile_id: UUID) -> int:
        """Current token balance (0 when the profile is gone)."""
        result = await self.session.execute(
            select(Profile.tokens).where(Profile.id == profile_id)
        )
        tokens = result.scalar_one_or_none()
        return int(tokens or 0)

    # ========================================================================
    # Purchases
    # ========================================================================

    async def create_pending(
        self,
        user: AuthenticatedUser,
        profile: PurchaserProfile,
        terms: PurchaseTerms,
    ) -> UUID:
        """
        Insert a pending purchase with frozen terms.

        Raises:
            PersistenceError: Insert failed or returned no id
        """
        now = utc_now()
        purchase = TokenPurchase(
            user_id=user.id,
            profile_id=profile.id,
            user_email=profile.email,
            role=profile.role,
            plan_id=terms.plan_id,
            plan_name=terms.plan_name,
            tokens_amount=terms.tokens_amount,
            amount=terms.amount,
            rate=terms.rate,
            status=PurchaseStatus.PENDING.value,
            tokens_credited=False,
            created_at=now,
            updated_at=now,
        )
        self.session.add(purchase)

        try:
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("purchase_insert_failed", error=str(exc), plan_id=terms.plan_id)
            raise PersistenceError("Could not create purchase record.") from exc

        if purchase.id is None:
            raise PersistenceError("Could not determine purchase id.")

        return purchase.id

    async def attach_charge(self, purchase_id: UUID, charge: PixCharge) -> None:
        """
        Persist the gateway linkage and Pix display data. Status stays pending.

        Raises:
            PersistenceError: Update failed or matched no row
        """
        stmt = (
            update(TokenPurchase)
            .where(TokenPurchase.id == purchase_id)
            .values(
                gateway_payment_id=charge.gateway_id,
                gateway_status=charge.status or PurchaseStatus.PENDING.value,
                gateway_status_detail=charge.status_detail,
                pix_qr_code=charge.qr_code,
                pix_qr_code_base64=charge.qr_code_base64,
                pix_ticket_url=charge.ticket_url,
                pix_expires_at=charge.expires_at,
                status=PurchaseStatus.PENDING.value,
                updated_at=utc_now(),
            )
        )
        try:
            result = await self.session.execute(stmt)
            if not result.rowcount:  # type: ignore[attr-defined]
                raise PersistenceError("Payment created but failed to persist PIX data.")
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("Payment created but failed to persist PIX data.") from exc

    async def mark_failed(
        self, purchase_id: UUID, gateway_status: str, gateway_status_detail: str | None
    ) -> None:
        """
        Mark a pending purchase failed after the gateway refused the charge.

        Best effort: the caller is already reporting the gateway failure.
        """
        stmt = (
            update(TokenPurchase)
            .where(
                TokenPurchase.id == purchase_id,
                TokenPurchase.status == PurchaseStatus.PENDING.value,
            )
            .values(
                status=PurchaseStatus.FAILED.value,
                gateway_status=gateway_status,
                gateway_status_detail=gateway_status_detail,
                updated_at=utc_now(),
            )
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "purchase_mark_failed_error",
                purchase_id=str(purchase_id),
                error=str(exc),
            )

    async def get_purchase(self, purchase_id: UUID) -> PurchaseRecord | None:
        """Load a purchase snapshot."""
        result = await self.session.execute(
            select(TokenPurchase)
            .where(TokenPurchase.id == purchase_id)
            .execution_options(populate_existing=True)
        )
        purchase = result.scalar_one_or_none()
        return _to_record(purchase) if purchase is not None else None

    async def list_pending(self, created_before: datetime, limit: int) -> list[PurchaseRecord]:
        """Oldest pending purchases that already carry a gateway reference."""
        stmt = (
            select(TokenPurchase)
            .where(
                TokenPurchase.status == PurchaseStatus.PENDING.value,
                TokenPurchase.gateway_payment_id.isnot(None),
                TokenPurchase.created_at < created_before,
            )
            .order_by(TokenPurchase.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [_to_record(p) for p in result.scalars().all()]

    async def transition_status(
        self,
        purchase_id: UUID,
        new_status: PurchaseStatus,
        gateway_status: str,
        gateway_status_detail: str,
        now: datetime,
    ) -> PurchaseRecord | None:
        """
        Move a purchase out of pending (or refresh a pending one).

        Conditional on the stored status still being pending, so terminal
        states are never overwritten. Returns None when another call got
        there first.
        """
        values: dict[str, object] = {
            "status": new_status.value,
            "gateway_status": gateway_status,
            "gateway_status_detail": gateway_status_detail,
            "updated_at": now,
        }
        if new_status is PurchaseStatus.APPROVED:
            values["approved_at"] = now

        stmt = (
            update(TokenPurchase)
            .where(
                TokenPurchase.id == purchase_id,
                TokenPurchase.status == PurchaseStatus.PENDING.value,
            )
            .values(**values)
            .returning(TokenPurchase)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
            purchase = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Could not update purchase status: {exc}") from exc

        return _to_record(purchase) if purchase is not None else None

    async def credit_tokens(self, purchase: PurchaseRecord, now: datetime) -> CreditOutcome:
        """
        Credit gate: flip tokens_credited false->true and add the tokens.

        Both writes share one transaction. Only the call whose conditional
        UPDATE returns a row increments the balance; every other call gets
        credited=False and the current balance.

        Raises:
            CreditFailedError: The balance could not be increased
        """
        gate = (
            update(TokenPurchase)
            .where(
                TokenPurchase.id == purchase.id,
                TokenPurchase.status == PurchaseStatus.APPROVED.value,
                TokenPurchase.tokens_credited.is_(False),
            )
            .values(tokens_credited=True, tokens_credited_at=now, updated_at=now)
            .returning(TokenPurchase.tokens_amount, TokenPurchase.profile_id)
        )

        try:
            gate_row = (await self.session.execute(gate)).first()

            if gate_row is None:
                await self.session.commit()
                balance = await self.get_balance(purchase.profile_id)
                logger.info(
                    "credit_gate_already_credited",
                    purchase_id=str(purchase.id),
                    balance=balance,
                )
                return CreditOutcome(credited=False, balance=balance)

            tokens_to_add, profile_id = int(gate_row[0]), gate_row[1]
            increment = (
                update(Profile)
                .where(Profile.id == profile_id)
                .values(tokens=Profile.tokens + tokens_to_add)
                .returning(Profile.tokens)
            )
            new_balance = (await self.session.execute(increment)).scalar_one_or_none()

            if new_balance is None:
                await self.session.rollback()
                logger.error(
                    "credit_profile_missing",
                    purchase_id=str(purchase.id),
                    profile_id=str(profile_id),
                )
                raise CreditFailedError(
                    purchase.id, "Tokens approved but profile record was not found."
                )

            await self.session.commit()

        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("credit_transaction_failed", purchase_id=str(purchase.id), error=str(exc))
            raise CreditFailedError(
                purchase.id, "Payment approved but tokens were not added to user balance."
            ) from exc

        logger.info(
            "tokens_credited",
            purchase_id=str(purchase.id),
            tokens=tokens_to_add,
            new_balance=int(new_balance),
        )
        return CreditOutcome(credited=True, balance=int(new_balance))


def _to_record(purchase: TokenPurchase) -> PurchaseRecord:
    """Convert ORM purchase to domain snapshot."""
    return PurchaseRecord(
        id=purchase.id,
        user_id=purchase.user_id,
        profile_id=purchase.profile_id,
        user_email=purchase.user_email,
        role=purchase.role,
        plan_id=purchase.plan_id,
        plan_name=purchase.plan_name,
        tokens_amount=purchase.tokens_amount,
        amount=purchase.amount,
        rate=purchase.rate,
        status=PurchaseStatus(purchase.status),
        gateway_payment_id=purchase.gateway_payment_id,
        gateway_status=purchase.gateway_status,
        gateway_status_detail=purchase.gateway_status_detail,
        pix_qr_code=purchase.pix_qr_code,
        pix_qr_code_base64=purchase.pix_qr_code_base64,
        pix_ticket_url=purchase.pix_ticket_url,
        pix_expires_at=purchase.pix_expires_at,
        tokens_credited=purchase.tokens_credited,
        tokens_credited_at=purchase.tokens_credited_at,
        approved_at=purchase.approved_at,
        created_at=purchase.created_at,
        updated_at=purchase.updated_at,
    )
