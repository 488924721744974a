"""
Purchase Services - Initiation and reconciliation of Pix token purchases.

NO DICTIONARIES - All operations use strongly typed domain models.

Initiation creates a pending purchase and its Pix charge. Reconciliation
syncs a purchase with the gateway's live status and credits tokens once
on approval. Neither holds state between calls; concurrent calls
coordinate only through the conditional updates in PurchaseStore.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from structlog import get_logger

from pixtokens.db.models import utc_now
from pixtokens.exceptions import (
    CreditFailedError,
    ForbiddenError,
    GatewayError,
    GatewayTestModeError,
    InvalidPlanError,
    MissingGatewayReferenceError,
    MissingPurchaseIdError,
    PersistenceError,
    ProfileNotFoundError,
    PurchaseNotFoundError,
)
from pixtokens.models.api import ELIGIBLE_ROLES, PurchaseStatus
from pixtokens.models.domain import (
    AuthenticatedUser,
    ChargeRequest,
    PurchaseCreated,
    PurchaseRecord,
    PurchaseTerms,
    ReconciliationResult,
)
from pixtokens.models.plans import get_plan
from pixtokens.observability.metrics import metrics
from pixtokens.observability.tracing import trace_operation
from pixtokens.services.payment_gateway import PaymentGateway
from pixtokens.services.purchase_store import PurchaseStore

logger = get_logger(__name__)

_CANCELLED_GATEWAY_STATUSES = frozenset({"cancelled", "rejected", "refunded", "charged_back"})


def normalize_gateway_status(raw_status: str | None, expired: bool = False) -> PurchaseStatus:
    """
    Map a raw gateway status onto the purchase lifecycle.

    approved -> approved; cancelled/rejected/refunded/charged_back ->
    cancelled; anything else -> pending, or expired when the purchase's
    Pix code has already lapsed.
    """
    status = (raw_status or "").strip().lower()
    if status == "approved":
        return PurchaseStatus.APPROVED
    if status in _CANCELLED_GATEWAY_STATUSES:
        return PurchaseStatus.CANCELLED
    if expired:
        return PurchaseStatus.EXPIRED
    return PurchaseStatus.PENDING


# ============================================================================
# Initiation
# ============================================================================


class PurchaseInitiationService:
    """Creates pending purchases and their Pix charges."""

    def __init__(
        self,
        store: PurchaseStore,
        gateway: PaymentGateway,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock

    def ensure_live_gateway(self) -> None:
        """
        Refuse to sell tokens against a sandbox gateway credential.

        Raises:
            GatewayTestModeError: Access token is a TEST- token
        """
        if self.gateway.is_test_mode:
            logger.warning("gateway_test_mode_refused")
            raise GatewayTestModeError()

    async def create_purchase(self, user: AuthenticatedUser, plan_id: str) -> PurchaseCreated:
        """
        Create a pending purchase and a Pix charge for it.

        Raises:
            GatewayTestModeError: Sandbox gateway credential
            InvalidPlanError: Unknown plan id (no purchase row is created)
            ProfileNotFoundError: No profile for the user's email
            ForbiddenError: Profile role cannot buy tokens
            PersistenceError: Purchase row could not be written
            GatewayError: Charge creation failed (purchase marked failed)
        """
        self.ensure_live_gateway()

        logger.info("request_received", user_id=user.id, plan_id=plan_id)

        plan = get_plan(plan_id)
        logger.info("plan_validation", plan_id=plan_id, valid=plan is not None)
        if plan is None:
            metrics.record_purchase_created("unknown", "invalid_plan")
            raise InvalidPlanError(plan_id)

        profile = await self.store.find_profile_by_email(user.email) if user.email else None
        logger.info(
            "profile_lookup",
            user_id=user.id,
            email=user.email,
            found=profile is not None,
            role=profile.role if profile else None,
        )
        if profile is None:
            metrics.record_purchase_created(plan.id, "profile_not_found")
            raise ProfileNotFoundError(user.email)

        if profile.role not in ELIGIBLE_ROLES:
            metrics.record_purchase_created(plan.id, "role_not_allowed")
            raise ForbiddenError(
                "Only professionals and establishments can buy tokens.", "role_not_allowed"
            )

        with trace_operation("create_token_purchase", plan_id=plan.id, user_id=user.id) as span:
            terms = PurchaseTerms.from_plan(plan)
            purchase_id = await self.store.create_pending(user, profile, terms)
            span.set_attribute("purchase_id", str(purchase_id))
            logger.info(
                "purchase_insert",
                purchase_id=str(purchase_id),
                plan_id=terms.plan_id,
                tokens_amount=terms.tokens_amount,
                amount=str(terms.amount),
            )

            charge_request = ChargeRequest(
                amount=terms.amount,
                description=plan.description,
                payer_email=profile.email,
                idempotency_key=str(purchase_id),
                metadata_purchase_id=str(purchase_id),
                metadata_user_id=user.id,
                metadata_plan_id=terms.plan_id,
                metadata_tokens=terms.tokens_amount,
            )

            try:
                charge = await self.gateway.create_charge(charge_request)
            except GatewayError as exc:
                await self.store.mark_failed(
                    purchase_id,
                    exc.gateway_status or "failed",
                    exc.raw_response or exc.message,
                )
                logger.error(
                    "gateway_create_payment_failed",
                    purchase_id=str(purchase_id),
                    http_status=exc.http_status,
                    gateway_status=exc.gateway_status,
                    rejected=exc.rejected,
                )
                metrics.record_purchase_created(
                    plan.id, "gateway_rejected" if exc.rejected else "gateway_error"
                )
                raise

            logger.info(
                "gateway_create_payment_response",
                purchase_id=str(purchase_id),
                gateway_payment_id=charge.gateway_id,
                gateway_status=charge.status,
            )

            try:
                await self.store.attach_charge(purchase_id, charge)
            except PersistenceError:
                # The charge exists at the gateway with no local display data.
                logger.error(
                    "pix_data_persist_failed",
                    purchase_id=str(purchase_id),
                    orphaned_gateway_payment_id=charge.gateway_id,
                )
                metrics.record_purchase_created(plan.id, "persistence_error")
                raise

        metrics.record_purchase_created(plan.id, "created")
        logger.info("purchase_created", purchase_id=str(purchase_id), plan_id=plan.id)

        return PurchaseCreated(
            purchase_id=purchase_id,
            plan=plan,
            qr_code=charge.qr_code,
            qr_code_base64=charge.qr_code_base64,
            ticket_url=charge.ticket_url,
            expires_at=charge.expires_at,
        )


# ============================================================================
# Reconciliation
# ============================================================================


class PurchaseReconciliationService:
    """
    Syncs purchases with the gateway and credits approved ones.

    Status writes only ever leave pending; the credit gate in the store
    guarantees a purchase's tokens reach the balance at most once.
    """

    def __init__(
        self,
        store: PurchaseStore,
        gateway: PaymentGateway,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.clock = clock

    async def check_status(
        self, user: AuthenticatedUser, purchase_id: str | None
    ) -> ReconciliationResult:
        """
        Reconcile a purchase on behalf of its owner.

        Raises:
            MissingPurchaseIdError: Empty purchase id
            PurchaseNotFoundError: Unknown (or malformed) purchase id
            ForbiddenError: Purchase belongs to another user
            MissingGatewayReferenceError: Pending purchase never got a charge
            GatewayError: Live status lookup failed; purchase stays pending
            CreditFailedError: Approved but the balance was not credited
        """
        raw_id = (purchase_id or "").strip()
        if not raw_id:
            raise MissingPurchaseIdError()

        try:
            parsed_id = UUID(raw_id)
        except ValueError as exc:
            raise PurchaseNotFoundError(raw_id) from exc

        purchase = await self.store.get_purchase(parsed_id)
        if purchase is None:
            raise PurchaseNotFoundError(raw_id)

        if purchase.user_id != user.id:
            logger.warning(
                "purchase_owner_mismatch",
                purchase_id=raw_id,
                user_id=user.id,
            )
            raise ForbiddenError("Forbidden", "not_purchase_owner")

        return await self.reconcile(purchase)

    async def reconcile(self, purchase: PurchaseRecord) -> ReconciliationResult:
        """Bring one purchase up to date with the gateway."""
        with trace_operation("reconcile_token_purchase", purchase_id=purchase.id):
            result = await self._reconcile(purchase)
        metrics.record_reconciliation(result.status.value)
        return result

    async def _reconcile(self, purchase: PurchaseRecord) -> ReconciliationResult:
        now = self.clock()

        if purchase.status is PurchaseStatus.APPROVED:
            if purchase.tokens_credited:
                balance = await self.store.get_balance(purchase.profile_id)
                logger.info(
                    "purchase_already_credited",
                    purchase_id=str(purchase.id),
                    balance=balance,
                )
                return ReconciliationResult(
                    purchase_id=purchase.id,
                    status=PurchaseStatus.APPROVED,
                    new_balance=balance,
                    approved_at=purchase.approved_at,
                )
            # Approved earlier but the credit step did not complete
            return await self._credit(purchase, now)

        if purchase.status.is_terminal:
            return ReconciliationResult(purchase_id=purchase.id, status=purchase.status)

        if not purchase.gateway_payment_id:
            raise MissingGatewayReferenceError(purchase.id)

        live = await self.gateway.get_charge_status(purchase.gateway_payment_id)
        new_status = normalize_gateway_status(live.status, expired=purchase.is_expired(now))
        logger.info(
            "gateway_status_normalized",
            purchase_id=str(purchase.id),
            gateway_status=live.status,
            status=new_status.value,
        )

        updated = await self.store.transition_status(
            purchase.id, new_status, live.status, live.status_detail, now
        )

        if updated is None:
            # Another call moved the purchase out of pending first
            current = await self.store.get_purchase(purchase.id)
            if current is None:
                raise PurchaseNotFoundError(str(purchase.id))
            logger.info(
                "purchase_transition_lost_race",
                purchase_id=str(purchase.id),
                status=current.status.value,
            )
            if current.status is PurchaseStatus.PENDING:
                return ReconciliationResult(purchase_id=current.id, status=current.status)
            return await self._reconcile(current)

        if updated.status is PurchaseStatus.APPROVED:
            return await self._credit(updated, now)

        return ReconciliationResult(purchase_id=updated.id, status=updated.status)

    async def _credit(self, purchase: PurchaseRecord, now: datetime) -> ReconciliationResult:
        try:
            outcome = await self.store.credit_tokens(purchase, now)
        except CreditFailedError:
            metrics.record_error("credit_failed", "reconcile")
            raise

        metrics.record_credit(purchase.plan_id, outcome.credited, purchase.tokens_amount)
        return ReconciliationResult(
            purchase_id=purchase.id,
            status=PurchaseStatus.APPROVED,
            new_balance=outcome.balance,
            approved_at=purchase.approved_at,
        )

    async def reconcile_pending(
        self, limit: int = 100, older_than: timedelta = timedelta(minutes=1)
    ) -> list[ReconciliationResult]:
        """
        Sweep pending purchases whose clients stopped polling.

        Gateway failures are logged and the purchase is left for the next
        sweep. Credit and persistence failures are logged at error level
        and also retried on the next sweep, since their transactions
        rolled back.
        """
        cutoff = self.clock() - older_than
        pending = await self.store.list_pending(created_before=cutoff, limit=limit)
        logger.info("reconcile_pending_started", count=len(pending), cutoff=cutoff.isoformat())

        results: list[ReconciliationResult] = []
        for purchase in pending:
            try:
                results.append(await self.reconcile(purchase))
            except GatewayError as exc:
                logger.warning(
                    "reconcile_pending_gateway_error",
                    purchase_id=str(purchase.id),
                    error=exc.message,
                )
            except CreditFailedError as exc:
                logger.error(
                    "reconcile_pending_credit_failed",
                    purchase_id=str(purchase.id),
                    error=exc.message,
                )
            except PersistenceError as exc:
                logger.error(
                    "reconcile_pending_persistence_error",
                    purchase_id=str(purchase.id),
                    error=exc.message,
                )

        logger.info(
            "reconcile_pending_finished",
            checked=len(pending),
            reconciled=len(results),
        )
        return results
