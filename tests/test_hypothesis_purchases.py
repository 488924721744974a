"""
Hypothesis Property-Based Tests for the purchase services.

Each example builds fresh in-memory collaborators and drives the
services with asyncio.run, so examples never share state.
"""

import asyncio
from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pixtokens.exceptions import ForbiddenError
from pixtokens.models.api import PurchaseStatus
from pixtokens.models.domain import AuthenticatedUser
from pixtokens.models.plans import PLANS
from pixtokens.services.purchases import (
    PurchaseInitiationService,
    PurchaseReconciliationService,
    normalize_gateway_status,
)
from tests.fakes import FIXED_NOW, FakeGateway, FakePurchaseStore

# ============================================================================
# Hypothesis Strategies
# ============================================================================

plan_ids = st.sampled_from(list(PLANS))
plan_id_spellings = plan_ids.flatmap(
    lambda pid: st.sampled_from([pid, pid.upper(), pid.capitalize(), f" {pid} "])
)
gateway_statuses = st.sampled_from(
    [
        "approved",
        "pending",
        "in_process",
        "authorized",
        "cancelled",
        "rejected",
        "refunded",
        "charged_back",
        "in_mediation",
    ]
)
unknown_statuses = st.text(max_size=30).filter(
    lambda s: s.strip().lower()
    not in {"approved", "cancelled", "rejected", "refunded", "charged_back"}
)
ineligible_roles = st.sampled_from(["cliente", "admin", "", "PROFISSIONAL"])
terminal_statuses = st.sampled_from(
    [PurchaseStatus.CANCELLED, PurchaseStatus.EXPIRED, PurchaseStatus.FAILED]
)
offsets_minutes = st.integers(min_value=-24 * 60, max_value=24 * 60).filter(lambda m: m != 0)


def _services(
    store: FakePurchaseStore, gateway: FakeGateway
) -> tuple[PurchaseInitiationService, PurchaseReconciliationService]:
    clock = lambda: FIXED_NOW  # noqa: E731
    return (
        PurchaseInitiationService(store=store, gateway=gateway, clock=clock),  # type: ignore[arg-type]
        PurchaseReconciliationService(store=store, gateway=gateway, clock=clock),  # type: ignore[arg-type]
    )


# ============================================================================
# Normalization Properties
# ============================================================================


class TestNormalizationProperties:
    """Property-based tests for normalize_gateway_status."""

    @given(unknown_statuses)
    @settings(max_examples=100)
    def test_unrecognized_status_without_expiry_is_pending(self, raw):
        assert normalize_gateway_status(raw) is PurchaseStatus.PENDING

    @given(gateway_statuses, st.booleans())
    @settings(max_examples=100)
    def test_result_is_never_failed(self, raw, expired):
        result = normalize_gateway_status(raw, expired=expired)
        assert result is not PurchaseStatus.FAILED

    @given(unknown_statuses)
    @settings(max_examples=100)
    def test_expiry_precedence(self, raw):
        """Unrecognized statuses on a lapsed Pix code are always expired."""
        assert normalize_gateway_status(raw, expired=True) is PurchaseStatus.EXPIRED

    @given(offsets_minutes)
    @settings(max_examples=100)
    def test_expiry_matches_stored_deadline(self, offset):
        """A purchase lapses only once now is past its Pix deadline."""
        store = FakePurchaseStore()
        profile = store.add_profile("pro@example.com")
        record = store.add_purchase(
            profile, "u1", PLANS["vip"], pix_expires_at=FIXED_NOW + timedelta(minutes=offset)
        )

        assert record.is_expired(FIXED_NOW) is (offset < 0)


# ============================================================================
# Crediting Properties
# ============================================================================


class TestIdempotentCrediting:
    """Balance increases by exactly one purchase's tokens."""

    @given(
        plan_ids,
        st.integers(min_value=0, max_value=10_000),
        st.integers(min_value=1, max_value=8),
        st.integers(min_value=0, max_value=3),
    )
    @settings(max_examples=50, deadline=None)
    def test_any_number_of_concurrent_and_repeated_calls(
        self, plan_id, start_balance, concurrent, repeats
    ):
        async def scenario() -> None:
            store, gateway = FakePurchaseStore(), FakeGateway()
            _, reconciliation = _services(store, gateway)
            user = AuthenticatedUser(id="buyer", email="buyer@example.com")
            profile = store.add_profile(user.email, tokens=start_balance)
            purchase = store.add_purchase(profile, user.id, PLANS[plan_id])
            gateway.status = "approved"

            expected = start_balance + PLANS[plan_id].tokens
            results = await asyncio.gather(
                *(reconciliation.check_status(user, str(purchase.id)) for _ in range(concurrent))
            )
            for _ in range(repeats):
                results.append(await reconciliation.check_status(user, str(purchase.id)))

            assert all(r.new_balance == expected for r in results)
            assert store.balances[profile.id] == expected
            assert store.balance_increments == 1
            assert store.purchases[purchase.id].tokens_credited_at == FIXED_NOW

        asyncio.run(scenario())


class TestTerminalMonotonicity:
    """Terminal purchases keep their status whatever the gateway says."""

    @given(terminal_statuses, st.lists(gateway_statuses, min_size=1, max_size=5))
    @settings(max_examples=50, deadline=None)
    def test_terminal_purchase_never_changes(self, terminal, gateway_sequence):
        async def scenario() -> None:
            store, gateway = FakePurchaseStore(), FakeGateway()
            _, reconciliation = _services(store, gateway)
            user = AuthenticatedUser(id="buyer", email="buyer@example.com")
            profile = store.add_profile(user.email, tokens=5)
            purchase = store.add_purchase(profile, user.id, PLANS["pro"], status=terminal)

            for raw in gateway_sequence:
                gateway.status = raw
                result = await reconciliation.check_status(user, str(purchase.id))
                assert result.status is terminal

            assert store.purchases[purchase.id].status is terminal
            assert store.balances[profile.id] == 5

        asyncio.run(scenario())

    @given(st.lists(gateway_statuses, min_size=1, max_size=6))
    @settings(max_examples=50, deadline=None)
    def test_first_terminal_status_sticks(self, gateway_sequence):
        async def scenario() -> None:
            store, gateway = FakePurchaseStore(), FakeGateway()
            _, reconciliation = _services(store, gateway)
            user = AuthenticatedUser(id="buyer", email="buyer@example.com")
            profile = store.add_profile(user.email)
            purchase = store.add_purchase(profile, user.id, PLANS["vip"])

            settled: PurchaseStatus | None = None
            for raw in gateway_sequence:
                gateway.status = raw
                result = await reconciliation.check_status(user, str(purchase.id))
                if settled is None and result.status.is_terminal:
                    settled = result.status
                if settled is not None:
                    assert result.status is settled

        asyncio.run(scenario())


# ============================================================================
# Gate Properties
# ============================================================================


class TestRoleGate:
    """Ineligible roles never create a purchase."""

    @given(ineligible_roles, plan_id_spellings)
    @settings(max_examples=50, deadline=None)
    def test_ineligible_role_never_creates_purchase(self, role, plan_id):
        async def scenario() -> None:
            store, gateway = FakePurchaseStore(), FakeGateway()
            initiation, _ = _services(store, gateway)
            user = AuthenticatedUser(id="buyer", email="buyer@example.com")
            store.add_profile(user.email, role=role)

            with pytest.raises(ForbiddenError):
                await initiation.create_purchase(user, plan_id)

            assert store.purchases == {}
            assert gateway.charge_requests == []

        asyncio.run(scenario())


class TestOwnershipGate:
    """Non-owners never see status or balance."""

    @given(st.text(min_size=1, max_size=40).filter(lambda s: s != "owner"), gateway_statuses)
    @settings(max_examples=50, deadline=None)
    def test_non_owner_is_forbidden(self, intruder_id, raw):
        async def scenario() -> None:
            store, gateway = FakePurchaseStore(), FakeGateway()
            _, reconciliation = _services(store, gateway)
            owner = AuthenticatedUser(id="owner", email="owner@example.com")
            profile = store.add_profile(owner.email, tokens=10)
            purchase = store.add_purchase(profile, owner.id, PLANS["vip"])
            gateway.status = raw

            intruder = AuthenticatedUser(id=intruder_id, email="intruder@example.com")

            with pytest.raises(ForbiddenError):
                await reconciliation.check_status(intruder, str(purchase.id))

            assert store.purchases[purchase.id].status is PurchaseStatus.PENDING
            assert gateway.status_calls == 0

        asyncio.run(scenario())
