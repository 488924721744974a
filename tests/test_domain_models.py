"""
Tests for Domain Models.

Tests dataclass validation and helpers.
"""

from dataclasses import FrozenInstanceError
from datetime import timedelta
from decimal import Decimal

import pytest

from pixtokens.models.api import PurchaseStatus
from pixtokens.models.domain import AuthenticatedUser, ChargeRequest, PurchaseTerms
from pixtokens.models.plans import PLANS
from tests.fakes import FIXED_NOW, FakePurchaseStore


class TestAuthenticatedUser:
    def test_empty_id_rejected(self):
        with pytest.raises(ValueError, match="User id cannot be empty"):
            AuthenticatedUser(id="", email="a@example.com")

    def test_frozen(self):
        user = AuthenticatedUser(id="u1", email=None)
        with pytest.raises(FrozenInstanceError):
            user.id = "u2"  # type: ignore[misc]


class TestPurchaseTerms:
    def test_snapshot_of_plan(self):
        terms = PurchaseTerms.from_plan(PLANS["pirituba"])

        assert terms == PurchaseTerms(
            plan_id="pirituba",
            plan_name="PIRITUBA",
            tokens_amount=300,
            amount=Decimal("150.00"),
            rate=Decimal("0.50"),
        )


class TestChargeRequest:
    def _request(self, **overrides) -> ChargeRequest:
        values = {
            "amount": Decimal("25.00"),
            "description": "Compra de 25 tokens - Plano ESSENCIAL",
            "payer_email": "pro@example.com",
            "idempotency_key": "key-1",
            "metadata_purchase_id": "key-1",
            "metadata_user_id": "u1",
            "metadata_plan_id": "essencial",
            "metadata_tokens": 25,
        }
        values.update(overrides)
        return ChargeRequest(**values)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_amount(self, amount: Decimal):
        with pytest.raises(ValueError, match="must be positive"):
            self._request(amount=amount)

    def test_empty_idempotency_key(self):
        with pytest.raises(ValueError, match="idempotency_key"):
            self._request(idempotency_key="")


class TestPurchaseRecord:
    def test_expiry_is_strictly_after(self):
        store = FakePurchaseStore()
        profile = store.add_profile("pro@example.com")
        record = store.add_purchase(profile, "u1", PLANS["vip"], pix_expires_at=FIXED_NOW)

        assert record.is_expired(FIXED_NOW) is False
        assert record.is_expired(FIXED_NOW + timedelta(seconds=1)) is True

    def test_no_expiry_never_expires(self):
        store = FakePurchaseStore()
        profile = store.add_profile("pro@example.com")
        record = store.add_purchase(profile, "u1", PLANS["vip"], pix_expires_at=None)

        assert record.is_expired(FIXED_NOW + timedelta(days=365)) is False


@pytest.mark.parametrize(
    "status,terminal",
    [
        (PurchaseStatus.PENDING, False),
        (PurchaseStatus.APPROVED, True),
        (PurchaseStatus.CANCELLED, True),
        (PurchaseStatus.EXPIRED, True),
        (PurchaseStatus.FAILED, True),
    ],
)
def test_terminal_statuses(status: PurchaseStatus, terminal: bool):
    assert status.is_terminal is terminal
