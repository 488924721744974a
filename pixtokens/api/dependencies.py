"""
FastAPI Dependencies - Identity, gateway and service wiring.

NO DICTIONARIES - All dependencies return typed objects.

HTTP clients for the identity provider and the gateway are created once
per process and closed on shutdown.
"""

from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from pixtokens.config import settings
from pixtokens.db.session import get_write_db
from pixtokens.exceptions import GatewayNotConfiguredError
from pixtokens.models.api import CheckPurchaseStatusRequest, CreatePurchaseRequest
from pixtokens.services.identity import (
    ClaimsIdentityStrategy,
    IdentityResolver,
    ProviderIdentityStrategy,
)
from pixtokens.services.mercado_pago_provider import MercadoPagoProvider
from pixtokens.services.payment_gateway import PaymentGateway
from pixtokens.services.purchase_store import PurchaseStore
from pixtokens.services.purchases import (
    PurchaseInitiationService,
    PurchaseReconciliationService,
)

logger = get_logger(__name__)

_identity_provider: ProviderIdentityStrategy | None = None
_payment_gateway: MercadoPagoProvider | None = None


# ============================================================================
# Collaborators
# ============================================================================


def get_identity_resolver() -> IdentityResolver:
    """
    Provider round-trip with a local claims fallback.

    The claims fallback is only offered when AUTH_JWT_SECRET is set.

    Raises:
        GatewayNotConfiguredError: AUTH_URL / AUTH_API_KEY missing
    """
    global _identity_provider

    if not settings.identity_configured:
        logger.error("identity_provider_not_configured")
        raise GatewayNotConfiguredError()

    if _identity_provider is None:
        _identity_provider = ProviderIdentityStrategy(
            auth_url=settings.auth_url,
            api_key=settings.auth_api_key,
            timeout=settings.auth_timeout_seconds,
        )

    fallback: ClaimsIdentityStrategy | None = None
    if settings.auth_jwt_secret:
        fallback = ClaimsIdentityStrategy(jwt_secret=settings.auth_jwt_secret)

    return IdentityResolver(provider=_identity_provider, fallback=fallback)


def get_payment_gateway() -> PaymentGateway:
    """
    Mercado Pago client for the configured access token.

    Raises:
        GatewayNotConfiguredError: MERCADO_PAGO_ACCESS_TOKEN missing
    """
    global _payment_gateway

    if not settings.gateway_configured:
        logger.error("payment_gateway_not_configured")
        raise GatewayNotConfiguredError()

    if _payment_gateway is None:
        _payment_gateway = MercadoPagoProvider(
            access_token=settings.mercado_pago_access_token,
            notification_url=settings.mercado_pago_notification_url,
            api_base_url=settings.mercado_pago_api_base_url,
            timeout=settings.gateway_timeout_seconds,
        )
    return _payment_gateway


async def close_clients() -> None:
    """Close shared HTTP clients (application shutdown)."""
    global _identity_provider, _payment_gateway

    if _identity_provider is not None:
        await _identity_provider.close()
        _identity_provider = None
    if _payment_gateway is not None:
        await _payment_gateway.close()
        _payment_gateway = None


# ============================================================================
# Services
# ============================================================================


async def get_purchase_store(db: AsyncSession = Depends(get_write_db)) -> PurchaseStore:
    """Purchase store bound to the request's write session."""
    return PurchaseStore(db)


def get_initiation_service(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    store: PurchaseStore = Depends(get_purchase_store),
) -> PurchaseInitiationService:
    return PurchaseInitiationService(store=store, gateway=gateway)


def get_reconciliation_service(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    store: PurchaseStore = Depends(get_purchase_store),
) -> PurchaseReconciliationService:
    return PurchaseReconciliationService(store=store, gateway=gateway)


# ============================================================================
# Request Bodies
# ============================================================================


async def _json_object(request: Request) -> dict[str, Any]:
    """Body as a JSON object. Missing, malformed or non-object bodies read as {}."""
    try:
        body = await request.json()
    except ValueError:
        logger.info("request_body_unparseable", path=request.url.path)
        return {}
    return body if isinstance(body, dict) else {}


async def get_create_purchase_request(request: Request) -> CreatePurchaseRequest:
    """
    Purchase request body, parsed without failing the request.

    Body problems surface as InvalidPlanError once the caller is
    authenticated, never as a validation error ahead of authentication.
    """
    return CreatePurchaseRequest.model_validate(await _json_object(request))


async def get_status_request(request: Request) -> CheckPurchaseStatusRequest:
    return CheckPurchaseStatusRequest.model_validate(await _json_object(request))
