"""
API Routes - FastAPI endpoints for token purchases.

NO DICTIONARIES - All requests/responses use Pydantic models.
Errors are raised as PurchaseError subclasses and rendered by the
handler registered in main.py.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pixtokens.api.dependencies import (
    get_create_purchase_request,
    get_identity_resolver,
    get_initiation_service,
    get_reconciliation_service,
    get_status_request,
)
from pixtokens.db.session import get_read_db
from pixtokens.models.api import (
    CheckPurchaseStatusRequest,
    CheckPurchaseStatusResponse,
    CreatePurchaseRequest,
    CreatePurchaseResponse,
    ErrorResponse,
    HealthResponse,
    PlanListResponse,
    PlanResponse,
)
from pixtokens.models.plans import PLANS, Plan
from pixtokens.services.identity import IdentityResolver
from pixtokens.services.purchases import (
    PurchaseInitiationService,
    PurchaseReconciliationService,
)

router = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 500, 502)
}


def _request_body(model: type[BaseModel]) -> dict[str, Any]:
    """OpenAPI body for routes that read their JSON body themselves."""
    schema = model.model_json_schema(by_alias=True)
    return {"requestBody": {"content": {"application/json": {"schema": schema}}}}


def _plan_response(plan: Plan) -> PlanResponse:
    return PlanResponse(
        id=plan.id,
        name=plan.name,
        amount=plan.amount,
        tokens=plan.tokens,
        rate=plan.rate,
        benefits=list(plan.benefits),
        fee_schedule=plan.fee_schedule,
    )


@router.get("/v1/token-plans", response_model=PlanListResponse, response_model_by_alias=True)
async def list_token_plans() -> PlanListResponse:
    """Plan catalog shown on the purchase page."""
    return PlanListResponse(plans=[_plan_response(plan) for plan in PLANS.values()])


@router.post(
    "/v1/token-purchases",
    response_model=CreatePurchaseResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
    openapi_extra=_request_body(CreatePurchaseRequest),
)
async def create_token_purchase(
    request: CreatePurchaseRequest = Depends(get_create_purchase_request),
    authorization: str | None = Header(None),
    service: PurchaseInitiationService = Depends(get_initiation_service),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> CreatePurchaseResponse:
    """
    Start a token purchase and return the Pix charge to display.

    Requires: Authorization: Bearer {access_token}
    """
    service.ensure_live_gateway()
    user = await resolver.resolve(authorization)

    created = await service.create_purchase(user, request.plan_id)

    return CreatePurchaseResponse(
        purchase_id=created.purchase_id,
        status="pending",
        qr_code=created.qr_code,
        qr_code_base64=created.qr_code_base64,
        ticket_url=created.ticket_url,
        expires_at=created.expires_at,
        plan=_plan_response(created.plan),
    )


@router.post(
    "/v1/token-purchases/status",
    response_model=CheckPurchaseStatusResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    openapi_extra=_request_body(CheckPurchaseStatusRequest),
)
async def check_token_purchase_status(
    request: CheckPurchaseStatusRequest = Depends(get_status_request),
    authorization: str | None = Header(None),
    service: PurchaseReconciliationService = Depends(get_reconciliation_service),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> CheckPurchaseStatusResponse:
    """
    Reconcile a purchase with the gateway and report its status.

    Polled by the purchase page every few seconds while pending. On
    approval the response carries the credited balance.
    """
    user = await resolver.resolve(authorization, allow_fallback=True)

    result = await service.check_status(user, request.purchase_id)

    return CheckPurchaseStatusResponse(
        status=result.status,
        purchase_id=result.purchase_id,
        new_balance=result.new_balance,
        approved_at=result.approved_at,
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
    )
