"""
Tests for Main Application wiring.

Covers the lifespan hooks and the error handlers.
"""

from unittest.mock import AsyncMock, patch

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from pixtokens.exceptions import CreditFailedError, GatewayError
from pixtokens.main import lifespan, purchase_error_handler, validation_exception_handler


class TestLifespan:
    async def test_shutdown_closes_clients_and_engines(self):
        with (
            patch("pixtokens.main.close_clients", new_callable=AsyncMock) as close_clients,
            patch("pixtokens.main.close_engines", new_callable=AsyncMock) as close_engines,
            patch("pixtokens.main.run_migrations") as run_migrations,
            patch("pixtokens.main.settings.run_migrations", False),
        ):
            async with lifespan(FastAPI()):
                close_clients.assert_not_awaited()

        close_clients.assert_awaited_once()
        close_engines.assert_awaited_once()
        run_migrations.assert_not_called()

    async def test_runs_migrations_when_enabled(self):
        with (
            patch("pixtokens.main.close_clients", new_callable=AsyncMock),
            patch("pixtokens.main.close_engines", new_callable=AsyncMock),
            patch("pixtokens.main.run_migrations") as run_migrations,
            patch("pixtokens.main.settings.run_migrations", True),
        ):
            async with lifespan(FastAPI()):
                pass

        run_migrations.assert_called_once_with()

    async def test_warns_when_claims_fallback_is_disabled(self):
        with (
            patch("pixtokens.main.close_clients", new_callable=AsyncMock),
            patch("pixtokens.main.close_engines", new_callable=AsyncMock),
            patch("pixtokens.main.settings.run_migrations", False),
            patch("pixtokens.main.settings.auth_jwt_secret", ""),
            patch("pixtokens.main.logger") as logger,
        ):
            async with lifespan(FastAPI()):
                pass

        warned = [call.args[0] for call in logger.warning.call_args_list]
        assert warned == ["identity_claims_fallback_disabled"]


class TestPurchaseErrorHandler:
    """Domain errors render as {"status": "error", "error", "reason"}."""

    def _app(self, exc: Exception) -> TestClient:
        app = FastAPI()
        app.add_exception_handler(GatewayError, purchase_error_handler)
        app.add_exception_handler(CreditFailedError, purchase_error_handler)

        @app.get("/boom")
        async def boom() -> None:
            raise exc

        return TestClient(app)

    def test_gateway_error_is_502(self):
        response = self._app(GatewayError("Mercado Pago unreachable: timeout")).get("/boom")

        assert response.status_code == 502
        assert response.json() == {
            "status": "error",
            "error": "Mercado Pago unreachable: timeout",
            "reason": "gateway_error",
        }

    def test_credit_failure_is_500(self):
        from uuid import uuid4

        exc = CreditFailedError(uuid4(), "Payment approved but tokens were not added to user balance.")
        response = self._app(exc).get("/boom")

        assert response.status_code == 500
        assert response.json()["reason"] == "credit_failed"


class TestValidationErrorHandler:
    def test_renders_error_envelope(self):
        app = FastAPI()
        app.add_exception_handler(RequestValidationError, validation_exception_handler)

        @app.get("/items")
        async def items(limit: int) -> dict[str, int]:
            return {"limit": limit}

        response = TestClient(app).get("/items", params={"limit": "many"})

        assert response.status_code == 400
        assert response.json() == {
            "status": "error",
            "error": "Invalid request.",
            "reason": "invalid_request",
        }
