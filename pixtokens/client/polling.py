"""
Purchase Status Polling - Drives reconciliation while a purchase is pending.

Checks immediately, then every `interval` seconds, until the purchase
reaches a terminal status or the poller is stopped. Transient failures
never stop the loop; they only change the displayed message.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from structlog import get_logger

from pixtokens.client.api_client import PurchaseClientError, StatusReply

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_REDIRECT_DELAY_SECONDS = 1.8

WAITING_MESSAGE = "Aguardando confirmação do Pix... não atualize esta tela."
TRANSIENT_ERROR_MESSAGE = (
    "Pagamento criado. Aguardando confirmação automática do Pix em segundo plano..."
)
APPROVED_MESSAGE = "Pagamento confirmado! Seus tokens foram creditados com sucesso."
CANCELLED_MESSAGE = "Pagamento cancelado ou rejeitado. Se desejar, inicie uma nova compra."
EXPIRED_MESSAGE = "O QR Code expirou. Se desejar, inicie uma nova compra."


class PollState(str, Enum):
    """What the purchase page displays."""

    PENDING = "pending"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PollState.PENDING


def dashboard_path_for_role(role: str | None) -> str:
    """Where a purchaser lands after a confirmed payment."""
    if role == "profissional":
        return "/dashboard/profissional"
    if role == "estabelecimento":
        return "/dashboard/estabelecimento"
    return "/dashboard/cliente"


class PurchaseStatusPoller:
    """
    Poll a purchase's status until it settles.

    Usage:
        async with PurchaseStatusPoller(purchase_id, client.check_purchase_status,
                                        role="profissional", navigate=go_to) as poller:
            await poller.wait()
    """

    def __init__(
        self,
        purchase_id: str,
        check: Callable[[str], Awaitable[StatusReply]],
        role: str | None = None,
        navigate: Callable[[str], Any] | None = None,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        redirect_delay: float = DEFAULT_REDIRECT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.purchase_id = purchase_id
        self.check = check
        self.role = role
        self.navigate = navigate
        self.interval = interval
        self.redirect_delay = redirect_delay
        self.sleep = sleep

        self.state = PollState.PENDING
        self.message = WAITING_MESSAGE
        self.balance: int | None = None
        self.polls = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Begin polling in a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel polling (and any pending redirect)."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("purchase_polling_cancelled", purchase_id=self.purchase_id)

    async def wait(self) -> None:
        """Wait until polling finishes on its own."""
        if self._task is not None:
            await self._task

    async def __aenter__(self) -> "PurchaseStatusPoller":
        self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    async def poll_once(self) -> PollState:
        """Run a single status check and update the display state."""
        self.polls += 1
        try:
            reply = await self.check(self.purchase_id)
        except PurchaseClientError as exc:
            logger.info(
                "purchase_polling_transient_error",
                purchase_id=self.purchase_id,
                error=exc.message,
            )
            self.message = TRANSIENT_ERROR_MESSAGE
            return self.state

        if reply.status == "approved":
            self.state = PollState.APPROVED
            if reply.new_balance is not None and reply.new_balance >= 0:
                self.balance = reply.new_balance
            self.message = APPROVED_MESSAGE
        elif reply.status == "cancelled":
            self.state = PollState.CANCELLED
            self.message = CANCELLED_MESSAGE
        elif reply.status == "expired":
            self.state = PollState.EXPIRED
            self.message = EXPIRED_MESSAGE
        else:
            self.state = PollState.PENDING
            self.message = WAITING_MESSAGE

        return self.state

    async def _run(self) -> None:
        while True:
            state = await self.poll_once()
            if state.is_terminal:
                break
            await self.sleep(self.interval)

        logger.info(
            "purchase_polling_finished",
            purchase_id=self.purchase_id,
            state=self.state.value,
            polls=self.polls,
        )

        if self.state is PollState.APPROVED and self.navigate is not None:
            await self.sleep(self.redirect_delay)
            result = self.navigate(dashboard_path_for_role(self.role))
            if inspect.isawaitable(result):
                await result
