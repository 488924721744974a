"""
Client-side helpers - API client and purchase status polling.
"""

from pixtokens.client.api_client import (
    PurchaseClientError,
    SessionExpiredError,
    StartedPurchase,
    StatusReply,
    TokenPurchaseClient,
)
from pixtokens.client.polling import PollState, PurchaseStatusPoller, dashboard_path_for_role

__all__ = [
    "PollState",
    "PurchaseClientError",
    "PurchaseStatusPoller",
    "SessionExpiredError",
    "StartedPurchase",
    "StatusReply",
    "TokenPurchaseClient",
    "dashboard_path_for_role",
]
