"""Authentication: credential stores, device authorization flow, auth menu."""

from src.auth.config_store import AuthStatus, ConfigStore, HTTPConfigStore, get_config_store
from src.auth.device_flow import (
    Authenticated,
    DeviceAuthFlow,
    DeviceAuthorization,
    PollingTask,
    PollOutcome,
    Rejected,
)
from src.auth.menu import AuthMenuController, AuthMenuState

__all__ = [
    "AuthMenuController",
    "AuthMenuState",
    "AuthStatus",
    "Authenticated",
    "ConfigStore",
    "DeviceAuthFlow",
    "DeviceAuthorization",
    "HTTPConfigStore",
    "PollOutcome",
    "PollingTask",
    "Rejected",
    "get_config_store",
]
