"""Navigation history and contextual back buttons for the dashboard."""

from pocketledger.navigation.history import (
    BackButton,
    NavigationHistory,
    NavigationState,
    Router,
    fallback_for,
    resolve_back_button,
)
from pocketledger.navigation.routes import DASHBOARD_PAGES, RouteKind, classify_route

__all__ = [
    "DASHBOARD_PAGES",
    "BackButton",
    "NavigationHistory",
    "NavigationState",
    "RouteKind",
    "Router",
    "classify_route",
    "fallback_for",
    "resolve_back_button",
]
