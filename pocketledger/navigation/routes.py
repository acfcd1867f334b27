"""
Route classification for the dashboard.

Every path is exactly one RouteKind. The history tracker matches on the
kind instead of re-testing the path in several places.
"""

import re
from enum import Enum


DASHBOARD_PAGES = (
    "/dashboard",
    "/dashboard/overview",
    "/dashboard/transactions",
    "/dashboard/receipts",
    "/dashboard/chat",
)

TRANSACTIONS_PAGE = "/dashboard/transactions"

_TRANSACTION_DETAIL = re.compile(r"/dashboard/transactions/[a-z0-9-]+$")


class RouteKind(str, Enum):
    """What a path is, as far as back navigation is concerned."""
    MAIN = "main"        # one of DASHBOARD_PAGES
    CRUD = "crud"        # a create or edit form
    DETAIL = "detail"    # a single transaction
    OTHER = "other"


def classify_route(path: str) -> RouteKind:
    """
    Classify a path.

    CRUD wins over DETAIL, so `/dashboard/transactions/new` is a form and
    `/dashboard/transactions/coffee/edit` is too.
    """
    if "/new" in path or "/edit" in path:
        return RouteKind.CRUD
    if _TRANSACTION_DETAIL.search(path):
        return RouteKind.DETAIL
    if path in DASHBOARD_PAGES:
        return RouteKind.MAIN
    return RouteKind.OTHER
