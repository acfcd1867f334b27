"""
Navigation history for contextual back buttons.

When a user opens a transaction (or a form) from the Receipts page, the
back button should say "Back to Receipts" and take them there, not to the
transactions list. The tracker remembers the last main dashboard page the
user was on in session storage and surfaces it on detail and form pages.

DESIGN DECISION: Session storage is any MutableMapping. In the app it is
`st.session_state`, so the remembered page lives exactly as long as the
browser session. Storage errors are not caught here.
"""

from collections.abc import MutableMapping
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel

from pocketledger.navigation.routes import TRANSACTIONS_PAGE, RouteKind, classify_route


logger = structlog.get_logger(__name__)

PREVIOUS_PATH_KEY = "previousPath"
SOURCE_PAGE_KEY = "sourcePage"

BACK_BUTTON_LABELS = {
    "/dashboard": "Back to Overview",
    "/dashboard/transactions": "Back to Transactions",
    "/dashboard/receipts": "Back to Receipts",
    "/dashboard/chat": "Back to Chat",
}


class Router(Protocol):
    """Whatever performs navigation: the Streamlit page switcher or a test double."""

    def push(self, path: str) -> None: ...

    def back(self) -> None: ...


class NavigationState(BaseModel):
    previous_path: Optional[str] = None
    source_page: Optional[str] = None

    @property
    def can_go_back(self) -> bool:
        return self.previous_path is not None


class BackButton(BaseModel):
    """
    What the back button shows and where it goes.

    `href` is None when pressing it should go through the history
    (`NavigationHistory.go_back`).
    """
    href: Optional[str] = None
    text: str


class NavigationHistory:
    """
    Tracks where the user came from.

    Call `on_route_change` every time a page is rendered, and
    `on_popstate` when the browser's own back/forward lands on a page.
    """

    def __init__(self, storage: MutableMapping, router: Router):
        self._storage = storage
        self._router = router
        self._state = NavigationState()

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def can_go_back(self) -> bool:
        return self._state.can_go_back

    @property
    def previous_path(self) -> Optional[str]:
        return self._state.previous_path

    @property
    def source_page(self) -> Optional[str]:
        return self._state.source_page

    def on_route_change(self, path: str) -> NavigationState:
        kind = classify_route(path)

        if kind in (RouteKind.CRUD, RouteKind.DETAIL):
            stored_previous = self._storage.get(PREVIOUS_PATH_KEY)
            if stored_previous:
                self._state = NavigationState(
                    previous_path=stored_previous,
                    source_page=self._storage.get(SOURCE_PAGE_KEY),
                )
            else:
                self._state = NavigationState(previous_path=TRANSACTIONS_PAGE)
        elif kind is RouteKind.MAIN:
            had_source = bool(self._storage.get(SOURCE_PAGE_KEY))
            self._storage[PREVIOUS_PATH_KEY] = path
            if had_source:
                self._storage[SOURCE_PAGE_KEY] = path
            self._state = NavigationState()
        elif kind is RouteKind.OTHER:
            pass

        logger.debug(
            "navigation_route_change",
            path=path,
            kind=kind.value,
            previous_path=self._state.previous_path,
        )
        return self._state

    def on_popstate(self, current_path: str) -> None:
        if classify_route(current_path) is RouteKind.MAIN:
            self._storage[PREVIOUS_PATH_KEY] = current_path

    def go_back(self) -> None:
        if self._state.previous_path:
            self._router.push(self._state.previous_path)
        else:
            self._router.back()

    def back_button_text(self) -> str:
        if not self._state.previous_path:
            return "Back"
        return BACK_BUTTON_LABELS.get(self._state.previous_path, "Back")

    def set_navigation_source(self, source_path: str) -> None:
        """Remember `source_path` before opening a detail page from it."""
        self._storage[PREVIOUS_PATH_KEY] = source_path
        self._storage[SOURCE_PAGE_KEY] = source_path

    def follow(self, button: BackButton) -> None:
        """Act on a back button press."""
        if button.href is None:
            self.go_back()
        else:
            self._router.push(button.href)


def fallback_for(current_path: str) -> BackButton:
    """Sensible destination when there is no history to go back to."""
    if "/dashboard/transactions" in current_path:
        return BackButton(href="/dashboard/transactions", text="Back to Transactions")
    if "/dashboard/receipts" in current_path:
        return BackButton(href="/dashboard/receipts", text="Back to Receipts")
    return BackButton(href="/dashboard", text="Back to Overview")


def resolve_back_button(
    history: NavigationHistory,
    current_path: str,
    fallback_href: Optional[str] = "/dashboard/transactions",
    fallback_text: Optional[str] = "Back to Transactions",
) -> BackButton:
    """
    Decide what the back button on `current_path` shows.

    With history available the label comes from the remembered page.
    Otherwise the fallback is used, which defaults to the transactions
    list. Passing an empty or None fallback derives one from the path
    instead.
    """
    if history.can_go_back:
        return BackButton(href=None, text=history.back_button_text())

    derived = fallback_for(current_path)
    return BackButton(
        href=fallback_href or derived.href,
        text=fallback_text or derived.text,
    )
