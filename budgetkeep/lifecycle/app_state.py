"""
Application Lifecycle Signal

The host platform reports foreground/background changes; this module
turns them into edges that stores can subscribe to.

DESIGN DECISION: Nothing in budgetkeep polls. External changes are
re-checked and stale markers are dropped only when the app crosses a
lifecycle edge, so the cost is one check per resume rather than one
per tick.
"""

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Union

import structlog


logger = structlog.get_logger(__name__)


class AppState(str, Enum):
    """Host application state."""
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"

    @property
    def is_away(self) -> bool:
        return self != AppState.ACTIVE


Listener = Callable[["AppState", "AppState"], Union[Awaitable[Any], Any]]


class AppStateMonitor:
    """
    Dispatches lifecycle edges to subscribers.

    Repeated reports of the same state are ignored, so subscribers see
    edges only. Listeners may be plain functions or coroutine functions;
    they are called in subscription order with (previous, current).
    """

    def __init__(self, initial: AppState = AppState.ACTIVE):
        self._state = initial
        self._listeners: list[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_became_active(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Subscribe to the away -> ACTIVE edge only."""

        def listener(previous: AppState, current: AppState):
            if previous.is_away and current == AppState.ACTIVE:
                return callback()
            return None

        return self.subscribe(listener)

    async def transition(self, new_state: AppState) -> bool:
        """
        Report the current host state.

        Returns:
            True if this was an edge and listeners were notified
        """
        new_state = AppState(new_state)
        if new_state == self._state:
            return False

        previous, self._state = self._state, new_state
        logger.debug("app_state_changed", previous=previous.value, current=new_state.value)

        for listener in list(self._listeners):
            try:
                result = listener(previous, new_state)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # One failing subscriber must not starve the others
                logger.exception("app_state_listener_failed", current=new_state.value)
        return True
