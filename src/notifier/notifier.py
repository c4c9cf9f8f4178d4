"""Fan-out of engine events to the interested parts of the host."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .events import EVT_ITERATION, EVT_MODIFIED, render_message

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

_QUIET_EVENTS = {EVT_ITERATION, EVT_MODIFIED}


class Notifier:
    """Delivers each event to every subscribed listener, in order.

    A failing listener is logged and skipped; it never interrupts delivery
    to the others or reaches the engine.

    Usage::

        notifier = Notifier()
        notifier.subscribe(save_on_change)
        engine = CalculationEngine(..., notify_fn=make_notify_callback(notifier))
    """

    def __init__(self, log_events: bool = True) -> None:
        self._listeners: list[Listener] = []
        self._log_events = log_events

    @property
    def enabled(self) -> bool:
        return bool(self._listeners) or self._log_events

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug("Listener %r was not subscribed", listener)

    def send_event(self, event: dict[str, Any]) -> None:
        if self._log_events:
            level = logging.DEBUG if event.get("event_type") in _QUIET_EVENTS else logging.INFO
            logger.log(level, "%s", render_message(event))
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning(
                    "Listener %r failed for event %s",
                    listener,
                    event.get("event_id", "?"),
                    exc_info=True,
                )


def make_notify_callback(
    notifier: Notifier | None,
) -> Callable[[dict[str, Any]], None]:
    """Create a notification callback suitable for the engine.

    Returns a no-op callback if the notifier is None or disabled.
    """
    if notifier is None or not notifier.enabled:
        return lambda event: None
    return notifier.send_event
