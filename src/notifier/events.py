"""Notification event types and message rendering."""

from __future__ import annotations

from typing import Any

EVT_ITERATION = "iteration"
EVT_CYCLE_STARTED = "cycle_started"
EVT_RESULTS_UPDATED = "results_updated"
EVT_FINISHED = "finished"
EVT_MODIFIED = "modified"


def render_message(event: dict[str, Any]) -> str:
    """Render an event dict into a one-line message.

    Format: ``[brabo_pipeline] <event_type> | run_id=<id> | <key>=<value> ...``
    """
    event_type = event.get("event_type", "unknown")
    run_id = event.get("run_id", "?")

    parts = [f"[brabo_pipeline] {event_type}", f"run_id={run_id}"]

    skip_keys = {"event_type", "run_id", "event_id"}
    for key, value in event.items():
        if key in skip_keys:
            continue
        if value is not None:
            parts.append(f"{key}={value}")

    return " | ".join(parts)


def make_event(
    event_type: str,
    run_id: str,
    **kwargs: Any,
) -> dict[str, Any]:
    """Create a notification event dict.

    Args:
        event_type: One of the EVT_* constants.
        run_id: The run identifier.
        **kwargs: Additional event data. ``event_suffix`` is folded into
            the ``event_id`` instead of being stored.

    Returns:
        Event dictionary ready for the notifier.
    """
    event: dict[str, Any] = {
        "event_type": event_type,
        "run_id": run_id,
    }
    suffix = kwargs.pop("event_suffix", "")
    event["event_id"] = f"{run_id}:{event_type}:{suffix}" if suffix else f"{run_id}:{event_type}"

    event.update(kwargs)
    return event
