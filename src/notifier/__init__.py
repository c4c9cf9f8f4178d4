"""Notification system for brabo_pipeline."""

from .notifier import Notifier, make_notify_callback
from .events import (
    EVT_ITERATION,
    EVT_CYCLE_STARTED,
    EVT_RESULTS_UPDATED,
    EVT_FINISHED,
    EVT_MODIFIED,
)

__all__ = [
    "Notifier",
    "make_notify_callback",
    "EVT_ITERATION",
    "EVT_CYCLE_STARTED",
    "EVT_RESULTS_UPDATED",
    "EVT_FINISHED",
    "EVT_MODIFIED",
]
