# -*- coding: utf-8 -*-
"""Deadline and cancellation signal threaded through one reconciliation pass."""

import threading
from time import monotonic

from .exceptions import PassCancelled


class PassContext:
    """
    Carries the cancellation event and optional deadline of a pass.

    :type stop_event: threading.Event
    :param stop_event: set by the owner to cancel every pass sharing it

    :type timeout: float
    :param timeout: seconds the pass may run for, None for no deadline
    """

    def __init__(self, stop_event=None, timeout=None):
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._deadline = monotonic() + timeout if timeout is not None else None

    @property
    def stop_event(self):
        return self._stop_event

    def cancel(self):
        self._stop_event.set()

    @property
    def cancelled(self):
        return self._stop_event.is_set()

    def remaining(self):
        """Seconds left before the deadline, None when the pass has none."""
        if self._deadline is None:
            return None
        return max(self._deadline - monotonic(), 0.0)

    def check(self, step=""):
        if self.cancelled:
            raise PassCancelled(f"reconciliation cancelled before {step}")
        if self._deadline is not None and monotonic() >= self._deadline:
            raise PassCancelled(f"reconciliation deadline exceeded before {step}")
