"""
Caller-side debounce for typing indicators.

Keystrokes arrive far faster than the typing flag needs to change. The
debouncer keeps only the latest state and sends it once the input has been
quiet for `wait` seconds; a state equal to the last one sent is dropped.

Usage:
    debouncer = TypingDebouncer(lambda is_typing: session.set_typing(room_id, me.pk, is_typing))
    debouncer.push(True)      # on each keystroke
    debouncer.poll()          # from the UI loop; sends once 300ms have passed
    debouncer.flush()         # e.g. right before sending the message
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from chat.constants import TYPING_CONFIG


class TypingDebouncer:
    """
    Trailing-edge debounce of a boolean state.

    Args:
        send: Called with the state to publish
        wait: Quiet period in seconds before sending
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        send: Callable[[bool], Any],
        wait: float = TYPING_CONFIG.DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._send = send
        self.wait = wait
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: bool | None = None
        self._deadline: float | None = None
        self._last_sent: bool | None = None

    @property
    def last_sent(self) -> bool | None:
        return self._last_sent

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def push(self, is_typing: bool) -> None:
        """Record the latest state and restart the quiet period."""
        with self._lock:
            self._pending = bool(is_typing)
            self._deadline = self._clock() + self.wait

    def poll(self) -> bool:
        """Send the pending state if the quiet period is over. Returns True if sent."""
        return self._emit(force=False)

    def flush(self) -> bool:
        """Send the pending state now. Returns True if sent."""
        return self._emit(force=True)

    def _emit(self, force: bool) -> bool:
        with self._lock:
            if self._pending is None:
                return False
            if not force and self._clock() < self._deadline:
                return False
            state = self._pending
            self._pending = None
            self._deadline = None
            if state == self._last_sent:
                return False

        self._send(state)
        with self._lock:
            self._last_sent = state
        return True
