"""Single-line status rendering.

The presenter shows the oldest pending transient message for its timeout
window, and otherwise falls back to a line describing the controller's
current state.
"""

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from .constants import DEFAULT_MESSAGE_TIMEOUT_MS, MAX_MESSAGE_LENGTH, STATUS_PREFIX
from .state import SyncState

STATE_LINES = {
    SyncState.CHECKING_STATUS: "checking repo status..",
    SyncState.STAGING: "adding files to repo..",
    SyncState.COMMITTING: "committing changes..",
    SyncState.PUSHING: "pushing changes..",
    SyncState.PULLING: "pulling changes..",
}
"""dict[SyncState, str]: Progress text for every non-idle state."""


class StateSource(Protocol):
    state: SyncState
    last_sync: float | None


@dataclass
class StatusMessage:
    """A transient status-line message.

    Attributes:
        text (str): The already prefixed and truncated text.
        timeout_ms (int | None): Display window in milliseconds. None never expires.
        enqueued_at (float): Clock time the message was queued.
        shown_at (float | None): Clock time it became the current message.
    """

    text: str
    timeout_ms: int | None
    enqueued_at: float
    shown_at: float | None = None

    def expired(self, now: float) -> bool:
        if self.timeout_ms is None or self.shown_at is None:
            return False
        return (now - self.shown_at) * 1000 >= self.timeout_ms


def relative_time(seconds: float) -> str:
    """Describes an elapsed duration the way people say it ("5 minutes ago")."""
    seconds = max(seconds, 0)
    minutes = seconds / 60
    hours = minutes / 60
    days = hours / 24

    if seconds < 45:
        return "a few seconds ago"
    if seconds < 90:
        return "a minute ago"
    if minutes < 45:
        return f"{round(minutes)} minutes ago"
    if minutes < 90:
        return "an hour ago"
    if hours < 22:
        return f"{round(hours)} hours ago"
    if hours < 36:
        return "a day ago"
    if days < 26:
        return f"{round(days)} days ago"
    if days < 45:
        return "a month ago"
    if days < 320:
        return f"{round(days / 30.4)} months ago"
    if days < 548:
        return "a year ago"
    return f"{round(days / 365)} years ago"


class StatusPresenter:
    """Renders "what is happening now" as one line of text.

    Messages are shown in the order they were queued, each for its own
    timeout window starting when it becomes current. The queue is locked
    because the auto-sync timer thread enqueues while the daemon renders.

    Attributes:
        source (StateSource | None): Supplies `state` and `last_sync`.
        text (str): The most recently rendered line.
    """

    def __init__(
        self,
        source: StateSource | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.clock = clock
        self.text = ""
        self._messages: deque[StatusMessage] = deque()
        self._current: StatusMessage | None = None
        self._lock = threading.Lock()

    def display_message(
        self, message: str, timeout_ms: int | None = DEFAULT_MESSAGE_TIMEOUT_MS
    ) -> str:
        """Queues a message and re-renders.

        Args:
            message (str): The message body (truncated to MAX_MESSAGE_LENGTH).
            timeout_ms (int | None): How long to show it. None keeps it forever.

        Returns:
            str: The line now displayed.
        """
        with self._lock:
            self._messages.append(
                StatusMessage(
                    text=f"{STATUS_PREFIX}{message[:MAX_MESSAGE_LENGTH]}",
                    timeout_ms=timeout_ms,
                    enqueued_at=self.clock(),
                )
            )
        return self.render()

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._messages)

    def drain(self) -> list[str]:
        """Removes and returns every queued message, the current one first.

        Used by one-shot commands that print outcomes instead of keeping a
        status line on screen.
        """
        with self._lock:
            texts = [self._current.text] if self._current is not None else []
            texts.extend(m.text for m in self._messages)
            self._current = None
            self._messages.clear()
        return texts

    def render(self) -> str:
        """Re-evaluates the status line. Called by the host on every tick."""
        now = self.clock()
        with self._lock:
            if self._current is not None and self._current.expired(now):
                self._current = None

            if self._current is None and self._messages:
                self._current = self._messages.popleft()
                self._current.shown_at = now

            if self._current is not None:
                self.text = self._current.text
            else:
                self.text = self._state_line(now)
        return self.text

    def _state_line(self, now: float) -> str:
        if self.source is None:
            return f"{STATUS_PREFIX}ready"

        state = self.source.state
        if state is not SyncState.IDLE:
            return f"{STATUS_PREFIX}{STATE_LINES[state]}"

        last_sync = self.source.last_sync
        if last_sync:
            return f"{STATUS_PREFIX}last update {relative_time(now - last_sync)}.."
        return f"{STATUS_PREFIX}ready"
