import logging
import subprocess
import sys
from collections.abc import Callable

from .constants import APP_NAME, DEFAULT_MESSAGE_TIMEOUT_MS, ERROR_MESSAGE_TIMEOUT_MS
from .status import StatusPresenter

logger = logging.getLogger(APP_NAME)


class SystemStrategy:
    """Base class defining the interface for desktop notifications."""

    def notify(self, title: str, message: str) -> None:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
        """
        pass


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_msg = message.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{title}"'
        try:
            subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"osascript unavailable: {e}")


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    def notify(self, title: str, message: str) -> None:
        """Sends a notification using `notify-send`."""
        try:
            subprocess.run(["notify-send", title, message], stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            pass


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()


class Notifier:
    """Fans a user-facing message out to the log, the status line and the desktop.

    Ordinary messages respect the `disable_notifications` setting; errors
    always raise a desktop notification.

    Attributes:
        presenter (StatusPresenter): Receives every message for the status line.
        system (SystemStrategy): Delivers desktop notifications.
        muted (Callable[[], bool]): Returns True while notifications are disabled.
    """

    title = "Git Autosync"

    def __init__(
        self,
        presenter: StatusPresenter,
        system: SystemStrategy | None = None,
        muted: Callable[[], bool] = lambda: False,
    ):
        self.presenter = presenter
        self.system = system or get_system()
        self.muted = muted

    def message(
        self, message: str, timeout_ms: int | None = DEFAULT_MESSAGE_TIMEOUT_MS
    ) -> None:
        logger.info(message)
        self.presenter.display_message(message.lower(), timeout_ms)
        if not self.muted():
            self.system.notify(self.title, message)

    def error(
        self, message: str, timeout_ms: int | None = ERROR_MESSAGE_TIMEOUT_MS
    ) -> None:
        logger.error(message)
        self.presenter.display_message(message.lower(), timeout_ms)
        self.system.notify(self.title, message)
