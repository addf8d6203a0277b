import logging
import signal
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console
from rich.live import Live
from rich.text import Text

from .config import SettingsStore
from .constants import APP_NAME, LOG_FILE, TICK_SECONDS
from .controller import SyncController, build_controller

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)


def setup_logging(live: bool, max_log_size: int) -> None:
    """Configures the logging subsystem.

    Args:
        live (bool): If True the terminal is owned by the live status line, so
                     records only go to the rotating log file. Otherwise they
                     are also written to stderr (captured by systemd/launchd).
        max_log_size (int): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    if not live:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
    except OSError as e:
        err_console.print(f"[yellow]Could not open log file {LOG_FILE}: {e}[/yellow]")
        return
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


class SettingsWatcher:
    """Notices edits to the settings file made by other processes (e.g. the CLI)."""

    def __init__(self, store: SettingsStore):
        self.store = store
        self._seen = _mtime(store.path)

    def poll(self, controller: SyncController) -> bool:
        """Reloads and applies the settings if the file changed since the last poll.

        A file that cannot be read or parsed leaves the running settings in
        place until the next change.

        Returns:
            bool: True if new settings were applied.
        """
        current = _mtime(self.store.path)
        if current == self._seen:
            return False
        self._seen = current
        logger.info(f"Settings changed on disk; reloading {self.store.path}.")
        settings = self.store.read()
        if settings is None:
            logger.warning("Keeping the current settings until the file is fixed.")
            return False
        controller.apply_settings(settings)
        return True


def _handle_term(_signum: int, _frame: FrameType | None) -> None:
    raise KeyboardInterrupt


def run_loop(controller: SyncController, watcher: SettingsWatcher, live: bool) -> None:
    """Redraws the status line once per tick until interrupted."""
    presenter = controller.notifier.presenter

    if not live:
        while True:
            time.sleep(TICK_SECONDS)
            watcher.poll(controller)
            presenter.render()

    with Live(
        Text(presenter.render()),
        console=console,
        refresh_per_second=4,
        screen=False,
    ) as view:
        while True:
            time.sleep(TICK_SECONDS)
            watcher.poll(controller)
            view.update(Text(presenter.render()))


def main(repo_path: Path | None = None) -> None:
    """Runs the sync daemon in the foreground for one working tree.

    Performs the startup checks (repository, remote, optional pull), arms the
    auto-sync timer, and keeps the status line current until SIGINT/SIGTERM.

    Args:
        repo_path (Path | None): The working tree. Defaults to the current directory.
    """
    repo_path = (repo_path or Path.cwd()).resolve()
    store = SettingsStore.load()
    live = console.is_terminal
    setup_logging(live, store.settings.max_log_size)

    controller = build_controller(repo_path, store)
    logger.info(f"Starting {APP_NAME} for {repo_path}")

    if not controller.startup():
        err_console.print(
            f"[bold red]ERROR:[/bold red] {controller.notifier.presenter.render()}"
        )
        sys.exit(1)

    if not controller.auto_sync_active:
        console.print(
            "[yellow]Automatic backup is disabled. Set it with "
            "'git-autosync config auto_sync_interval 10'.[/yellow]"
        )

    signal.signal(signal.SIGTERM, _handle_term)
    try:
        run_loop(controller, SettingsWatcher(store), live)
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync stopped by user[/yellow]")
    finally:
        controller.stop_auto_sync()
        logger.info(f"Stopped {APP_NAME} for {repo_path}")


if __name__ == "__main__":
    main()
