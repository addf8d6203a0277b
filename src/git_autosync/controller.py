import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .config import Settings, SettingsStore
from .constants import APP_NAME
from .git_wrapper import BranchSummary, ChangeRecord, GitError, GitRepo
from .state import SyncState
from .status import StatusPresenter
from .system import Notifier, SystemStrategy
from .templating import format_message

logger = logging.getLogger(APP_NAME)


class AutoSyncTimer:
    """Calls `callback` every `interval_seconds` on a daemon thread.

    Each firing re-arms a fresh `threading.Timer` once the callback returns,
    so a slow backup delays the next one instead of overlapping it.
    """

    def __init__(self, interval_seconds: float, callback: Callable[[], Any]):
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._timer: threading.Timer | None = None
        self._active = False
        self._lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self) -> None:
        with self._lock:
            self._active = True
            self._schedule_next()

    def cancel(self) -> bool:
        """Stops the schedule. Returns True if it was running."""
        with self._lock:
            was_active = self._active
            self._active = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        return was_active

    def _schedule_next(self) -> None:
        if not self._active:
            return
        self._timer = threading.Timer(self.interval_seconds, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self) -> None:
        if not self._active:
            return
        try:
            self._callback()
        except Exception:
            logger.exception("Scheduled backup failed")
        finally:
            with self._lock:
                self._schedule_next()


class SyncController:
    """Sequences git operations into backup and pull cycles.

    The controller owns the `SyncState` shown by the status line and the
    timestamp of the last sync attempt. Entry points that touch the working
    tree (`create_backup`, `backup_now`, `pull_changes_from_remote`,
    `switch_branch`) hold a non-blocking lock, so a request that arrives while
    another is running is skipped rather than interleaved.

    Attributes:
        repo (GitRepo): The git client for the working tree.
        store (SettingsStore): Live settings and their persistence.
        notifier (Notifier): Where user-facing outcomes are reported.
        state (SyncState): The current operation.
        last_sync (float | None): Clock time of the last push/pull/backup attempt.
    """

    def __init__(
        self,
        repo: GitRepo,
        store: SettingsStore,
        notifier: Notifier,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.state = SyncState.IDLE
        self.last_sync: float | None = None
        self._timer: AutoSyncTimer | None = None
        self._busy = threading.Lock()

    @property
    def settings(self) -> Settings:
        return self.store.settings

    @property
    def auto_sync_active(self) -> bool:
        return self._timer is not None and self._timer.is_active

    def _set_state(self, state: SyncState) -> None:
        self.state = state
        logger.debug(f"State -> {state.value}")

    def _try_acquire(self, operation: str) -> bool:
        if self._busy.acquire(blocking=False):
            return True
        logger.info(f"SKIPPED {operation}: another sync is in progress.")
        return False

    # --- Primitive steps ---

    def get_changed_files(self) -> list[ChangeRecord]:
        """Returns the working tree's changes in the order git reports them.

        Raises:
            GitError: If the status query fails.
        """
        self._set_state(SyncState.CHECKING_STATUS)
        return self.repo.status()

    def stage_all(self) -> bool:
        """Stages every change in the working tree. Returns False on failure."""
        self._set_state(SyncState.STAGING)
        try:
            self.repo.add(".")
        except GitError as e:
            self.notifier.error(f"Cannot add files: {e}")
            return False
        return True

    def commit(self) -> bool:
        """Commits the staged changes with the templated message."""
        self._set_state(SyncState.COMMITTING)
        try:
            snapshot = self.repo.status()
            message = format_message(
                self.settings.commit_message, self.settings, snapshot
            )
            self.repo.commit(message)
        except GitError as e:
            self.notifier.error(f"Commit failed: {e}")
            return False
        logger.info(f"COMMITTED {self.repo.path.name}: {message}")
        return True

    def push(self) -> bool:
        """Pushes the configured (or current) branch to the configured remote.

        `last_sync` is updated whether or not the push succeeds.
        """
        self._set_state(SyncState.PUSHING)
        try:
            branch = self.settings.branch or self.repo.current_branch()
            self.repo.push(self.settings.remote_name, branch)
        except GitError as e:
            self.notifier.error(f"Push failed {e}")
            return False
        finally:
            self.last_sync = self.clock()
        logger.info(
            f"PUSHED {self.repo.path.name}: {self.settings.remote_name}/{branch}"
        )
        return True

    def pull(self) -> int | None:
        """Pulls from the remote.

        Returns:
            int | None: The number of files the pull changed, or None if it failed.
        """
        self._set_state(SyncState.PULLING)
        try:
            files = self.repo.pull()
        except GitError as e:
            self.notifier.error(f"Pull failed {e}")
            return None
        finally:
            self.last_sync = self.clock()
        return len(files)

    # --- Composite operations ---

    def create_backup(self) -> bool:
        """Runs one backup cycle: status, stage, commit and (optionally) push.

        Returns:
            bool: True if a commit was made.
        """
        if not self._try_acquire("backup"):
            return False
        try:
            return bool(self._create_backup())
        finally:
            self._busy.release()

    def _create_backup(self) -> int | None:
        """Returns the number of files committed, 0 if clean, None on failure."""
        try:
            changed_files = self.get_changed_files()
        except GitError as e:
            self.notifier.error(f"Cannot read repository status: {e}")
            self._set_state(SyncState.IDLE)
            return None

        if not changed_files:
            self._set_state(SyncState.IDLE)
            return 0

        if not self.stage_all() or not self.commit():
            self._set_state(SyncState.IDLE)
            return None

        count = len(changed_files)
        self.notifier.message(f"Committed {count} files")

        if not self.settings.disable_push and self.push():
            self.notifier.message(f"Pushed {count} files to remote")

        self.last_sync = self.clock()
        self._set_state(SyncState.IDLE)
        return count

    def backup_now(self) -> int | None:
        """The manual "stage, commit and push" command.

        Returns:
            int | None: Files committed (0 when there was nothing to commit),
            or None if the backup failed or was skipped.
        """
        if not self._try_acquire("backup"):
            return None
        try:
            try:
                changed_files = self.get_changed_files()
            except GitError as e:
                self.notifier.error(f"Cannot read repository status: {e}")
                self._set_state(SyncState.IDLE)
                return None

            if not changed_files:
                self.notifier.message("No changes detected")
                self._set_state(SyncState.IDLE)
                return 0

            return self._create_backup()
        finally:
            self._busy.release()

    def pull_changes_from_remote(
        self, up_to_date: str = "Everything is up-to-date"
    ) -> int | None:
        """The manual "pull" command.

        Returns:
            int | None: Files updated, or None if the pull failed or was skipped.
        """
        if not self._try_acquire("pull"):
            return None
        try:
            files_updated = self.pull()
            if files_updated is not None:
                if files_updated > 0:
                    self.notifier.message(
                        f"Pulled new changes. {files_updated} files updated"
                    )
                else:
                    self.notifier.message(up_to_date)
            self.last_sync = self.clock()
            self._set_state(SyncState.IDLE)
            return files_updated
        finally:
            self._busy.release()

    def startup(self) -> bool:
        """Validates the repository, pulls if configured, and arms auto sync.

        Returns:
            bool: False if the working tree cannot be synced at all.
        """
        if not self.repo.is_repo():
            self.notifier.error("Valid git repository not found.", timeout_ms=None)
            return False

        try:
            remotes = self.repo.remotes()
        except GitError as e:
            logger.debug(f"Listing remotes failed: {e}")
            remotes = []
        if not remotes:
            self.notifier.error("Failed to detect remote.", timeout_ms=None)
            return False

        if self.settings.pull_on_startup:
            self.pull_changes_from_remote(up_to_date="Everything up-to-date")

        if self.settings.auto_sync_enabled:
            self.start_auto_sync(self.settings.auto_sync_interval)
        return True

    # --- Scheduling ---

    def start_auto_sync(self, interval_minutes: int) -> bool:
        """(Re)arms the recurring backup timer.

        Any active timer is cancelled first, so repeated calls never leave
        more than one schedule running.

        Returns:
            bool: True if a timer is now active.
        """
        self.stop_auto_sync()
        if interval_minutes <= 0:
            return False
        self._timer = AutoSyncTimer(interval_minutes * 60, self.create_backup)
        self._timer.start()
        logger.info(f"Auto sync armed: every {interval_minutes} minutes.")
        return True

    def stop_auto_sync(self) -> bool:
        """Cancels the recurring backup timer. Returns True if one was running."""
        if self._timer is None:
            return False
        cancelled = self._timer.cancel()
        self._timer = None
        if cancelled:
            logger.info("Auto sync stopped.")
        return cancelled

    # --- Settings and branches ---

    def _interval_changed(self, minutes: int) -> None:
        if minutes > 0:
            self.start_auto_sync(minutes)
            self.notifier.message(f"Automatic backup enabled! Every {minutes} minutes.")
        elif self.stop_auto_sync():
            self.notifier.message("Automatic backup disabled!")

    def update_setting(self, key: str, value: Any) -> Any:
        """Changes one setting, persists it, and applies scheduling changes.

        This is the in-process entry point for a host that embeds the
        controller. The `git-autosync config` command runs in a separate
        process, so it only writes the file through `SettingsStore.update`;
        the daemon's `SettingsWatcher` then hands the result to
        `apply_settings`.

        Raises:
            KeyError: If `key` is not a settings field.
            ValueError: If the value cannot be parsed.
        """
        previous = self.settings.auto_sync_interval
        coerced = self.store.update(key, value)
        self.repo.timeout = self.settings.git_timeout
        if key == "auto_sync_interval" and coerced != previous:
            self._interval_changed(coerced)
        return coerced

    def apply_settings(self, settings: Settings) -> None:
        """Swaps in a settings record that was changed outside this process."""
        previous = self.settings.auto_sync_interval
        self.store.settings = settings
        self.repo.timeout = settings.git_timeout
        if settings.auto_sync_interval != previous:
            self._interval_changed(settings.auto_sync_interval)

    def preview_commit_message(self) -> str:
        """Formats the configured template against the current changes."""
        try:
            snapshot = self.repo.status()
        except GitError as e:
            logger.warning(f"Status unavailable for preview: {e}")
            snapshot = []
        return format_message(self.settings.commit_message, self.settings, snapshot)

    def list_branches(self) -> BranchSummary:
        return self.repo.branch_local()

    def switch_branch(self, name: str) -> bool:
        """Checks out `name`, reporting the outcome."""
        if not self._try_acquire("checkout"):
            return False
        try:
            self.repo.checkout(name)
        except GitError as e:
            self.notifier.error(str(e))
            return False
        finally:
            self._busy.release()
        self.notifier.message(f"Checked out to {name}")
        return True


def build_controller(
    repo_path: Path,
    store: SettingsStore | None = None,
    system: SystemStrategy | None = None,
) -> SyncController:
    """Wires a controller, its presenter and its notifier for a working tree.

    Args:
        repo_path (Path): The repository root.
        store (SettingsStore | None): Settings to use. Loaded from disk if omitted.
        system (SystemStrategy | None): Desktop notification backend.

    Returns:
        SyncController: The controller (presenter at `notifier.presenter`).
    """
    store = store or SettingsStore.load()
    presenter = StatusPresenter()
    notifier = Notifier(
        presenter,
        system=system,
        muted=lambda: store.settings.disable_notifications,
    )
    repo = GitRepo(repo_path, timeout=store.settings.git_timeout)
    controller = SyncController(repo, store, notifier)
    presenter.source = controller
    return controller
