"""Tests for the foreground sync daemon."""

import logging
import os
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autosync import daemon
from git_autosync.config import SettingsStore
from git_autosync.controller import SyncController


@pytest.fixture
def clean_logger() -> Iterator[logging.Logger]:
    """Restores the application logger's handlers after each test."""
    saved = list(daemon.logger.handlers)
    yield daemon.logger
    for handler in daemon.logger.handlers:
        if handler not in saved:
            handler.close()
    daemon.logger.handlers = saved


def _touch_later(path: Path, seconds: float = 5) -> None:
    """Moves the file's mtime forward so the watcher sees a change."""
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + seconds))


def test_setup_logging_live_writes_file_only(
    tmp_path: Path, mocker: MagicMock, clean_logger: logging.Logger
) -> None:
    """Verifies the live status line keeps log records off the terminal.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
        clean_logger (logging.Logger): The application logger, restored afterwards.
    """
    log_file = tmp_path / "state" / "daemon.log"
    mocker.patch("git_autosync.daemon.LOG_FILE", log_file)
    before = len(clean_logger.handlers)

    daemon.setup_logging(live=True, max_log_size=1024)

    added = clean_logger.handlers[before:]
    assert len(added) == 1
    assert isinstance(added[0], RotatingFileHandler)
    assert added[0].maxBytes == 1024
    assert log_file.parent.is_dir()


def test_setup_logging_headless_adds_stderr(
    tmp_path: Path, mocker: MagicMock, clean_logger: logging.Logger
) -> None:
    mocker.patch("git_autosync.daemon.LOG_FILE", tmp_path / "daemon.log")
    before = len(clean_logger.handlers)

    daemon.setup_logging(live=False, max_log_size=1024)

    kinds = [type(h) for h in clean_logger.handlers[before:]]
    assert kinds == [logging.StreamHandler, RotatingFileHandler]


def test_settings_watcher_applies_external_edits(tmp_path: Path) -> None:
    """Verifies a settings change written by another process reaches the daemon.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
    """
    store = SettingsStore(tmp_path / "settings.json")
    store.save()
    watcher = daemon.SettingsWatcher(store)
    controller = MagicMock()

    assert watcher.poll(controller) is False

    other = SettingsStore.load(store.path)
    other.update("auto_sync_interval", "15")
    _touch_later(store.path)

    assert watcher.poll(controller) is True
    applied = controller.apply_settings.call_args[0][0]
    assert applied.auto_sync_interval == 15

    assert watcher.poll(controller) is False


@pytest.mark.parametrize(
    "content",
    ['{"auto_sync_interval": 10, "disable_push": false,', "", "[]"],
    ids=["syntax-error", "empty", "not-an-object"],
)
def test_settings_watcher_keeps_settings_when_file_is_unusable(
    controller: SyncController,
    store: SettingsStore,
    mocker: MagicMock,
    caplog: pytest.LogCaptureFixture,
    content: str,
) -> None:
    """Verifies a half-written or broken settings file never resets the daemon.

    Args:
        controller (SyncController): The controller fixture.
        store (SettingsStore): The controller's settings store.
        mocker (MagicMock): Pytest fixture for mocking.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
        content (str): The unusable file contents.
    """
    mocker.patch("git_autosync.controller.threading.Timer")
    controller.update_setting("disable_push", False)
    controller.update_setting("auto_sync_interval", 10)
    watcher = daemon.SettingsWatcher(store)

    store.path.write_text(content)
    _touch_later(store.path)

    assert watcher.poll(controller) is False
    assert controller.settings.auto_sync_interval == 10
    assert controller.settings.disable_push is False
    assert controller.auto_sync_active
    assert "Keeping the current settings" in caplog.text

    # Once the file is repaired, the next change is applied.
    store.path.write_text('{"auto_sync_interval": 20, "disable_push": false}')
    _touch_later(store.path, 10)

    assert watcher.poll(controller) is True
    assert controller.settings.auto_sync_interval == 20


def test_run_loop_headless_ticks_until_interrupted(mocker: MagicMock) -> None:
    mocker.patch("time.sleep", side_effect=[None, KeyboardInterrupt])
    controller = MagicMock()
    watcher = MagicMock()

    with pytest.raises(KeyboardInterrupt):
        daemon.run_loop(controller, watcher, live=False)

    watcher.poll.assert_called_once_with(controller)
    controller.notifier.presenter.render.assert_called_once()


def test_main_exits_when_startup_fails(
    tmp_path: Path, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies the daemon refuses to run outside a usable repository.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing output.
    """
    mocker.patch(
        "git_autosync.daemon.SettingsStore.load",
        return_value=SettingsStore(tmp_path / "settings.json"),
    )
    mocker.patch("git_autosync.daemon.setup_logging")
    controller = mocker.patch("git_autosync.daemon.build_controller").return_value
    controller.startup.return_value = False
    controller.notifier.presenter.render.return_value = (
        "git: valid git repository not found."
    )
    run_loop = mocker.patch("git_autosync.daemon.run_loop")

    with pytest.raises(SystemExit) as exc:
        daemon.main(tmp_path)

    assert exc.value.code == 1
    run_loop.assert_not_called()
    assert "valid git repository not found." in capsys.readouterr().err


def test_main_stops_timer_on_interrupt(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch(
        "git_autosync.daemon.SettingsStore.load",
        return_value=SettingsStore(tmp_path / "settings.json"),
    )
    mocker.patch("git_autosync.daemon.setup_logging")
    mocker.patch("signal.signal")
    controller = mocker.patch("git_autosync.daemon.build_controller").return_value
    controller.startup.return_value = True
    mocker.patch("git_autosync.daemon.run_loop", side_effect=KeyboardInterrupt)

    daemon.main(tmp_path)

    controller.stop_auto_sync.assert_called_once()
