"""Shared fixtures for the git-autosync test suite."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autosync.config import Settings, SettingsStore
from git_autosync.controller import SyncController
from git_autosync.git_wrapper import ChangeRecord
from git_autosync.status import StatusPresenter
from git_autosync.system import Notifier, SystemStrategy


class FakeClock:
    """A manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    """A settings store backed by a temporary file."""
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def repo(tmp_path: Path) -> MagicMock:
    """A stand-in git client with two changed files."""
    mock_repo = MagicMock()
    mock_repo.path = tmp_path
    mock_repo.is_repo.return_value = True
    mock_repo.remotes.return_value = ["origin"]
    mock_repo.current_branch.return_value = "main"
    mock_repo.status.return_value = [
        ChangeRecord("notes.md", "M"),
        ChangeRecord("todo.md", "?"),
    ]
    mock_repo.pull.return_value = []
    return mock_repo


@pytest.fixture
def system() -> MagicMock:
    return MagicMock(spec=SystemStrategy)


@pytest.fixture
def controller(
    repo: MagicMock, store: SettingsStore, system: MagicMock, clock: FakeClock
) -> Iterator[SyncController]:
    """A controller wired to the fake repo, a real presenter and a mock desktop."""
    presenter = StatusPresenter(clock=clock)
    notifier = Notifier(
        presenter, system=system, muted=lambda: store.settings.disable_notifications
    )
    ctrl = SyncController(repo, store, notifier, clock=clock)
    presenter.source = ctrl
    yield ctrl
    ctrl.stop_auto_sync()


@pytest.fixture
def default_settings() -> Settings:
    return Settings()
