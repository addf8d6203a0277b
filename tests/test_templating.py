"""Tests for commit-message templating."""

import datetime

from git_autosync.config import Settings
from git_autosync.git_wrapper import ChangeRecord
from git_autosync.templating import format_message, group_changes

NOW = datetime.datetime(2024, 3, 9, 14, 5, 7)

SNAPSHOT = [
    ChangeRecord("a.md", "M"),
    ChangeRecord("b.md", "M"),
    ChangeRecord("c.md", "A"),
]


def test_default_template_uses_date_format() -> None:
    settings = Settings()
    assert (
        format_message(settings.commit_message, settings, [], now=NOW)
        == "vault backup: 2024-03-09 14:05:07"
    )


def test_custom_date_format() -> None:
    settings = Settings(commit_date_format="%d/%m/%Y")
    assert format_message("sync {{date}}", settings, [], now=NOW) == "sync 09/03/2024"


def test_files_grouped_by_first_seen_kind() -> None:
    assert (
        format_message("{{files}}", Settings(), SNAPSHOT, now=NOW)
        == "M a.md b.md, A c.md"
    )


def test_group_changes_interleaved_kinds() -> None:
    snapshot = [
        ChangeRecord("x.md", "?"),
        ChangeRecord("y.md", "M"),
        ChangeRecord("z.md", "?"),
    ]
    assert group_changes(snapshot) == "? x.md z.md, M y.md"


def test_all_placeholders_together() -> None:
    message = format_message(
        "{{numFiles}} files at {{date}}: {{files}}", Settings(), SNAPSHOT, now=NOW
    )
    assert message == "3 files at 2024-03-09 14:05:07: M a.md b.md, A c.md"


def test_unknown_placeholders_are_left_verbatim() -> None:
    assert (
        format_message("{{author}} {{numFiles}}", Settings(), SNAPSHOT, now=NOW)
        == "{{author}} 3"
    )


def test_resolved_values_are_not_rescanned() -> None:
    """A file literally named after a placeholder must not be expanded again."""
    snapshot = [ChangeRecord("{{date}}.md", "A")]
    assert (
        format_message("{{files}} @ {{date}}", Settings(), snapshot, now=NOW)
        == "A {{date}}.md @ 2024-03-09 14:05:07"
    )


def test_repeated_placeholder_replaced_everywhere() -> None:
    assert (
        format_message("{{numFiles}}/{{numFiles}}", Settings(), SNAPSHOT, now=NOW)
        == "3/3"
    )


def test_empty_snapshot() -> None:
    assert format_message("[{{files}}] {{numFiles}}", Settings(), [], now=NOW) == "[] 0"
