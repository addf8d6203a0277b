"""Commit-message templating.

Placeholders are resolved from an ordered list of (placeholder, resolver)
pairs. Each resolver only runs when its placeholder appears in the template,
and substitution is a single pass, so a resolved value is never scanned for
further placeholders.
"""

import datetime
import re
from collections.abc import Callable, Sequence

from .config import Settings
from .git_wrapper import ChangeRecord

Resolver = Callable[[Settings, Sequence[ChangeRecord], datetime.datetime], str]


def _date(
    settings: Settings, _snapshot: Sequence[ChangeRecord], now: datetime.datetime
) -> str:
    return now.strftime(settings.commit_date_format)


def _num_files(
    _settings: Settings, snapshot: Sequence[ChangeRecord], _now: datetime.datetime
) -> str:
    return str(len(snapshot))


def _files(
    _settings: Settings, snapshot: Sequence[ChangeRecord], _now: datetime.datetime
) -> str:
    return group_changes(snapshot)


PLACEHOLDERS: list[tuple[str, Resolver]] = [
    ("{{date}}", _date),
    ("{{numFiles}}", _num_files),
    ("{{files}}", _files),
]
"""list[tuple[str, Resolver]]: Recognized placeholders and how to fill them."""

_PATTERN = re.compile("|".join(re.escape(token) for token, _ in PLACEHOLDERS))


def group_changes(snapshot: Sequence[ChangeRecord]) -> str:
    """Renders changes grouped by kind, e.g. "M a.md b.md, A c.md".

    Groups appear in the order their kind is first seen.
    """
    groups: dict[str, list[str]] = {}
    for record in snapshot:
        groups.setdefault(record.change_kind, []).append(record.path)
    return ", ".join(f"{kind} {' '.join(paths)}" for kind, paths in groups.items())


def format_message(
    template: str,
    settings: Settings,
    snapshot: Sequence[ChangeRecord],
    now: datetime.datetime | None = None,
) -> str:
    """Expands the recognized placeholders in a commit-message template.

    Args:
        template (str): The template, e.g. "vault backup: {{date}}".
        settings (Settings): Supplies the `{{date}}` format.
        snapshot (Sequence[ChangeRecord]): The status used for file placeholders.
        now (datetime.datetime | None): The timestamp for `{{date}}`. Defaults to now.

    Returns:
        str: The expanded message. Unrecognized placeholders are left verbatim.
    """
    present = {token for token, _ in PLACEHOLDERS if token in template}
    if not present:
        return template

    when = now or datetime.datetime.now()
    values = {
        token: resolve(settings, snapshot, when)
        for token, resolve in PLACEHOLDERS
        if token in present
    }
    return _PATTERN.sub(lambda m: values[m.group(0)], template)
