"""git-autosync: Periodic commit-and-push for a git working tree.

This package provides the sync controller, its status line, the command-line
interface, and a foreground daemon that keeps a working tree backed up to
its remote on a fixed interval.
"""

from . import (
    cli,
    config,
    constants,
    controller,
    daemon,
    git_wrapper,
    state,
    status,
    system,
    templating,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "controller",
    "daemon",
    "git_wrapper",
    "state",
    "status",
    "system",
    "templating",
]
