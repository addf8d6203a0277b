import argparse
import logging
import os
import subprocess
import sys
import time
from dataclasses import asdict, fields
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon
from .config import Settings, SettingsStore
from .constants import APP_NAME, LOG_FILE, SETTINGS_FILE
from .controller import SyncController, build_controller
from .git_wrapper import GitError
from .status import relative_time

logger = logging.getLogger(APP_NAME)
console = Console()

SETTING_DESCRIPTIONS = {
    "commit_message": (
        "str",
        "Commit message template. Placeholders: {{date}}, {{numFiles}}, {{files}}.",
    ),
    "commit_date_format": ("str", "strftime pattern used for {{date}}."),
    "auto_sync_interval": (
        "int | str",
        "Minutes between backups (e.g. 10, '30m', '1hr'). 0 or less disables.",
    ),
    "pull_on_startup": ("bool", "Pull from the remote when the daemon starts."),
    "disable_push": ("bool", "Commit only; never push to the remote."),
    "disable_notifications": (
        "bool",
        "Suppress desktop notifications (the status line still updates).",
    ),
    "remote_name": ("str", "The remote to push to."),
    "branch": ("str", "Branch to push. Empty means the current branch."),
    "git_timeout": ("int | str", "Seconds before a git call is abandoned (e.g. '2m')."),
    "max_log_size": ("int | str", "Log size before rotation (e.g. '5mb')."),
}
"""dict[str, tuple[str, str]]: Type and description for every settings key."""


def _controller(repo_path: Path) -> SyncController:
    """Builds a controller for `repo_path`, exiting if it is not a repository."""
    controller = build_controller(repo_path)
    if not controller.repo.is_repo():
        console.print(f"[bold red]Not a git repository:[/bold red] {repo_path}")
        sys.exit(1)
    return controller


def _print_outcome(controller: SyncController) -> None:
    """Prints the messages a one-shot command queued for the status line."""
    for line in controller.notifier.presenter.drain():
        console.print(line, style="dim", markup=False)


def pull_now(repo_path: Path) -> None:
    """Pulls from the remote once."""
    controller = _controller(repo_path)
    with console.status("Pulling from remote...", spinner="dots"):
        files_updated = controller.pull_changes_from_remote()
    _print_outcome(controller)
    if files_updated is None:
        sys.exit(1)
    console.print("[bold green]✔ Pull complete.[/bold green]")


def backup_now(repo_path: Path) -> None:
    """Stages, commits and (unless disabled) pushes every change once."""
    controller = _controller(repo_path)
    with console.status("Backing up changes...", spinner="dots"):
        committed = controller.backup_now()
    _print_outcome(controller)
    if committed is None:
        sys.exit(1)
    if committed:
        console.print("[bold green]✔ Backup complete.[/bold green]")


def show_status(repo_path: Path) -> None:
    """Displays the repository, its pending changes, and the sync settings."""
    controller = _controller(repo_path)
    repo = controller.repo
    settings = controller.settings

    try:
        branch = repo.current_branch() or "(detached)"
        remotes = repo.remotes()
        changes = repo.status()
    except GitError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    try:
        ts_str = repo._run(["log", "-1", "--format=%ct"])
        commit_str = relative_time(time.time() - int(ts_str))
    except (GitError, ValueError) as e:
        logger.debug(f"Failed to retrieve last commit time: {e}")
        commit_str = "Never"

    repo_content = Text()
    repo_content.append(f"Path:        {repo.path}\n")
    repo_content.append(f"Branch:      {branch}\n")
    repo_content.append(f"Remotes:     {', '.join(remotes) or 'none'}\n")
    repo_content.append(f"Last Commit: {commit_str}\n", style="dim")
    repo_content.append(f"Pending:     {len(changes)} files changed")
    console.print(Panel(repo_content, title="Repository Status", expand=False))

    if changes:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Kind", style="yellow", justify="center")
        table.add_column("Path", style="cyan")
        for record in changes:
            table.add_row(record.change_kind, record.path)
        console.print(table)

    sync_content = Text()
    sync_content.append("Auto Sync: ", style="bold")
    if settings.auto_sync_enabled:
        sync_content.append(
            f"every {settings.auto_sync_interval} minutes\n", style="green"
        )
    else:
        sync_content.append("disabled\n", style="yellow")
    sync_content.append("Push:      ", style="bold")
    if settings.disable_push:
        sync_content.append("disabled (commit only)", style="yellow")
    else:
        target = settings.branch or branch
        sync_content.append(f"{settings.remote_name}/{target}", style="green")
    console.print(Panel(sync_content, title="Sync Settings", expand=False))


def preview_message(repo_path: Path) -> None:
    """Prints the commit message the next backup would use."""
    controller = _controller(repo_path)
    console.print(controller.preview_commit_message(), markup=False, highlight=False)


def branch_command(repo_path: Path, name: str | None) -> None:
    """Lists local branches, or switches to `name`."""
    controller = _controller(repo_path)

    if name is None:
        try:
            summary = controller.list_branches()
        except GitError as e:
            console.print(f"[bold red]ERROR:[/bold red] {e}")
            sys.exit(1)
        for branch in summary.all:
            if branch == summary.current:
                console.print(f"* {branch}", style="bold green")
            else:
                console.print(f"  {branch}")
        return

    switched = controller.switch_branch(name)
    _print_outcome(controller)
    if not switched:
        sys.exit(1)


def show_settings(store: SettingsStore) -> None:
    """Displays the current value of every setting."""
    table = Table(title=f"Settings ({store.path})", show_lines=False)
    table.add_column("Key", style="green")
    table.add_column("Value", style="yellow")
    for key, value in asdict(store.settings).items():
        table.add_row(key, repr(value))
    console.print(table)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    defaults = Settings()

    table = Table(title="git-autosync Settings Schema", show_lines=True)
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    for f in fields(Settings):
        type_name, description = SETTING_DESCRIPTIONS[f.name]
        table.add_row(f.name, type_name, repr(getattr(defaults, f.name)), description)

    console.print(table)


def set_setting(store: SettingsStore, key: str, value: str) -> None:
    """Changes one setting and persists it. A running daemon picks it up."""
    try:
        stored = store.update(key, value)
    except KeyError:
        console.print(f"[bold red]Unknown setting:[/bold red] {key}")
        console.print("Run 'git-autosync config --list' to see the options.")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[bold red]Invalid value for {key}:[/bold red] {e}")
        sys.exit(1)
    console.print(f"[bold green]✔[/bold green] {key} = {stored!r}")


def open_config() -> None:
    """Opens the settings file in the system default editor."""
    if not SETTINGS_FILE.exists():
        SettingsStore(SETTINGS_FILE).save()

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{SETTINGS_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(SETTINGS_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def config_command(args: argparse.Namespace) -> None:
    if args.list:
        show_config_reference()
        return
    if args.edit:
        open_config()
        return

    store = SettingsStore.load()
    if args.key is None:
        show_settings(store)
    elif args.value is None:
        if args.key not in SETTING_DESCRIPTIONS:
            console.print(f"[bold red]Unknown setting:[/bold red] {args.key}")
            sys.exit(1)
        console.print(repr(getattr(store.settings, args.key)))
    else:
        set_setting(store, args.key, args.value)


def tail_log() -> None:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


class AutosyncHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands under category headers in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Sync": ["run", "backup", "pull"],
                "Repository": ["status", "preview", "branch"],
                "Configuration": ["config", "log"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Periodically commit and push a working tree.",
        formatter_class=AutosyncHelpFormatter,
    )
    parser.add_argument(
        "--repo",
        type=Path,
        default=None,
        help="Working tree to operate on (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the sync daemon in the foreground")
    subparsers.add_parser("backup", help="Stage, commit and push all changes now")
    subparsers.add_parser("pull", help="Pull from the remote now")

    subparsers.add_parser("status", help="Show repository and sync status")
    subparsers.add_parser("preview", help="Preview the next commit message")
    branch_parser = subparsers.add_parser("branch", help="List or switch branches")
    branch_parser.add_argument("name", nargs="?", help="Branch to check out")

    config_parser = subparsers.add_parser("config", help="Show or change settings")
    config_parser.add_argument("key", nargs="?", help="Setting to show or change")
    config_parser.add_argument("value", nargs="?", help="New value for the setting")
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available settings and their descriptions",
    )
    config_parser.add_argument(
        "--edit", "-e", action="store_true", help="Open the settings file in $EDITOR"
    )

    subparsers.add_parser("log", help="Tail the daemon log file")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-autosync CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    repo_path = (args.repo or Path.cwd()).resolve()

    if args.command == "run":
        daemon.main(repo_path)
    elif args.command == "backup":
        backup_now(repo_path)
    elif args.command == "pull":
        pull_now(repo_path)
    elif args.command == "status":
        show_status(repo_path)
    elif args.command == "preview":
        preview_message(repo_path)
    elif args.command == "branch":
        branch_command(repo_path, args.name)
    elif args.command == "config":
        config_command(args)
    elif args.command == "log":
        tail_log()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
