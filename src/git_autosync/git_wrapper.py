import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class GitError(RuntimeError):
    """Base class for failures reported by the git client."""


class RepoNotFoundError(GitError):
    """The path is not a repository root, or the repository has no remote."""


class StagingError(GitError):
    """Staging files into the index failed."""


class NetworkError(GitError):
    """The remote could not be reached."""


class AuthError(GitError):
    """The remote rejected our credentials."""


class MergeConflictError(GitError):
    """A pull stopped on conflicts that need manual resolution."""


class GitTimeoutError(GitError):
    """A git command ran longer than the configured timeout."""


# Ordered: conflict markers first because conflicting paths are echoed back
# and can contain anything; auth before network because ssh auth failures
# also print the generic "Could not read from remote repository".
_ERROR_MARKERS: list[tuple[type[GitError], tuple[str, ...]]] = [
    (
        MergeConflictError,
        (
            "conflict (",
            "automatic merge failed",
            "unmerged files",
            "would be overwritten by merge",
        ),
    ),
    (
        AuthError,
        (
            "authentication failed",
            "permission denied (publickey",
            "could not read username",
            "invalid username or password",
            "returned error: 403",
        ),
    ),
    (
        NetworkError,
        (
            "could not resolve host",
            "connection timed out",
            "connection refused",
            "network is unreachable",
            "unable to access",
            "could not read from remote repository",
        ),
    ),
]


def classify_error(output: str) -> type[GitError]:
    """Maps git's error output to the most specific GitError subclass.

    Args:
        output (str): The stderr (or stdout) text of the failed command.

    Returns:
        type[GitError]: The matching exception class, GitError if none match.
    """
    lowered = output.lower()
    for error_cls, markers in _ERROR_MARKERS:
        if any(marker in lowered for marker in markers):
            return error_cls
    return GitError


@dataclass
class ChangeRecord:
    """A single entry of `git status`.

    Attributes:
        path (str): The file path relative to the repository root.
        change_kind (str): The status letter ('M', 'A', 'D', 'R', '?', ...).
    """

    path: str
    change_kind: str


@dataclass
class BranchSummary:
    """Local branches and the one currently checked out."""

    all: list[str] = field(default_factory=list)
    current: str = ""


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Every call runs `git` in a subprocess with a timeout, and failures are
    raised as a `GitError` subclass chosen from git's own error output.

    Attributes:
        path (Path): The file system path to the repository root.
        timeout (float | None): Seconds before a command is abandoned.
    """

    def __init__(self, path: Path, timeout: float | None = 120):
        self.path = path
        self.timeout = timeout

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to capture and return stdout.
                                      Defaults to True.
            env (dict | None, optional): Environment variables for the subprocess.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    the output. Defaults to True.

        Returns:
            str: The stdout of the command if capture is True, otherwise "".

        Raises:
            GitTimeoutError: If the command exceeds `self.timeout`.
            GitError: (or a subclass) if git returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitTimeoutError(
                f"git {args[0]} timed out after {self.timeout}s"
            ) from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or str(e)).strip()
            raise classify_error(detail)(detail) from e
        except OSError as e:
            raise GitError(f"Could not run git: {e}") from e

        if not capture:
            return ""
        return res.stdout.strip() if strip else res.stdout

    def is_repo(self) -> bool:
        """Checks that `path` is the root of a git working tree.

        Returns:
            bool: True if the path is a repository root, False otherwise.
        """
        try:
            toplevel = self._run(["rev-parse", "--show-toplevel"])
        except GitError as e:
            logger.debug(f"Not a repository ({self.path}): {e}")
            return False
        return Path(toplevel).resolve() == Path(self.path).resolve()

    def remotes(self) -> list[str]:
        """Lists the configured remote names."""
        output = self._run(["remote"])
        return output.splitlines() if output else []

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or "" on a detached HEAD.
        """
        return self._run(["branch", "--show-current"])

    def branch_local(self) -> BranchSummary:
        """Lists local branches and the current one."""
        output = self._run(["branch", "--format=%(refname:short)"])
        return BranchSummary(
            all=output.splitlines() if output else [],
            current=self.current_branch(),
        )

    def status(self) -> list[ChangeRecord]:
        """Returns one ChangeRecord per changed file, in the order git reports them.

        The change kind is the index column of the porcelain output, falling
        back to the worktree column when the index column is blank. Untracked
        files are reported as '?'.
        """
        output = self._run(
            ["status", "--porcelain", "-z", "--untracked-files=all"], strip=False
        )
        records: list[ChangeRecord] = []
        entries = iter(output.split("\0"))
        for entry in entries:
            if len(entry) < 4:
                continue
            index, worktree, path = entry[0], entry[1], entry[3:]
            if index in ("R", "C"):
                # Renames and copies carry the original path as the next field.
                next(entries, None)
            kind = index if index != " " else worktree
            records.append(ChangeRecord(path=path, change_kind=kind))
        return records

    def add(self, pattern: str = ".") -> None:
        """Stages all changes matching `pattern`, untracked files included.

        Raises:
            StagingError: If `git add` fails.
        """
        try:
            self._run(["add", "--all", "--", pattern], capture=True)
        except GitTimeoutError:
            raise
        except GitError as e:
            raise StagingError(str(e)) from e

    def commit(self, message: str, no_verify: bool = False) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            no_verify (bool, optional): Whether to bypass pre-commit hooks
                                        (`--no-verify`). Defaults to False.
        """
        cmd = ["commit", "-m", message]
        if no_verify:
            cmd.append("--no-verify")
        self._run(cmd)

    def _remote_env(self) -> dict[str, str]:
        # Never block on an interactive credential or host-key prompt.
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def push(self, remote: str, branch: str) -> None:
        """Pushes `branch` to `remote`.

        Raises:
            NetworkError: If the remote is unreachable.
            AuthError: If the remote rejects our credentials.
        """
        self._run(["push", remote, branch], env=self._remote_env())

    def pull(self) -> list[str]:
        """Pulls from the tracked upstream.

        Returns:
            list[str]: The paths changed by the pull (empty if up to date).

        Raises:
            NetworkError: If the remote is unreachable.
            AuthError: If the remote rejects our credentials.
            MergeConflictError: If the merge stopped on conflicts.
        """
        before = self.rev_parse("HEAD")
        self._run(["pull"], env=self._remote_env())
        after = self.rev_parse("HEAD")

        if not after or before == after:
            return []
        if before is None:
            output = self._run(["ls-tree", "-r", "--name-only", after])
        else:
            output = self._run(["diff", "--name-only", before, after])
        return output.splitlines() if output else []

    def checkout(self, branch: str, force: bool = False) -> None:
        """Checks out a branch.

        Args:
            branch (str): The target branch name.
            force (bool, optional): Whether to discard local changes.
        """
        cmd = ["checkout"]
        if force:
            cmd.append("-f")
        cmd.append(branch)
        self._run(cmd)

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision to a full SHA-1 hash.

        Returns:
            str | None: The hash, or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", rev])
        except GitError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None
