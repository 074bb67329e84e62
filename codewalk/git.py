from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .hunks import FileDiff, parse_commit_diff

LOG = logging.getLogger(__name__)

LOG_FORMAT = "%H%x1f%h%x1f%an%x1f%s"
FIELD_SEP = "\x1f"


class GitCommandError(RuntimeError):
    pass


@dataclass(frozen=True)
class CommitInfo:
    sha: str
    short_sha: str
    author: str
    message: str


def run_git(repo: Path, args: list[str]) -> str:
    LOG.debug("git %s", " ".join(args))
    try:
        process = subprocess.run(
            ["git", "-C", str(repo), *args],
            capture_output=True,
            check=False,
        )
    except FileNotFoundError as error:
        raise GitCommandError("git executable not found") from error
    # decoded by hand: text mode would turn CRLF content into LF
    stdout = process.stdout.decode("utf-8", errors="replace")
    if process.returncode != 0:
        message = process.stderr.decode("utf-8", errors="replace").strip() or stdout.strip()
        raise GitCommandError(f"git {' '.join(args)} failed: {message}")
    return stdout


def is_git_repo(repo: Path) -> bool:
    try:
        run_git(repo, ["rev-parse", "--git-dir"])
    except GitCommandError:
        return False
    return True


def get_repo_root(repo: Path) -> Path:
    return Path(run_git(repo, ["rev-parse", "--show-toplevel"]).strip())


def get_git_dir(repo: Path) -> Path:
    value = Path(run_git(repo, ["rev-parse", "--git-dir"]).strip())
    return value if value.is_absolute() else (repo / value).resolve()


def get_current_branch(repo: Path) -> str:
    """Branch name, or ``HEAD`` when detached. Works before the first commit."""
    try:
        return run_git(repo, ["symbolic-ref", "--short", "-q", "HEAD"]).strip()
    except GitCommandError:
        return "HEAD"


def parse_commit_log(output: str) -> list[CommitInfo]:
    commits: list[CommitInfo] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split(FIELD_SEP, 3)
        if len(parts) < 4:
            continue
        sha, short_sha, author, message = parts
        commits.append(CommitInfo(sha=sha, short_sha=short_sha, author=author, message=message))
    return commits


def get_branch_commits(repo: Path, base: str | None = None, max_count: int | None = None) -> list[CommitInfo]:
    """Commits reachable from HEAD, newest first.

    With ``base`` only commits not on ``base`` are listed; otherwise the
    first-parent history of HEAD.
    """
    args = ["log", f"--format={LOG_FORMAT}", "--first-parent"]
    if max_count is not None:
        args.append(f"--max-count={max_count}")
    if base:
        args.append(f"{base}..HEAD")
    try:
        output = run_git(repo, args)
    except GitCommandError as error:
        # an empty repository has no HEAD yet
        if "does not have any commits" in str(error) or "bad default revision" in str(error):
            return []
        raise
    return parse_commit_log(output)


def get_commit_diff_text(repo: Path, commit: str) -> str:
    return run_git(repo, ["show", "--no-color", "--no-ext-diff", "--format=", commit])


def get_commit_file_diffs(repo: Path, commit: str) -> list[FileDiff]:
    return parse_commit_diff(get_commit_diff_text(repo, commit))


def read_file_lines(repo: Path, ref: str, path: str, start: int, end: int) -> list[str]:
    """Lines ``start..end`` (1-based, inclusive) of ``path`` at ``ref``."""
    if start < 1 or end < start:
        raise ValueError("start and end must be positive with start <= end")
    content = run_git(repo, ["show", f"{ref}:{path}"])
    return content.split("\n")[start - 1 : end]
