from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .aggregate import CommitDiffCache, ReasoningGroup, aggregate_by_reasoning
from .git import get_branch_commits, get_commit_file_diffs, get_current_branch, get_git_dir
from .hunks import Hunk
from .tracking import (
    TrackedCommit,
    get_tracked_commits,
    load_tracking_files,
    records_from_tracked_commits,
    tracking_signature,
)


@dataclass(frozen=True)
class BranchData:
    branch: str
    tracked_commits: list[TrackedCommit] = field(default_factory=list)
    reasoning_groups: list[ReasoningGroup] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class BranchLoader:
    """Load tracking data for the checked-out branch of one repository.

    Commit diffs are cached by sha across reloads; a sha's diff never changes.
    """

    def __init__(self, repo: Path, tracking_dir: Path, base: str | None = None, max_commits: int | None = None) -> None:
        self.repo = repo
        self.tracking_dir = tracking_dir
        self.base = base
        self.max_commits = max_commits
        self.diff_cache = CommitDiffCache(lambda sha: get_commit_file_diffs(repo, sha))

    def load(self) -> BranchData:
        branch = get_current_branch(self.repo)
        commits = get_branch_commits(self.repo, base=self.base, max_count=self.max_commits)
        if not commits:
            return BranchData(branch=branch)
        all_tracked, warnings = load_tracking_files(self.tracking_dir, commits)
        tracked = get_tracked_commits(all_tracked)
        if not tracked:
            return BranchData(branch=branch, warnings=warnings)
        groups = aggregate_by_reasoning(records_from_tracked_commits(tracked), self.diff_cache.hunks_for)
        return BranchData(branch=branch, tracked_commits=tracked, reasoning_groups=groups, warnings=warnings)

    def signature(self) -> tuple[Any, ...]:
        """Changes whenever tracking files appear/change or HEAD moves."""
        try:
            head = (get_git_dir(self.repo) / "HEAD").read_text(encoding="utf-8")
        except (OSError, RuntimeError):
            head = ""
        return (head, tracking_signature(self.tracking_dir))


def hunk_payload(hunk: Hunk) -> dict[str, Any]:
    return {
        "index": hunk.index,
        "header": hunk.header,
        "oldStart": hunk.old_start,
        "oldLines": hunk.old_lines,
        "newStart": hunk.new_start,
        "newLines": hunk.new_lines,
        "lines": [
            {
                "kind": line.kind,
                "text": line.text,
                "oldLine": line.old_line_number,
                "newLine": line.new_line_number,
            }
            for line in hunk.lines
        ],
    }


def groups_payload(groups: Sequence[ReasoningGroup]) -> list[dict[str, Any]]:
    return [
        {
            "reasoning": group.reasoning,
            "files": [
                {
                    "path": entry.path,
                    "hunkNumbers": list(entry.hunk_numbers),
                    "commits": list(entry.commits),
                    "hunks": [hunk_payload(hunk) for hunk in entry.hunks],
                }
                for entry in group.files.values()
            ],
        }
        for group in groups
    ]
