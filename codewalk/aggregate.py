from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from .hunks import FileDiff, Hunk, HunkParseError
from .tracking import TrackingRecord

LOG = logging.getLogger(__name__)

HunksFor = Callable[[str, str], Sequence[Hunk]]


@dataclass
class FileHunks:
    """Hunks of one file that belong to one reasoning group.

    ``hunks``, ``hunk_numbers`` and ``commits`` are parallel lists; a hunk is
    identified by ``(commit, hunk number)`` since numbers restart per commit.
    """

    path: str
    hunks: list[Hunk] = field(default_factory=list)
    hunk_numbers: list[int] = field(default_factory=list)
    commits: list[str] = field(default_factory=list)

    def contains(self, commit: str, hunk_number: int) -> bool:
        return any(
            existing_commit == commit and existing_number == hunk_number
            for existing_commit, existing_number in zip(self.commits, self.hunk_numbers)
        )

    def add(self, commit: str, hunk: Hunk) -> bool:
        if self.contains(commit, hunk.index):
            return False
        self.hunks.append(hunk)
        self.hunk_numbers.append(hunk.index)
        self.commits.append(commit)
        return True


@dataclass
class ReasoningGroup:
    reasoning: str
    files: dict[str, FileHunks] = field(default_factory=dict)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def hunk_count(self) -> int:
        return sum(len(entry.hunks) for entry in self.files.values())

    def merge_file(self, path: str, commit: str, hunks: Iterable[Hunk]) -> None:
        entry = self.files.get(path)
        if entry is None:
            entry = FileHunks(path=path)
            self.files[path] = entry
        for hunk in hunks:
            entry.add(commit, hunk)


class CommitDiffCache:
    """Fetch each commit's file diffs once and serve ``hunks_for`` from memory."""

    def __init__(self, fetch: Callable[[str], Sequence[FileDiff]]) -> None:
        self._fetch = fetch
        self._by_commit: dict[str, dict[str, FileDiff]] = {}

    def file_diffs(self, commit: str) -> dict[str, FileDiff]:
        cached = self._by_commit.get(commit)
        if cached is None:
            cached = {file_diff.path: file_diff for file_diff in self._fetch(commit)}
            self._by_commit[commit] = cached
        return cached

    def hunks_for(self, commit: str, path: str) -> Sequence[Hunk]:
        file_diff = self.file_diffs(commit).get(path)
        return file_diff.hunks if file_diff is not None else ()


def resolve_hunks(hunk_numbers: Iterable[int], hunks: Sequence[Hunk]) -> list[Hunk]:
    by_index = {hunk.index: hunk for hunk in hunks}
    resolved: list[Hunk] = []
    for number in hunk_numbers:
        hunk = by_index.get(number)
        if hunk is not None:
            resolved.append(hunk)
    return resolved


def sort_groups(groups: Iterable[ReasoningGroup]) -> list[ReasoningGroup]:
    # sorted() is stable: equal file counts keep first-seen order
    return sorted(
        (group for group in groups if group.files),
        key=lambda group: group.file_count,
        reverse=True,
    )


def aggregate_by_reasoning(records: Iterable[TrackingRecord], hunks_for: HunksFor) -> list[ReasoningGroup]:
    """Group tracked hunks by exact reasoning text, across commits and files.

    Hunk numbers that do not resolve against ``hunks_for(commit, path)`` are
    dropped silently; a file whose diff cannot be parsed contributes nothing.
    Groups are ordered by descending file count, ties in first-seen order.
    """
    groups: dict[str, ReasoningGroup] = {}
    for record in records:
        try:
            available = hunks_for(record.commit, record.file_path)
        except HunkParseError as error:
            LOG.warning("Ignoring %s@%s: %s", record.file_path, record.commit[:12], error)
            available = ()
        selected = resolve_hunks(record.hunk_numbers, available)
        if len(selected) < len(record.hunk_numbers):
            LOG.debug(
                "Unresolved hunks for %s@%s: wanted %s, found %s",
                record.file_path,
                record.commit[:12],
                list(record.hunk_numbers),
                [hunk.index for hunk in selected],
            )
        if not selected:
            continue

        group = groups.get(record.reasoning)
        if group is None:
            group = ReasoningGroup(reasoning=record.reasoning)
            groups[record.reasoning] = group
        group.merge_file(record.file_path, record.commit, selected)

    return sort_groups(groups.values())


def merge_reasoning_groups(left: Sequence[ReasoningGroup], right: Sequence[ReasoningGroup]) -> list[ReasoningGroup]:
    """Fold ``right`` into a copy of ``left`` with the aggregation merge rules."""
    merged: dict[str, ReasoningGroup] = {}
    for group in [*left, *right]:
        target = merged.get(group.reasoning)
        if target is None:
            target = ReasoningGroup(reasoning=group.reasoning)
            merged[group.reasoning] = target
        for path, entry in group.files.items():
            for commit, hunk in zip(entry.commits, entry.hunks):
                target.merge_file(path, commit, [hunk])
    return sort_groups(merged.values())
