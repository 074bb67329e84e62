from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .git import CommitInfo

LOG = logging.getLogger(__name__)

TRACKING_SUFFIX = ".json"


@dataclass(frozen=True)
class FileChange:
    path: str
    hunks: tuple[int, ...]


@dataclass(frozen=True)
class Change:
    reasoning: str
    files: tuple[FileChange, ...]


@dataclass(frozen=True)
class Changeset:
    version: int
    commit: str
    author: str
    changes: tuple[Change, ...]


@dataclass(frozen=True)
class TrackedCommit:
    commit: CommitInfo
    tracking: Changeset | None


@dataclass(frozen=True)
class TrackingRecord:
    commit: str
    reasoning: str
    file_path: str
    hunk_numbers: tuple[int, ...]


def _hunk_numbers(raw: Any) -> tuple[int, ...]:
    if not isinstance(raw, list):
        return ()
    numbers: list[int] = []
    for value in raw:
        # bool is an int subclass; "true" is not a hunk number
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        numbers.append(value)
    return tuple(numbers)


def parse_changeset(data: Any) -> tuple[Changeset | None, list[str]]:
    """Build a ``Changeset`` from decoded tracking JSON.

    Returns ``(None, warnings)`` when the top level is unusable; malformed
    changes or files inside an otherwise valid changeset are dropped with a
    warning.
    """
    warnings: list[str] = []
    if not isinstance(data, dict):
        return None, ["Tracking data must be a JSON object."]
    changes_raw = data.get("changes")
    if not isinstance(changes_raw, list):
        return None, ["Tracking data has no changes array."]

    changes: list[Change] = []
    for change_index, change in enumerate(changes_raw, start=1):
        if not isinstance(change, dict):
            warnings.append(f"Change #{change_index} is not an object.")
            continue
        reasoning = change.get("reasoning")
        if not isinstance(reasoning, str) or not reasoning.strip():
            warnings.append(f"Change #{change_index} has no reasoning.")
            continue
        files_raw = change.get("files")
        if not isinstance(files_raw, list):
            warnings.append(f"Change #{change_index} has no files array.")
            continue
        files: list[FileChange] = []
        for file_entry in files_raw:
            if not isinstance(file_entry, dict) or not isinstance(file_entry.get("path"), str):
                warnings.append(f"Change #{change_index} has a file entry without a path.")
                continue
            files.append(FileChange(path=file_entry["path"], hunks=_hunk_numbers(file_entry.get("hunks"))))
        changes.append(Change(reasoning=reasoning, files=tuple(files)))

    version = data.get("version")
    changeset = Changeset(
        version=version if isinstance(version, int) and not isinstance(version, bool) else 1,
        commit=str(data.get("commit") or ""),
        author=str(data.get("author") or ""),
        changes=tuple(changes),
    )
    return changeset, warnings


def tracking_path_for(tracking_dir: Path, commit: CommitInfo) -> Path | None:
    for name in (commit.short_sha, commit.sha):
        candidate = tracking_dir / f"{name}{TRACKING_SUFFIX}"
        if candidate.is_file():
            return candidate
    return None


def load_tracking_file(path: Path) -> tuple[Changeset | None, list[str]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as error:
        return None, [f"{path.name}: unreadable ({error})"]
    except json.JSONDecodeError as error:
        return None, [f"{path.name}: invalid JSON ({error})"]
    changeset, warnings = parse_changeset(data)
    return changeset, [f"{path.name}: {warning}" for warning in warnings]


def load_tracking_files(tracking_dir: Path, commits: list[CommitInfo]) -> tuple[list[TrackedCommit], list[str]]:
    """Pair every commit with its tracking file, if any.

    A missing or malformed file means "no tracking for this commit".
    """
    result: list[TrackedCommit] = []
    warnings: list[str] = []
    for commit in commits:
        path = tracking_path_for(tracking_dir, commit)
        if path is None:
            result.append(TrackedCommit(commit=commit, tracking=None))
            continue
        changeset, file_warnings = load_tracking_file(path)
        for warning in file_warnings:
            LOG.warning("%s", warning)
        warnings.extend(file_warnings)
        result.append(TrackedCommit(commit=commit, tracking=changeset))
    return result, warnings


def get_tracked_commits(tracked_commits: list[TrackedCommit]) -> list[TrackedCommit]:
    return [item for item in tracked_commits if item.tracking is not None]


def records_from_changeset(commit: str, changeset: Changeset) -> list[TrackingRecord]:
    return [
        TrackingRecord(commit=commit, reasoning=change.reasoning, file_path=file_change.path, hunk_numbers=file_change.hunks)
        for change in changeset.changes
        for file_change in change.files
    ]


def records_from_tracked_commits(tracked_commits: Iterable[TrackedCommit]) -> list[TrackingRecord]:
    records: list[TrackingRecord] = []
    for item in tracked_commits:
        if item.tracking is None:
            continue
        records.extend(records_from_changeset(item.commit.sha, item.tracking))
    return records


def tracking_signature(tracking_dir: Path) -> tuple[tuple[str, int, int], ...]:
    """Cheap fingerprint of the tracking directory used to detect new data."""
    if not tracking_dir.is_dir():
        return ()
    entries: list[tuple[str, int, int]] = []
    for path in sorted(tracking_dir.glob(f"*{TRACKING_SUFFIX}")):
        try:
            stat = path.stat()
        except OSError:
            continue
        entries.append((path.name, stat.st_mtime_ns, stat.st_size))
    return tuple(entries)
