from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

LOG = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)

ADDED = "added"
REMOVED = "removed"
CONTEXT = "context"

LINE_PREFIX = {ADDED: "+", REMOVED: "-", CONTEXT: " "}


class HunkParseError(RuntimeError):
    pass


@dataclass(frozen=True)
class DiffLine:
    kind: str
    text: str
    old_line_number: int | None = None
    new_line_number: int | None = None


@dataclass(frozen=True)
class Hunk:
    index: int
    header: str
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: tuple[DiffLine, ...] = ()
    section: str = ""

    def patch_lines(self) -> list[str]:
        return [LINE_PREFIX[line.kind] + line.text for line in self.lines]


@dataclass(frozen=True)
class FileDiff:
    path: str
    hunks: tuple[Hunk, ...] = field(default_factory=tuple)
    old_path: str | None = None

    def hunk(self, index: int) -> Hunk | None:
        for hunk in self.hunks:
            if hunk.index == index:
                return hunk
        return None


class _OpenHunk:
    def __init__(self, index: int, header: str, match: re.Match[str]) -> None:
        self.index = index
        self.header = header
        self.old_start = int(match.group("old_start"))
        self.old_lines = int(match.group("old_count") or "1")
        self.new_start = int(match.group("new_start"))
        self.new_lines = int(match.group("new_count") or "1")
        self.section = match.group("section").strip()
        self.old_cursor = self.old_start
        self.new_cursor = self.new_start
        self.lines: list[DiffLine] = []

    @property
    def old_seen(self) -> int:
        return self.old_cursor - self.old_start

    @property
    def new_seen(self) -> int:
        return self.new_cursor - self.new_start

    @property
    def wants_old(self) -> bool:
        return self.old_seen < self.old_lines

    @property
    def wants_new(self) -> bool:
        return self.new_seen < self.new_lines

    def is_complete(self) -> bool:
        return not self.wants_old and not self.wants_new

    def append(self, kind: str, text: str) -> None:
        old_number: int | None = None
        new_number: int | None = None
        if kind in (REMOVED, CONTEXT):
            old_number = self.old_cursor
            self.old_cursor += 1
        if kind in (ADDED, CONTEXT):
            new_number = self.new_cursor
            self.new_cursor += 1
        if self.old_seen > self.old_lines or self.new_seen > self.new_lines:
            raise HunkParseError(f"Hunk {self.index} has more lines than its header declares: {self.header}")
        self.lines.append(DiffLine(kind=kind, text=text, old_line_number=old_number, new_line_number=new_number))

    def finish(self) -> Hunk:
        if not self.is_complete():
            raise HunkParseError(
                f"Truncated hunk {self.index}: expected -{self.old_lines} +{self.new_lines} lines, "
                f"got -{self.old_seen} +{self.new_seen}: {self.header}"
            )
        return Hunk(
            index=self.index,
            header=self.header,
            old_start=self.old_start,
            old_lines=self.old_lines,
            new_start=self.new_start,
            new_lines=self.new_lines,
            lines=tuple(self.lines),
            section=self.section,
        )


def classify_line(line: str, wants_old: bool = False, wants_new: bool = False) -> str | None:
    """Kind of a hunk body line, or None for lines that carry no content.

    ``+++``/``---`` read as file headers only once the hunk has all the new
    (or old) lines it declared; before that they are content starting with
    ``++``/``--``.
    """
    if line == "" or line.startswith(" "):
        return CONTEXT
    if line.startswith("+") and (wants_new or not line.startswith("+++")):
        return ADDED
    if line.startswith("-") and (wants_old or not line.startswith("---")):
        return REMOVED
    return None


def split_patch_lines(patch_text: str) -> list[str]:
    # CRLF-delimited patches split on CRLF; otherwise a CR is line content
    if not patch_text:
        return []
    separator = "\r\n" if patch_text.count("\r\n") == patch_text.count("\n") else "\n"
    lines = patch_text.split(separator)
    if patch_text.endswith(separator):
        lines.pop()
    return lines


def parse_hunks(patch_text: str) -> list[Hunk]:
    """Parse one file's patch body (no ``---``/``+++`` lines) into hunks.

    Hunk indices are 1-based in order of appearance. Raises ``HunkParseError``
    on a malformed header or when a hunk body does not match its header's
    declared lengths.
    """
    return parse_hunk_lines(split_patch_lines(patch_text))


def parse_hunk_lines(lines: Iterable[str]) -> list[Hunk]:
    hunks: list[Hunk] = []
    current: _OpenHunk | None = None

    for line in lines:
        if line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                raise HunkParseError(f"Unsupported hunk header: {line}")
            if current is not None:
                hunks.append(current.finish())
            current = _OpenHunk(len(hunks) + 1, line, match)
            continue

        if current is None:
            continue

        kind = classify_line(line, current.wants_old, current.wants_new)
        if kind is None:
            # "\ No newline at end of file" and similar markers
            continue
        if line == "" and current.is_complete():
            continue
        current.append(kind, line[1:])

    if current is not None:
        hunks.append(current.finish())
    return hunks


def normalize_diff_path(raw: str) -> str | None:
    value = raw.strip()
    if value == "/dev/null":
        return None
    if value.startswith("a/") or value.startswith("b/"):
        return value[2:]
    return value


def _section_paths(first_line: str) -> tuple[str | None, str | None]:
    parts = first_line.split()
    a_path = normalize_diff_path(parts[2]) if len(parts) > 2 else None
    b_path = normalize_diff_path(parts[3]) if len(parts) > 3 else None
    return a_path, b_path


@dataclass(frozen=True)
class FileSection:
    path: str
    old_path: str | None
    body: tuple[str, ...]


def split_commit_diff(diff_text: str) -> list[FileSection]:
    """Split ``git show``/``git diff`` output into one section per file.

    ``path`` is the post-image path (pre-image for deletions); ``old_path`` is
    the pre-image path, ``None`` for added files. Files without a ``+++`` line
    (binary files, pure mode changes, pure renames) are omitted.
    """
    sections: list[list[str]] = []
    for line in split_patch_lines(diff_text):
        if line.startswith("diff --git "):
            sections.append([line])
        elif sections:
            sections[-1].append(line)

    out: list[FileSection] = []
    for lines in sections:
        a_path, b_path = _section_paths(lines[0])
        body_start: int | None = None
        for index, line in enumerate(lines[1:], start=1):
            if line.startswith("--- "):
                a_path = normalize_diff_path(line[4:])
            elif line.startswith("+++ "):
                b_path = normalize_diff_path(line[4:])
                body_start = index + 1
                break
            elif line.startswith("@@"):
                break
        if body_start is None:
            continue
        path = b_path or a_path
        if not path:
            continue
        out.append(FileSection(path=path, old_path=a_path, body=tuple(lines[body_start:])))
    return out


def parse_commit_diff(diff_text: str) -> list[FileDiff]:
    files: list[FileDiff] = []
    for section in split_commit_diff(diff_text):
        try:
            hunks = parse_hunk_lines(section.body)
        except HunkParseError as error:
            LOG.warning("Skipping hunks of %s: %s", section.path, error)
            hunks = []
        files.append(FileDiff(path=section.path, hunks=tuple(hunks), old_path=section.old_path))
    return files
