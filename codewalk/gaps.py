from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from .hunks import Hunk

BEFORE_FIRST_HUNK = -1


@dataclass(frozen=True)
class Gap:
    after_hunk_index: int
    old_start_line: int
    old_end_line: int

    @property
    def line_count(self) -> int:
        return self.old_end_line - self.old_start_line + 1


def compute_hunk_gaps(hunks: Sequence[Hunk]) -> list[Gap]:
    """Return the pre-image line ranges that no hunk shows.

    One gap before the first hunk when it does not start at line 1, and one
    after each hunk that is not contiguous with the next. ``after_hunk_index``
    is the 0-based position of the preceding hunk in ``hunks``. The tail after
    the last hunk is never reported; its length is unknown without the file.
    """
    gaps: list[Gap] = []
    if not hunks:
        return gaps

    first = hunks[0]
    if first.old_start > 1:
        gaps.append(Gap(BEFORE_FIRST_HUNK, 1, first.old_start - 1))

    for position, (current, following) in enumerate(zip(hunks, hunks[1:])):
        start = current.old_start + current.old_lines
        end = following.old_start - 1
        if start <= end:
            gaps.append(Gap(position, start, end))
    return gaps


def gap_key(gap: Gap) -> str:
    return f"{gap.after_hunk_index}:{gap.old_start_line}-{gap.old_end_line}"


def resolve_gap(gap: Gap, read_lines: Callable[[int, int], list[str]]) -> list[tuple[int, str]]:
    """Fetch a gap's text through ``read_lines(start, end)`` and number it."""
    texts = read_lines(gap.old_start_line, gap.old_end_line)
    return [(gap.old_start_line + offset, text) for offset, text in enumerate(texts[: gap.line_count])]
