from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .aggregate import FileHunks, ReasoningGroup
from .gaps import Gap, compute_hunk_gaps
from .hunks import DiffLine, Hunk

DEFAULT_VIEWPORT_HEIGHT = 20


@dataclass(frozen=True)
class ReasoningRow:
    reasoning_index: int
    reasoning: str
    file_count: int
    hunk_count: int
    expanded: bool

    kind = "reasoning"
    depth = 0


@dataclass(frozen=True)
class FileRow:
    reasoning_index: int
    path: str
    hunk_count: int
    expanded: bool

    kind = "file"
    depth = 1


@dataclass(frozen=True)
class DiffRow:
    """Non-selectable diff content under an expanded file row.

    ``row_type`` is ``hunk_header``, ``line``, ``gap`` or ``spacer``.
    """

    reasoning_index: int
    path: str
    row_type: str
    hunk: Hunk | None = None
    line: DiffLine | None = None
    gap: Gap | None = None
    commit: str = ""

    kind = "diff"
    depth = 2


SelectableRow = Union[ReasoningRow, FileRow]
VisualRow = Union[ReasoningRow, FileRow, DiffRow]


def _file_row(reasoning_index: int, entry: FileHunks, expanded: bool) -> FileRow:
    return FileRow(reasoning_index=reasoning_index, path=entry.path, hunk_count=len(entry.hunks), expanded=expanded)


def build_diff_rows(reasoning_index: int, entry: FileHunks) -> list[DiffRow]:
    rows: list[DiffRow] = []
    position = 0
    while position < len(entry.hunks):
        # gaps only make sense between hunks of the same commit
        commit = entry.commits[position]
        end = position
        while end < len(entry.hunks) and entry.commits[end] == commit:
            end += 1
        run = entry.hunks[position:end]
        gaps_after = {gap.after_hunk_index: gap for gap in compute_hunk_gaps(run) if gap.after_hunk_index >= 0}
        for offset, hunk in enumerate(run):
            rows.append(DiffRow(reasoning_index, entry.path, "hunk_header", hunk=hunk, commit=commit))
            for line in hunk.lines:
                rows.append(DiffRow(reasoning_index, entry.path, "line", hunk=hunk, line=line, commit=commit))
            gap = gaps_after.get(offset)
            if gap is not None:
                rows.append(DiffRow(reasoning_index, entry.path, "gap", gap=gap, commit=commit))
            else:
                rows.append(DiffRow(reasoning_index, entry.path, "spacer", commit=commit))
        position = end
    return rows


def _flatten(state: NavigationState, include_diff: bool) -> list[VisualRow]:
    rows: list[VisualRow] = []
    for reasoning_index, group in enumerate(state.reasoning_groups):
        expanded = reasoning_index in state.expanded_reasoning
        rows.append(
            ReasoningRow(
                reasoning_index=reasoning_index,
                reasoning=group.reasoning,
                file_count=group.file_count,
                hunk_count=group.hunk_count,
                expanded=expanded,
            )
        )
        if not expanded:
            continue
        for entry in group.files.values():
            file_expanded = (reasoning_index, entry.path) in state.expanded_files
            rows.append(_file_row(reasoning_index, entry, file_expanded))
            if include_diff and file_expanded:
                rows.extend(build_diff_rows(reasoning_index, entry))
    return rows


def flatten_selectable(state: NavigationState) -> list[SelectableRow]:
    return _flatten(state, include_diff=False)  # type: ignore[return-value]


def flatten_visual(state: NavigationState) -> list[VisualRow]:
    return _flatten(state, include_diff=True)


@dataclass
class NavigationState:
    """Selection, expansion and scroll over a list of reasoning groups.

    ``selected_index`` points into ``flatten_selectable``; ``scroll_offset`` is
    the first row of ``flatten_visual`` shown in a window of
    ``viewport_height`` rows. Owned by a single event loop.
    """

    reasoning_groups: list[ReasoningGroup] = field(default_factory=list)
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    expanded_reasoning: set[int] = field(default_factory=set)
    expanded_files: set[tuple[int, str]] = field(default_factory=set)
    selected_index: int = 0
    scroll_offset: int = 0

    def selectable_count(self) -> int:
        return len(flatten_selectable(self))

    def selected_row(self) -> SelectableRow | None:
        rows = flatten_selectable(self)
        if 0 <= self.selected_index < len(rows):
            return rows[self.selected_index]
        return None

    def selected_visual_index(self) -> int:
        selectable_seen = -1
        for visual_index, row in enumerate(flatten_visual(self)):
            if isinstance(row, DiffRow):
                continue
            selectable_seen += 1
            if selectable_seen == self.selected_index:
                return visual_index
        return 0

    def visible_rows(self) -> list[VisualRow]:
        return flatten_visual(self)[self.scroll_offset : self.scroll_offset + self._height()]

    def _height(self) -> int:
        return max(1, self.viewport_height)

    def _clamp_selection(self) -> None:
        count = self.selectable_count()
        self.selected_index = max(0, min(self.selected_index, count - 1)) if count else 0

    def ensure_visible(self) -> None:
        """Scroll the least amount that brings the selected row into view."""
        self._clamp_selection()
        if self.selectable_count() == 0:
            self.scroll_offset = 0
            return
        position = self.selected_visual_index()
        height = self._height()
        if position < self.scroll_offset:
            self.scroll_offset = position
        elif position >= self.scroll_offset + height:
            self.scroll_offset = position - height + 1
        self.scroll_offset = max(0, self.scroll_offset)

    def move_selection(self, delta: int) -> None:
        count = self.selectable_count()
        if count == 0:
            return
        self.selected_index = max(0, min(self.selected_index + delta, count - 1))
        self.ensure_visible()

    def page_down(self) -> None:
        self.move_selection(max(1, self._height() - 1))

    def page_up(self) -> None:
        self.move_selection(-max(1, self._height() - 1))

    def jump_to_top(self) -> None:
        self.selected_index = 0
        self.ensure_visible()

    def jump_to_bottom(self) -> None:
        self.selected_index = max(0, self.selectable_count() - 1)
        self.ensure_visible()

    def set_viewport_height(self, height: int) -> None:
        self.viewport_height = max(1, height)
        self.ensure_visible()

    def toggle_expand(self) -> None:
        row = self.selected_row()
        if isinstance(row, ReasoningRow):
            index = row.reasoning_index
            if index in self.expanded_reasoning:
                self.expanded_reasoning.discard(index)
                self.expanded_files = {key for key in self.expanded_files if key[0] != index}
            else:
                self.expanded_reasoning.add(index)
        elif isinstance(row, FileRow):
            key = (row.reasoning_index, row.path)
            if key in self.expanded_files:
                self.expanded_files.discard(key)
            else:
                self.expanded_files.add(key)
        else:
            return
        self.ensure_visible()

    def reset(self, reasoning_groups: list[ReasoningGroup]) -> None:
        self.reasoning_groups = reasoning_groups
        self.expanded_reasoning = set()
        self.expanded_files = set()
        self.selected_index = 0
        self.scroll_offset = 0

    def rebuild(self, reasoning_groups: list[ReasoningGroup]) -> None:
        """Swap in new groups, keeping expansion and selection by identity.

        Group indices may shift when the order changes, so expanded groups,
        expanded files and the selected row are matched by reasoning text and
        file path. A selected file that disappeared falls back to its group.
        """
        old_groups = self.reasoning_groups
        expanded_texts = {old_groups[index].reasoning for index in self.expanded_reasoning if index < len(old_groups)}
        expanded_file_keys = {
            (old_groups[index].reasoning, path) for index, path in self.expanded_files if index < len(old_groups)
        }
        selected = self.selected_row()
        selected_text: str | None = None
        selected_path: str | None = None
        if selected is not None and selected.reasoning_index < len(old_groups):
            selected_text = old_groups[selected.reasoning_index].reasoning
            if isinstance(selected, FileRow):
                selected_path = selected.path

        new_index = {group.reasoning: index for index, group in enumerate(reasoning_groups)}
        self.reasoning_groups = reasoning_groups
        self.expanded_reasoning = {new_index[text] for text in expanded_texts if text in new_index}
        self.expanded_files = {
            (new_index[text], path)
            for text, path in expanded_file_keys
            if text in new_index
            and new_index[text] in self.expanded_reasoning
            and path in reasoning_groups[new_index[text]].files
        }

        if selected_text is not None and selected_text in new_index:
            target_group = new_index[selected_text]
            fallback: int | None = None
            for index, row in enumerate(flatten_selectable(self)):
                if row.reasoning_index != target_group:
                    continue
                if isinstance(row, ReasoningRow):
                    fallback = index
                    if selected_path is None:
                        break
                elif row.path == selected_path:
                    fallback = index
                    break
            if fallback is not None:
                self.selected_index = fallback
        self.ensure_visible()
