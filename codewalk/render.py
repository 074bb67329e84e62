from __future__ import annotations

from pathlib import PurePosixPath
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .aggregate import ReasoningGroup
from .hunks import ADDED, LINE_PREFIX, REMOVED
from .navigation import DiffRow, FileRow, ReasoningRow, VisualRow

EXPANDED_MARK = "▼ "
COLLAPSED_MARK = "▶ "
INDENT = "  "


def truncate(value: str, max_len: int) -> str:
    if max_len <= 3:
        return value[:max(0, max_len)]
    if len(value) <= max_len:
        return value
    return value[: max_len - 3] + "..."


def first_line(value: str) -> str:
    return value.strip().splitlines()[0] if value.strip() else ""


def format_file_label(file_path: str) -> str:
    normalized = str(file_path).replace("\\", "/").strip()
    if not normalized:
        return "-"
    path_obj = PurePosixPath(normalized)
    name = path_obj.name or normalized
    parent = str(path_obj.parent)
    if parent in {"", "."}:
        return name
    parent_parts = [part for part in parent.split("/") if part and part != "."]
    if len(parent_parts) > 2:
        parent_display = f".../{'/'.join(parent_parts[-2:])}"
    else:
        parent_display = "/".join(parent_parts)
    return f"{name} ({parent_display})"


def diff_line_style(kind: str) -> str:
    if kind == ADDED:
        return "green"
    if kind == REMOVED:
        return "red"
    return "dim"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def render_row(row: VisualRow, width: int, selected: bool = False) -> Text:
    indent = INDENT * row.depth
    if isinstance(row, ReasoningRow):
        prefix = EXPANDED_MARK if row.expanded else COLLAPSED_MARK
        counts = f" ({_plural(row.file_count, 'file')})"
        label = truncate(first_line(row.reasoning), width - len(indent) - len(prefix) - len(counts))
        text = Text(indent + prefix)
        text.append(label, style="bold")
        text.append(counts, style="dim")
    elif isinstance(row, FileRow):
        prefix = EXPANDED_MARK if row.expanded else COLLAPSED_MARK
        counts = f" ({_plural(row.hunk_count, 'hunk')})"
        label = truncate(row.path, width - len(indent) - len(prefix) - len(counts))
        text = Text(indent + prefix)
        text.append(label, style="blue")
        text.append(counts, style="dim")
    else:
        text = render_diff_row(row, width)
    if selected:
        text.pad_right(max(0, width - text.cell_len))
        text.stylize("reverse")
    return text


def render_diff_row(row: DiffRow, width: int) -> Text:
    indent = INDENT * (row.depth + 1)
    if row.row_type == "hunk_header" and row.hunk is not None:
        commit = f"  {row.commit[:7]}" if row.commit else ""
        return Text(indent + truncate(row.hunk.header, width - len(indent) - len(commit)), style="bold cyan").append(
            commit, style="dim yellow"
        )
    if row.row_type == "line" and row.line is not None:
        content = LINE_PREFIX[row.line.kind] + row.line.text
        return Text(indent + truncate(content, width - len(indent)), style=diff_line_style(row.line.kind))
    if row.row_type == "gap" and row.gap is not None:
        label = f"⋯ {_plural(row.gap.line_count, 'unchanged line')} ({row.gap.old_start_line}-{row.gap.old_end_line})"
        return Text(indent + label, style="dim italic")
    return Text("")


def render_rows(rows: Sequence[VisualRow], width: int, selected_position: int | None = None) -> Text:
    out = Text()
    for position, row in enumerate(rows):
        if position:
            out.append("\n")
        out.append_text(render_row(row, width, selected=position == selected_position))
    return out


def render_summary(
    console: Console,
    branch: str,
    groups: Sequence[ReasoningGroup],
    tracked_commit_count: int,
    warning_count: int,
) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Branch", branch or "-")
    table.add_row("Tracked commits", str(tracked_commit_count))
    table.add_row("Logical changes", str(len(groups)))
    table.add_row("Files", str(len({path for group in groups for path in group.files})))
    table.add_row("Hunks", str(sum(group.hunk_count for group in groups)))
    table.add_row("Warnings", str(warning_count))
    console.print(Panel(table, title="codewalk", border_style="blue"))


def render_groups(console: Console, groups: Sequence[ReasoningGroup]) -> None:
    table = Table(title="Changes by reasoning", header_style="bold magenta")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("reasoning", overflow="fold")
    table.add_column("files", justify="right")
    table.add_column("hunks", justify="right")
    for number, group in enumerate(groups, start=1):
        table.add_row(str(number), group.reasoning, str(group.file_count), str(group.hunk_count))
    console.print(table)


def render_group_detail(console: Console, group: ReasoningGroup, max_lines: int) -> None:
    table = Table(header_style="bold magenta", show_edge=False)
    table.add_column("old", justify="right", style="dim")
    table.add_column("new", justify="right", style="dim")
    table.add_column("content")
    for entry in group.files.values():
        table.add_row("", "", Text(format_file_label(entry.path), style="bold blue"))
        for commit, hunk in zip(entry.commits, entry.hunks):
            table.add_row("", "", Text(f"{hunk.header}  {commit[:7]}", style="cyan"))
            for line in hunk.lines[:max_lines]:
                table.add_row(
                    "" if line.old_line_number is None else str(line.old_line_number),
                    "" if line.new_line_number is None else str(line.new_line_number),
                    Text(LINE_PREFIX[line.kind] + line.text, style=diff_line_style(line.kind)),
                )
            hidden = len(hunk.lines) - max_lines
            if hidden > 0:
                table.add_row("", "", Text(f"... ({hidden} more line(s))", style="dim"))
    console.print(Panel(table, title=truncate(first_line(group.reasoning), 100), border_style="green"))
