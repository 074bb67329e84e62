from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .config import load_settings, tracking_directory
from .gaps import compute_hunk_gaps, gap_key, resolve_gap
from .git import get_commit_file_diffs, get_repo_root, is_git_repo, read_file_lines
from .init_project import CREATED, SKIPPED, init_project
from .loader import BranchData, BranchLoader, groups_payload
from .logging_utils import configure_logging
from .render import render_group_detail, render_groups, render_summary

LOG = logging.getLogger(__name__)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--repo", default=".", help="Path to git repository (default: current directory).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity (-v, -vv).")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="codewalk", description="Browse a branch's changes grouped by reasoning.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    visualize = subparsers.add_parser("visualize", help="Show tracked changes grouped by reasoning.")
    _add_common_args(visualize)
    visualize.add_argument("--tracking-dir", help="Directory holding <sha>.json tracking files (default: from settings).")
    visualize.add_argument("--base", help="Only include commits not reachable from this ref.")
    visualize.add_argument("--max-commits", type=int, help="Limit the number of commits inspected.")
    visualize.add_argument("--poll-interval", type=float, default=2.0, help="Seconds between change checks (0 disables).")
    visualize.add_argument("--once", action="store_true", help="Print a summary and exit instead of opening the UI.")
    visualize.add_argument("--expand", action="store_true", help="With --once, print every group's hunks.")
    visualize.add_argument("--max-lines", type=int, default=80, help="With --expand, max lines per hunk (default: 80).")
    visualize.add_argument("--json", dest="as_json", action="store_true", help="Print reasoning groups as JSON.")

    gaps = subparsers.add_parser("gaps", help="List hidden context ranges between hunks of one file.")
    _add_common_args(gaps)
    gaps.add_argument("commit", help="Commit whose diff is inspected.")
    gaps.add_argument("path", help="File path inside the commit.")
    gaps.add_argument("--show-lines", action="store_true", help="Print the hidden lines from the parent revision.")
    gaps.add_argument("--json", dest="as_json", action="store_true", help="Output as JSON.")

    init = subparsers.add_parser("init", help="Set a repository up for tracked agent changes.")
    _add_common_args(init)
    return parser.parse_args(argv)


def _resolve_repo(raw: str) -> Path:
    repo = Path(raw).resolve()
    if not is_git_repo(repo):
        raise RuntimeError(f"Not a git repository: {repo}")
    return get_repo_root(repo)


def run_visualize(args: argparse.Namespace) -> int:
    if args.max_commits is not None and args.max_commits < 1:
        print("[error] --max-commits must be >= 1", file=sys.stderr)
        return 2
    if args.max_lines < 1:
        print("[error] --max-lines must be >= 1", file=sys.stderr)
        return 2

    console = Console()
    try:
        repo = _resolve_repo(args.repo)
        settings, warnings = load_settings(repo)
        tracking_dir = Path(args.tracking_dir).expanduser().resolve() if args.tracking_dir else tracking_directory(repo, settings)
        LOG.info("Reading tracking files from %s", tracking_dir)
        loader = BranchLoader(repo, tracking_dir, base=args.base, max_commits=args.max_commits)
        data = loader.load()
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    data = BranchData(
        branch=data.branch,
        tracked_commits=data.tracked_commits,
        reasoning_groups=data.reasoning_groups,
        warnings=[*warnings, *data.warnings],
    )

    if args.as_json:
        payload = {"branch": data.branch, "warnings": data.warnings, "groups": groups_payload(data.reasoning_groups)}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    if args.once:
        render_summary(console, data.branch, data.reasoning_groups, len(data.tracked_commits), len(data.warnings))
        for warning in data.warnings:
            console.print(f"[yellow]warning:[/yellow] {warning}")
        if not data.reasoning_groups:
            console.print(f"[yellow]No tracked changes found in {tracking_dir}[/yellow]")
            return 0
        render_groups(console, data.reasoning_groups)
        if args.expand:
            for group in data.reasoning_groups:
                render_group_detail(console, group, args.max_lines)
        return 0

    try:
        from .viewer_textual import launch_textual_viewer
    except Exception as error:  # noqa: BLE001
        print(f"[error] textual UI is unavailable: {error}. Install dependencies: python -m pip install -e .", file=sys.stderr)
        return 1

    def reload() -> BranchData:
        fresh = loader.load()
        return BranchData(fresh.branch, fresh.tracked_commits, fresh.reasoning_groups, [*warnings, *fresh.warnings])

    return launch_textual_viewer(data, load=reload, signature=loader.signature, poll_interval=args.poll_interval)


def run_gaps(args: argparse.Namespace) -> int:
    console = Console()
    try:
        repo = _resolve_repo(args.repo)
        file_diffs = {file_diff.path: file_diff for file_diff in get_commit_file_diffs(repo, args.commit)}
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    file_diff = file_diffs.get(args.path)
    if file_diff is None:
        print(f"[error] {args.path} is not changed in {args.commit}", file=sys.stderr)
        return 2

    gaps = compute_hunk_gaps(file_diff.hunks)
    resolved: dict[str, list[tuple[int, str]]] = {}
    if args.show_lines:
        # gaps are pre-image ranges; a renamed file lives at its old path in the parent
        source_path = file_diff.old_path or args.path
        try:
            for gap in gaps:
                resolved[gap_key(gap)] = resolve_gap(
                    gap, lambda start, end: read_file_lines(repo, f"{args.commit}^", source_path, start, end)
                )
        except Exception as error:  # noqa: BLE001
            print(f"[error] {error}", file=sys.stderr)
            return 1

    if args.as_json:
        payload = [
            {
                "afterHunkIndex": gap.after_hunk_index,
                "oldStartLine": gap.old_start_line,
                "oldEndLine": gap.old_end_line,
                "lineCount": gap.line_count,
                **(
                    {"lines": [{"lineNumber": number, "content": text} for number, text in resolved[gap_key(gap)]]}
                    if gap_key(gap) in resolved
                    else {}
                ),
            }
            for gap in gaps
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    table = Table(title=f"Gaps in {args.path} ({len(file_diff.hunks)} hunks)", header_style="bold magenta")
    table.add_column("after hunk", justify="right", style="cyan")
    table.add_column("old lines", justify="right")
    table.add_column("count", justify="right")
    for gap in gaps:
        after = "start" if gap.after_hunk_index < 0 else str(gap.after_hunk_index + 1)
        table.add_row(after, f"{gap.old_start_line}-{gap.old_end_line}", str(gap.line_count))
    console.print(table)
    for gap in gaps:
        lines = resolved.get(gap_key(gap))
        if not lines:
            continue
        console.print(Text(f"-- lines {gap.old_start_line}-{gap.old_end_line} --", style="bold"))
        for number, text in lines:
            console.print(Text(f"{number:>6} {text}", style="dim"))
    return 0


def run_init(args: argparse.Namespace) -> int:
    repo = Path(args.repo).expanduser().resolve()
    if not repo.is_dir():
        print(f"[error] Not a directory: {repo}", file=sys.stderr)
        return 1

    console = Console()
    try:
        steps = init_project(repo)
    except OSError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 1

    console.print(Text(f"Initializing codewalk in {repo}"))
    for step in steps:
        if step.status == CREATED:
            console.print(Text(f"  ✓ {step.message}", style="green"))
        elif step.status == SKIPPED:
            console.print(Text(f"  ○ {step.message}", style="yellow"))
        else:
            console.print(Text(f"  ! {step.message}", style="red"))
    console.print()
    console.print("Next: work with Claude as usual, then run [bold]codewalk visualize[/bold] to browse the changes.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)
    if args.command == "gaps":
        return run_gaps(args)
    if args.command == "init":
        return run_init(args)
    return run_visualize(args)


if __name__ == "__main__":
    raise SystemExit(main())
