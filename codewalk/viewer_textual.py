from __future__ import annotations

import logging
from typing import Any, Callable

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Static

from .loader import BranchData
from .navigation import NavigationState
from .render import render_rows

LOG = logging.getLogger(__name__)


class CodewalkApp(App[None]):
    DEFAULT_POLL_INTERVAL_SEC = 2.0

    CSS = """
    Screen { layout: vertical; }
    #topbar { height: 3; border: round #3a86ff; padding: 0 1; }
    #tree { height: 1fr; border: round #4cc9f0; padding: 0 1; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "cursor_down", "Down"),
        Binding("down", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up"),
        Binding("up", "cursor_up", "Up", show=False),
        Binding("enter", "toggle_expand", "Expand/Collapse"),
        Binding("space", "toggle_expand", "Expand/Collapse", show=False),
        Binding("g", "jump_top", "Top"),
        Binding("G", "jump_bottom", "Bottom"),
        Binding("shift+g", "jump_bottom", "Bottom", show=False),
        Binding("pagedown", "page_down", "Page Down", show=False),
        Binding("pageup", "page_up", "Page Up", show=False),
        Binding("r", "reload", "Reload"),
    ]

    def __init__(
        self,
        data: BranchData,
        load: Callable[[], BranchData] | None = None,
        signature: Callable[[], Any] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
    ) -> None:
        super().__init__()
        self.branch = data.branch
        self.warnings = list(data.warnings)
        self.tracked_commit_count = len(data.tracked_commits)
        self.state = NavigationState(reasoning_groups=data.reasoning_groups)
        self._load = load
        self._signature = signature
        self._last_signature: Any = None
        self.poll_interval = poll_interval

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static("", id="topbar")
        yield Static("", id="tree")
        yield Footer()

    def on_mount(self) -> None:
        if self._signature is not None:
            self._last_signature = self._signature()
            if self.poll_interval > 0:
                self.set_interval(self.poll_interval, self._poll_tick)
        self._refresh_view()
        self.call_after_refresh(self._after_layout)

    def on_resize(self, event: events.Resize) -> None:
        self.call_after_refresh(self._after_layout)

    def _after_layout(self) -> None:
        self._sync_viewport()
        self._refresh_view()

    def action_cursor_down(self) -> None:
        self.state.move_selection(1)
        self._refresh_view()

    def action_cursor_up(self) -> None:
        self.state.move_selection(-1)
        self._refresh_view()

    def action_toggle_expand(self) -> None:
        self.state.toggle_expand()
        self._refresh_view()

    def action_jump_top(self) -> None:
        self.state.jump_to_top()
        self._refresh_view()

    def action_jump_bottom(self) -> None:
        self.state.jump_to_bottom()
        self._refresh_view()

    def action_page_down(self) -> None:
        self.state.page_down()
        self._refresh_view()

    def action_page_up(self) -> None:
        self.state.page_up()
        self._refresh_view()

    def action_reload(self) -> None:
        self._reload(force_notify=True)

    def _poll_tick(self) -> None:
        if self._signature is None:
            return
        try:
            current = self._signature()
        except Exception as error:  # noqa: BLE001
            LOG.debug("Change check failed: %s", error)
            return
        if current == self._last_signature:
            return
        self._last_signature = current
        self._reload(force_notify=False)

    def _reload(self, *, force_notify: bool) -> None:
        if self._load is None:
            return
        try:
            data = self._load()
        except Exception as error:  # noqa: BLE001
            self._safe_notify(f"Reload failed: {error}", severity="error", timeout=3.0)
            return
        if data.branch != self.branch:
            self.branch = data.branch
            self.state.reset(data.reasoning_groups)
            self.state.ensure_visible()
            self._safe_notify(f"Switched to {data.branch}")
        else:
            self.state.rebuild(data.reasoning_groups)
            if force_notify:
                self._safe_notify("Reloaded", timeout=0.9)
        self.warnings = list(data.warnings)
        self.tracked_commit_count = len(data.tracked_commits)
        self._refresh_view()

    def _safe_notify(self, message: str, *, timeout: float = 1.5, severity: str = "information") -> None:
        try:
            self.notify(message, timeout=timeout, severity=severity)
        except Exception:
            pass

    def _sync_viewport(self) -> None:
        try:
            height = self.query_one("#tree", Static).content_size.height
        except Exception:
            return
        if height > 0:
            self.state.set_viewport_height(height)

    def _tree_width(self) -> int:
        try:
            width = self.query_one("#tree", Static).content_size.width
        except Exception:
            width = 0
        return width if width > 0 else 80

    def _refresh_topbar(self) -> None:
        groups = self.state.reasoning_groups
        text = (
            f"[b]codewalk[/b]  branch={self.branch or '-'}  "
            f"changes={len(groups)}  commits={self.tracked_commit_count}  "
            f"row={self.state.selected_index + 1 if groups else 0}/{self.state.selectable_count()}  "
            f"warnings={len(self.warnings)}  "
            f"[dim]keys: j/k=move, Enter/Space=expand, g/G=top/bottom, r=reload, q=quit[/dim]"
        )
        self.query_one("#topbar", Static).update(text)

    def _refresh_view(self) -> None:
        self._refresh_topbar()
        tree = self.query_one("#tree", Static)
        if not self.state.reasoning_groups:
            tree.update("No tracked changes yet. Waiting for tracking files...")
            return
        selected_position = self.state.selected_visual_index() - self.state.scroll_offset
        tree.update(render_rows(self.state.visible_rows(), self._tree_width(), selected_position))


def launch_textual_viewer(
    data: BranchData,
    load: Callable[[], BranchData] | None = None,
    signature: Callable[[], Any] | None = None,
    poll_interval: float = CodewalkApp.DEFAULT_POLL_INTERVAL_SEC,
) -> int:
    app = CodewalkApp(data, load=load, signature=signature, poll_interval=poll_interval)
    app.run()
    return 0
