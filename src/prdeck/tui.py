"""Interactive dashboard host.

Owns the terminal and the main loop: drains fetch results, fires timed
triggers, reads one key per iteration and redraws. All state changes go
through ``update``; this module only renders state and executes the
Commands the engine hands back.
"""

from __future__ import annotations

import os
import select
import signal
import sys
import termios
import tty
from datetime import datetime
from typing import Any

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from prdeck import messages as m
from prdeck import steps
from prdeck.config import Config
from prdeck.keymap import key_to_message
from prdeck.log import log
from prdeck.models import FilterKind, PrFilter, WorkflowConclusion, WorkflowJob, WorkflowStatus
from prdeck.pipeline import FetchPipeline
from prdeck.scheduler import due_messages
from prdeck.state import (
    TAB_ORDER,
    AppState,
    JobLogsView,
    LogsMode,
    PopupKind,
    PreviewView,
    WorkflowsView,
)
from prdeck.system import open_in_editor
from prdeck.update import Env, update

console = Console()

# Lines taken by the panel border, tabs, search bar and footer
CHROME_LINES = 10

HELP_KEYS = [
    ("j/k ↓/↑", "move"),
    ("g/G", "top / bottom"),
    ("1/2/3 tab", "switch tab"),
    ("/", "search"),
    ("enter/p", "preview PR"),
    ("w", "CI checks"),
    ("o", "open in browser"),
    ("c", "checkout branch"),
    ("l", "label filters"),
    ("r", "refresh"),
    ("?", "help"),
    ("q", "quit"),
]


def format_duration(started_at: str | None, completed_at: str | None) -> str:
    if not started_at or not completed_at:
        return ""
    try:
        start = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        end = datetime.fromisoformat(completed_at.replace("Z", "+00:00"))
    except ValueError:
        return ""
    seconds = max(int((end - start).total_seconds()), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m{seconds % 60:02d}s"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"


def job_status_text(job: WorkflowJob) -> Text:
    if job.status in (WorkflowStatus.QUEUED, WorkflowStatus.WAITING, WorkflowStatus.REQUESTED):
        return Text("○ queued", style="dim")
    if job.is_running:
        return Text("● running", style="yellow")
    if job.is_failed:
        return Text("✗ failed", style="red")
    if job.conclusion == WorkflowConclusion.SUCCESS:
        return Text("✓ passed", style="green")
    if job.conclusion is None:
        return Text("?", style="dim")
    return Text(f"- {job.conclusion.value}", style="dim")


class PrDeckTUI:
    """Full-terminal PR dashboard."""

    def __init__(
        self,
        config: Config,
        state: AppState,
        env: Env,
        pipeline: FetchPipeline,
        console: Console = console,
    ):
        self.config = config
        self.state = state
        self.env = env
        self.pipeline = pipeline
        self.console = console
        self._running = True
        self._exit_branch: str | None = None
        self._resize_detected = False
        self._last_size = (0, 0)
        self._list_offset = 0
        self._fd: int | None = None
        self._saved_terminal: list[Any] | None = None

    @property
    def body_height(self) -> int:
        return max(5, self.console.height - CHROME_LINES)

    @property
    def body_width(self) -> int:
        return max(20, self.console.width - 4)

    # -- engine plumbing --

    def dispatch(self, msg: m.Message, live: Live | None = None) -> None:
        command = update(self.state, msg, self.env)
        if command is not None:
            self.execute(command, live)

    def execute(self, command: m.Command, live: Live | None = None) -> None:
        if isinstance(command, m.QuitApp):
            self._running = False
        elif isinstance(command, m.ExitAfterCheckout):
            self._exit_branch = command.branch
            self._running = False
        elif isinstance(command, m.OpenInEditor):
            self._run_editor(command, live)
        elif not self.pipeline.submit(command):
            log(f"Unknown command: {command!r}")

    def _run_editor(self, command: m.OpenInEditor, live: Live | None) -> None:
        if live is not None:
            live.stop()
        if self._fd is not None and self._saved_terminal is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_terminal)
        try:
            error = open_in_editor(command.content, command.filename, self.config.editor.command)
        finally:
            if self._fd is not None:
                tty.setcbreak(self._fd)
            if live is not None:
                live.start(refresh=True)
        self.dispatch(m.EditorFinished(error), live)

    # -- rendering --

    def _render_tabs(self) -> Text:
        tabs = Text()
        for i, kind in enumerate(TAB_ORDER):
            if i:
                tabs.append(" │ ", style="dim")
            label = f"{i + 1} {PrFilter(kind).title}"
            if kind == FilterKind.LABELS and self.state.active_labels:
                label += f": {', '.join(self.state.active_labels)}"
            count = len(self.state.buckets[kind])
            if count:
                label += f" ({count})"
            if self.state.loading[kind]:
                label += f" {self.state.spinner}"
            active = kind == self.state.filter.kind
            tabs.append(label, style="bold reverse cyan" if active else "cyan")
        return tabs

    def _render_search(self) -> Text | None:
        if not self.state.search_mode and not self.state.search_query:
            return None
        text = Text()
        text.append("/", style="bold yellow")
        text.append(self.state.search_query)
        if self.state.search_mode:
            text.append("█", style="yellow")
        text.append(f"  {len(self.state.filtered_indices)} match(es)", style="dim")
        return text

    def _visible_window(self, total: int, selected: int | None, height: int) -> tuple[int, int]:
        if selected is not None:
            if selected < self._list_offset:
                self._list_offset = selected
            elif selected >= self._list_offset + height:
                self._list_offset = selected - height + 1
        self._list_offset = max(0, min(self._list_offset, max(0, total - height)))
        return self._list_offset, min(self._list_offset + height, total)

    def _render_pr_table(self) -> Table:
        state = self.state
        prs = state.visible_prs
        height = self.body_height - 2
        start, end = self._visible_window(len(prs), state.selected, height)

        scroll_info = ""
        if len(prs) > height:
            scroll_info = f" [dim](showing {start + 1}-{end} of {len(prs)})[/dim]"
        repo = f"{state.repo_owner}/{state.repo_name}" if state.repo_owner else "prdeck"
        table = Table(
            title=f"[bold]{repo}[/bold] [dim]({state.filter.title})[/dim]{scroll_info}",
            show_header=True,
            header_style="bold cyan",
            border_style="dim",
            expand=True,
        )
        table.add_column("#", width=6)
        table.add_column("Author", width=14, no_wrap=True)
        table.add_column("Title", ratio=1, no_wrap=True)
        table.add_column("Branch", width=28, no_wrap=True)
        table.add_column("CI", width=10)

        if not prs:
            if state.is_loading:
                table.add_row("", "", f"[yellow]{state.spinner} Loading PRs...[/yellow]", "", "")
            elif state.search_query:
                table.add_row("", "", "[dim]No PRs match the search[/dim]", "", "")
            elif state.filter.kind == FilterKind.LABELS and not state.filter.labels:
                table.add_row("", "", "[dim]No label filters; press l to add one[/dim]", "", "")
            else:
                table.add_row("", "", "[dim]No open PRs found[/dim]", "", "")
            return table

        for idx in range(start, end):
            pr = prs[idx]
            table.add_row(
                Text(f"#{pr.number}", style="cyan"),
                pr.author[:14],
                pr.title,
                Text(pr.branch, style="magenta"),
                Text(pr.ci_status.display, style=pr.ci_status.style),
                style="reverse" if idx == state.selected else None,
            )
        return table

    def _render_workflows(self, view: WorkflowsView) -> RenderableType:
        title = f"[bold]CI for #{view.pr_number}[/bold] {view.pr_title}"
        if view.data is None:
            if view.error:
                return Panel(Text(view.error, style="red"), title=title, border_style="red")
            return Panel(Text(f"{self.state.spinner} Loading checks...", style="yellow"), title=title)

        jobs = view.data.jobs
        table = Table(
            title=title,
            show_header=True,
            header_style="bold cyan",
            border_style="dim",
            expand=True,
        )
        table.add_column("Run", width=22, no_wrap=True)
        table.add_column("Job", ratio=1, no_wrap=True)
        table.add_column("Status", width=12)
        table.add_column("Time", width=9)
        table.add_column("!", width=3)

        if not jobs:
            table.add_row("", "[dim]No checks reported for this commit[/dim]", "", "", "")
        height = self.body_height - 2
        start, end = self._visible_window(len(jobs), view.selected_job, height)
        for idx in range(start, end):
            job = jobs[idx]
            run = view.data.run_for_job(idx)
            table.add_row(
                run.name if run else "",
                job.name,
                job_status_text(job),
                format_duration(job.started_at, job.completed_at),
                Text(str(len(job.annotations)), style="yellow") if job.annotations else "",
                style="reverse" if idx == view.selected_job else None,
            )
        if view.loading:
            table.caption = f"{self.state.spinner} refreshing..."
        elif view.poll_enabled:
            table.caption = f"polling every {int(self.config.ui.poll_interval)}s"
        return table

    def _render_annotations(self, logs: JobLogsView) -> RenderableType:
        lines = Text()
        for idx, ann in enumerate(logs.annotations):
            mark = "[x]" if idx in logs.marked else "[ ]"
            style = {"failure": "red", "warning": "yellow"}.get(ann.level.value, "blue")
            row = Text(f"{mark} ")
            row.append(f"{ann.level.value.upper():8}", style=style)
            row.append(f" {ann.location}  ", style="cyan")
            row.append(ann.title or (ann.message.splitlines()[0] if ann.message else ""))
            if idx == logs.annotation_cursor:
                row.stylize("reverse")
            lines.append_text(row)
            lines.append("\n")
        if 0 <= logs.annotation_cursor < len(logs.annotations):
            lines.append("\n")
            lines.append(logs.annotations[logs.annotation_cursor].message, style="dim")
        return lines

    def _render_steps(self, logs: JobLogsView) -> RenderableType:
        tree = logs.logs.steps if logs.logs is not None else None
        if not tree:
            return Text(logs.text)
        rows = steps.visible_rows(tree, logs.expanded)
        out = Text()
        for row in rows:
            step = steps.step_at(tree, row)
            if step is None:
                continue
            indent = "    " if row[1] is not None else ""
            if step.sub_steps:
                fold = "▾ " if row in logs.expanded else "▸ "
            else:
                fold = "  "
            line = Text(f"{indent}{fold}")
            line.append("✗ " if step.is_failed else "✓ ", style="red" if step.is_failed else "green")
            line.append(step.name)
            if row == logs.selected_step:
                line.stylize("reverse")
            out.append_text(line)
            out.append("\n")

        selected = steps.step_at(tree, logs.selected_step)
        if selected is not None:
            output_lines = steps.step_output(selected).splitlines()
            room = max(3, self.body_height - len(rows) - 4)
            out.append("\n")
            out.append(f"── {selected.name} ", style="bold")
            out.append("(y smart copy · x full copy · enter editor)\n", style="dim")
            out.append("\n".join(output_lines[-room:]) or "(no output)", style="dim")
        return out

    def _render_job_logs(self, logs: JobLogsView) -> RenderableType:
        title = f"[bold]{logs.job_name}[/bold]"
        if logs.loading:
            body: RenderableType = Text(f"{self.state.spinner} Loading logs...", style="yellow")
        elif logs.mode == LogsMode.ANNOTATIONS:
            title += f" [dim]({len(logs.annotations)} annotations)[/dim]"
            body = self._render_annotations(logs)
        elif logs.mode == LogsMode.STEPS:
            body = self._render_steps(logs)
        else:
            lines = logs.text.splitlines()
            body = Text("\n".join(lines[logs.scroll : logs.scroll + self.body_height - 2]))
        return Panel(body, title=title, border_style="cyan", height=self.body_height)

    def _render_preview(self, view: PreviewView) -> RenderableType:
        title = f"[bold]#{view.pr_number}[/bold] {view.pr_title}"
        if view.loading:
            return Panel(Text(f"{self.state.spinner} Loading...", style="yellow"), title=title)
        if view.error and view.data is None:
            return Panel(Text(view.error, style="red"), title=title, border_style="red")
        height = self.body_height - 2
        out = Text()
        headers = set(view.positions)
        for idx in range(view.scroll, min(view.scroll + height, view.total_lines)):
            out.append(view.lines[idx], style="bold cyan" if idx in headers else None)
            out.append("\n")
        subtitle = f"{min(view.scroll + 1, view.total_lines)}/{view.total_lines}"
        return Panel(out, title=title, subtitle=subtitle, border_style="cyan", height=self.body_height)

    def _render_popup(self, popup: PopupKind) -> RenderableType:
        state = self.state
        if popup == PopupKind.HELP:
            table = Table(show_header=False, box=None)
            table.add_column(style="bold")
            table.add_column()
            for key, desc in HELP_KEYS:
                table.add_row(key, desc)
            return Panel(table, title="Keys", border_style="cyan")
        if popup == PopupKind.CHECKOUT:
            text = Text(f"Check out {state.checkout_branch}?\n\n")
            text.append("y/enter", style="bold")
            text.append(" confirm  ")
            text.append("n/esc", style="bold")
            text.append(" cancel")
            return Panel(text, title="Checkout", border_style="yellow")
        if popup == PopupKind.ERROR:
            return Panel(Text(state.error or "", style="red"), title="Error", border_style="red")
        if popup == PopupKind.URL:
            return Panel(
                Text(f"Open this URL in your browser:\n\n{state.url_popup}"),
                title="URL",
                border_style="cyan",
            )
        if popup == PopupKind.ADD_LABEL:
            scope = "all repos" if state.add_label_global else f"{state.repo_owner}/{state.repo_name}"
            text = Text("Label: ")
            text.append(state.add_label_input or "")
            text.append("█", style="yellow")
            text.append(f"\n\nScope: {scope} (tab to toggle)", style="dim")
            return Panel(text, title="Add label filter", border_style="cyan")

        text = Text()
        if not state.label_filters:
            text.append("No label filters yet.", style="dim")
        for idx, lf in enumerate(state.label_filters):
            scope = "global" if lf.is_global else "repo"
            line = Text(f"{lf.label_name}  ")
            line.append(f"({scope})", style="dim")
            if idx == state.labels_cursor:
                line.stylize("reverse")
            text.append_text(line)
            text.append("\n")
        text.append("\na add · d delete · esc close", style="dim")
        return Panel(text, title="Label filters", border_style="cyan")

    def _render_footer(self) -> Text:
        footer = Text()
        if self.state.feedback:
            footer.append(self.state.feedback, style="bold green")
            return footer
        if self.state.view is None:
            footer.append("?", style="bold")
            footer.append(" help  ")
            footer.append("/", style="bold")
            footer.append(" search  ")
            footer.append("w", style="bold")
            footer.append(" checks  ")
            footer.append("q", style="bold")
            footer.append(" quit")
        else:
            footer.append("esc/q", style="bold")
            footer.append(" back  ")
            footer.append("o", style="bold")
            footer.append(" open in browser")
        return footer

    def _render_body(self) -> RenderableType:
        view = self.state.view
        if isinstance(view, WorkflowsView):
            if view.job_logs is not None:
                return self._render_job_logs(view.job_logs)
            return self._render_workflows(view)
        if isinstance(view, PreviewView):
            return self._render_preview(view)
        return self._render_pr_table()

    def render(self) -> Panel:
        parts: list[RenderableType] = [self._render_tabs()]
        search = self._render_search()
        if search is not None:
            parts.append(search)
        popup = self.state.active_popup
        if popup is not None:
            parts.append(Align.center(self._render_popup(popup)))
        else:
            parts.append(self._render_body())
        parts.extend([Text(""), self._render_footer()])
        return Panel(Group(*parts), border_style="blue")

    # -- input --

    def _get_key_with_timeout(self, timeout: float) -> str | None:
        """Read one key, or None on timeout. Expects cbreak mode."""
        fd = sys.stdin.fileno()
        r, _, _ = select.select([fd], [], [], timeout)
        if not r:
            return None

        ch = os.read(fd, 1).decode("utf-8", errors="replace")
        if ch == "\x1b":
            r, _, _ = select.select([fd], [], [], 0.05)
            if not r:
                return "\x1b"
            ch2 = os.read(fd, 1).decode("utf-8", errors="replace")
            if ch2 == "[":
                r, _, _ = select.select([fd], [], [], 0.05)
                if r:
                    return "\x1b[" + os.read(fd, 1).decode("utf-8", errors="replace")
                return "\x1b["
            return "\x1b" + ch2
        return ch

    def _check_resize(self, live: Live) -> None:
        size = (self.console.width, self.console.height)
        if self._resize_detected or size != self._last_size:
            self._resize_detected = False
            self._last_size = size
            self.dispatch(m.Resize(self.body_width, self.body_height - 2), live)

    # -- main loop --

    def run(self) -> str | None:
        """Run the dashboard. Returns the branch checked out, if any."""
        if not sys.stdin.isatty():
            self.console.print("[yellow]prdeck requires an interactive terminal[/yellow]")
            return None

        self._fd = sys.stdin.fileno()
        self._saved_terminal = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)

        def sigwinch_handler(signum: int, frame: Any) -> None:
            self._resize_detected = True

        old_handler = None
        if hasattr(signal, "SIGWINCH"):
            old_handler = signal.signal(signal.SIGWINCH, sigwinch_handler)

        self.pipeline.start()
        try:
            with Live(self.render(), auto_refresh=False, console=self.console) as live:
                log("main loop starting")
                self._check_resize(live)
                self.dispatch(m.Refresh(), live)
                while self._running:
                    for msg in self.pipeline.drain():
                        self.dispatch(msg, live)
                    for msg in due_messages(self.state, self.config, self.env.clock()):
                        self.dispatch(msg, live)
                    self.dispatch(m.Tick(), live)
                    self._check_resize(live)

                    live.update(self.render(), refresh=True)

                    key = self._get_key_with_timeout(self.config.ui.input_timeout)
                    if key is None:
                        continue
                    log(f"Key pressed: {key!r}")
                    msg = key_to_message(self.state, key)
                    if msg is not None:
                        self.dispatch(msg, live)
        except KeyboardInterrupt:
            self._running = False
        finally:
            if hasattr(signal, "SIGWINCH") and old_handler is not None:
                signal.signal(signal.SIGWINCH, old_handler)
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved_terminal)
            self.pipeline.stop(timeout=0)
            log("main loop stopped")

        return self._exit_branch
