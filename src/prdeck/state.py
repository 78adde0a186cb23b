"""Application state owned by the update engine.

Overlays (popups) and views are kept apart. At most one view is open at a
time (workflows or preview), and a workflows view shows either its job
list or a job log. Popups sit on top of whatever view is open and are
resolved in a fixed precedence order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from prdeck.cache import CacheStore
from prdeck.errors import CacheError
from prdeck.log import log
from prdeck.models import (
    ActionsData,
    CheckAnnotation,
    FilterKind,
    JobLogs,
    LabelFilter,
    PreviewData,
    PrFilter,
    PullRequest,
    WorkflowJob,
)
from prdeck.steps import Row

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

TAB_ORDER = (FilterKind.MY_PRS, FilterKind.REVIEW_REQUESTED, FilterKind.LABELS)


class PopupKind(Enum):
    """Overlays, highest precedence first."""

    HELP = "help"
    CHECKOUT = "checkout"
    ERROR = "error"
    URL = "url"
    ADD_LABEL = "add_label"
    LABELS = "labels"


class LogsMode(Enum):
    """How a job log view presents its content."""

    ANNOTATIONS = "annotations"
    STEPS = "steps"
    TEXT = "text"


@dataclass
class JobLogsView:
    """Job log sub-view of the workflows view."""

    job_id: int
    job_name: str
    details_url: str | None = None
    job_number: int | None = None
    loading: bool = False
    logs: JobLogs | None = None
    # Inline text shown instead of fetched logs (summaries, guidance, errors)
    message: str | None = None
    annotations: list[CheckAnnotation] = field(default_factory=list)
    annotation_cursor: int = 0
    marked: set[int] = field(default_factory=set)
    expanded: set[Row] = field(default_factory=set)
    selected_step: Row | None = None
    scroll: int = 0

    @property
    def mode(self) -> LogsMode:
        if self.annotations:
            return LogsMode.ANNOTATIONS
        if self.logs is not None and self.logs.steps:
            return LogsMode.STEPS
        return LogsMode.TEXT

    @property
    def text(self) -> str:
        if self.message is not None:
            return self.message
        if self.logs is not None:
            return self.logs.content
        return ""


@dataclass
class WorkflowsView:
    """CI runs and jobs for one PR."""

    pr_number: int
    pr_title: str
    owner: str
    repo: str
    head_sha: str | None = None
    data: ActionsData | None = None
    loading: bool = False
    error: str | None = None
    selected_job: int = 0
    poll_enabled: bool = False
    job_logs: JobLogsView | None = None

    def selected(self) -> WorkflowJob | None:
        if self.data is None:
            return None
        jobs = self.data.jobs
        if 0 <= self.selected_job < len(jobs):
            return jobs[self.selected_job]
        return None


@dataclass
class PreviewView:
    """PR description and conversation."""

    pr_number: int
    pr_title: str
    owner: str
    repo: str
    loading: bool = False
    data: PreviewData | None = None
    error: str | None = None
    scroll: int = 0
    lines: list[str] = field(default_factory=list)
    positions: list[int] = field(default_factory=list)

    @property
    def total_lines(self) -> int:
        return len(self.lines)


View = WorkflowsView | PreviewView


@dataclass
class AppState:
    """All mutable dashboard state. Only the update engine writes to it."""

    repo_owner: str | None = None
    repo_name: str | None = None

    # PR buckets, one per tab
    buckets: dict[FilterKind, list[PullRequest]] = field(
        default_factory=lambda: {kind: [] for kind in TAB_ORDER}
    )
    loading: dict[FilterKind, bool] = field(
        default_factory=lambda: {kind: False for kind in TAB_ORDER}
    )
    fetched: set[FilterKind] = field(default_factory=set)
    label_filters: list[LabelFilter] = field(default_factory=list)

    # List navigation
    filter: PrFilter = field(default_factory=PrFilter.my_prs)
    filtered_indices: list[int] = field(default_factory=list)
    selected: int | None = None
    search_mode: bool = False
    search_query: str = ""

    # Popups
    show_help: bool = False
    checkout_branch: str | None = None
    error: str | None = None
    url_popup: str | None = None
    labels_popup: bool = False
    labels_cursor: int | None = None
    add_label_input: str | None = None
    add_label_global: bool = False

    # Views
    view: View | None = None
    pending_pr_number: int | None = None
    actions_by_pr: dict[int, ActionsData] = field(default_factory=dict)

    # Transient UI
    feedback: str | None = None
    feedback_expires: float = 0.0
    spinner_index: int = 0
    last_spinner: float = 0.0
    viewport_width: int = 80
    viewport_height: int = 24

    # Scheduler bookkeeping
    last_main_refresh: float = 0.0
    last_actions_poll: float = 0.0

    # -- derived --

    @property
    def current_prs(self) -> list[PullRequest]:
        return self.buckets[self.filter.kind]

    @property
    def visible_prs(self) -> list[PullRequest]:
        prs = self.current_prs
        return [prs[i] for i in self.filtered_indices if i < len(prs)]

    @property
    def selected_pr(self) -> PullRequest | None:
        if self.selected is None or self.selected >= len(self.filtered_indices):
            return None
        index = self.filtered_indices[self.selected]
        prs = self.current_prs
        return prs[index] if index < len(prs) else None

    @property
    def active_labels(self) -> list[str]:
        return [lf.label_name for lf in self.label_filters]

    @property
    def is_loading(self) -> bool:
        """Whether the active tab is loading."""
        return self.loading[self.filter.kind]

    @property
    def anything_loading(self) -> bool:
        if any(self.loading.values()):
            return True
        view = self.view
        if isinstance(view, WorkflowsView):
            return view.loading or (view.job_logs is not None and view.job_logs.loading)
        if isinstance(view, PreviewView):
            return view.loading
        return False

    @property
    def active_popup(self) -> PopupKind | None:
        if self.show_help:
            return PopupKind.HELP
        # Errors raised from the checkout prompt layer above it
        if self.error is not None and self.checkout_branch is not None:
            return PopupKind.ERROR
        if self.checkout_branch is not None:
            return PopupKind.CHECKOUT
        if self.error is not None:
            return PopupKind.ERROR
        if self.url_popup is not None:
            return PopupKind.URL
        if self.add_label_input is not None:
            return PopupKind.ADD_LABEL
        if self.labels_popup:
            return PopupKind.LABELS
        return None

    @property
    def workflows(self) -> WorkflowsView | None:
        return self.view if isinstance(self.view, WorkflowsView) else None

    @property
    def preview(self) -> PreviewView | None:
        return self.view if isinstance(self.view, PreviewView) else None

    @property
    def job_logs(self) -> JobLogsView | None:
        view = self.workflows
        return view.job_logs if view is not None else None

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_index % len(SPINNER_FRAMES)]

    def filter_for(self, kind: FilterKind) -> PrFilter:
        """Build the filter for a tab, with the current label set for Labels."""
        if kind == FilterKind.LABELS:
            return PrFilter.with_labels(self.active_labels)
        return PrFilter(kind)


def initial_state(
    store: CacheStore | None, owner: str | None, repo: str | None
) -> AppState:
    """Build the startup state from the cache.

    Cache failures are logged and treated as an empty cache.
    """
    state = AppState(repo_owner=owner, repo_name=repo)
    if store is None or owner is None or repo is None:
        return state

    try:
        state.label_filters = store.load_label_filters(owner, repo)
    except CacheError as e:
        log(f"Failed to load label filters: {e}")

    for kind in TAB_ORDER:
        key = state.filter_for(kind).cache_key
        try:
            state.buckets[kind] = store.load_pull_requests(owner, repo, key)
        except CacheError as e:
            log(f"Failed to load cached PRs for {key}: {e}")

    state.filtered_indices = list(range(len(state.current_prs)))
    state.selected = 0 if state.filtered_indices else None
    return state
