"""The update engine: apply one Message to the state, maybe return a Command.

Handlers are looked up by message type. Every handler mutates only the
state it is given and returns at most one Command for the host to run.
Side effects the engine performs inline (clipboard, opening URLs,
checkout, cache writes) go through the collaborators on ``Env`` so the
engine can be driven entirely by fakes in tests.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from prdeck import messages as m
from prdeck import preview, search, steps
from prdeck.cache import CacheStore
from prdeck.circleci import extract_job_number_from_url, is_circleci_url
from prdeck.config import Config
from prdeck.errors import CacheError, CheckoutError
from prdeck.log import log
from prdeck.models import ActionsData, CheckAnnotation, FilterKind, PrFilter, WorkflowJob
from prdeck.state import (
    SPINNER_FRAMES,
    TAB_ORDER,
    AppState,
    JobLogsView,
    LogsMode,
    PreviewView,
    WorkflowsView,
)

# Check summaries that only report "nothing found"
EMPTY_FINDINGS_RE = re.compile(
    r"\b(?:no|0|zero)\s+(?:issues|findings|problems|errors|warnings|annotations)\b|\bfound\s+0\b",
    re.IGNORECASE,
)

NO_JOB_LOGS_MESSAGE = "No logs available for this check.\n\nPress 'o' to open it in your browser."

CIRCLECI_SETUP_MESSAGE = """This job runs on CircleCI, but no CircleCI token is configured.

To view CircleCI logs here, create a personal API token at
https://app.circleci.com/settings/user/tokens and either:

  export CIRCLECI_TOKEN=<token>

or add it to your prdeck config file:

  [ci]
  circleci_token = "<token>"

Press 'o' to open the job in your browser."""


def _no_op(_text: str) -> bool:
    return False


@dataclass
class Env:
    """Collaborators and settings the update engine calls synchronously."""

    config: Config = field(default_factory=Config)
    store: CacheStore | None = None
    checkout: Callable[[str], None] = lambda branch: None
    copy: Callable[[str], bool] = _no_op
    open_url: Callable[[str], str | None] = lambda url: None
    clock: Callable[[], float] = time.monotonic


Handler = Callable[[AppState, object, Env], "m.Command | None"]

_HANDLERS: dict[type, Handler] = {}


def handles(*types: type) -> Callable[[Handler], Handler]:
    def register(fn: Handler) -> Handler:
        for t in types:
            _HANDLERS[t] = fn
        return fn

    return register


def update(state: AppState, msg: object, env: Env) -> m.Command | None:
    """Apply ``msg`` to ``state``. Unknown messages are ignored."""
    handler = _HANDLERS.get(type(msg))
    if handler is None:
        log(f"Unhandled message: {msg!r}")
        return None
    return handler(state, msg, env)


# -- helpers ----------------------------------------------------------------


def refilter(state: AppState) -> None:
    """Recompute filtered indices for the active list and reset the cursor."""
    state.filtered_indices = search.filter_prs(state.current_prs, state.search_query)
    state.selected = 0 if state.filtered_indices else None


def _clamp_selection(state: AppState) -> None:
    if not state.filtered_indices:
        state.selected = None
    elif state.selected is None:
        state.selected = 0
    else:
        state.selected = min(state.selected, len(state.filtered_indices) - 1)


def _start_fetch(state: AppState, env: Env, pr_filter: PrFilter) -> m.StartFetch:
    state.loading[pr_filter.kind] = True
    if pr_filter.kind == state.filter.kind:
        state.last_main_refresh = env.clock()
    return m.StartFetch(pr_filter)


def _set_feedback(state: AppState, env: Env, text: str) -> None:
    state.feedback = text
    state.feedback_expires = env.clock() + env.config.ui.feedback_seconds


def _copy(state: AppState, env: Env, text: str, what: str = "Copied to clipboard") -> None:
    if env.copy(text):
        _set_feedback(state, env, f"✓ {what}")
    else:
        _set_feedback(state, env, "✗ Failed to copy to clipboard")


def _open(state: AppState, env: Env, url: str) -> None:
    shown = env.open_url(url)
    if shown is not None:
        state.url_popup = shown


def _save_prs(state: AppState, env: Env, pr_filter: PrFilter, prs: list) -> None:
    if env.store is None or state.repo_owner is None or state.repo_name is None:
        return
    try:
        env.store.save_pull_requests(state.repo_owner, state.repo_name, pr_filter.cache_key, prs)
    except CacheError as e:
        log(f"Failed to save cache for {pr_filter.cache_key}: {e}")


def _load_cached_prs(state: AppState, env: Env, pr_filter: PrFilter) -> list:
    if env.store is None or state.repo_owner is None or state.repo_name is None:
        return []
    try:
        return env.store.load_pull_requests(state.repo_owner, state.repo_name, pr_filter.cache_key)
    except CacheError as e:
        log(f"Failed to load cache for {pr_filter.cache_key}: {e}")
        return []


# -- list navigation --------------------------------------------------------


@handles(m.NextItem)
def _next_item(state: AppState, msg: m.NextItem, env: Env) -> None:
    if not state.filtered_indices:
        return None
    if state.selected is None:
        state.selected = 0
    else:
        state.selected = min(state.selected + 1, len(state.filtered_indices) - 1)
    return None


@handles(m.PreviousItem)
def _previous_item(state: AppState, msg: m.PreviousItem, env: Env) -> None:
    if not state.filtered_indices:
        return None
    state.selected = 0 if state.selected is None else max(state.selected - 1, 0)
    return None


@handles(m.GoToTop)
def _go_to_top(state: AppState, msg: m.GoToTop, env: Env) -> None:
    if state.filtered_indices:
        state.selected = 0
    return None


@handles(m.GoToBottom)
def _go_to_bottom(state: AppState, msg: m.GoToBottom, env: Env) -> None:
    if state.filtered_indices:
        state.selected = len(state.filtered_indices) - 1
    return None


def _switch_to(state: AppState, env: Env, kind: FilterKind) -> m.Command | None:
    pr_filter = state.filter_for(kind)
    if pr_filter == state.filter:
        return None
    state.filter = pr_filter
    state.search_mode = False
    state.search_query = ""
    refilter(state)
    if kind not in state.fetched and not state.loading[kind]:
        return _start_fetch(state, env, pr_filter)
    return None


@handles(m.SwitchTab)
def _switch_tab(state: AppState, msg: m.SwitchTab, env: Env) -> m.Command | None:
    return _switch_to(state, env, msg.filter.kind)


@handles(m.NextTab, m.PreviousTab)
def _cycle_tab(state: AppState, msg: object, env: Env) -> m.Command | None:
    step = 1 if isinstance(msg, m.NextTab) else -1
    index = TAB_ORDER.index(state.filter.kind)
    return _switch_to(state, env, TAB_ORDER[(index + step) % len(TAB_ORDER)])


# -- item actions -----------------------------------------------------------


@handles(m.OpenSelected)
def _open_selected(state: AppState, msg: m.OpenSelected, env: Env) -> None:
    pr = state.selected_pr
    view = state.preview
    if view is not None:
        _open(state, env, f"https://github.com/{view.owner}/{view.repo}/pull/{view.pr_number}")
    elif pr is not None:
        _open(state, env, pr.url)
    return None


@handles(m.PromptCheckout)
def _prompt_checkout(state: AppState, msg: m.PromptCheckout, env: Env) -> None:
    pr = state.selected_pr
    if pr is not None:
        state.checkout_branch = pr.branch
    return None


@handles(m.ConfirmCheckout)
def _confirm_checkout(state: AppState, msg: m.ConfirmCheckout, env: Env) -> m.Command | None:
    branch = state.checkout_branch
    if branch is None:
        return None
    try:
        env.checkout(branch)
    except CheckoutError as e:
        log(f"Checkout of {branch} failed: {e}")
        # Prompt stays pending under the error so the user can retry or cancel
        state.error = f"Checkout failed: {e}"
        return None
    state.checkout_branch = None
    return m.ExitAfterCheckout(branch)


@handles(m.CancelCheckout)
def _cancel_checkout(state: AppState, msg: m.CancelCheckout, env: Env) -> None:
    state.checkout_branch = None
    return None


@handles(m.Refresh)
def _refresh(state: AppState, msg: m.Refresh, env: Env) -> m.Command:
    pr_filter = state.filter_for(state.filter.kind)
    state.filter = pr_filter
    state.error = None
    return _start_fetch(state, env, pr_filter)


# -- search -----------------------------------------------------------------


@handles(m.EnterSearchMode)
def _enter_search(state: AppState, msg: m.EnterSearchMode, env: Env) -> None:
    state.search_mode = True
    return None


@handles(m.ExitSearchMode)
def _exit_search(state: AppState, msg: m.ExitSearchMode, env: Env) -> None:
    state.search_mode = False
    if msg.clear:
        state.search_query = ""
        refilter(state)
    return None


@handles(m.SearchInput)
def _search_input(state: AppState, msg: m.SearchInput, env: Env) -> None:
    state.search_query += msg.ch
    refilter(state)
    return None


@handles(m.SearchBackspace)
def _search_backspace(state: AppState, msg: m.SearchBackspace, env: Env) -> None:
    state.search_query = state.search_query[:-1]
    refilter(state)
    return None


# -- popups -----------------------------------------------------------------


@handles(m.ToggleHelp)
def _toggle_help(state: AppState, msg: m.ToggleHelp, env: Env) -> None:
    state.show_help = not state.show_help
    return None


@handles(m.DismissHelp)
def _dismiss_help(state: AppState, msg: m.DismissHelp, env: Env) -> None:
    state.show_help = False
    return None


@handles(m.DismissError)
def _dismiss_error(state: AppState, msg: m.DismissError, env: Env) -> None:
    state.error = None
    return None


@handles(m.DismissUrlPopup)
def _dismiss_url(state: AppState, msg: m.DismissUrlPopup, env: Env) -> None:
    state.url_popup = None
    return None


# -- label filters ----------------------------------------------------------


def _reload_labels(state: AppState, env: Env) -> m.Command | None:
    """Reload configured labels and invalidate the Labels tab."""
    if env.store is not None and state.repo_owner and state.repo_name:
        state.label_filters = env.store.load_label_filters(state.repo_owner, state.repo_name)

    new_filter = state.filter_for(FilterKind.LABELS)
    state.buckets[FilterKind.LABELS] = _load_cached_prs(state, env, new_filter)
    state.fetched.discard(FilterKind.LABELS)
    if state.filter.kind != FilterKind.LABELS:
        return None
    state.filter = new_filter
    refilter(state)
    return _start_fetch(state, env, new_filter)


@handles(m.OpenLabelsPopup)
def _open_labels(state: AppState, msg: m.OpenLabelsPopup, env: Env) -> None:
    state.labels_popup = True
    state.labels_cursor = 0 if state.label_filters else None
    return None


@handles(m.CloseLabelsPopup)
def _close_labels(state: AppState, msg: m.CloseLabelsPopup, env: Env) -> None:
    state.labels_popup = False
    return None


@handles(m.LabelsNext)
def _labels_next(state: AppState, msg: m.LabelsNext, env: Env) -> None:
    if state.label_filters:
        current = -1 if state.labels_cursor is None else state.labels_cursor
        state.labels_cursor = min(current + 1, len(state.label_filters) - 1)
    return None


@handles(m.LabelsPrevious)
def _labels_previous(state: AppState, msg: m.LabelsPrevious, env: Env) -> None:
    if state.label_filters:
        current = 0 if state.labels_cursor is None else state.labels_cursor
        state.labels_cursor = max(current - 1, 0)
    return None


@handles(m.OpenAddLabel)
def _open_add_label(state: AppState, msg: m.OpenAddLabel, env: Env) -> None:
    state.add_label_input = ""
    state.add_label_global = False
    return None


@handles(m.CloseAddLabel)
def _close_add_label(state: AppState, msg: m.CloseAddLabel, env: Env) -> None:
    state.add_label_input = None
    return None


@handles(m.AddLabelInput)
def _add_label_input(state: AppState, msg: m.AddLabelInput, env: Env) -> None:
    if state.add_label_input is not None:
        state.add_label_input += msg.ch
    return None


@handles(m.AddLabelBackspace)
def _add_label_backspace(state: AppState, msg: m.AddLabelBackspace, env: Env) -> None:
    if state.add_label_input:
        state.add_label_input = state.add_label_input[:-1]
    return None


@handles(m.ToggleLabelScope)
def _toggle_label_scope(state: AppState, msg: m.ToggleLabelScope, env: Env) -> None:
    state.add_label_global = not state.add_label_global
    return None


@handles(m.ConfirmAddLabel)
def _confirm_add_label(state: AppState, msg: m.ConfirmAddLabel, env: Env) -> m.Command | None:
    name = (state.add_label_input or "").strip()
    if not name:
        return None
    if env.store is None:
        state.error = "Label filters need a writable cache"
        return None
    if state.add_label_global:
        owner, repo = None, None
    elif state.repo_owner and state.repo_name:
        owner, repo = state.repo_owner, state.repo_name
    else:
        state.error = "Not in a GitHub repository; add the label as global (Tab)"
        return None

    try:
        env.store.save_label_filter(name, owner, repo)
        command = _reload_labels(state, env)
    except CacheError as e:
        log(f"Failed to save label {name}: {e}")
        state.error = f"Failed to save label: {e}"
        return None

    state.add_label_input = None
    if state.labels_popup and state.labels_cursor is None and state.label_filters:
        state.labels_cursor = 0
    return command


@handles(m.DeleteSelectedLabel)
def _delete_label(state: AppState, msg: m.DeleteSelectedLabel, env: Env) -> m.Command | None:
    index = state.labels_cursor
    if index is None or index >= len(state.label_filters) or env.store is None:
        return None
    label = state.label_filters[index]
    try:
        env.store.delete_label_filter(label.id)
        command = _reload_labels(state, env)
    except CacheError as e:
        log(f"Failed to delete label {label.label_name}: {e}")
        state.error = f"Failed to delete label: {e}"
        return None

    if not state.label_filters:
        state.labels_cursor = None
    else:
        state.labels_cursor = min(index, len(state.label_filters) - 1)
    return command


# -- workflows view ---------------------------------------------------------


def _first_failing_job(data: ActionsData) -> int:
    for i, job in enumerate(data.jobs):
        if job.is_failed:
            return i
    return 0


def _actions_fetch(state: AppState, env: Env, view: WorkflowsView) -> m.StartActionsFetch:
    view.loading = True
    view.error = None
    state.last_actions_poll = env.clock()
    return m.StartActionsFetch(view.owner, view.repo, view.pr_number, view.head_sha or "")


@handles(m.OpenWorkflowsView)
def _open_workflows(state: AppState, msg: m.OpenWorkflowsView, env: Env) -> m.Command | None:
    pr = state.selected_pr
    if pr is None:
        return None
    view = WorkflowsView(
        pr_number=pr.number,
        pr_title=pr.title,
        owner=pr.repo_owner,
        repo=pr.repo_name,
        head_sha=pr.head_sha,
    )
    cached = state.actions_by_pr.get(pr.number)
    if cached is not None:
        view.data = cached
        view.selected_job = _first_failing_job(cached)
    state.view = view

    if pr.head_sha:
        view.poll_enabled = True
        state.pending_pr_number = None
        return _actions_fetch(state, env, view)

    # Head commit unknown (cache-loaded PR): refetch the list first
    view.loading = True
    state.pending_pr_number = pr.number
    log(f"PR #{pr.number} has no head sha; refetching {state.filter.kind.value}")
    return _start_fetch(state, env, state.filter)


@handles(m.CloseWorkflowsView)
def _close_workflows(state: AppState, msg: m.CloseWorkflowsView, env: Env) -> None:
    view = state.workflows
    if view is not None and state.pending_pr_number == view.pr_number:
        state.pending_pr_number = None
    state.view = None
    return None


@handles(m.RefreshActions)
def _refresh_actions(state: AppState, msg: m.RefreshActions, env: Env) -> m.Command | None:
    view = state.workflows
    if view is None or view.job_logs is not None or not view.head_sha:
        return None
    return _actions_fetch(state, env, view)


@handles(m.ActionsNextJob)
def _actions_next(state: AppState, msg: m.ActionsNextJob, env: Env) -> None:
    view = state.workflows
    if view is not None and view.data is not None and view.data.jobs:
        view.selected_job = min(view.selected_job + 1, len(view.data.jobs) - 1)
    return None


@handles(m.ActionsPreviousJob)
def _actions_previous(state: AppState, msg: m.ActionsPreviousJob, env: Env) -> None:
    view = state.workflows
    if view is not None:
        view.selected_job = max(view.selected_job - 1, 0)
    return None


@handles(m.OpenActionsInBrowser)
def _open_actions(state: AppState, msg: m.OpenActionsInBrowser, env: Env) -> None:
    view = state.workflows
    if view is None:
        return None
    job = view.selected()
    if view.job_logs is not None and view.job_logs.details_url:
        url = view.job_logs.details_url
    elif job is not None and job.details_url:
        url = job.details_url
    else:
        url = f"https://github.com/{view.owner}/{view.repo}/pull/{view.pr_number}/checks"
    _open(state, env, url)
    return None


# -- job logs ---------------------------------------------------------------


def _text_view(job: WorkflowJob) -> str:
    parts = [f"# {job.name}"]
    if job.summary and job.summary.strip():
        parts.append(job.summary.strip())
    if job.text and job.text.strip():
        parts.append(job.text.strip())
    return "\n\n".join(parts)


@handles(m.OpenJobLogs)
def _open_job_logs(state: AppState, msg: m.OpenJobLogs, env: Env) -> m.Command | None:
    view = state.workflows
    if view is None:
        return None
    job = view.selected()
    if job is None:
        return None

    logs_view = JobLogsView(job_id=job.id, job_name=job.name, details_url=job.details_url)
    view.job_logs = logs_view

    if job.annotations:
        logs_view.annotations = list(job.annotations)
        return None

    summary = (job.summary or "").strip()
    if summary and EMPTY_FINDINGS_RE.search(summary):
        logs_view.message = f"# {job.name}\n\n✓ No issues found.\n\n{summary}"
        return None

    if summary or (job.text or "").strip():
        logs_view.message = _text_view(job)
        return None

    url = job.details_url or ""
    if is_circleci_url(url):
        if not env.config.ci.circleci_configured:
            logs_view.message = CIRCLECI_SETUP_MESSAGE
            return None
        job_number = extract_job_number_from_url(url)
        if job_number is None:
            logs_view.message = (
                f"Could not find a CircleCI job number in:\n{url}\n\n"
                "Press 'o' to open it in your browser."
            )
            return None
        logs_view.job_number = job_number
        logs_view.loading = True
        return m.StartCircleCIJobLogsFetch(view.owner, view.repo, job_number, job.id, job.name)

    if job.id == 0:
        logs_view.message = NO_JOB_LOGS_MESSAGE
        return None

    logs_view.loading = True
    return m.StartJobLogsFetch(view.owner, view.repo, job.id, job.name)


@handles(m.CloseJobLogs)
def _close_job_logs(state: AppState, msg: m.CloseJobLogs, env: Env) -> None:
    view = state.workflows
    if view is not None:
        view.job_logs = None
    return None


@handles(m.JobLogsScrollUp)
def _logs_scroll_up(state: AppState, msg: m.JobLogsScrollUp, env: Env) -> None:
    logs = state.job_logs
    if logs is not None:
        logs.scroll = max(logs.scroll - 1, 0)
    return None


@handles(m.JobLogsScrollDown)
def _logs_scroll_down(state: AppState, msg: m.JobLogsScrollDown, env: Env) -> None:
    logs = state.job_logs
    if logs is not None:
        last = max(len(logs.text.splitlines()) - 1, 0)
        logs.scroll = min(logs.scroll + 1, last)
    return None


@handles(m.JobLogsNextStep)
def _logs_next_step(state: AppState, msg: m.JobLogsNextStep, env: Env) -> None:
    logs = state.job_logs
    if logs is not None and logs.mode == LogsMode.STEPS:
        logs.selected_step = steps.next_row(logs.logs.steps, logs.expanded, logs.selected_step)
    return None


@handles(m.JobLogsPreviousStep)
def _logs_previous_step(state: AppState, msg: m.JobLogsPreviousStep, env: Env) -> None:
    logs = state.job_logs
    if logs is not None and logs.mode == LogsMode.STEPS:
        logs.selected_step = steps.previous_row(logs.logs.steps, logs.expanded, logs.selected_step)
    return None


@handles(m.JobLogsToggleStep)
def _logs_toggle_step(state: AppState, msg: m.JobLogsToggleStep, env: Env) -> None:
    logs = state.job_logs
    if logs is not None and logs.mode == LogsMode.STEPS:
        logs.selected_step = steps.toggle_row(logs.expanded, logs.selected_step)
    return None


def _selected_output(logs: JobLogsView) -> str:
    if logs.mode == LogsMode.STEPS:
        step = steps.step_at(logs.logs.steps, logs.selected_step)
        if step is not None:
            return steps.step_output(step)
    return logs.text


@handles(m.CopyJobLogs, m.FullCopyStepOutput)
def _copy_logs(state: AppState, msg: object, env: Env) -> None:
    logs = state.job_logs
    if logs is None or logs.loading:
        return None
    _copy(state, env, _selected_output(logs))
    return None


@handles(m.CopyTestFailures)
def _copy_failures(state: AppState, msg: m.CopyTestFailures, env: Env) -> None:
    logs = state.job_logs
    if logs is None or logs.loading:
        return None
    output = _selected_output(logs)
    failures = steps.extract_failures(output)
    if failures is not None:
        _copy(state, env, failures, "Copied test failures")
    else:
        _copy(state, env, output)
    return None


def _editor_filename(job_name: str, step_name: str | None) -> str:
    base = job_name if step_name is None else f"{job_name}-{step_name}"
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("_") or "output"
    return f"prdeck-{safe}.log"


@handles(m.OpenStepInEditor)
def _open_step_in_editor(state: AppState, msg: m.OpenStepInEditor, env: Env) -> m.Command | None:
    logs = state.job_logs
    if logs is None or logs.loading:
        return None
    step_name = None
    if logs.mode == LogsMode.STEPS:
        step = steps.step_at(logs.logs.steps, logs.selected_step)
        step_name = step.name if step is not None else None
    return m.OpenInEditor(_selected_output(logs), _editor_filename(logs.job_name, step_name))


# -- annotations ------------------------------------------------------------


def format_annotation(annotation: CheckAnnotation) -> str:
    text = f"{annotation.level.value.upper()} {annotation.location}"
    if annotation.title:
        text += f" {annotation.title}"
    return f"{text}\n{annotation.message}"


@handles(m.AnnotationNext)
def _annotation_next(state: AppState, msg: m.AnnotationNext, env: Env) -> None:
    logs = state.job_logs
    if logs is not None and logs.annotations:
        logs.annotation_cursor = min(logs.annotation_cursor + 1, len(logs.annotations) - 1)
    return None


@handles(m.AnnotationPrevious)
def _annotation_previous(state: AppState, msg: m.AnnotationPrevious, env: Env) -> None:
    logs = state.job_logs
    if logs is not None and logs.annotations:
        logs.annotation_cursor = max(logs.annotation_cursor - 1, 0)
    return None


@handles(m.ToggleAnnotationSelection)
def _toggle_annotation(state: AppState, msg: m.ToggleAnnotationSelection, env: Env) -> None:
    logs = state.job_logs
    if logs is None or not logs.annotations:
        return None
    index = logs.annotation_cursor
    if index in logs.marked:
        logs.marked.discard(index)
    else:
        logs.marked.add(index)
    return None


@handles(m.CopyAnnotations)
def _copy_annotations(state: AppState, msg: m.CopyAnnotations, env: Env) -> None:
    logs = state.job_logs
    if logs is None or not logs.annotations:
        return None
    indices = sorted(logs.marked) if logs.marked else range(len(logs.annotations))
    text = "\n\n".join(format_annotation(logs.annotations[i]) for i in indices)
    count = len(indices)
    _copy(state, env, text, f"Copied {count} annotation{'s' if count != 1 else ''}")
    return None


# -- preview ----------------------------------------------------------------


def _preview_height(state: AppState) -> int:
    return max(state.viewport_height, 1)


def _relayout_preview(state: AppState, view: PreviewView) -> None:
    if view.data is None:
        return
    view.lines, view.positions = preview.layout(view.data, state.viewport_width)
    view.scroll = min(view.scroll, preview.max_scroll(view.total_lines, _preview_height(state)))


@handles(m.OpenPreviewView)
def _open_preview(state: AppState, msg: m.OpenPreviewView, env: Env) -> m.Command | None:
    pr = state.selected_pr
    if pr is None:
        return None
    state.view = PreviewView(
        pr_number=pr.number,
        pr_title=pr.title,
        owner=pr.repo_owner,
        repo=pr.repo_name,
        loading=True,
    )
    return m.StartPreviewFetch(pr.repo_owner, pr.repo_name, pr.number)


@handles(m.ClosePreviewView)
def _close_preview(state: AppState, msg: m.ClosePreviewView, env: Env) -> None:
    if state.preview is not None:
        state.view = None
    return None


@handles(m.PreviewScrollDown)
def _preview_down(state: AppState, msg: m.PreviewScrollDown, env: Env) -> None:
    view = state.preview
    if view is None:
        return None
    height = _preview_height(state)
    lines = msg.lines if msg.lines is not None else preview.scroll_step(height)
    view.scroll = min(view.scroll + lines, preview.max_scroll(view.total_lines, height))
    return None


@handles(m.PreviewScrollUp)
def _preview_up(state: AppState, msg: m.PreviewScrollUp, env: Env) -> None:
    view = state.preview
    if view is None:
        return None
    lines = msg.lines if msg.lines is not None else preview.scroll_step(_preview_height(state))
    view.scroll = max(view.scroll - lines, 0)
    return None


@handles(m.PreviewNextSection)
def _preview_next_section(state: AppState, msg: m.PreviewNextSection, env: Env) -> None:
    view = state.preview
    if view is None:
        return None
    target = preview.next_section(view.positions, view.scroll)
    if target is not None:
        view.scroll = min(target, preview.max_scroll(view.total_lines, _preview_height(state)))
    return None


@handles(m.PreviewPreviousSection)
def _preview_previous_section(state: AppState, msg: m.PreviewPreviousSection, env: Env) -> None:
    view = state.preview
    if view is None:
        return None
    target = preview.previous_section(view.positions, view.scroll)
    view.scroll = target if target is not None else 0
    return None


@handles(m.PreviewGoToTop)
def _preview_top(state: AppState, msg: m.PreviewGoToTop, env: Env) -> None:
    if state.preview is not None:
        state.preview.scroll = 0
    return None


@handles(m.PreviewGoToBottom)
def _preview_bottom(state: AppState, msg: m.PreviewGoToBottom, env: Env) -> None:
    view = state.preview
    if view is not None:
        view.scroll = preview.max_scroll(view.total_lines, _preview_height(state))
    return None


# -- fetch results ----------------------------------------------------------


def _resolve_pending(state: AppState, env: Env, prs: list) -> m.Command | None:
    """Issue the deferred CI fetch once the pending PR's head commit is known."""
    number = state.pending_pr_number
    if number is None:
        return None
    match = next((pr for pr in prs if pr.number == number), None)
    if match is None:
        return None

    state.pending_pr_number = None
    view = state.workflows
    if view is None or view.pr_number != number:
        return None
    if not match.head_sha:
        view.loading = False
        view.error = f"Could not determine the head commit of PR #{number}"
        return None
    view.head_sha = match.head_sha
    view.poll_enabled = True
    return _actions_fetch(state, env, view)


@handles(m.PullRequestsFetched)
def _prs_fetched(state: AppState, msg: m.PullRequestsFetched, env: Env) -> m.Command | None:
    kind = msg.filter.kind
    # Must run before the bucket is replaced
    command = _resolve_pending(state, env, msg.prs)

    state.buckets[kind] = list(msg.prs)
    state.loading[kind] = False
    state.fetched.add(kind)
    _save_prs(state, env, msg.filter, msg.prs)
    log(f"Fetched {len(msg.prs)} PRs for {msg.filter.cache_key}")

    if kind == state.filter.kind:
        state.filtered_indices = search.filter_prs(state.current_prs, state.search_query)
        _clamp_selection(state)
    return command


@handles(m.PullRequestsFetchFailed)
def _prs_failed(state: AppState, msg: m.PullRequestsFetchFailed, env: Env) -> None:
    kind = msg.filter.kind
    state.loading[kind] = False
    state.error = msg.error
    log(f"PR fetch for {msg.filter.cache_key} failed: {msg.error}")

    view = state.workflows
    if state.pending_pr_number is not None and view is not None and view.pr_number == state.pending_pr_number:
        state.pending_pr_number = None
        view.loading = False
        view.error = msg.error
    return None


@handles(m.ActionsFetched)
def _actions_fetched(state: AppState, msg: m.ActionsFetched, env: Env) -> None:
    state.actions_by_pr[msg.pr_number] = msg.data
    view = state.workflows
    if view is None or view.pr_number != msg.pr_number:
        return None

    first = view.data is None
    view.data = msg.data
    view.loading = False
    view.error = None
    view.poll_enabled = msg.data.has_running_jobs
    if first:
        view.selected_job = _first_failing_job(msg.data)
    elif msg.data.jobs:
        view.selected_job = min(view.selected_job, len(msg.data.jobs) - 1)
    else:
        view.selected_job = 0
    return None


@handles(m.ActionsFetchFailed)
def _actions_failed(state: AppState, msg: m.ActionsFetchFailed, env: Env) -> None:
    log(f"Checks fetch for PR #{msg.pr_number} failed: {msg.error}")
    view = state.workflows
    if view is None or view.pr_number != msg.pr_number:
        return None
    view.loading = False
    view.error = msg.error
    state.error = msg.error
    return None


def _matching_logs(
    state: AppState, msg: m.JobLogsFetched | m.JobLogsFetchFailed
) -> JobLogsView | None:
    logs = state.job_logs
    if logs is None or not logs.loading:
        return None
    if (logs.job_id, logs.job_number) != (msg.job_id, msg.job_number):
        return None
    return logs


@handles(m.JobLogsFetched)
def _job_logs_fetched(state: AppState, msg: m.JobLogsFetched, env: Env) -> None:
    logs = _matching_logs(state, msg)
    if logs is None:
        log(f"Dropping logs for job {msg.job_id}; no longer displayed")
        return None
    logs.loading = False
    logs.logs = msg.logs
    logs.scroll = 0
    if msg.logs.steps:
        logs.expanded, logs.selected_step = steps.initial_step_state(msg.logs.steps)
    return None


@handles(m.JobLogsFetchFailed)
def _job_logs_failed(state: AppState, msg: m.JobLogsFetchFailed, env: Env) -> None:
    log(f"Log fetch for job {msg.job_id} failed: {msg.error}")
    logs = _matching_logs(state, msg)
    if logs is None:
        return None
    logs.loading = False
    logs.message = f"Failed to load logs.\n\n{msg.error}\n\nPress 'o' to open it in your browser."
    state.error = msg.error
    return None


@handles(m.PreviewFetched)
def _preview_fetched(state: AppState, msg: m.PreviewFetched, env: Env) -> None:
    view = state.preview
    if view is None or view.pr_number != msg.pr_number:
        return None
    view.loading = False
    view.data = msg.data
    view.scroll = 0
    _relayout_preview(state, view)
    return None


@handles(m.PreviewFetchFailed)
def _preview_failed(state: AppState, msg: m.PreviewFetchFailed, env: Env) -> None:
    log(f"Preview fetch for PR #{msg.pr_number} failed: {msg.error}")
    view = state.preview
    if view is None or view.pr_number != msg.pr_number:
        return None
    view.loading = False
    view.error = msg.error
    state.error = msg.error
    return None


# -- system -----------------------------------------------------------------


@handles(m.Resize)
def _resize(state: AppState, msg: m.Resize, env: Env) -> None:
    state.viewport_width = max(msg.width, 1)
    state.viewport_height = max(msg.height, 1)
    view = state.preview
    if view is not None:
        _relayout_preview(state, view)
    return None


@handles(m.Tick)
def _tick(state: AppState, msg: m.Tick, env: Env) -> None:
    now = env.clock()
    if state.feedback is not None and now >= state.feedback_expires:
        state.feedback = None
    if state.anything_loading and now - state.last_spinner >= env.config.ui.spinner_interval:
        state.spinner_index = (state.spinner_index + 1) % len(SPINNER_FRAMES)
        state.last_spinner = now
    return None


@handles(m.EditorFinished)
def _editor_finished(state: AppState, msg: m.EditorFinished, env: Env) -> None:
    if msg.error is not None:
        log(f"Editor failed: {msg.error}")
        _set_feedback(state, env, msg.error)
    return None


@handles(m.Quit)
def _quit(state: AppState, msg: m.Quit, env: Env) -> m.Command:
    return m.QuitApp()
