"""Messages (input events) and Commands (side-effect requests).

Both are closed sets of small frozen dataclasses. Every fetch result is
tagged with the context it was requested for, so the update engine can
tell whether it still matches what is on screen.
"""

from __future__ import annotations

from dataclasses import dataclass

from prdeck.models import ActionsData, JobLogs, PreviewData, PrFilter, PullRequest

# -- Messages: navigation ---------------------------------------------------


@dataclass(frozen=True)
class NextItem:
    pass


@dataclass(frozen=True)
class PreviousItem:
    pass


@dataclass(frozen=True)
class GoToTop:
    pass


@dataclass(frozen=True)
class GoToBottom:
    pass


@dataclass(frozen=True)
class SwitchTab:
    filter: PrFilter


@dataclass(frozen=True)
class NextTab:
    pass


@dataclass(frozen=True)
class PreviousTab:
    pass


# -- Messages: item actions -------------------------------------------------


@dataclass(frozen=True)
class OpenSelected:
    """Open the selected PR in the browser."""


@dataclass(frozen=True)
class PromptCheckout:
    pass


@dataclass(frozen=True)
class ConfirmCheckout:
    pass


@dataclass(frozen=True)
class CancelCheckout:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


# -- Messages: search -------------------------------------------------------


@dataclass(frozen=True)
class EnterSearchMode:
    pass


@dataclass(frozen=True)
class ExitSearchMode:
    """Leave search input. ``clear`` drops the query and restores the full list."""

    clear: bool = False


@dataclass(frozen=True)
class SearchInput:
    ch: str


@dataclass(frozen=True)
class SearchBackspace:
    pass


# -- Messages: popups -------------------------------------------------------


@dataclass(frozen=True)
class ToggleHelp:
    pass


@dataclass(frozen=True)
class DismissHelp:
    pass


@dataclass(frozen=True)
class DismissError:
    pass


@dataclass(frozen=True)
class DismissUrlPopup:
    pass


# -- Messages: label filters ------------------------------------------------


@dataclass(frozen=True)
class OpenLabelsPopup:
    pass


@dataclass(frozen=True)
class CloseLabelsPopup:
    pass


@dataclass(frozen=True)
class LabelsNext:
    pass


@dataclass(frozen=True)
class LabelsPrevious:
    pass


@dataclass(frozen=True)
class DeleteSelectedLabel:
    pass


@dataclass(frozen=True)
class OpenAddLabel:
    pass


@dataclass(frozen=True)
class CloseAddLabel:
    pass


@dataclass(frozen=True)
class AddLabelInput:
    ch: str


@dataclass(frozen=True)
class AddLabelBackspace:
    pass


@dataclass(frozen=True)
class ToggleLabelScope:
    """Switch the label being added between repo-specific and global."""


@dataclass(frozen=True)
class ConfirmAddLabel:
    pass


# -- Messages: workflows view -----------------------------------------------


@dataclass(frozen=True)
class OpenWorkflowsView:
    pass


@dataclass(frozen=True)
class CloseWorkflowsView:
    pass


@dataclass(frozen=True)
class RefreshActions:
    pass


@dataclass(frozen=True)
class ActionsNextJob:
    pass


@dataclass(frozen=True)
class ActionsPreviousJob:
    pass


@dataclass(frozen=True)
class OpenActionsInBrowser:
    """Open the selected job's details page (or the PR checks page)."""


# -- Messages: job logs -----------------------------------------------------


@dataclass(frozen=True)
class OpenJobLogs:
    pass


@dataclass(frozen=True)
class CloseJobLogs:
    pass


@dataclass(frozen=True)
class JobLogsScrollUp:
    pass


@dataclass(frozen=True)
class JobLogsScrollDown:
    pass


@dataclass(frozen=True)
class JobLogsNextStep:
    pass


@dataclass(frozen=True)
class JobLogsPreviousStep:
    pass


@dataclass(frozen=True)
class JobLogsToggleStep:
    pass


@dataclass(frozen=True)
class CopyJobLogs:
    """Copy the whole log, or the selected step's output."""


@dataclass(frozen=True)
class CopyTestFailures:
    """Smart copy: condensed failures if recognizable, else full output."""


@dataclass(frozen=True)
class FullCopyStepOutput:
    pass


@dataclass(frozen=True)
class OpenStepInEditor:
    pass


@dataclass(frozen=True)
class AnnotationNext:
    pass


@dataclass(frozen=True)
class AnnotationPrevious:
    pass


@dataclass(frozen=True)
class ToggleAnnotationSelection:
    pass


@dataclass(frozen=True)
class CopyAnnotations:
    pass


# -- Messages: preview ------------------------------------------------------


@dataclass(frozen=True)
class OpenPreviewView:
    pass


@dataclass(frozen=True)
class ClosePreviewView:
    pass


@dataclass(frozen=True)
class PreviewScrollUp:
    """Scroll by ``lines``, or half a page when unset."""

    lines: int | None = None


@dataclass(frozen=True)
class PreviewScrollDown:
    lines: int | None = None


@dataclass(frozen=True)
class PreviewNextSection:
    pass


@dataclass(frozen=True)
class PreviewPreviousSection:
    pass


@dataclass(frozen=True)
class PreviewGoToTop:
    pass


@dataclass(frozen=True)
class PreviewGoToBottom:
    pass


# -- Messages: fetch results ------------------------------------------------


@dataclass(frozen=True)
class PullRequestsFetched:
    filter: PrFilter
    prs: list[PullRequest]


@dataclass(frozen=True)
class PullRequestsFetchFailed:
    filter: PrFilter
    error: str


@dataclass(frozen=True)
class ActionsFetched:
    pr_number: int
    data: ActionsData


@dataclass(frozen=True)
class ActionsFetchFailed:
    pr_number: int
    error: str


@dataclass(frozen=True)
class JobLogsFetched:
    job_id: int
    logs: JobLogs
    # Set for CircleCI results; commit-status jobs all share id 0
    job_number: int | None = None


@dataclass(frozen=True)
class JobLogsFetchFailed:
    job_id: int
    error: str
    job_number: int | None = None


@dataclass(frozen=True)
class PreviewFetched:
    pr_number: int
    data: PreviewData


@dataclass(frozen=True)
class PreviewFetchFailed:
    pr_number: int
    error: str


# -- Messages: system -------------------------------------------------------


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class EditorFinished:
    """The host ran the external editor; error is set if it failed."""

    error: str | None = None


@dataclass(frozen=True)
class Quit:
    pass


Message = (
    NextItem
    | PreviousItem
    | GoToTop
    | GoToBottom
    | SwitchTab
    | NextTab
    | PreviousTab
    | OpenSelected
    | PromptCheckout
    | ConfirmCheckout
    | CancelCheckout
    | Refresh
    | EnterSearchMode
    | ExitSearchMode
    | SearchInput
    | SearchBackspace
    | ToggleHelp
    | DismissHelp
    | DismissError
    | DismissUrlPopup
    | OpenLabelsPopup
    | CloseLabelsPopup
    | LabelsNext
    | LabelsPrevious
    | DeleteSelectedLabel
    | OpenAddLabel
    | CloseAddLabel
    | AddLabelInput
    | AddLabelBackspace
    | ToggleLabelScope
    | ConfirmAddLabel
    | OpenWorkflowsView
    | CloseWorkflowsView
    | RefreshActions
    | ActionsNextJob
    | ActionsPreviousJob
    | OpenActionsInBrowser
    | OpenJobLogs
    | CloseJobLogs
    | JobLogsScrollUp
    | JobLogsScrollDown
    | JobLogsNextStep
    | JobLogsPreviousStep
    | JobLogsToggleStep
    | CopyJobLogs
    | CopyTestFailures
    | FullCopyStepOutput
    | OpenStepInEditor
    | AnnotationNext
    | AnnotationPrevious
    | ToggleAnnotationSelection
    | CopyAnnotations
    | OpenPreviewView
    | ClosePreviewView
    | PreviewScrollUp
    | PreviewScrollDown
    | PreviewNextSection
    | PreviewPreviousSection
    | PreviewGoToTop
    | PreviewGoToBottom
    | PullRequestsFetched
    | PullRequestsFetchFailed
    | ActionsFetched
    | ActionsFetchFailed
    | JobLogsFetched
    | JobLogsFetchFailed
    | PreviewFetched
    | PreviewFetchFailed
    | Resize
    | Tick
    | EditorFinished
    | Quit
)


# -- Commands ---------------------------------------------------------------


@dataclass(frozen=True)
class QuitApp:
    pass


@dataclass(frozen=True)
class ExitAfterCheckout:
    branch: str


@dataclass(frozen=True)
class StartFetch:
    filter: PrFilter


@dataclass(frozen=True)
class StartActionsFetch:
    owner: str
    repo: str
    pr_number: int
    head_sha: str


@dataclass(frozen=True)
class StartJobLogsFetch:
    owner: str
    repo: str
    job_id: int
    job_name: str

    @property
    def job_number(self) -> int | None:
        return None


@dataclass(frozen=True)
class StartCircleCIJobLogsFetch:
    owner: str
    repo: str
    job_number: int
    job_id: int
    job_name: str


@dataclass(frozen=True)
class StartPreviewFetch:
    owner: str
    repo: str
    pr_number: int


@dataclass(frozen=True)
class OpenInEditor:
    content: str
    filename: str


Command = (
    QuitApp
    | ExitAfterCheckout
    | StartFetch
    | StartActionsFetch
    | StartJobLogsFetch
    | StartCircleCIJobLogsFetch
    | StartPreviewFetch
    | OpenInEditor
)
