"""Translate key presses into messages for the current screen."""

from __future__ import annotations

from prdeck import messages as m
from prdeck.models import FilterKind
from prdeck.state import AppState, LogsMode, PopupKind

# Keys as read from a cbreak terminal
KEY_UP = "\x1b[A"
KEY_DOWN = "\x1b[B"
KEY_ESC = "\x1b"
KEY_TAB = "\t"
KEY_BACKTAB = "\x1b[Z"
KEY_CTRL_D = "\x04"
KEY_CTRL_U = "\x15"
ENTER_KEYS = ("\r", "\n")
BACKSPACE_KEYS = ("\x7f", "\x08")


def _is_char(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


def _popup_message(popup: PopupKind, key: str) -> m.Message | None:
    if popup == PopupKind.HELP:
        return m.DismissHelp()
    if popup == PopupKind.CHECKOUT:
        if key == "y" or key in ENTER_KEYS:
            return m.ConfirmCheckout()
        if key in ("n", KEY_ESC):
            return m.CancelCheckout()
        return None
    if key in (KEY_ESC, "q") or key in ENTER_KEYS:
        return m.DismissError() if popup == PopupKind.ERROR else m.DismissUrlPopup()
    return None


def _job_logs_message(mode: LogsMode, key: str) -> m.Message | None:
    if key in (KEY_ESC, "q"):
        return m.CloseJobLogs()
    if key == "o":
        return m.OpenActionsInBrowser()
    down = key in ("j", KEY_DOWN)
    up = key in ("k", KEY_UP)

    if mode == LogsMode.ANNOTATIONS:
        if down:
            return m.AnnotationNext()
        if up:
            return m.AnnotationPrevious()
        if key in ("v", " "):
            return m.ToggleAnnotationSelection()
        if key == "y":
            return m.CopyAnnotations()
        return None

    if mode == LogsMode.STEPS:
        if down:
            return m.JobLogsNextStep()
        if up:
            return m.JobLogsPreviousStep()
        if key == " ":
            return m.JobLogsToggleStep()
        if key in ENTER_KEYS:
            return m.OpenStepInEditor()
    else:
        if down:
            return m.JobLogsScrollDown()
        if up:
            return m.JobLogsScrollUp()

    if key == "y":
        return m.CopyTestFailures()
    if key == "x":
        return m.FullCopyStepOutput()
    return None


def _workflows_message(key: str) -> m.Message | None:
    return {
        KEY_ESC: m.CloseWorkflowsView(),
        "q": m.CloseWorkflowsView(),
        "j": m.ActionsNextJob(),
        KEY_DOWN: m.ActionsNextJob(),
        "k": m.ActionsPreviousJob(),
        KEY_UP: m.ActionsPreviousJob(),
        "r": m.RefreshActions(),
        "o": m.OpenActionsInBrowser(),
        "\r": m.OpenJobLogs(),
        "\n": m.OpenJobLogs(),
    }.get(key)


def _preview_message(key: str) -> m.Message | None:
    return {
        KEY_CTRL_D: m.PreviewScrollDown(),
        KEY_CTRL_U: m.PreviewScrollUp(),
        KEY_ESC: m.ClosePreviewView(),
        "q": m.ClosePreviewView(),
        "j": m.PreviewScrollDown(1),
        KEY_DOWN: m.PreviewScrollDown(1),
        "k": m.PreviewScrollUp(1),
        KEY_UP: m.PreviewScrollUp(1),
        "n": m.PreviewNextSection(),
        "N": m.PreviewPreviousSection(),
        "g": m.PreviewGoToTop(),
        "G": m.PreviewGoToBottom(),
        "o": m.OpenSelected(),
    }.get(key)


def _add_label_message(key: str) -> m.Message | None:
    if key == KEY_ESC:
        return m.CloseAddLabel()
    if key in ENTER_KEYS:
        return m.ConfirmAddLabel()
    if key in BACKSPACE_KEYS:
        return m.AddLabelBackspace()
    if key == KEY_TAB:
        return m.ToggleLabelScope()
    if _is_char(key):
        return m.AddLabelInput(key)
    return None


def _labels_message(key: str) -> m.Message | None:
    if key == KEY_ESC:
        return m.CloseLabelsPopup()
    if key == "a":
        return m.OpenAddLabel()
    if key == "d" or key in BACKSPACE_KEYS:
        return m.DeleteSelectedLabel()
    if key in ("j", KEY_DOWN):
        return m.LabelsNext()
    if key in ("k", KEY_UP):
        return m.LabelsPrevious()
    return None


def _search_message(key: str) -> m.Message | None:
    if key == KEY_ESC:
        return m.ExitSearchMode(clear=True)
    if key in ENTER_KEYS:
        return m.ExitSearchMode(clear=False)
    if key in BACKSPACE_KEYS:
        return m.SearchBackspace()
    if key in (KEY_DOWN, KEY_TAB):
        return m.NextItem()
    if key in (KEY_UP, KEY_BACKTAB):
        return m.PreviousItem()
    if _is_char(key):
        return m.SearchInput(key)
    return None


def _normal_message(state: AppState, key: str) -> m.Message | None:
    if key == KEY_ESC:
        return m.ExitSearchMode(clear=True) if state.search_query else None
    if key in ENTER_KEYS:
        return m.OpenPreviewView()
    if key in ("1", "2", "3"):
        kind = (FilterKind.MY_PRS, FilterKind.REVIEW_REQUESTED, FilterKind.LABELS)[int(key) - 1]
        return m.SwitchTab(state.filter_for(kind))
    return {
        "q": m.Quit(),
        "/": m.EnterSearchMode(),
        "j": m.NextItem(),
        KEY_DOWN: m.NextItem(),
        "k": m.PreviousItem(),
        KEY_UP: m.PreviousItem(),
        KEY_TAB: m.NextTab(),
        KEY_BACKTAB: m.PreviousTab(),
        "o": m.OpenSelected(),
        "p": m.OpenPreviewView(),
        "c": m.PromptCheckout(),
        "r": m.Refresh(),
        "?": m.ToggleHelp(),
        "l": m.OpenLabelsPopup(),
        "w": m.OpenWorkflowsView(),
        "g": m.GoToTop(),
        "G": m.GoToBottom(),
    }.get(key)


def key_to_message(state: AppState, key: str) -> m.Message | None:
    """Map a key to a message.

    Precedence: modal popups, then the job log view, the workflows view,
    the preview, the label popups, search mode and finally the list.
    """
    popup = state.active_popup
    if popup in (PopupKind.HELP, PopupKind.CHECKOUT, PopupKind.ERROR, PopupKind.URL):
        return _popup_message(popup, key)

    workflows = state.workflows
    if workflows is not None and workflows.job_logs is not None:
        return _job_logs_message(workflows.job_logs.mode, key)
    if workflows is not None:
        return _workflows_message(key)
    if state.preview is not None:
        return _preview_message(key)

    if popup == PopupKind.ADD_LABEL:
        return _add_label_message(key)
    if popup == PopupKind.LABELS:
        return _labels_message(key)
    if state.search_mode:
        return _search_message(key)
    return _normal_message(state, key)
