"""Domain model shared by the fetchers, the cache and the update engine.

Provider strings are parsed into these closed enumerations at the
collaborator boundary; nothing past it looks at raw API values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CiStatus(Enum):
    """Rolled-up CI state of a PR's head commit."""

    UNKNOWN = "unknown"
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

    @classmethod
    def parse(cls, value: str | None) -> CiStatus:
        """Parse a GitHub rollup state or a cached value."""
        normalized = (value or "").upper()
        if normalized in ("PENDING", "EXPECTED"):
            return cls.PENDING
        if normalized == "SUCCESS":
            return cls.SUCCESS
        if normalized in ("FAILURE", "ERROR"):
            return cls.FAILURE
        return cls.UNKNOWN

    @property
    def display(self) -> str:
        return {
            CiStatus.UNKNOWN: "N/A",
            CiStatus.PENDING: "● Pending",
            CiStatus.SUCCESS: "✓ Passing",
            CiStatus.FAILURE: "✗ Failing",
        }[self]

    @property
    def style(self) -> str:
        return {
            CiStatus.UNKNOWN: "dim",
            CiStatus.PENDING: "yellow",
            CiStatus.SUCCESS: "green",
            CiStatus.FAILURE: "red",
        }[self]


class FilterKind(Enum):
    """The three PR list tabs."""

    MY_PRS = "my_prs"
    REVIEW_REQUESTED = "review_requested"
    LABELS = "labels"


@dataclass(frozen=True)
class PrFilter:
    """Which PR list to show or fetch.

    Only the LABELS kind carries labels; they are part of its identity.
    """

    kind: FilterKind
    labels: tuple[str, ...] = ()

    @classmethod
    def my_prs(cls) -> PrFilter:
        return cls(FilterKind.MY_PRS)

    @classmethod
    def review_requested(cls) -> PrFilter:
        return cls(FilterKind.REVIEW_REQUESTED)

    @classmethod
    def with_labels(cls, labels: list[str] | tuple[str, ...]) -> PrFilter:
        return cls(FilterKind.LABELS, tuple(labels))

    @property
    def cache_key(self) -> str:
        """Key used for the cache table's filter column."""
        if self.kind == FilterKind.LABELS:
            return "labels:" + ",".join(sorted(set(self.labels)))
        return self.kind.value

    @property
    def title(self) -> str:
        return {
            FilterKind.MY_PRS: "My PRs",
            FilterKind.REVIEW_REQUESTED: "Review Requested",
            FilterKind.LABELS: "Labels",
        }[self.kind]


@dataclass
class PullRequest:
    """A pull request row in one of the lists."""

    number: int
    title: str
    branch: str
    repo_owner: str
    repo_name: str
    author: str
    ci_status: CiStatus = CiStatus.UNKNOWN
    # Not cached; only known after a fresh fetch
    head_sha: str | None = None

    @property
    def url(self) -> str:
        return f"https://github.com/{self.repo_owner}/{self.repo_name}/pull/{self.number}"


@dataclass
class LabelFilter:
    """A configured label tab entry. No owner/repo means global."""

    id: int
    label_name: str
    repo_owner: str | None = None
    repo_name: str | None = None

    @property
    def is_global(self) -> bool:
        return self.repo_owner is None and self.repo_name is None


class WorkflowStatus(Enum):
    """Execution status of a run or job."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAITING = "waiting"
    REQUESTED = "requested"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> WorkflowStatus:
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class WorkflowConclusion(Enum):
    """Outcome of a completed run or job."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    NEUTRAL = "neutral"
    STALE = "stale"
    STARTUP_FAILURE = "startup_failure"
    NONE = "none"

    @classmethod
    def parse(cls, value: str | None) -> WorkflowConclusion | None:
        if value is None:
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return cls.NONE

    @property
    def is_failure(self) -> bool:
        return self in (
            WorkflowConclusion.FAILURE,
            WorkflowConclusion.TIMED_OUT,
            WorkflowConclusion.STARTUP_FAILURE,
        )


class AnnotationLevel(Enum):
    """Severity of a check annotation."""

    NOTICE = "notice"
    WARNING = "warning"
    FAILURE = "failure"

    @classmethod
    def parse(cls, value: str | None) -> AnnotationLevel:
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.NOTICE


@dataclass
class CheckAnnotation:
    """A structured finding attached to a check run."""

    path: str
    start_line: int
    end_line: int
    level: AnnotationLevel
    message: str
    title: str | None = None

    @property
    def location(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.path}:{self.start_line}"
        return f"{self.path}:{self.start_line}-{self.end_line}"


@dataclass
class WorkflowJob:
    """A single check run / CI job."""

    id: int
    name: str
    status: WorkflowStatus
    conclusion: WorkflowConclusion | None = None
    started_at: str | None = None
    completed_at: str | None = None
    details_url: str | None = None
    summary: str | None = None
    text: str | None = None
    annotations: list[CheckAnnotation] = field(default_factory=list)

    @property
    def is_running(self) -> bool:
        return self.status != WorkflowStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return (
            self.status == WorkflowStatus.COMPLETED
            and self.conclusion is not None
            and self.conclusion.is_failure
        )


@dataclass
class WorkflowRun:
    """A check suite or workflow run owning jobs."""

    id: int
    name: str
    status: WorkflowStatus
    conclusion: WorkflowConclusion | None = None
    html_url: str = ""
    jobs: list[WorkflowJob] = field(default_factory=list)


@dataclass
class ActionsData:
    """All CI data for one PR."""

    pr_number: int
    workflow_runs: list[WorkflowRun] = field(default_factory=list)

    @property
    def jobs(self) -> list[WorkflowJob]:
        """Jobs across all runs, in display order."""
        return [job for run in self.workflow_runs for job in run.jobs]

    def run_for_job(self, index: int) -> WorkflowRun | None:
        for run in self.workflow_runs:
            if index < len(run.jobs):
                return run
            index -= len(run.jobs)
        return None

    @property
    def has_running_jobs(self) -> bool:
        return any(job.is_running for job in self.jobs)


@dataclass
class JobStep:
    """A step of a job's log; containers carry sub_steps."""

    name: str
    status: str
    output: str
    is_failed: bool
    sub_steps: list[JobStep] | None = None


@dataclass
class JobLogs:
    """A job's log: plain content, optionally structured as steps."""

    job_id: int
    job_name: str
    content: str
    steps: list[JobStep] | None = None


@dataclass
class PrComment:
    """One entry of the preview stream (description, comment or review)."""

    author: str
    body: str
    created_at: str
    is_pr_body: bool = False


@dataclass
class PreviewData:
    """PR description plus its chronologically merged comments."""

    pr_number: int
    title: str
    comments: list[PrComment] = field(default_factory=list)
