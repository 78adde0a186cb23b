"""Background fetch workers.

One worker thread per resource kind. Each owns a request queue and a
result queue, services one request at a time and emits exactly one
result Message per request. Nothing is ever cancelled; results carry the
context they were requested for so the update engine can decide whether
they still matter.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from prdeck import circleci, github
from prdeck import messages as m
from prdeck.log import log

_STOP = object()

Handler = Callable[[Any], Awaitable["m.Message"]]
ErrorHandler = Callable[[Any, Exception], "m.Message"]


class FetchWorker:
    """Single-consumer request loop running on a daemon thread."""

    def __init__(self, name: str, handler: Handler, on_error: ErrorHandler):
        self.name = name
        self._handler = handler
        self._on_error = on_error
        self._requests: queue.Queue[Any] = queue.Queue()
        self._results: queue.Queue[m.Message] = queue.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=f"prdeck-{self.name}", daemon=True)
        self._thread.start()

    def submit(self, request: Any) -> None:
        """Enqueue a request. Never blocks."""
        self._requests.put_nowait(request)

    def poll(self) -> list[m.Message]:
        """Drain every result that is ready, without waiting."""
        results = []
        while True:
            try:
                results.append(self._results.get_nowait())
            except queue.Empty:
                return results

    def stop(self, timeout: float | None = None) -> None:
        self._requests.put_nowait(_STOP)
        if self._thread is not None:
            self._thread.join(timeout)

    def process(self, request: Any) -> m.Message:
        """Service one request synchronously, converting failures to a Message."""
        try:
            return asyncio.run(self._handler(request))
        except Exception as e:
            log(f"{self.name} worker: {type(request).__name__} failed: {e}")
            return self._on_error(request, e)

    def _run(self) -> None:
        log(f"{self.name} worker started")
        while True:
            request = self._requests.get()
            if request is _STOP:
                break
            self._results.put(self.process(request))
        log(f"{self.name} worker stopped")


@dataclass
class Fetchers:
    """The async collaborators the workers call. Tests swap in fakes."""

    pull_requests: Callable[..., Awaitable[Any]] = github.fetch_pull_requests
    checks: Callable[..., Awaitable[Any]] = github.fetch_checks_for_pr
    job_logs: Callable[..., Awaitable[Any]] = github.fetch_job_logs
    circleci_job_logs: Callable[..., Awaitable[Any]] = circleci.fetch_circleci_job_logs
    preview: Callable[..., Awaitable[Any]] = github.fetch_preview


@dataclass
class FetchPipeline:
    """The four workers plus routing from Commands to them."""

    owner: str
    repo: str
    fetchers: Fetchers = field(default_factory=Fetchers)
    circleci_token: str | None = None

    def __post_init__(self) -> None:
        self.prs = FetchWorker(
            "prs",
            self._fetch_prs,
            lambda cmd, e: m.PullRequestsFetchFailed(cmd.filter, str(e)),
        )
        self.actions = FetchWorker(
            "actions",
            self._fetch_actions,
            lambda cmd, e: m.ActionsFetchFailed(cmd.pr_number, str(e)),
        )
        self.job_logs = FetchWorker(
            "job-logs",
            self._fetch_job_logs,
            lambda cmd, e: m.JobLogsFetchFailed(cmd.job_id, str(e), cmd.job_number),
        )
        self.preview = FetchWorker(
            "preview",
            self._fetch_preview,
            lambda cmd, e: m.PreviewFetchFailed(cmd.pr_number, str(e)),
        )

    @property
    def workers(self) -> tuple[FetchWorker, ...]:
        return (self.prs, self.actions, self.job_logs, self.preview)

    def start(self) -> None:
        for worker in self.workers:
            worker.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        for worker in self.workers:
            worker.stop(timeout)

    def submit(self, command: m.Command) -> bool:
        """Route a fetch command to its worker. Returns False for other commands."""
        if isinstance(command, m.StartFetch):
            self.prs.submit(command)
        elif isinstance(command, m.StartActionsFetch):
            self.actions.submit(command)
        elif isinstance(command, (m.StartJobLogsFetch, m.StartCircleCIJobLogsFetch)):
            self.job_logs.submit(command)
        elif isinstance(command, m.StartPreviewFetch):
            self.preview.submit(command)
        else:
            return False
        return True

    def drain(self) -> list[m.Message]:
        results: list[m.Message] = []
        for worker in self.workers:
            results.extend(worker.poll())
        return results

    async def _fetch_prs(self, cmd: m.StartFetch) -> m.Message:
        prs = await self.fetchers.pull_requests(cmd.filter, self.owner, self.repo)
        return m.PullRequestsFetched(cmd.filter, prs)

    async def _fetch_actions(self, cmd: m.StartActionsFetch) -> m.Message:
        data = await self.fetchers.checks(cmd.owner, cmd.repo, cmd.pr_number, cmd.head_sha)
        return m.ActionsFetched(cmd.pr_number, data)

    async def _fetch_job_logs(
        self, cmd: m.StartJobLogsFetch | m.StartCircleCIJobLogsFetch
    ) -> m.Message:
        if isinstance(cmd, m.StartCircleCIJobLogsFetch):
            logs = await self.fetchers.circleci_job_logs(
                cmd.owner,
                cmd.repo,
                cmd.job_number,
                cmd.job_name,
                self.circleci_token or "",
                job_id=cmd.job_id,
            )
        else:
            logs = await self.fetchers.job_logs(cmd.owner, cmd.repo, cmd.job_id, cmd.job_name)
        return m.JobLogsFetched(cmd.job_id, logs, job_number=cmd.job_number)

    async def _fetch_preview(self, cmd: m.StartPreviewFetch) -> m.Message:
        data = await self.fetchers.preview(cmd.owner, cmd.repo, cmd.pr_number)
        return m.PreviewFetched(cmd.pr_number, data)
