from __future__ import annotations

import pytest

from prdeck import messages as m
from prdeck.models import ActionsData, JobLogs, PreviewData, PrFilter
from prdeck.pipeline import Fetchers, FetchPipeline, FetchWorker
from tests.factories import make_pr


async def echo(request):
    return request


def test_worker_emits_one_result_per_request_in_order():
    worker = FetchWorker("echo", echo, lambda request, e: ("failed", request))
    worker.start()
    for i in range(5):
        worker.submit(i)

    # The stop marker queues behind the requests, so join waits for all of them
    worker.stop(timeout=5)

    assert worker.poll() == [0, 1, 2, 3, 4]
    assert worker.poll() == []


def test_handler_failure_becomes_failure_message():
    async def broken(request):
        raise RuntimeError(f"cannot fetch {request}")

    worker = FetchWorker("broken", broken, lambda request, e: ("failed", request, str(e)))

    assert worker.process("x") == ("failed", "x", "cannot fetch x")


def test_failure_does_not_stop_the_worker():
    async def flaky(request):
        if request == "bad":
            raise ValueError("nope")
        return request

    worker = FetchWorker("flaky", flaky, lambda request, e: "failed")
    worker.start()
    for request in ("a", "bad", "b"):
        worker.submit(request)
    worker.stop(timeout=5)

    assert worker.poll() == ["a", "failed", "b"]


class FakeFetchers:
    def __init__(self):
        self.calls = []

    async def pull_requests(self, pr_filter, owner, repo):
        self.calls.append(("prs", pr_filter, owner, repo))
        return [make_pr(1)]

    async def checks(self, owner, repo, pr_number, head_sha):
        self.calls.append(("checks", owner, repo, pr_number, head_sha))
        return ActionsData(pr_number=pr_number)

    async def job_logs(self, owner, repo, job_id, job_name):
        self.calls.append(("job_logs", job_id, job_name))
        return JobLogs(job_id, job_name, "log")

    async def circleci_job_logs(self, owner, repo, job_number, job_name, token, job_id=0):
        self.calls.append(("circleci", job_number, job_name, token, job_id))
        return JobLogs(job_id, job_name, "circle log")

    async def preview(self, owner, repo, pr_number):
        self.calls.append(("preview", pr_number))
        return PreviewData(pr_number, "title")

    def build(self) -> Fetchers:
        return Fetchers(
            pull_requests=self.pull_requests,
            checks=self.checks,
            job_logs=self.job_logs,
            circleci_job_logs=self.circleci_job_logs,
            preview=self.preview,
        )


@pytest.fixture
def fakes() -> FakeFetchers:
    return FakeFetchers()


@pytest.fixture
def pipeline(fakes: FakeFetchers) -> FetchPipeline:
    return FetchPipeline("acme", "widgets", fakes.build(), circleci_token="tok")


def test_pr_fetch_result_carries_filter(pipeline: FetchPipeline, fakes: FakeFetchers):
    pr_filter = PrFilter.with_labels(["bug"])

    result = pipeline.prs.process(m.StartFetch(pr_filter))

    assert isinstance(result, m.PullRequestsFetched)
    assert result.filter == pr_filter
    assert fakes.calls == [("prs", pr_filter, "acme", "widgets")]


def test_circleci_command_uses_token_and_job_id(pipeline: FetchPipeline, fakes: FakeFetchers):
    command = m.StartCircleCIJobLogsFetch("acme", "widgets", 321, 55, "rspec")

    result = pipeline.job_logs.process(command)

    assert result == m.JobLogsFetched(55, JobLogs(55, "rspec", "circle log"), job_number=321)
    assert fakes.calls == [("circleci", 321, "rspec", "tok", 55)]


def test_actions_failure_is_tagged_with_pr(fakes: FakeFetchers):
    async def failing_checks(owner, repo, pr_number, head_sha):
        raise RuntimeError("No commit data found")

    fetchers = fakes.build()
    fetchers.checks = failing_checks
    pipeline = FetchPipeline("acme", "widgets", fetchers)

    result = pipeline.actions.process(m.StartActionsFetch("acme", "widgets", 7, "abc"))

    assert result == m.ActionsFetchFailed(7, "No commit data found")


def test_submit_routes_commands_to_workers(pipeline: FetchPipeline, fakes: FakeFetchers):
    commands = [
        m.StartFetch(PrFilter.my_prs()),
        m.StartActionsFetch("acme", "widgets", 7, "abc"),
        m.StartJobLogsFetch("acme", "widgets", 99, "test"),
        m.StartPreviewFetch("acme", "widgets", 7),
    ]
    pipeline.start()
    for command in commands:
        assert pipeline.submit(command)
    pipeline.stop(timeout=5)

    results = pipeline.drain()

    assert sorted(type(r).__name__ for r in results) == [
        "ActionsFetched",
        "JobLogsFetched",
        "PreviewFetched",
        "PullRequestsFetched",
    ]
    assert {call[0] for call in fakes.calls} == {"prs", "checks", "job_logs", "preview"}


def test_submit_rejects_non_fetch_commands(pipeline: FetchPipeline):
    assert not pipeline.submit(m.QuitApp())
    assert not pipeline.submit(m.OpenInEditor("text", "out.log"))
