from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from prdeck.circleci import (
    CircleCIClient,
    extract_job_number_from_url,
    fetch_circleci_job_logs,
    parse_step_output,
    strip_ansi,
)
from prdeck.errors import CircleCIError


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://circleci.com/gh/acme/widgets/123", 123),
        ("https://circleci.com/gh/acme/widgets/123?utm_source=github", 123),
        ("https://app.circleci.com/pipelines/github/acme/widgets/9/workflows/ab-12/jobs/456", 456),
        ("https://app.circleci.com/pipelines/github/acme/widgets/9", None),
        ("https://github.com/acme/widgets/runs/1", None),
    ],
)
def test_extract_job_number_from_url(url, expected):
    assert extract_job_number_from_url(url) == expected


def test_strip_ansi():
    assert strip_ansi("\x1b[31mred\x1b[0m plain \x1b]0;title\x07") == "red plain "


def test_parse_step_output_message_list():
    payload = json.dumps([{"message": "line 1\n"}, {"message": "\x1b[32mline 2\x1b[0m"}, {"type": "out"}])
    assert parse_step_output(payload) == "line 1\nline 2"


def test_parse_step_output_fallbacks():
    assert parse_step_output(json.dumps({"message": "single"})) == "single"
    assert parse_step_output("plain text") == "plain text"
    assert parse_step_output("{not json") == ""
    assert parse_step_output("") == ""


def details_for(steps):
    return {"steps": steps}


def action(index, status="success", exit_code=0, output=True):
    return {
        "index": index,
        "status": status,
        "exit_code": exit_code,
        "output_url": f"https://output.example/{index}-{status}" if output else None,
    }


def make_client(details, outputs, failing=()):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "circleci.com":
            assert request.headers["Circle-Token"] == "tok"
            return httpx.Response(200, json=details)
        url = str(request.url)
        if url in failing:
            raise httpx.ConnectError("connection reset", request=request)
        return httpx.Response(200, json=[{"message": outputs.get(url, "")}])

    return CircleCIClient("tok", transport=httpx.MockTransport(handler))


def test_parallel_job_becomes_containers():
    details = details_for(
        [
            {"name": "Spin up environment", "actions": [action(0), action(1)]},
            {"name": "Run tests", "actions": [action(0), action(1, "failed", 1)]},
        ]
    )
    outputs = {
        "https://output.example/1-failed": "  1) Failure:\nUserTest#test_x\n",
        "https://output.example/0-success": "ok",
    }
    client = make_client(details, outputs)

    logs = asyncio.run(
        fetch_circleci_job_logs("acme", "widgets", 321, "rspec", "tok", job_id=55, client=client)
    )

    assert logs.job_id == 55
    assert [c.name for c in logs.steps] == ["Container 0", "Container 1"]
    assert not logs.steps[0].is_failed
    failed = logs.steps[1].sub_steps[1]
    assert failed.is_failed
    assert failed.output == "1) Failure:\nUserTest#test_x"


def test_output_fetch_error_is_recorded_per_action():
    details = details_for([{"name": "Build", "actions": [action(0)]}])
    client = make_client(details, {}, failing={"https://output.example/0-success"})

    logs = asyncio.run(fetch_circleci_job_logs("acme", "widgets", 7, "build", "tok", client=client))

    (step,) = logs.steps
    assert step.output.startswith("(Failed to fetch output: ")
    assert logs.job_id == 7


def test_details_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="Not Found")

    client = CircleCIClient("tok", transport=httpx.MockTransport(handler))

    with pytest.raises(CircleCIError, match="404"):
        asyncio.run(fetch_circleci_job_logs("acme", "widgets", 7, "build", "tok", client=client))


def test_missing_token_raises():
    with pytest.raises(CircleCIError):
        asyncio.run(fetch_circleci_job_logs("acme", "widgets", 7, "build", ""))
