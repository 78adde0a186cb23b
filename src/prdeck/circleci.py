"""CircleCI job log backend.

Uses the v1.1 job details endpoint, which lists each step's actions with
presigned output URLs. Outputs are fetched concurrently and only then
assembled into a step tree.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import httpx

from prdeck.errors import CircleCIError
from prdeck.log import log
from prdeck.models import JobLogs
from prdeck.steps import RawAction, RawStep, reconstruct_steps, summarize

API_V1_BASE = "https://circleci.com/api/v1.1"

_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def is_circleci_url(url: str | None) -> bool:
    return bool(url) and "circleci.com" in url


def extract_job_number_from_url(url: str) -> int | None:
    """Extract the build number from a CircleCI details URL.

    Handles legacy ``https://circleci.com/gh/o/r/123`` URLs and
    ``.../workflows/<id>/jobs/456`` URLs. Pipeline-level URLs without a
    ``/jobs/`` segment carry a pipeline number, not a build number, so they
    yield None.
    """
    if not is_circleci_url(url):
        return None
    path = url.split("?", 1)[0].split("#", 1)[0]

    if "/jobs/" in path:
        match = re.match(r"\d+", path.split("/jobs/", 1)[1])
        if match:
            return int(match.group())

    if "/pipelines/" in path:
        return None

    for segment in reversed([s for s in path.rstrip("/").split("/") if s]):
        if segment.isdigit():
            return int(segment)
    return None


def parse_step_output(text: str) -> str:
    """Decode a step output payload (JSON message list, single object or plain text)."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, list):
        output = "".join(
            item.get("message") or "" for item in data if isinstance(item, dict)
        )
        if output:
            return strip_ansi(output)
    elif isinstance(data, dict):
        message = data.get("message") or data.get("output")
        if message:
            return strip_ansi(message)

    if text.strip() and not text.startswith(("{", "[")):
        return strip_ansi(text)
    return ""


class CircleCIClient:
    """Minimal async client for the endpoints prdeck needs."""

    def __init__(
        self,
        token: str,
        base_url: str = API_V1_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"Circle-Token": self.token, "Accept": "application/json"},
            transport=self.transport,
            timeout=self.timeout,
            follow_redirects=True,
        )

    async def job_details(self, owner: str, repo: str, job_number: int) -> dict[str, Any]:
        url = f"{self.base_url}/project/github/{owner}/{repo}/{job_number}"
        async with self._client() as client:
            try:
                resp = await client.get(url)
            except httpx.HTTPError as e:
                raise CircleCIError(f"Request to {url} failed: {e}") from e
        if not resp.is_success:
            raise CircleCIError(f"{resp.status_code} {resp.reason_phrase}: {resp.text[:200]}")
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise CircleCIError(f"Invalid JSON from {url}: {e}") from e

    async def step_output(self, client: httpx.AsyncClient, output_url: str) -> str:
        # Output URLs are presigned; a failed status just means no output
        resp = await client.get(output_url)
        if not resp.is_success:
            return ""
        return parse_step_output(resp.text)


async def _fetch_outputs(
    client: CircleCIClient, urls: list[str]
) -> list[str | BaseException]:
    async with client._client() as http:
        return await asyncio.gather(
            *(client.step_output(http, url) for url in urls), return_exceptions=True
        )


def _raw_steps(details: dict[str, Any]) -> list[RawStep]:
    raw_steps = []
    for step in details.get("steps") or []:
        actions = [
            RawAction(
                status=action.get("status"),
                exit_code=action.get("exit_code"),
                has_output=bool(action.get("output_url")),
            )
            for action in step.get("actions") or []
        ]
        raw_steps.append(RawStep(name=step.get("name") or "(unnamed step)", actions=actions))
    return raw_steps


async def fetch_circleci_job_logs(
    owner: str,
    repo: str,
    job_number: int,
    job_name: str,
    token: str,
    job_id: int | None = None,
    client: CircleCIClient | None = None,
) -> JobLogs:
    """Fetch a CircleCI job's steps with their outputs.

    ``job_id`` is the id the logs are reported under (the check run id the
    view opened); it defaults to the CircleCI job number.
    """
    if not token:
        raise CircleCIError("CIRCLECI_TOKEN is not set")
    client = client or CircleCIClient(token)
    log(f"circleci: fetching {owner}/{repo} job {job_number} ({job_name})")

    details = await client.job_details(owner, repo, job_number)
    raw_steps = _raw_steps(details)

    # Collect every output URL, fetch them all at once, then map back
    coords: list[tuple[int, int]] = []
    urls: list[str] = []
    for i, step in enumerate(details.get("steps") or []):
        for j, action in enumerate(step.get("actions") or []):
            if action.get("output_url"):
                coords.append((i, j))
                urls.append(action["output_url"])

    results = await _fetch_outputs(client, urls) if urls else []
    for (i, j), result in zip(coords, results):
        action = raw_steps[i].actions[j]
        if isinstance(result, BaseException):
            action.fetch_error = str(result) or type(result).__name__
        else:
            action.output = result

    steps = reconstruct_steps(raw_steps)
    log(f"circleci: job {job_number} has {len(steps)} top-level steps")
    return JobLogs(
        job_id=job_id if job_id is not None else job_number,
        job_name=job_name,
        content=summarize(steps),
        steps=steps or None,
    )
