"""GitHub CLI wrapper for prdeck.

Everything goes through ``gh`` so prdeck reuses the user's gh auth.
GraphQL responses are parsed into domain types here; nothing past this
module sees raw API strings.
"""

from __future__ import annotations

import json
import re
import subprocess
from typing import Any

import anyio

from prdeck.errors import GitHubError
from prdeck.log import log
from prdeck.models import (
    ActionsData,
    AnnotationLevel,
    CheckAnnotation,
    CiStatus,
    FilterKind,
    JobLogs,
    PrComment,
    PreviewData,
    PrFilter,
    PullRequest,
    WorkflowConclusion,
    WorkflowJob,
    WorkflowRun,
    WorkflowStatus,
)
from prdeck.steps import RawAction, RawStep, reconstruct_steps

PAGE_SIZE = 100
MAX_RESULTS = 500

SEARCH_QUERY = """
query($queryString: String!, $after: String) {
  search(query: $queryString, type: ISSUE, first: 100, after: $after) {
    nodes {
      __typename
      ... on PullRequest {
        number
        title
        headRefName
        author { login }
        commits(last: 1) {
          nodes { commit { oid statusCheckRollup { state } } }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

CHECKS_QUERY = """
query($owner: String!, $repo: String!, $prNumber: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      commits(last: 1) {
        nodes {
          commit {
            checkSuites(first: 50) {
              nodes {
                app { name }
                conclusion
                status
                url
                checkRuns(first: 50) {
                  nodes {
                    databaseId
                    name
                    conclusion
                    status
                    detailsUrl
                    startedAt
                    completedAt
                    text
                    summary
                    annotations(first: 50) {
                      nodes {
                        path
                        location { start { line } end { line } }
                        annotationLevel
                        message
                        title
                      }
                    }
                  }
                }
              }
            }
            status { contexts { context state targetUrl createdAt } }
          }
        }
      }
    }
  }
}
"""

PREVIEW_QUERY = """
query($owner: String!, $repo: String!, $prNumber: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) {
      title
      body
      author { login }
      createdAt
      comments(first: 100) { nodes { author { login } body createdAt } }
      reviews(first: 100) { nodes { author { login } body state createdAt } }
    }
  }
}
"""

REVIEW_LABELS = {
    "APPROVED": "Approved",
    "CHANGES_REQUESTED": "Changes Requested",
    "COMMENTED": "Review",
    "DISMISSED": "Dismissed",
}

# gh run view --log lines: "<job>\t<step>\t<timestamp> <message>"
_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T[\d:.]+Z ?")


def _run_git(args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        capture_output=True,
        text=True,
        check=False,
        stdin=subprocess.DEVNULL,
    )


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from an SSH or HTTPS GitHub remote URL."""
    url = url.strip()
    if url.startswith("git@github.com:"):
        path = url.removeprefix("git@github.com:")
    elif "github.com" in url:
        path = url.split("github.com", 1)[1].lstrip("/:")
    else:
        return None
    path = path.removesuffix(".git")
    parts = path.split("/")
    if len(parts) >= 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    return None


def get_current_repo() -> tuple[str, str] | None:
    """Get (owner, repo) from the origin remote of the current directory."""
    try:
        result = _run_git(["remote", "get-url", "origin"])
    except FileNotFoundError:
        return None
    if result.returncode != 0:
        return None
    return parse_github_url(result.stdout)


def get_github_username() -> str | None:
    """Get the current GitHub username via gh api."""
    try:
        result = subprocess.run(
            ["gh", "api", "user", "--jq", ".login"],
            capture_output=True,
            text=True,
            check=True,
            stdin=subprocess.DEVNULL,
        )
        return result.stdout.strip() or None
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None


def has_gh_cli() -> bool:
    """Check if gh CLI is available and authenticated."""
    try:
        subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            check=True,
            stdin=subprocess.DEVNULL,
        )
        return True
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


async def _run_gh(args: list[str]) -> str:
    """Run a gh command and return stdout."""
    try:
        process = await anyio.run_process(
            ["gh", *args],
            check=False,
            stdin=subprocess.DEVNULL,
        )
    except FileNotFoundError as e:
        raise GitHubError("gh CLI not found; install it from https://cli.github.com") from e
    if process.returncode != 0:
        stderr = process.stderr.decode(errors="replace").strip()
        raise GitHubError(f"gh {args[0]} failed: {stderr}")
    return process.stdout.decode(errors="replace")


async def graphql(query: str, **variables: Any) -> dict[str, Any]:
    """Run a GraphQL query through ``gh api graphql``."""
    args = ["api", "graphql", "-f", f"query={query}"]
    for name, value in variables.items():
        if value is None:
            continue
        # -F sends typed values (ints); -f sends raw strings
        flag = "-F" if isinstance(value, int) else "-f"
        args.extend([flag, f"{name}={value}"])
    stdout = await _run_gh(args)
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise GitHubError(f"Invalid JSON from gh api graphql: {e}") from e
    if data.get("errors"):
        messages = "; ".join(err.get("message", "?") for err in data["errors"])
        raise GitHubError(f"GraphQL error: {messages}")
    return data


# -- pull requests --


def parse_search_nodes(nodes: list[dict[str, Any]], owner: str, repo: str) -> list[PullRequest]:
    prs = []
    for node in nodes:
        if not node or node.get("__typename") != "PullRequest":
            continue
        commits = (node.get("commits") or {}).get("nodes") or []
        commit = (commits[0] or {}).get("commit") or {} if commits else {}
        rollup = commit.get("statusCheckRollup") or {}
        prs.append(
            PullRequest(
                number=node["number"],
                title=node.get("title") or "",
                branch=node.get("headRefName") or "",
                repo_owner=owner,
                repo_name=repo,
                author=(node.get("author") or {}).get("login") or "unknown",
                ci_status=CiStatus.parse(rollup.get("state")),
                head_sha=commit.get("oid"),
            )
        )
    return prs


async def search_pull_requests(query_string: str, owner: str, repo: str) -> list[PullRequest]:
    """Run a PR search, following pages until exhausted or MAX_RESULTS."""
    prs: list[PullRequest] = []
    after: str | None = None
    while True:
        data = await graphql(SEARCH_QUERY, queryString=query_string, after=after)
        search = data["data"]["search"]
        prs.extend(parse_search_nodes(search.get("nodes") or [], owner, repo))
        if len(prs) >= MAX_RESULTS:
            break
        page_info = search.get("pageInfo") or {}
        after = page_info.get("endCursor")
        if not page_info.get("hasNextPage") or not after:
            break
    return prs


async def fetch_pull_requests(
    pr_filter: PrFilter, owner: str, repo: str, username: str | None = None
) -> list[PullRequest]:
    """Fetch open PRs for a tab."""
    base = f"repo:{owner}/{repo} is:pr is:open"

    if pr_filter.kind == FilterKind.LABELS:
        if not pr_filter.labels:
            return []
        # Search has no OR for label: qualifiers, so query each label
        by_number: dict[int, PullRequest] = {}
        for label in pr_filter.labels:
            for pr in await search_pull_requests(f'{base} label:"{label}"', owner, repo):
                by_number.setdefault(pr.number, pr)
        return [by_number[n] for n in sorted(by_number)]

    username = username or get_github_username()
    if not username:
        raise GitHubError("Could not determine GitHub user; run `gh auth login`")
    qualifier = "author" if pr_filter.kind == FilterKind.MY_PRS else "review-requested"
    return await search_pull_requests(f"{base} {qualifier}:{username}", owner, repo)


# -- checks --


def _parse_annotation(node: dict[str, Any]) -> CheckAnnotation:
    location = node.get("location") or {}
    start = (location.get("start") or {}).get("line") or 0
    end = (location.get("end") or {}).get("line") or start
    return CheckAnnotation(
        path=node.get("path") or "",
        start_line=start,
        end_line=end,
        level=AnnotationLevel.parse(node.get("annotationLevel")),
        message=node.get("message") or "",
        title=node.get("title"),
    )


def _parse_check_run(node: dict[str, Any]) -> WorkflowJob:
    return WorkflowJob(
        id=node.get("databaseId") or 0,
        name=node.get("name") or "Unknown",
        status=WorkflowStatus.parse(node.get("status") or "QUEUED"),
        conclusion=WorkflowConclusion.parse(node.get("conclusion")),
        started_at=node.get("startedAt"),
        completed_at=node.get("completedAt"),
        details_url=node.get("detailsUrl"),
        summary=node.get("summary"),
        text=node.get("text"),
        annotations=[
            _parse_annotation(a) for a in (node.get("annotations") or {}).get("nodes") or [] if a
        ],
    )


def _commit_status_job(context: dict[str, Any]) -> WorkflowJob:
    state = (context.get("state") or "PENDING").upper()
    if state == "PENDING":
        status, conclusion = WorkflowStatus.PENDING, None
    elif state == "SUCCESS":
        status, conclusion = WorkflowStatus.COMPLETED, WorkflowConclusion.SUCCESS
    elif state in ("FAILURE", "ERROR"):
        status, conclusion = WorkflowStatus.COMPLETED, WorkflowConclusion.FAILURE
    else:
        status, conclusion = WorkflowStatus.UNKNOWN, None
    return WorkflowJob(
        id=0,
        name=context.get("context") or "Unknown",
        status=status,
        conclusion=conclusion,
        started_at=context.get("createdAt"),
        details_url=context.get("targetUrl"),
    )


def parse_checks_response(data: dict[str, Any]) -> list[WorkflowRun]:
    """Parse check suites and legacy commit statuses into workflow runs."""
    try:
        commit = data["data"]["repository"]["pullRequest"]["commits"]["nodes"][0]["commit"]
    except (KeyError, IndexError, TypeError) as e:
        raise GitHubError("No commit data found") from e

    runs = []
    for idx, suite in enumerate((commit.get("checkSuites") or {}).get("nodes") or []):
        jobs = [_parse_check_run(r) for r in (suite.get("checkRuns") or {}).get("nodes") or [] if r]
        if not jobs:
            continue
        runs.append(
            WorkflowRun(
                id=idx,
                name=(suite.get("app") or {}).get("name") or "Unknown App",
                status=WorkflowStatus.parse(suite.get("status") or "QUEUED"),
                conclusion=WorkflowConclusion.parse(suite.get("conclusion")),
                html_url=suite.get("url") or "",
                jobs=jobs,
            )
        )

    contexts = (commit.get("status") or {}).get("contexts") or []
    status_jobs = [_commit_status_job(c) for c in contexts]
    if status_jobs:
        if any(j.status in (WorkflowStatus.PENDING, WorkflowStatus.IN_PROGRESS) for j in status_jobs):
            status, conclusion = WorkflowStatus.IN_PROGRESS, None
        elif any(j.conclusion == WorkflowConclusion.FAILURE for j in status_jobs):
            status, conclusion = WorkflowStatus.COMPLETED, WorkflowConclusion.FAILURE
        else:
            status, conclusion = WorkflowStatus.COMPLETED, WorkflowConclusion.SUCCESS
        runs.append(
            WorkflowRun(
                id=999,
                name="Commit Statuses",
                status=status,
                conclusion=conclusion,
                jobs=status_jobs,
            )
        )
    return runs


async def fetch_checks_for_pr(owner: str, repo: str, pr_number: int, head_sha: str) -> ActionsData:
    """Fetch all checks for a PR's latest commit.

    ``head_sha`` identifies the request; the query resolves the latest
    commit through the PR itself.
    """
    log(f"github: fetching checks for {owner}/{repo}#{pr_number} at {head_sha[:7]}")
    data = await graphql(CHECKS_QUERY, owner=owner, repo=repo, prNumber=pr_number)
    return ActionsData(pr_number=pr_number, workflow_runs=parse_checks_response(data))


# -- job logs --


def group_log_lines(content: str) -> list[RawStep]:
    """Group ``gh run view --log`` output into steps, in order of appearance."""
    steps: list[RawStep] = []
    lines_by_step: dict[str, list[str]] = {}
    for line in content.splitlines():
        parts = line.split("\t", 2)
        if len(parts) < 3:
            continue
        _, step_name, rest = parts
        if step_name not in lines_by_step:
            lines_by_step[step_name] = []
            steps.append(RawStep(name=step_name))
        lines_by_step[step_name].append(_TIMESTAMP_RE.sub("", rest, count=1))

    for step in steps:
        output = "\n".join(lines_by_step[step.name])
        failed = any("##[error]" in line for line in lines_by_step[step.name])
        step.actions = [
            RawAction(status="failed" if failed else "success", has_output=True, output=output)
        ]
    return steps


async def fetch_job_logs(owner: str, repo: str, job_id: int, job_name: str) -> JobLogs:
    """Fetch a GitHub Actions job log and split it into steps."""
    if job_id == 0:
        return JobLogs(
            job_id=job_id,
            job_name=job_name,
            content="No logs available for this check.\n\nPress 'o' to open it in your browser.",
        )
    try:
        content = await _run_gh(
            ["run", "view", "--repo", f"{owner}/{repo}", "--job", str(job_id), "--log"]
        )
    except GitHubError as e:
        if "not found" in str(e) or "no logs" in str(e):
            return JobLogs(
                job_id=job_id,
                job_name=job_name,
                content=(
                    "No logs available for this check.\n\n"
                    "The job may not have produced logs yet, or logs may have expired."
                ),
            )
        raise

    if not content.strip():
        return JobLogs(job_id=job_id, job_name=job_name, content="No log output available.")
    steps = reconstruct_steps(group_log_lines(content))
    return JobLogs(job_id=job_id, job_name=job_name, content=content, steps=steps or None)


# -- preview --


def _login(node: dict[str, Any] | None) -> str:
    return ((node or {}).get("author") or {}).get("login") or "unknown"


def parse_preview_response(data: dict[str, Any], pr_number: int) -> PreviewData:
    """Merge description, comments and reviews into one chronological stream."""
    pr = ((data.get("data") or {}).get("repository") or {}).get("pullRequest")
    if not pr:
        raise GitHubError("Failed to fetch PR data")

    comments: list[PrComment] = []
    body = pr.get("body") or ""
    if body:
        comments.append(
            PrComment(
                author=_login(pr),
                body=body,
                created_at=pr.get("createdAt") or "",
                is_pr_body=True,
            )
        )

    items: list[PrComment] = []
    for node in (pr.get("comments") or {}).get("nodes") or []:
        if node and node.get("body"):
            items.append(
                PrComment(author=_login(node), body=node["body"], created_at=node.get("createdAt") or "")
            )

    for node in (pr.get("reviews") or {}).get("nodes") or []:
        if not node:
            continue
        state = node.get("state") or ""
        review_body = node.get("body") or ""
        if state == "COMMENTED" and not review_body:
            continue
        label = REVIEW_LABELS.get(state)
        if label is None:
            continue
        text = f"**{label}**\n\n{review_body}" if review_body else f"_{label}_"
        items.append(PrComment(author=_login(node), body=text, created_at=node.get("createdAt") or ""))

    items.sort(key=lambda c: c.created_at)
    comments.extend(items)
    return PreviewData(pr_number=pr_number, title=pr.get("title") or "Untitled", comments=comments)


async def fetch_preview(owner: str, repo: str, pr_number: int) -> PreviewData:
    data = await graphql(PREVIEW_QUERY, owner=owner, repo=repo, prNumber=pr_number)
    return parse_preview_response(data, pr_number)
