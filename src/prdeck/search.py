"""Fuzzy search over the active PR list."""

from __future__ import annotations

from rapidfuzz import fuzz, process

from prdeck.models import PullRequest


def haystack(pr: PullRequest) -> str:
    """The text a query is matched against for one PR."""
    return f"#{pr.number} {pr.author} {pr.title} {pr.branch} {pr.ci_status.display}"


def is_subsequence(query: str, text: str) -> bool:
    """Case-insensitive ordered subsequence test."""
    it = iter(text.lower())
    return all(ch in it for ch in query.lower())


def filter_prs(prs: list[PullRequest], query: str) -> list[int]:
    """Return indices into ``prs`` matching ``query``, best match first.

    An empty query keeps every PR in its original order. Otherwise every
    haystack is scored in one batch; only haystacks containing the query as a
    subsequence are kept, ordered by descending score with ties in list order.
    """
    if not query:
        return list(range(len(prs)))

    haystacks = [haystack(pr) for pr in prs]
    results = process.extract(
        query,
        haystacks,
        scorer=fuzz.WRatio,
        processor=str.lower,
        limit=None,
    )
    scores = {index: score for _, score, index in results}

    matches = [i for i, text in enumerate(haystacks) if is_subsequence(query, text)]
    matches.sort(key=lambda i: (-scores.get(i, 0.0), i))
    return matches
