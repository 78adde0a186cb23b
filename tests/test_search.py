from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from prdeck.models import CiStatus
from prdeck.search import filter_prs, haystack, is_subsequence
from tests.factories import make_pr

words = st.text(alphabet="abcdefghijklmnopqrstuvwxyzABCDEF-_ ", min_size=0, max_size=20)

pr_lists = st.lists(
    st.builds(
        make_pr,
        number=st.integers(min_value=1, max_value=99999),
        title=words,
        author=st.text(alphabet="abcdefgh", min_size=1, max_size=8),
        ci_status=st.sampled_from(list(CiStatus)),
    ),
    max_size=15,
)


@given(pr_lists)
def test_empty_query_keeps_original_order(prs):
    assert filter_prs(prs, "") == list(range(len(prs)))


@given(pr_lists, st.text(alphabet="abcdefxyz#1-", min_size=1, max_size=5))
def test_every_match_contains_query_as_subsequence(prs, query):
    result = filter_prs(prs, query)
    assert len(result) == len(set(result))
    for index in result:
        assert 0 <= index < len(prs)
        assert is_subsequence(query, haystack(prs[index]))


def test_haystack_includes_ci_status_text():
    pr = make_pr(7, title="Add cache", branch="add-cache", author="mona", ci_status=CiStatus.FAILURE)
    assert haystack(pr) == "#7 mona Add cache add-cache ✗ Failing"


def test_subsequence_is_case_insensitive():
    assert is_subsequence("FxC", "fix cache")
    assert not is_subsequence("cx", "fix")


def test_best_match_ranks_first():
    prs = [
        make_pr(1, title="Update readme", branch="docs"),
        make_pr(2, title="Fix login redirect", branch="fix-login"),
        make_pr(3, title="Refactor logging", branch="logs"),
    ]
    result = filter_prs(prs, "fix login")
    assert result[0] == 1
    assert 0 not in result


def test_query_matching_nothing_returns_empty():
    prs = [make_pr(1, title="abc")]
    assert filter_prs(prs, "zzzz") == []
