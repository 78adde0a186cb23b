from __future__ import annotations

from prdeck import steps
from prdeck.models import JobStep
from prdeck.steps import RawAction, RawStep, extract_failures, reconstruct_steps


def ok(output: str = "done") -> RawAction:
    return RawAction(status="success", exit_code=0, has_output=True, output=output)


def failed(output: str = "boom", exit_code: int = 1) -> RawAction:
    return RawAction(status="failed", exit_code=exit_code, has_output=True, output=output)


def parallel_job() -> list[RawStep]:
    return [
        RawStep("Spin up environment", [ok(), ok(), ok()]),
        RawStep("Checkout", [ok(), ok(), ok()]),
        RawStep("Run tests", [ok(), failed("1) Error:\nboom"), ok()]),
        RawStep("Upload", [ok(), ok(), ok()]),
    ]


def test_three_actions_become_three_containers():
    result = reconstruct_steps(parallel_job())

    assert [c.name for c in result] == ["Container 0", "Container 1", "Container 2"]
    for container in result:
        assert [s.name for s in container.sub_steps] == [
            "Spin up environment",
            "Checkout",
            "Run tests",
            "Upload",
        ]
        assert container.is_failed == any(s.is_failed for s in container.sub_steps)
    assert [c.is_failed for c in result] == [False, True, False]


def test_missing_action_becomes_placeholder():
    raw = [RawStep("Setup", [ok(), ok()]), RawStep("Only first", [ok()])]

    result = reconstruct_steps(raw)

    placeholder = result[1].sub_steps[1]
    assert placeholder.status == "skipped"
    assert placeholder.output == "(No data for this container)"
    assert not placeholder.is_failed


def test_single_action_stays_flat():
    result = reconstruct_steps([RawStep("Build", [ok("compiled")]), RawStep("Test", [failed()])])

    assert [s.name for s in result] == ["Build", "Test"]
    assert all(s.sub_steps is None for s in result)
    assert result[0].output == "compiled"
    assert result[1].is_failed


def test_nonzero_exit_code_marks_failed_even_if_status_success():
    raw = [RawStep("Lint", [RawAction(status="success", exit_code=2, has_output=False)])]

    (step,) = reconstruct_steps(raw)

    assert step.is_failed
    assert "Exit code: 2" in step.output


def test_exit_status_phrase_upgrades_step_to_failed():
    output = "running suite\nall good?\nexited with code 3"
    (step,) = reconstruct_steps([RawStep("Test", [ok(output)])])

    assert step.is_failed


def test_exit_status_zero_is_not_a_failure():
    (step,) = reconstruct_steps([RawStep("Test", [ok("done\nexit status 0")])])

    assert not step.is_failed


def test_output_fallbacks():
    raw = [
        RawStep("Fetch error", [RawAction(status="success", has_output=True, fetch_error="timeout")]),
        RawStep("Silent", [RawAction(status="success", exit_code=0)]),
    ]

    fetch_error, silent = reconstruct_steps(raw)

    assert fetch_error.output == "(Failed to fetch output: timeout)"
    assert silent.output == "(No output)"


def test_result_independent_of_output_arrival_order():
    outputs = {(i, j): f"out {i}.{j}" for i in range(3) for j in range(2)}

    def empty_job() -> list[RawStep]:
        return [
            RawStep(f"step {i}", [RawAction(status="success", has_output=True) for _ in range(2)])
            for i in range(3)
        ]

    forward, backward = empty_job(), empty_job()
    for (i, j), text in outputs.items():
        forward[i].actions[j].output = text
    for (i, j), text in reversed(list(outputs.items())):
        backward[i].actions[j].output = text

    assert reconstruct_steps(forward) == reconstruct_steps(backward)


def test_default_selection_lands_on_failed_sub_step():
    tree = reconstruct_steps(parallel_job())

    expanded, selected = steps.initial_step_state(tree)

    assert selected == (1, 2)
    assert expanded == {(1, None)}


def test_default_selection_without_failures_is_first_entry():
    tree = reconstruct_steps([RawStep("A", [ok()]), RawStep("B", [ok()])])

    expanded, selected = steps.initial_step_state(tree)

    assert selected == (0, None)
    assert expanded == set()


def test_navigation_descends_into_expanded_step():
    tree = [
        JobStep("c0", "success", "", False, sub_steps=[JobStep("a", "success", "x", False)]),
        JobStep(
            "c1",
            "failed",
            "",
            True,
            sub_steps=[JobStep("a", "success", "x", False), JobStep("b", "failed", "y", True)],
        ),
        JobStep("c2", "success", "", False, sub_steps=[JobStep("a", "success", "x", False)]),
    ]
    expanded = {(1, None)}

    assert steps.next_row(tree, expanded, (0, None)) == (1, None)
    assert steps.next_row(tree, expanded, (1, None)) == (1, 0)
    assert steps.next_row(tree, expanded, (1, 1)) == (2, None)
    assert steps.next_row(tree, expanded, (2, None)) == (2, None)

    assert steps.previous_row(tree, expanded, (2, None)) == (1, 1)
    assert steps.previous_row(tree, expanded, (1, 0)) == (1, None)
    assert steps.previous_row(tree, expanded, (0, None)) == (0, None)


def test_toggle_collapses_and_expands():
    expanded = {(0, None)}
    steps.toggle_row(expanded, (0, None))
    assert expanded == set()
    steps.toggle_row(expanded, (0, None))
    assert expanded == {(0, None)}


def test_toggle_on_sub_step_folds_its_parent():
    tree = reconstruct_steps(parallel_job())
    expanded, selected = steps.initial_step_state(tree)

    selected = steps.toggle_row(expanded, selected)

    assert selected == (1, None)
    assert steps.visible_rows(tree, expanded) == [(0, None), (1, None), (2, None)]

    assert steps.toggle_row(expanded, selected) == (1, None)
    assert (1, 3) in steps.visible_rows(tree, expanded)


def test_container_output_concatenates_sub_steps():
    container = JobStep(
        "Container 0",
        "failed",
        "",
        True,
        sub_steps=[JobStep("Setup", "success", "ok", False), JobStep("Test", "failed", "bad", True)],
    )

    assert steps.step_output(container) == "=== Setup ===\nok\n\n=== Test ===\nbad"


TEST_OUTPUT = """\
Run options: --seed 1234

# Running:

..F..E

  1) Failure:
UserTest#test_name [test/user_test.rb:12]:
Expected "a" to equal "b".

  2) Error:
OrderTest#test_total:
NoMethodError: undefined method `sum'
    app/models/order.rb:8

Finished in 1.2s
10 runs, 14 assertions, 1 failures, 1 errors, 0 skips
Exited with code exit status 1
"""


def test_extract_failures_keeps_blocks_and_summary():
    result = extract_failures(TEST_OUTPUT)

    assert result is not None
    assert result.startswith("  1) Failure:\nUserTest#test_name")
    assert "  2) Error:\nOrderTest#test_total:" in result
    assert "10 runs, 14 assertions" in result
    assert result.rstrip().endswith("Exited with code exit status 1")
    assert "Run options" not in result
    assert "Finished in" not in result


def test_extract_failures_without_blocks_returns_none():
    assert extract_failures("everything passed\n3 runs, 3 assertions, 0 failures") is None
