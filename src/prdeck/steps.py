"""Build a foldable step tree from raw CI step/action records.

A job whose first step carries more than one action ran in parallel
containers. Its tree is regrouped by container: one top-level entry per
action slot, each holding the full step sequence as sub-steps.

Rows in the job log view are addressed as ``(step, sub_step)`` pairs where
``sub_step`` is None for a top-level row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from prdeck.models import JobStep

FAILED_STATUSES = ("failed", "timedout")

# Matches "exit status 2", "exited with code 1", "exit code: 137"
_EXIT_RE = re.compile(r"(?:exit status|exited with code|exit code)[:\s]+(-?\d+)", re.IGNORECASE)

_BLOCK_START_RE = re.compile(r"^\s*\d{1,3}\)\s+(?:Error|Failure):")

Row = tuple[int, int | None]


@dataclass
class RawAction:
    """One container's execution of a step, with its fetched output (if any)."""

    status: str | None = None
    exit_code: int | None = None
    has_output: bool = False
    output: str | None = None
    fetch_error: str | None = None

    @property
    def is_failed(self) -> bool:
        status = (self.status or "").lower()
        return status in FAILED_STATUSES or (self.exit_code is not None and self.exit_code != 0)


@dataclass
class RawStep:
    name: str
    actions: list[RawAction] = field(default_factory=list)


def exit_status_failure(output: str) -> bool:
    """True if the last non-blank line reports a non-zero exit status."""
    for line in reversed(output.splitlines()):
        if line.strip():
            match = _EXIT_RE.search(line)
            return bool(match) and int(match.group(1)) != 0
    return False


def _action_output(action: RawAction, failed: bool) -> str:
    output = ""
    if action.has_output:
        if action.fetch_error is not None:
            output = f"(Failed to fetch output: {action.fetch_error})"
        elif action.output and action.output.strip():
            output = action.output.strip()
        elif action.exit_code is not None and action.exit_code != 0:
            output = f"Exit code: {action.exit_code}"
    elif action.exit_code is not None and (action.exit_code != 0 or failed):
        output = f"Exit code: {action.exit_code}"
    return output


def _build_step(name: str, action: RawAction, flat: bool) -> JobStep:
    status = action.status or "unknown"
    failed = action.is_failed
    output = _action_output(action, failed)
    if not output:
        if failed and flat:
            code = action.exit_code if action.exit_code is not None else "unknown"
            output = (
                f"Step failed with status: {status}\nExit code: {code}\n\n"
                "Press 'o' to view in browser for full details."
            )
        else:
            output = "(No output)"
    if not failed and exit_status_failure(output):
        failed = True
    return JobStep(name=name, status=status, output=output, is_failed=failed)


def reconstruct_steps(raw_steps: list[RawStep]) -> list[JobStep]:
    """Turn raw step records into top-level steps or containers.

    All outputs must already be fetched; the result does not depend on the
    order in which they arrived.
    """
    if not raw_steps:
        return []

    containers = len(raw_steps[0].actions)
    if containers <= 1:
        return [
            _build_step(raw.name, raw.actions[0] if raw.actions else RawAction(), flat=True)
            for raw in raw_steps
        ]

    result = []
    for index in range(containers):
        sub_steps = []
        for raw in raw_steps:
            if index < len(raw.actions):
                sub_steps.append(_build_step(raw.name, raw.actions[index], flat=False))
            else:
                sub_steps.append(
                    JobStep(
                        name=raw.name,
                        status="skipped",
                        output="(No data for this container)",
                        is_failed=False,
                    )
                )
        failed = any(step.is_failed for step in sub_steps)
        result.append(
            JobStep(
                name=f"Container {index}",
                status="failed" if failed else "success",
                output="",
                is_failed=failed,
                sub_steps=sub_steps,
            )
        )
    return result


def summarize(steps: list[JobStep]) -> str:
    """Plain-text summary shown above the step tree."""
    if not steps:
        return "No step information available.\n\nPress 'o' to open it in your browser."
    failed = sum(1 for step in steps if step.is_failed)
    return (
        f"{len(steps)} steps ({len(steps) - failed} passed, {failed} failed)\n\n"
        "Use j/k to navigate, space to expand/collapse"
    )


# -- fold / selection state -------------------------------------------------


def initial_step_state(steps: list[JobStep]) -> tuple[set[Row], Row | None]:
    """Default expansion and selection for a freshly fetched tree.

    Failed entries start expanded. The cursor lands on the first failed
    entry (and its first failed sub-step, if any), else on the first row.
    """
    expanded: set[Row] = set()
    selected: Row | None = None
    for i, step in enumerate(steps):
        if step.is_failed:
            expanded.add((i, None))

    for i, step in enumerate(steps):
        if not step.is_failed:
            continue
        selected = (i, None)
        for j, sub in enumerate(step.sub_steps or []):
            if sub.is_failed:
                selected = (i, j)
                break
        break

    if selected is None and steps:
        selected = (0, None)
    return expanded, selected


def visible_rows(steps: list[JobStep], expanded: set[Row]) -> list[Row]:
    """Navigable rows: every top-level step, plus sub-steps of expanded ones."""
    rows: list[Row] = []
    for i, step in enumerate(steps):
        rows.append((i, None))
        if (i, None) in expanded and step.sub_steps:
            rows.extend((i, j) for j in range(len(step.sub_steps)))
    return rows


def _position(rows: list[Row], selected: Row | None) -> int:
    if selected is None:
        return -1
    if selected in rows:
        return rows.index(selected)
    # Sub-step of a collapsed parent: fall back to the parent row
    parent = (selected[0], None)
    return rows.index(parent) if parent in rows else -1


def next_row(steps: list[JobStep], expanded: set[Row], selected: Row | None) -> Row | None:
    rows = visible_rows(steps, expanded)
    if not rows:
        return None
    pos = _position(rows, selected)
    return rows[min(pos + 1, len(rows) - 1)]


def previous_row(steps: list[JobStep], expanded: set[Row], selected: Row | None) -> Row | None:
    rows = visible_rows(steps, expanded)
    if not rows:
        return None
    pos = _position(rows, selected)
    return rows[max(pos - 1, 0)]


def toggle_row(expanded: set[Row], selected: Row | None) -> Row | None:
    """Fold or unfold the step owning `selected`; returns the new selection.

    Only top-level steps fold. On a sub-step row the parent is toggled and
    the cursor moves up to it, since the sub-step row disappears.
    """
    if selected is None:
        return None
    parent = (selected[0], None)
    if parent in expanded:
        expanded.discard(parent)
        return parent
    expanded.add(parent)
    return selected


def step_at(steps: list[JobStep], row: Row | None) -> JobStep | None:
    if row is None:
        return None
    i, j = row
    if not 0 <= i < len(steps):
        return None
    step = steps[i]
    if j is None:
        return step
    subs = step.sub_steps or []
    return subs[j] if 0 <= j < len(subs) else None


def step_output(step: JobStep) -> str:
    """Text copied for a step; containers concatenate their sub-steps."""
    if not step.sub_steps:
        return step.output
    parts = [f"=== {sub.name} ===\n{sub.output}" for sub in step.sub_steps]
    return "\n\n".join(parts)


# -- failure extraction -----------------------------------------------------


def _is_summary(line: str) -> bool:
    return "runs," in line and "assertions," in line


def extract_failures(output: str) -> str | None:
    """Condense test output to its numbered Error/Failure blocks.

    Returns None when the output has no such blocks.
    """
    blocks: list[list[str]] = []
    current: list[str] | None = None
    tail: list[str] = []
    in_tail = False

    for line in output.splitlines():
        if in_tail:
            if line.strip() and "exit" in line.lower():
                tail.append(line)
            continue
        if _is_summary(line):
            if current:
                blocks.append(current)
            current = None
            tail.append(line)
            in_tail = True
        elif _BLOCK_START_RE.match(line):
            if current:
                blocks.append(current)
            current = [line]
        elif current is not None:
            if not line.strip():
                blocks.append(current)
                current = None
            else:
                current.append(line)

    if current:
        blocks.append(current)
    if not blocks:
        return None

    sections = ["\n".join(block) for block in blocks]
    if tail:
        sections.append("\n".join(tail))
    return "\n\n".join(sections)
