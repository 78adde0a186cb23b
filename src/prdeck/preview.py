"""Line layout for the PR preview view."""

from __future__ import annotations

import textwrap

from prdeck.models import PrComment, PreviewData

SEPARATOR_LINES = 3


def comment_header(comment: PrComment) -> str:
    if comment.is_pr_body:
        return f"Description by {comment.author}"
    date = comment.created_at[:10] if comment.created_at else ""
    return f"{comment.author} · {date}" if date else comment.author


def wrap_body(body: str, width: int) -> list[str]:
    """Wrap a markdown-ish body, keeping blank lines and code indentation."""
    width = max(width, 10)
    if not body.strip():
        return ["(no description)"]
    lines: list[str] = []
    for raw in body.replace("\r\n", "\n").split("\n"):
        if not raw.strip():
            lines.append("")
            continue
        indent = raw[: len(raw) - len(raw.lstrip())]
        wrapped = textwrap.wrap(
            raw.strip(),
            width=width,
            initial_indent=indent,
            subsequent_indent=indent,
            break_long_words=True,
            break_on_hyphens=False,
        )
        lines.extend(wrapped or [""])
    return lines


def layout(data: PreviewData, width: int) -> tuple[list[str], list[int]]:
    """Lay out the preview stream.

    Returns the rendered lines and the line index where each comment's
    header starts. Comments after the first are preceded by a blank line,
    a rule and another blank line.
    """
    lines: list[str] = []
    positions: list[int] = []
    body_width = max(width - 2, 10)
    for idx, comment in enumerate(data.comments):
        if idx > 0:
            lines.extend(["", "─" * body_width, ""])
        positions.append(len(lines))
        lines.append(comment_header(comment))
        lines.append("")
        lines.extend(wrap_body(comment.body, body_width))
    return lines, positions


def max_scroll(total_lines: int, visible_height: int) -> int:
    """Largest scroll offset; the last few lines always stay on screen."""
    return max(0, total_lines - min(visible_height, 5))


def scroll_step(visible_height: int) -> int:
    return max(1, visible_height // 2)


def next_section(positions: list[int], scroll: int) -> int | None:
    for pos in positions:
        if pos > scroll:
            return pos
    return None


def previous_section(positions: list[int], scroll: int) -> int | None:
    for pos in reversed(positions):
        if pos < scroll:
            return pos
    return None
