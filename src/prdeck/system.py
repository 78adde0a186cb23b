"""Side effects on the local machine: checkout, clipboard, browser, editor."""

from __future__ import annotations

import base64
import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

from prdeck.errors import CheckoutError
from prdeck.log import log

CLIPBOARD_COMMANDS = (
    ["pbcopy"],
    ["wl-copy"],
    ["xclip", "-selection", "clipboard"],
    ["xsel", "--clipboard", "--input"],
)


def checkout_branch(branch: str, cwd: Path | None = None) -> None:
    """Check out ``branch`` in the working copy.

    jj repos get a new change on top of the remote bookmark; git repos
    switch to the branch. Raises CheckoutError with the VCS stderr.
    """
    cwd = cwd or Path.cwd()
    if (cwd / ".jj").is_dir():
        args = ["jj", "new", f"{branch}@origin"]
    else:
        args = ["git", "switch", branch]
    log(f"checkout: {' '.join(args)}")

    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
            stdin=subprocess.DEVNULL,
        )
    except OSError as e:
        raise CheckoutError(f"Failed to checkout: {e}") from e
    if result.returncode != 0:
        raise CheckoutError(result.stderr.strip() or f"Failed to checkout: exit {result.returncode}")


def osc52_sequence(text: str) -> str:
    encoded = base64.b64encode(text.encode()).decode("ascii")
    return f"\x1b]52;c;{encoded}\x07"


def copy_to_clipboard(text: str, in_container: bool = False) -> bool:
    """Copy text to the system clipboard. Returns False if nothing worked.

    Inside a container there is usually no clipboard daemon, so the OSC 52
    escape is written to the terminal instead.
    """
    if in_container:
        try:
            sys.stdout.write(osc52_sequence(text))
            sys.stdout.flush()
            return True
        except OSError as e:
            log(f"clipboard: OSC 52 write failed: {e}")
            return False

    for cmd in CLIPBOARD_COMMANDS:
        if shutil.which(cmd[0]) is None:
            continue
        try:
            subprocess.run(
                cmd,
                input=text,
                text=True,
                capture_output=True,
                check=True,
                timeout=5,
            )
            return True
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            log(f"clipboard: {cmd[0]} failed: {e}")
    return False


def open_url(url: str, in_container: bool = False) -> str | None:
    """Open a URL in the browser.

    Returns the URL when it could not be opened (in a container, or with
    no opener available) so the caller can show it instead.
    """
    if in_container:
        return url
    opener = "open" if sys.platform == "darwin" else "xdg-open"
    if shutil.which(opener) is None:
        return url
    try:
        subprocess.Popen(
            [opener, url],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        log(f"open_url: {opener} failed: {e}")
        return url
    return None


def open_in_editor(content: str, filename: str, editor: str) -> str | None:
    """Write content to a temp file, open it in ``editor`` and wait.

    The file lives in a private temp directory that is removed afterwards.
    Returns an error message for the feedback line on failure, None on
    success.
    """
    with tempfile.TemporaryDirectory(prefix="prdeck-") as tmp:
        temp_file = Path(tmp) / filename
        try:
            temp_file.write_text(content)
        except OSError as e:
            return f"Failed to write temp file: {e}"

        try:
            # $EDITOR may carry flags, e.g. "code --wait"
            subprocess.run([*editor.split(), str(temp_file)], check=False)
        except OSError as e:
            return f"Failed to open {editor}: {e}"
    return None


def is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty() and os.environ.get("TERM") != "dumb"
