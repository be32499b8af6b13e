"""Helpers for running external commands (agc, conda).

Failures raise :class:`ExternalCommandError` with the command line and the
tail of stderr so the offending sample can be diagnosed from the log alone.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import textwrap
from shutil import which
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ExternalCommandError(RuntimeError):
    """Raised when an external command fails."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = int(returncode)
        self.stdout = stdout
        self.stderr = stderr


def cmd_to_str(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


def ensure_executable_in_path(exe: str, *, hint: Optional[str] = None) -> None:
    """Raise FileNotFoundError if ``exe`` is not on PATH; ``hint`` is appended to the message."""
    if which(exe) is None:
        msg = f"Required executable '{exe}' was not found in your PATH."
        if hint:
            msg += "\n\n" + hint
        raise FileNotFoundError(msg)


def run_command(cmd: Sequence[str]) -> subprocess.CompletedProcess:
    """Run a command with stdout/stderr captured as text.

    Raises ``ExternalCommandError`` on non-zero exit.
    """
    logger.debug("Running command: %s", _short(cmd))

    cp = subprocess.run(
        list(map(str, cmd)),
        check=False,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )

    if cp.returncode != 0:
        raise ExternalCommandError(
            textwrap.dedent(
                f"""
                External command failed (exit code {cp.returncode}).

                Command:
                  {_short(cmd)}

                STDERR (tail):
                  {_tail(cp.stderr)}
                """
            ).strip(),
            cmd=cmd,
            returncode=cp.returncode,
            stdout=cp.stdout,
            stderr=cp.stderr,
        )

    return cp


def _short(cmd: Sequence[str], max_args: int = 12) -> str:
    # agc batches can carry thousands of region arguments
    if len(cmd) <= max_args:
        return cmd_to_str(cmd)
    return f"{cmd_to_str(cmd[:max_args])} ... (+{len(cmd) - max_args} more args)"


def _tail(s: Optional[str], n: int = 3000) -> str:
    if not s:
        return "(empty)"
    s = str(s)
    if len(s) <= n:
        return s
    return "..." + s[-n:]
