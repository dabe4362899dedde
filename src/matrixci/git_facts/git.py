# git.py
# Small, focused wrapper around the Git CLI.
# This module centralizes all Git interactions so the rest of the codebase
# never needs to call subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero.
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str] = None) -> Optional[str]:
    """
    Return the checked-out branch name, or None on a detached HEAD.

    Used as the default branch of the trigger context for local runs.
    Works before the first commit too (unborn branch).
    """
    try:
        return _git(["symbolic-ref", "--short", "-q", "HEAD"], cwd=cwd) or None
    except subprocess.CalledProcessError as e:
        # exit 1: detached HEAD; anything else: not a repository
        if e.returncode == 1:
            return None
        raise


def detect_branch(cwd: Optional[str] = None) -> Optional[str]:
    """Like current_branch(), but None when not in a git checkout at all."""
    try:
        return current_branch(cwd)
    except (subprocess.CalledProcessError, OSError):
        return None
