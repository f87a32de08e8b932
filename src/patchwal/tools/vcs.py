"""Minimal git helpers for branch-per-transaction and commit-on-demand."""

from __future__ import annotations

import re
import subprocess
from pathlib import Path


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


_BRANCH_UNSAFE = re.compile(r"[^A-Za-z0-9._/-]+")


class GitRepository:
    """Runs the handful of ``git`` commands patchwal needs in one work tree."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Walk up from ``start`` to the first directory holding ``.git``."""
        origin = Path(start or Path.cwd()).resolve()
        for directory in (origin, *origin.parents):
            if (directory / ".git").exists():
                return cls(directory)
        raise GitError(f"{origin} is not inside a git work tree")

    def _git(self, *args: str) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as error:
            raise GitError("git is not installed or not on PATH") from error

    @staticmethod
    def _message(result: subprocess.CompletedProcess[str]) -> str:
        return (result.stderr or result.stdout or "").strip()

    def _git_checked(self, *args: str) -> str:
        result = self._git(*args)
        if result.returncode != 0:
            raise GitError(f"git {args[0]} failed: {self._message(result) or 'no output'}")
        return result.stdout

    def create_branch(self, name: str) -> str:
        """Check out a new branch ``name``, or the existing one of that name."""
        result = self._git("checkout", "-b", name)
        if result.returncode != 0:
            if "already exists" not in self._message(result):
                raise GitError(f"could not create branch {name}: {self._message(result)}")
            self._git_checked("checkout", name)
        return name

    def commit_all(self, message: str) -> str | None:
        """Stage the whole work tree and commit it with ``message``.

        Returns the new commit sha, or ``None`` when the tree was clean.
        """
        self._git_checked("add", ".")
        result = self._git("commit", "-m", message)
        if result.returncode != 0:
            if "nothing to commit" in self._message(result).lower():
                return None
            raise GitError(f"git commit failed: {self._message(result)}")
        return self._git_checked("rev-parse", "HEAD").strip()


def branch_name_for(prefix: str, template: str, *, uuid: str, git_commit_msg: str | None) -> str:
    """Build a branch name from the configured prefix and template."""
    if template == "gitCommitMsg" and git_commit_msg:
        slug = _BRANCH_UNSAFE.sub("-", git_commit_msg.strip().lower()).strip("-/.")
        slug = re.sub(r"-{2,}", "-", slug)[:60].rstrip("-/.")
        if slug:
            return f"{prefix}{slug}"
    return f"{prefix}{uuid}"


__all__ = ["GitError", "GitRepository", "branch_name_for"]
