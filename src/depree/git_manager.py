"""
Read-only Git repository access.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import List, Optional, Union
from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError, UnresolvedCommit


logger = logging.getLogger(__name__)

TODO_SUFFIX = ("rebase-merge", "git-rebase-todo")

_BLAME_HEADER_RE = re.compile(r"^([0-9a-f]{40}|[0-9a-f]{64}) \d+ \d+")


class GitManager:
    """Reads commits, diffs and blame data from one repository.

    GitPython keeps long-running `git cat-file` helpers per Repo instance, so
    each thread gets its own Repo for the same repository path.
    """

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository (or git dir) path."""
        self.repo_path = Path(repo_path or Path.cwd()).resolve()
        self._root: Optional[Path] = None
        self._lock = threading.Lock()
        self._local = threading.local()
        self._opened: List[Repo] = []

    @classmethod
    def for_script(cls, script_path: Path, repo_path: Optional[Path] = None) -> GitManager:
        """Pick the repository a todo script belongs to.

        A script at `<git-dir>/rebase-merge/git-rebase-todo` opens that git dir.
        Otherwise `repo_path` is used, falling back to the script's directory.
        """
        script_path = Path(script_path).resolve()
        if script_path.parts[-2:] == TODO_SUFFIX:
            git_dir = script_path.parent.parent
            logger.debug(f"Script lives in rebase state of git dir {git_dir}")
            return cls(git_dir)
        if repo_path is not None:
            return cls(repo_path)
        return cls(script_path.parent)

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance for the calling thread."""
        repo = getattr(self._local, "repo", None)
        if repo is None:
            with self._lock:
                if self._root is None:
                    first = self._discover_repository()
                    self._root = Path(first.git_dir)
                    repo = first
                else:
                    repo = self._open(self._root)
                self._opened.append(repo)
            self._local.repo = repo
        return repo

    def _open(self, path: Path) -> Repo:
        try:
            return Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitRepositoryError(f"Not a Git repository: {path}") from e

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from the configured path upwards."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.info(f"Found Git repository at: {search_path}")
                return repo
            except (InvalidGitRepositoryError, NoSuchPathError):
                search_path = search_path.parent

        raise GitRepositoryError(
            f"No Git repository found at {self.repo_path} or any parent directory"
        )

    def close(self) -> None:
        """Release the git helper processes of every opened Repo."""
        with self._lock:
            for repo in self._opened:
                repo.close()
            self._opened.clear()
        self._local = threading.local()

    def resolve_commit(self, ref: str, line: Optional[int] = None) -> str:
        """Return the full object id of the commit `ref` names.

        Raises:
            UnresolvedCommit: If `ref` does not name a commit in this repository
        """
        try:
            value = self.repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}")
        except GitCommandError as e:
            raise UnresolvedCommit(ref, line) from e
        value = value.strip()
        if not value:
            raise UnresolvedCommit(ref, line)
        return value

    def get_commit_message(self, commit_hash: str) -> str:
        """Return the full message of a commit."""
        try:
            return self.repo.commit(commit_hash).message
        except (ValueError, GitCommandError) as e:
            raise UnresolvedCommit(commit_hash) from e

    def get_first_parent(self, commit_hash: str) -> Optional[str]:
        """Return the first parent of a commit, or None for a root commit."""
        try:
            parents = self.repo.commit(commit_hash).parents
        except (ValueError, GitCommandError) as e:
            raise UnresolvedCommit(commit_hash) from e
        return parents[0].hexsha if parents else None

    def get_commit_patch(self, parent: str, commit_hash: str, context_lines: int = 1) -> str:
        """Return the unified diff between `parent` and `commit_hash`.

        Paths are emitted unquoted with fixed `a/` and `b/` prefixes whatever
        the user's diff configuration. Submodule pointer changes are left out.
        Undecodable bytes are replaced; the patch is only inspected for hunk
        positions, never applied.
        """
        try:
            raw = self.repo.git(c="core.quotePath=false").diff(
                parent,
                commit_hash,
                f"-U{context_lines}",
                "--no-renames",
                "--no-color",
                "--no-ext-diff",
                "--no-textconv",
                "--ignore-submodules=all",
                "--src-prefix=a/",
                "--dst-prefix=b/",
                stdout_as_string=False,
            )
        except GitCommandError as e:
            logger.error(f"Error diffing {parent[:8]}..{commit_hash[:8]}: {e}")
            raise GitRepositoryError(f"Failed to diff commit {commit_hash}: {e}") from e
        return raw.decode("utf-8", errors="replace")

    def blame_range(self, rev: str, path: Union[str, Path], start: int, end: int) -> List[str]:
        """Return the commits that last touched lines start..end of path at rev."""
        rel = Path(path).as_posix()
        try:
            output = self.repo.git.blame("--porcelain", "-L", f"{start},{end}", rev, "--", rel)
        except GitCommandError as e:
            logger.error(f"Error blaming {rel}:{start},{end} at {rev[:8]}: {e}")
            raise GitRepositoryError(f"Failed to blame {rel} at {rev}: {e}") from e

        commits: List[str] = []
        for ln in output.splitlines():
            m = _BLAME_HEADER_RE.match(ln)
            if m and m.group(1) not in commits:
                commits.append(m.group(1))
        return commits
