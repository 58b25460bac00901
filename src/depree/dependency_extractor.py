"""
Derivation of commit-to-commit dependencies from repository content.
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from unidiff import PatchSet
from unidiff.errors import UnidiffParseError

from .git_manager import GitManager
from .models import GitRepositoryError, UnresolvedCommit


logger = logging.getLogger(__name__)

TRAILER_KEYS = ("depends-on", "requires")
_TRAILER_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9-]*)\s*:\s*(\S+)")


@dataclass
class ExtractionSettings:
    """Knobs for dependency extraction."""

    context_lines: int = 1
    use_content: bool = True
    use_trailers: bool = True
    jobs: int = 1


class ComputeOnceCache:
    """Per-key memo where concurrent callers share a single computation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._futures: Dict[str, Future] = {}

    def get(self, key: str, compute: Callable[[str], FrozenSet[str]]) -> FrozenSet[str]:
        with self._lock:
            future = self._futures.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._futures[key] = future
        if owner:
            try:
                future.set_result(compute(key))
            except BaseException as e:
                future.set_exception(e)
        return future.result()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._futures

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)


_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def _unquote(name: str) -> str:
    """Undo git's C-style quoting of a path (`"dir/caf\\303\\251.txt"`)."""
    if len(name) < 2 or not (name.startswith('"') and name.endswith('"')):
        return name
    body = name[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 == len(body):
            out += ch.encode("utf-8")
            i += 1
            continue
        nxt = body[i + 1]
        if nxt in "0123":
            out.append(int(body[i + 1:i + 4], 8))
            i += 4
        else:
            out.append(_ESCAPES.get(nxt, ord(nxt)))
            i += 2
    return out.decode("utf-8", errors="surrogateescape")


def _source_path(name: str) -> str:
    """Repository path of a diff's source side; the diff uses an `a/` prefix."""
    name = _unquote(name)
    if name.startswith("a/"):
        return name[2:]
    return name


def _is_gitlink(patched_file) -> bool:
    lines = [ln.value for hunk in patched_file for ln in hunk]
    return bool(lines) and all(v.startswith("Subproject commit ") for v in lines)


def parse_trailers(message: str) -> List[str]:
    """Return revisions named by Depends-on/Requires trailers.

    Only the last paragraph of the message is the trailer block.
    """
    paragraphs = [p for p in re.split(r"\n\s*\n", message.strip()) if p.strip()]
    if len(paragraphs) < 2:
        return []
    revisions = []
    for line in paragraphs[-1].splitlines():
        m = _TRAILER_RE.match(line)
        if m and m.group(1).lower() in TRAILER_KEYS:
            revisions.append(m.group(2))
    return revisions


class DependencyExtractor:
    """Works out which commits a commit depends on.

    Two signals are combined:

    * content: lines a commit changes (plus context) are blamed in its parent;
      whichever commits last touched them are dependencies.
    * trailers: `Depends-on:` / `Requires:` lines in the commit message.

    Results are memoized per commit id for the lifetime of the extractor.
    """

    def __init__(self, git_manager: GitManager, settings: Optional[ExtractionSettings] = None) -> None:
        self.gm = git_manager
        self.settings = settings or ExtractionSettings()
        self._cache = ComputeOnceCache()

    def dependencies(self, commit_hash: str) -> FrozenSet[str]:
        """Return the ids of every commit `commit_hash` depends on."""
        return self._cache.get(commit_hash, self._compute)

    def extract_all(self, commit_hashes: Iterable[str], jobs: Optional[int] = None) -> Dict[str, FrozenSet[str]]:
        """Extract dependencies for many commits, in parallel when jobs > 1."""
        unique = list(dict.fromkeys(commit_hashes))
        jobs = max(1, jobs if jobs is not None else self.settings.jobs)
        results: Dict[str, FrozenSet[str]] = {}

        if jobs == 1 or len(unique) < 2:
            for commit_hash in unique:
                results[commit_hash] = self.dependencies(commit_hash)
            return results

        with ThreadPoolExecutor(max_workers=jobs) as executor:
            futures = {executor.submit(self.dependencies, c): c for c in unique}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    def _compute(self, commit_hash: str) -> FrozenSet[str]:
        found: Set[str] = set()
        if self.settings.use_content:
            found |= self._content_dependencies(commit_hash)
        if self.settings.use_trailers:
            found |= self._trailer_dependencies(commit_hash)
        found.discard(commit_hash)
        logger.debug(f"{commit_hash[:8]} depends on {sorted(c[:8] for c in found)}")
        return frozenset(found)

    def _content_dependencies(self, commit_hash: str) -> Set[str]:
        parent = self.gm.get_first_parent(commit_hash)
        if parent is None:
            logger.debug(f"{commit_hash[:8]} is a root commit; no content dependencies")
            return set()

        patch = self.gm.get_commit_patch(parent, commit_hash, self.settings.context_lines)
        try:
            patch_set = PatchSet(patch if patch.endswith("\n") else patch + "\n")
        except UnidiffParseError as e:
            raise GitRepositoryError(f"Unparseable diff for commit {commit_hash}: {e}") from e

        found: Set[str] = set()
        for patched_file in patch_set:
            if patched_file.is_added_file:
                continue
            path = _source_path(patched_file.source_file)
            if _is_gitlink(patched_file):
                logger.debug(f"{commit_hash[:8]}: skipping submodule pointer {path}")
                continue
            for hunk in patched_file:
                start = hunk.source_start
                length = hunk.source_length
                if length == 0:
                    # Pure insertion without context: anchor on the line above.
                    if start < 1:
                        continue
                    length = 1
                found.update(self.gm.blame_range(parent, path, start, start + length - 1))
        return found

    def _trailer_dependencies(self, commit_hash: str) -> Set[str]:
        found: Set[str] = set()
        for revision in parse_trailers(self.gm.get_commit_message(commit_hash)):
            try:
                found.add(self.gm.resolve_commit(revision))
            except UnresolvedCommit:
                logger.warning(
                    f"Ignoring trailer of {commit_hash[:8]}: cannot resolve '{revision}'"
                )
        return found
