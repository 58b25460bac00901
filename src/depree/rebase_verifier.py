"""
End-to-end verification of one rebase todo script.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from .dependency_extractor import DependencyExtractor, ExtractionSettings
from .dependency_graph import DependencyGraph
from .git_manager import GitManager
from .models import TodoScript, VerificationResult
from .order_verifier import OrderVerifier
from .todo_parser import parse_todo_file


logger = logging.getLogger(__name__)


class RebaseVerifier:
    """Runs parse -> resolve -> extract -> graph -> verify for a todo script."""

    def __init__(
        self,
        script_path: Path,
        repo_path: Optional[Path] = None,
        settings: Optional[ExtractionSettings] = None,
        git_manager: Optional[GitManager] = None,
    ) -> None:
        """Initialize the verifier for a script and the repository it belongs to."""
        self.script_path = Path(script_path)
        self.settings = settings or ExtractionSettings()
        self.git_manager = git_manager or GitManager.for_script(self.script_path, repo_path)
        self.extractor = DependencyExtractor(self.git_manager, self.settings)

    def parse(self) -> TodoScript:
        """Parse the script; raises MalformedTodoLine on the first bad line."""
        script = parse_todo_file(self.script_path)
        logger.info(f"Parsed {len(script)} action(s) from {self.script_path}")
        return script

    def resolve(self, script: TodoScript) -> TodoScript:
        """Attach full object ids to every commit the script names.

        Raises:
            UnresolvedCommit: If any commit is missing from the repository
        """
        identities: Dict[str, str] = {}
        for ref in script.actions:
            if ref.commit is None or ref.commit in identities:
                continue
            identities[ref.commit] = self.git_manager.resolve_commit(ref.commit, ref.line)
        return script.with_identities(identities)

    def build_graph(self, script: TodoScript) -> DependencyGraph:
        """Build the dependency graph between the commits of a resolved script."""
        keys: List[str] = []
        for ref in script.actions:
            if ref.verb.takes_commit and ref.key is not None and ref.key not in keys:
                keys.append(ref.key)

        known = set(keys)
        extracted = self.extractor.extract_all(keys, self.settings.jobs)

        graph = DependencyGraph()
        for key in keys:
            graph.add_dependencies(key, extracted[key] & known)
        logger.info(f"Dependency graph: {len(graph)} commit(s), {graph.edge_count()} edge(s)")
        return graph

    def verify(self) -> VerificationResult:
        """Run the whole pipeline and return the sorted violations."""
        script = self.resolve(self.parse())
        graph = self.build_graph(script)
        violations = OrderVerifier(graph).verify(script)
        return VerificationResult(script=script, violations=violations)

    def close(self) -> None:
        self.git_manager.close()
