"""
Checks a todo script's ordering against the dependency graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .dependency_graph import DependencyGraph
from .models import CommitRef, Severity, TodoScript, TodoVerb, Violation, ViolationKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Elimination:
    ref: CommitRef
    absorber: Optional[CommitRef] = None


class OrderVerifier:
    """Walks a todo script and reports dependency violations.

    A commit is *retained* when some line picks, rewords or edits it. A commit
    is *eliminated* when it is only ever dropped, squashed or fixed up. Lines
    with other verbs take an ordinal slot but carry no dependency semantics.
    """

    def __init__(self, graph: DependencyGraph) -> None:
        self.graph = graph

    def verify(self, script: TodoScript) -> List[Violation]:
        """Return every violation in the script, sorted by line then column."""
        violations: List[Violation] = []
        positions: Dict[str, int] = {}
        first_retained: Dict[str, CommitRef] = {}
        first_seen: Dict[str, CommitRef] = {}
        eliminations: Dict[str, _Elimination] = {}
        last_retained: Optional[CommitRef] = None

        for ref in script.actions:
            key = ref.key
            if not ref.verb.takes_commit or key is None:
                continue

            if key in first_seen:
                violations.append(
                    Violation.at(
                        ref,
                        ViolationKind.DUPLICATE_COMMIT,
                        Severity.WARNING,
                        f"commit {ref.short} appears more than once (first listed on line {first_seen[key].line})",
                        (key,),
                    )
                )
            else:
                first_seen[key] = ref

            if ref.verb.is_retained:
                positions[key] = ref.ordinal
                first_retained.setdefault(key, ref)
                last_retained = ref
            elif ref.verb.is_absorbed:
                if last_retained is None:
                    violations.append(
                        Violation.at(
                            ref,
                            ViolationKind.ORPHAN_ABSORB,
                            Severity.ERROR,
                            f"cannot '{ref.verb.value}' {ref.short} without a previous commit",
                            (key,),
                        )
                    )
                eliminations.setdefault(key, _Elimination(ref, last_retained))
            elif ref.verb is TodoVerb.DROP:
                eliminations.setdefault(key, _Elimination(ref))

        eliminated = {k: e for k, e in eliminations.items() if k not in positions}
        names = {k: r.short for k, r in first_seen.items()}

        component_of: Dict[str, int] = {}
        for number, members in enumerate(self.graph.cycles(positions)):
            for member in members:
                component_of[member] = number
            violations.append(self._cycle_violation(members, first_retained, names))

        def ordinal_of(key: str) -> int:
            if key in positions:
                return positions[key]
            return eliminated[key].ref.ordinal

        for ref in script.actions:
            if not ref.verb.is_retained:
                continue
            key = ref.key
            relevant = [d for d in self.graph.dependencies_of(key) if d in positions or d in eliminated]
            for dep in sorted(relevant, key=lambda d: (ordinal_of(d), d)):
                if dep in positions:
                    if key in component_of and component_of.get(dep) == component_of[key]:
                        continue
                    if positions[dep] > ref.ordinal:
                        violations.append(
                            Violation.at(
                                ref,
                                ViolationKind.ORDERING,
                                Severity.ERROR,
                                f"commit {ref.short} is scheduled before its dependency {names[dep]}"
                                f" (line {first_retained[dep].line})",
                                (dep,),
                            )
                        )
                else:
                    violations.append(self._dropped_violation(ref, dep, eliminated[dep], names))

        violations.sort(key=lambda v: (v.line, v.column))
        logger.debug(f"Verified {len(script)} actions: {len(violations)} violation(s)")
        return violations

    def _dropped_violation(
        self, ref: CommitRef, dep: str, elimination: _Elimination, names: Dict[str, str]
    ) -> Violation:
        gone = elimination.ref
        prefix = f"commit {ref.short} depends on {names[dep]}"
        if gone.verb is TodoVerb.DROP:
            severity = Severity.ERROR
            message = f"{prefix}, which is dropped (line {gone.line})"
        elif elimination.absorber is None:
            severity = Severity.ERROR
            message = f"{prefix}, which is absorbed by '{gone.verb.value}' with no commit to fold into (line {gone.line})"
        elif elimination.absorber.key == ref.key:
            severity = Severity.ERROR
            message = f"{prefix}, which is folded into the dependent commit itself (line {gone.line})"
        elif elimination.absorber.ordinal < ref.ordinal:
            severity = Severity.WARNING
            message = f"{prefix}, which is absorbed into {elimination.absorber.short} (line {gone.line})"
        else:
            severity = Severity.ERROR
            message = (
                f"{prefix}, which is absorbed into {elimination.absorber.short}"
                f" scheduled after it (line {gone.line})"
            )
        return Violation.at(ref, ViolationKind.DROPPED_DEPENDENCY, severity, message, (dep,))

    def _cycle_violation(
        self, members: List[str], first_retained: Dict[str, CommitRef], names: Dict[str, str]
    ) -> Violation:
        refs = sorted((first_retained[m] for m in members), key=lambda r: r.ordinal)
        listed = [names[r.key] for r in refs]
        if len(listed) == 2:
            message = f"commits {listed[0]} and {listed[1]} depend on each other"
        else:
            message = f"commits {', '.join(listed)} form a dependency cycle"
        return Violation.at(
            refs[0],
            ViolationKind.CYCLIC_DEPENDENCY,
            Severity.ERROR,
            message,
            tuple(r.key for r in refs),
        )
