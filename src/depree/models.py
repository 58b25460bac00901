"""
Data models for the rebase todo verifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union


class TodoVerb(Enum):
    """Actions of a git-rebase-todo script the verifier understands."""

    PICK = "pick"
    REWORD = "reword"
    EDIT = "edit"
    SQUASH = "squash"
    FIXUP = "fixup"
    DROP = "drop"
    EXEC = "exec"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_string(cls, s: str) -> "TodoVerb":
        """Map a (possibly abbreviated) verb token to a TodoVerb.

        Anything git does not spell as one of the known verbs comes back as
        UNRECOGNIZED instead of raising.
        """
        s = s.lower()
        abbreviations = {
            "p": cls.PICK,
            "r": cls.REWORD,
            "e": cls.EDIT,
            "s": cls.SQUASH,
            "f": cls.FIXUP,
            "d": cls.DROP,
            "x": cls.EXEC,
        }
        if s in abbreviations:
            return abbreviations[s]
        try:
            return cls(s)
        except ValueError:
            return cls.UNRECOGNIZED

    @property
    def takes_commit(self) -> bool:
        return self in _COMMIT_VERBS

    @property
    def is_retained(self) -> bool:
        """The commit survives the rebase as its own commit."""
        return self in (TodoVerb.PICK, TodoVerb.REWORD, TodoVerb.EDIT)

    @property
    def is_absorbed(self) -> bool:
        """The commit is folded into the commit before it."""
        return self in (TodoVerb.SQUASH, TodoVerb.FIXUP)

    @property
    def is_eliminating(self) -> bool:
        return self is TodoVerb.DROP or self.is_absorbed


_COMMIT_VERBS = frozenset(
    {
        TodoVerb.PICK,
        TodoVerb.REWORD,
        TodoVerb.EDIT,
        TodoVerb.SQUASH,
        TodoVerb.FIXUP,
        TodoVerb.DROP,
    }
)


@dataclass(frozen=True)
class CommitRef:
    """One action line of a todo script."""

    verb: TodoVerb
    verb_text: str
    commit: Optional[str]
    line: int
    column: int
    end_column: int
    ordinal: int
    subject: str = ""
    identity: Optional[str] = None
    flags: str = ""

    @property
    def key(self) -> Optional[str]:
        """Identity used in the dependency graph (resolved id if known)."""
        return self.identity or self.commit

    @property
    def short(self) -> str:
        """Name used in diagnostic messages."""
        if self.commit:
            return self.commit
        if self.identity:
            return self.identity[:7]
        return self.verb_text

    def to_string(self) -> str:
        """Render the action back into todo syntax."""
        parts = [self.verb_text]
        if self.flags:
            parts.append(self.flags)
        if self.commit:
            parts.append(self.commit)
        if self.subject:
            parts.append(self.subject)
        return " ".join(parts)


@dataclass(frozen=True)
class TodoNote:
    """A comment or blank line, kept so line numbers stay exact."""

    line: int
    text: str = ""


TodoEntry = Union[CommitRef, TodoNote]


@dataclass(frozen=True)
class TodoScript:
    """Parsed todo script: every line of the file, in order."""

    entries: Tuple[TodoEntry, ...] = ()

    @property
    def actions(self) -> Tuple[CommitRef, ...]:
        return tuple(e for e in self.entries if isinstance(e, CommitRef))

    def __iter__(self) -> Iterator[CommitRef]:
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    def render(self) -> str:
        """Serialize the script, one line per entry."""
        lines = []
        for entry in self.entries:
            if isinstance(entry, CommitRef):
                lines.append(entry.to_string())
            else:
                lines.append(entry.text)
        return "\n".join(lines) + ("\n" if lines else "")

    def with_identities(self, identities: Dict[str, str]) -> TodoScript:
        """Return a copy whose commit refs carry resolved identities.

        Args:
            identities: Mapping of commit token (as written) to full object id
        """
        entries: List[TodoEntry] = []
        for entry in self.entries:
            if isinstance(entry, CommitRef) and entry.commit in identities:
                entry = replace(entry, identity=identities[entry.commit])
            entries.append(entry)
        return TodoScript(tuple(entries))


@dataclass(frozen=True)
class DependencyEdge:
    """`dependent` needs `dependency` present and applied before it."""

    dependent: str
    dependency: str


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class ViolationKind(Enum):
    ORDERING = "ordering"
    DROPPED_DEPENDENCY = "dropped-dependency"
    CYCLIC_DEPENDENCY = "cyclic-dependency"
    ORPHAN_ABSORB = "orphan-absorb"
    DUPLICATE_COMMIT = "duplicate-commit"


@dataclass(frozen=True)
class Violation:
    """A finding reported against one line of the todo script."""

    kind: ViolationKind
    severity: Severity
    message: str
    line: int
    column: int
    commit: Optional[CommitRef] = None
    related: Tuple[str, ...] = ()

    @classmethod
    def at(
        cls,
        ref: CommitRef,
        kind: ViolationKind,
        severity: Severity,
        message: str,
        related: Tuple[str, ...] = (),
    ) -> Violation:
        """Create a violation located at a commit ref."""
        return cls(
            kind=kind,
            severity=severity,
            message=message,
            line=ref.line,
            column=ref.column,
            commit=ref,
            related=related,
        )


@dataclass
class VerificationResult:
    """Outcome of verifying one todo script."""

    script: TodoScript
    violations: List[Violation] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(v.severity is Severity.ERROR for v in self.violations)

    @property
    def error_count(self) -> int:
        return sum(1 for v in self.violations if v.severity is Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for v in self.violations if v.severity is Severity.WARNING)


class DepreeError(Exception):
    """Base exception for verifier failures."""

    pass


class MalformedTodoLine(DepreeError):
    """A todo line could not be parsed."""

    def __init__(self, line: int, column: int, message: str) -> None:
        super().__init__(f"line {line}, column {column}: {message}")
        self.line = line
        self.column = column
        self.message = message


class UnresolvedCommit(DepreeError):
    """A commit named by the script does not exist in the repository."""

    def __init__(self, commit: str, line: Optional[int] = None) -> None:
        where = f" (line {line})" if line is not None else ""
        super().__init__(f"Cannot resolve commit '{commit}'{where}")
        self.commit = commit
        self.line = line


class GitRepositoryError(DepreeError):
    """Exception raised for Git repository related errors."""

    pass


class NotScriptFile(DepreeError):
    """The given path is not a readable rebase todo script."""

    pass
