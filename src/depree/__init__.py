"""
Depree - static verification of git interactive rebase scripts.

This package parses git-rebase-todo scripts, derives dependencies between the
commits they list, and reports commits scheduled before (or without) the
commits they depend on as compiler-style diagnostics.
"""

__version__ = "0.1.0"

from .models import (
    CommitRef,
    DependencyEdge,
    DepreeError,
    MalformedTodoLine,
    Severity,
    TodoScript,
    TodoVerb,
    UnresolvedCommit,
    VerificationResult,
    Violation,
    ViolationKind,
)
from .todo_parser import parse_todo, parse_todo_file
from .git_manager import GitManager
from .dependency_extractor import DependencyExtractor, ExtractionSettings
from .dependency_graph import DependencyGraph
from .order_verifier import OrderVerifier
from .reporter import DiagnosticReporter
from .rebase_verifier import RebaseVerifier

__all__ = [
    "CommitRef",
    "DependencyEdge",
    "DepreeError",
    "MalformedTodoLine",
    "Severity",
    "TodoScript",
    "TodoVerb",
    "UnresolvedCommit",
    "VerificationResult",
    "Violation",
    "ViolationKind",
    "parse_todo",
    "parse_todo_file",
    "GitManager",
    "DependencyExtractor",
    "ExtractionSettings",
    "DependencyGraph",
    "OrderVerifier",
    "DiagnosticReporter",
    "RebaseVerifier",
]
