"""
Compiler-style diagnostic output.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Iterable, Optional

import click

from .models import MalformedTodoLine, Severity, Violation


logger = logging.getLogger(__name__)


def format_diagnostic(path: str, line: int, column: int, severity: Severity, message: str) -> str:
    """Return `path:line:column: severity: message`."""
    return f"{path}:{line}:{column}: {severity.value}: {message}"


def format_violation(path: str, violation: Violation) -> str:
    return format_diagnostic(path, violation.line, violation.column, violation.severity, violation.message)


class DiagnosticReporter:
    """Writes one diagnostic per line and flushes after each one."""

    def __init__(self, path: str, stream: Optional[IO[str]] = None) -> None:
        self.path = path
        self.stream = stream
        self.errors = 0
        self.warnings = 0

    def _emit(self, text: str) -> None:
        stream = self.stream if self.stream is not None else sys.stdout
        click.echo(text, file=stream)
        stream.flush()

    def report(self, violation: Violation) -> None:
        if violation.severity is Severity.ERROR:
            self.errors += 1
        else:
            self.warnings += 1
        self._emit(format_violation(self.path, violation))

    def report_all(self, violations: Iterable[Violation]) -> int:
        """Report every violation; returns how many were written."""
        count = 0
        for violation in violations:
            self.report(violation)
            count += 1
        logger.info(f"Reported {self.errors} error(s) and {self.warnings} warning(s) for {self.path}")
        return count

    def report_malformed(self, error: MalformedTodoLine) -> None:
        self.errors += 1
        self._emit(format_diagnostic(self.path, error.line, error.column, Severity.ERROR, error.message))

    @property
    def has_errors(self) -> bool:
        return self.errors > 0
