"""
Parsing of git-rebase-todo scripts.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Union

from .models import CommitRef, MalformedTodoLine, NotScriptFile, TodoEntry, TodoNote, TodoScript, TodoVerb


logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\S+")
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{4,64}$")
_FIXUP_FLAGS = ("-C", "-c")


def _split_lines(text: str) -> List[str]:
    """Split on newlines only, so line numbers match what an editor shows."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [ln[:-1] if ln.endswith("\r") else ln for ln in lines]


def parse_line(line: str, line_nr: int, ordinal: int) -> TodoEntry:
    """Parse a single todo line.

    Args:
        line: Line text without its line terminator
        line_nr: 1-based line number
        ordinal: Position this line takes if it is an action

    Returns:
        A TodoNote for comments and blank lines, otherwise a CommitRef

    Raises:
        MalformedTodoLine: If an action is missing its commit or command
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return TodoNote(line=line_nr, text=line)

    tokens = list(_TOKEN_RE.finditer(line))
    verb_tok = tokens[0]
    verb_text = verb_tok.group()
    verb = TodoVerb.from_string(verb_text)

    if verb is TodoVerb.EXEC:
        command = line[verb_tok.end():].strip()
        if not command:
            raise MalformedTodoLine(line_nr, verb_tok.end() + 1, f"'{verb_text}' requires a command")
        return CommitRef(
            verb=verb,
            verb_text=verb_text,
            commit=None,
            line=line_nr,
            column=verb_tok.start() + 1,
            end_column=verb_tok.end() + 1,
            ordinal=ordinal,
            subject=command,
        )

    if not verb.takes_commit:
        logger.debug(f"Line {line_nr}: treating '{verb_text}' as an opaque action")
        return CommitRef(
            verb=TodoVerb.UNRECOGNIZED,
            verb_text=verb_text,
            commit=None,
            line=line_nr,
            column=verb_tok.start() + 1,
            end_column=verb_tok.end() + 1,
            ordinal=ordinal,
            subject=line[verb_tok.end():].strip(),
        )

    rest = tokens[1:]
    flags = ""
    if verb is TodoVerb.FIXUP and rest and rest[0].group() in _FIXUP_FLAGS:
        flags = rest[0].group()
        rest = rest[1:]
    if not rest:
        raise MalformedTodoLine(line_nr, len(line.rstrip()) + 1, f"'{verb_text}' requires a commit")

    commit_tok = rest[0]
    commit = commit_tok.group()
    if not _OBJECT_ID_RE.match(commit):
        raise MalformedTodoLine(
            line_nr, commit_tok.start() + 1, f"'{commit}' is not a commit object id"
        )

    return CommitRef(
        verb=verb,
        verb_text=verb_text,
        commit=commit,
        line=line_nr,
        column=commit_tok.start() + 1,
        end_column=commit_tok.end() + 1,
        ordinal=ordinal,
        subject=line[commit_tok.end():].strip(),
        flags=flags,
    )


def parse_todo(text: str) -> TodoScript:
    """Parse todo text into a TodoScript.

    Comment and blank lines are kept as TodoNote entries; every other line
    becomes a CommitRef with the next ordinal.
    """
    entries: List[TodoEntry] = []
    ordinal = 0
    for index, line in enumerate(_split_lines(text)):
        entry = parse_line(line, index + 1, ordinal)
        if isinstance(entry, CommitRef):
            ordinal += 1
        entries.append(entry)
    return TodoScript(tuple(entries))


def parse_todo_file(path: Union[str, Path]) -> TodoScript:
    """Read and parse a todo script from disk."""
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise NotScriptFile(f"Cannot read todo script {path}: {e}") from e
    return parse_todo(data.decode("utf-8", errors="replace"))
