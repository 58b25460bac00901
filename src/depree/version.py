"""
Build identity reported by `depree version`.
"""

from __future__ import annotations

from ._revision import REVISION


def build_revision() -> str:
    """The VCS revision this installation was built from."""
    return REVISION
