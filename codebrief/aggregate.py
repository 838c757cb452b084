"""Concatenate per-file analyses into the preliminary document."""

from __future__ import annotations

from typing import Iterable, List

from .analyzer import UnitAnalysis

FILE_MARKER = "## File: "
SEPARATOR = "---"


def document_header(root_label: str) -> str:
    return f"# Preliminary Analysis for Folder: {root_label}\n\n"


def aggregate(analyses: Iterable[UnitAnalysis], root_label: str) -> str:
    """Join analyses in input order under one header, each followed by a rule."""
    parts: List[str] = [document_header(root_label)]
    for a in analyses:
        parts.append(f"{FILE_MARKER}{a.path}\n\n{a.analysis_text}\n\n{SEPARATOR}\n\n")
    return "".join(parts)
