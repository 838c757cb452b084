"""Report file locations, writing and cleanup."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .config import ScanRules

PRELIMINARY_SUFFIX = ".preliminary.txt"
CHECKPOINT_SUFFIX = ".checkpoint.json"
RUN_LOG_SUFFIX = ".run.log"

# files written next to a report; ".tmp" is a checkpoint caught mid-write
ARTIFACT_SUFFIXES: Tuple[str, ...] = (
    PRELIMINARY_SUFFIX,
    CHECKPOINT_SUFFIX,
    CHECKPOINT_SUFFIX + ".tmp",
    RUN_LOG_SUFFIX,
)


def _sibling(report_path: Path, suffix: str) -> Path:
    return report_path.with_name(report_path.name + suffix)


def preliminary_path(report_path: Path) -> Path:
    return _sibling(report_path, PRELIMINARY_SUFFIX)


def checkpoint_path(report_path: Path) -> Path:
    return _sibling(report_path, CHECKPOINT_SUFFIX)


def run_log_path(report_path: Path) -> Path:
    return _sibling(report_path, RUN_LOG_SUFFIX)


def individual_report_path(file_path: Path, report_suffix: str) -> Path:
    return file_path.with_name(file_path.name + report_suffix)


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def is_generated(name: str, report_suffix: str) -> bool:
    """True for a report file or one of the artifacts written beside it."""
    low = name.lower()
    suffix = report_suffix.lower()
    return low.endswith(suffix) or any(low.endswith(suffix + a) for a in ARTIFACT_SUFFIXES)


def clear_reports(
    root: Path,
    rules: ScanRules,
    report_suffix: str,
    *,
    log: Optional[Callable[[str], None]] = None,
) -> List[Path]:
    """Delete every generated report and its artifacts under root; return what was removed."""
    ignore_dirs = {d.lower() for d in rules.ignore_dirs} | {".git"}
    removed: List[Path] = []
    for dirpath, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d.lower() not in ignore_dirs)
        for fn in sorted(filenames):
            if not is_generated(fn, report_suffix):
                continue
            p = Path(dirpath) / fn
            p.unlink()
            removed.append(p)
            if log is not None:
                log(f"[CLEAR] {p}")
    return removed
