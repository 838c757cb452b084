"""Directory walking and file reading for per-file analysis."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import ScanRules


class DirectoryNotFound(RuntimeError):
    """Raised when the directory to analyze is missing or not a directory."""


@dataclass(frozen=True)
class SourceUnit:
    """One file to analyze: its display path and (possibly excerpted) text."""
    path: str
    content: str


PRIVATE_KEY_BLOCK_RE = re.compile(
    r"-----BEGIN [A-Z0-9 \-]*PRIVATE KEY-----.*?-----END [A-Z0-9 \-]*PRIVATE KEY-----",
    re.DOTALL,
)
AUTH_BEARER_RE = re.compile(r"(?i)(authorization:\s*bearer\s+)([A-Za-z0-9\-._~+/]+=*)")
SIMPLE_SECRET_RE = re.compile(r"(?i)\b(api[_-]?key|token|secret|password)\b\s*[:=]\s*([^\s'\"`]+)")

TRUNCATED_MARKER = "\n\n[...TRUNCATED...]\n\n"


def redact(text: str) -> str:
    """Redact secrets from file content before it is sent anywhere."""
    text = PRIVATE_KEY_BLOCK_RE.sub("[REDACTED_PRIVATE_KEY_BLOCK]", text)
    text = AUTH_BEARER_RE.sub(r"\1[REDACTED]", text)

    def _repl(m: re.Match) -> str:
        """Mask key/value style secrets."""
        return f"{m.group(1)}=[REDACTED]"

    return SIMPLE_SECRET_RE.sub(_repl, text)


def is_probably_binary(p: Path) -> bool:
    """Heuristic to detect binary files by null bytes."""
    try:
        with p.open("rb") as f:
            chunk = f.read(4096)
        return b"\x00" in chunk
    except Exception:
        return True


def relposix(base: Path, p: Path) -> str:
    """Return a POSIX-style relative path."""
    return p.relative_to(base).as_posix()


def has_ignored_suffix(name: str, suffixes: Iterable[str]) -> bool:
    """Check a file name against ignore suffixes (case-insensitive)."""
    low = name.lower()
    return any(low.endswith(s) for s in suffixes)


def ensure_directory(root: Path) -> Path:
    """Resolve root and fail with DirectoryNotFound unless it is a directory."""
    resolved = root.expanduser().resolve()
    if not resolved.exists():
        raise DirectoryNotFound(f'Directory does not exist: "{resolved}"')
    if not resolved.is_dir():
        raise DirectoryNotFound(f'Path is not a directory: "{resolved}"')
    return resolved


def collect_files(
    root: Path,
    rules: ScanRules,
    *,
    exclude: Optional[Iterable[Path]] = None,
) -> List[Path]:
    """List every eligible file under root in a deterministic order.

    Ignored directories are pruned before descent, so nothing under them is
    visited. Within a directory, files come first (sorted by name), then the
    sorted subdirectories. Paths in exclude (our own output files) are left out.
    """
    root = ensure_directory(root)
    ignore_dirs = {d.lower() for d in rules.ignore_dirs}
    excluded = {p.expanduser().resolve() for p in (exclude or [])}
    files: List[Path] = []
    for dirpath, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d.lower() not in ignore_dirs)
        for fn in sorted(filenames):
            if has_ignored_suffix(fn, rules.ignore_suffixes):
                continue
            p = Path(dirpath) / fn
            if p in excluded:
                continue
            if p.is_file():
                files.append(p)
    return files


def read_file_head_tail(
    p: Path,
    *,
    max_bytes: int,
    head_lines: int = 240,
    tail_lines: int = 120,
) -> str:
    """Read a file, keeping only its head and tail when it exceeds max_bytes.

    Head and tail are taken by lines first. When that still leaves more than
    max_bytes (few, very long lines), they are cut by bytes instead,
    max_bytes//2 from each end.
    """
    raw = p.read_bytes()
    text = raw.decode("utf-8", errors="ignore")
    if max_bytes <= 0 or len(raw) <= max_bytes:
        return text

    lines = text.splitlines()
    if len(lines) > head_lines + tail_lines:
        head = lines[:head_lines]
        tail = lines[-tail_lines:] if tail_lines > 0 else []
        excerpt = "\n".join(head) + TRUNCATED_MARKER + "\n".join(tail)
        if len(excerpt.encode("utf-8", errors="ignore")) <= max_bytes:
            return excerpt

    half = max(max_bytes // 2, 1)
    head_text = raw[:half].decode("utf-8", errors="ignore")
    tail_text = raw[-half:].decode("utf-8", errors="ignore")
    return head_text + TRUNCATED_MARKER + tail_text


def read_source_unit(root: Path, p: Path, rules: ScanRules) -> SourceUnit:
    """Read one file into a SourceUnit; read errors propagate."""
    content = read_file_head_tail(p, max_bytes=rules.max_file_bytes)
    if rules.redact_secrets:
        content = redact(content)
    return SourceUnit(path=relposix(root, p), content=content)


def read_source_units(
    root: Path,
    files: List[Path],
    rules: ScanRules,
    *,
    log: Optional[Callable[[str], None]] = None,
    verbose: bool = False,
) -> List[SourceUnit]:
    """Read every collected file, skipping binaries.

    A file that cannot be read still yields a unit with empty content so the
    analysis stage sees it.
    """
    root = root.expanduser().resolve()
    units: List[SourceUnit] = []
    for p in files:
        rp = relposix(root, p)
        if is_probably_binary(p):
            if log is not None:
                log(f"[SKIP] {rp} binary")
            continue
        try:
            units.append(read_source_unit(root, p, rules))
        except OSError as e:
            if log is not None:
                log(f"[SKIP] {rp} read_error={type(e).__name__}")
            units.append(SourceUnit(path=rp, content=""))
            continue
        if log is not None and verbose:
            log(f"[READ] {rp}")
    return units
