"""Persist compilation progress so an interrupted run can resume."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .compiler import CompilationState

CHECKPOINT_VERSION = 2


@dataclass(frozen=True)
class Checkpoint:
    """A CompilationState plus everything needed to rebuild its chunks.

    last_processed_index only means something for the same document split
    with the same chunk_size and overlap.
    """
    root_label: str
    preliminary_document: str
    state: CompilationState
    chunk_size: int
    overlap: int

    @property
    def document_hash(self) -> str:
        return sha256_text(self.preliminary_document)

    def matches_chunking(self, chunk_size: int, overlap: int) -> bool:
        return self.chunk_size == chunk_size and self.overlap == overlap


def sha256_text(text: str) -> str:
    h = hashlib.sha256()
    h.update(text.encode("utf-8", errors="ignore"))
    return h.hexdigest()


def save_checkpoint(path: Path, checkpoint: Checkpoint) -> None:
    """Write the checkpoint atomically (temp file, then rename)."""
    payload = {
        "version": CHECKPOINT_VERSION,
        "root_label": checkpoint.root_label,
        "document_hash": checkpoint.document_hash,
        "chunk_size": checkpoint.chunk_size,
        "overlap": checkpoint.overlap,
        "preliminary_document": checkpoint.preliminary_document,
        "running_report": checkpoint.state.running_report,
        "last_processed_index": checkpoint.state.last_processed_index,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def _non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def load_checkpoint(path: Path) -> Optional[Checkpoint]:
    """Load a checkpoint, or None when missing, unreadable or inconsistent."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("version") != CHECKPOINT_VERSION:
        return None
    document = data.get("preliminary_document")
    report = data.get("running_report")
    root_label = data.get("root_label")
    if not isinstance(document, str) or not isinstance(report, str) or not isinstance(root_label, str):
        return None
    index = data.get("last_processed_index")
    chunk_size = data.get("chunk_size")
    overlap = data.get("overlap")
    if not (_non_negative_int(index) and _non_negative_int(chunk_size) and _non_negative_int(overlap)):
        return None
    if chunk_size == 0:
        return None
    if data.get("document_hash") != sha256_text(document):
        return None
    return Checkpoint(
        root_label=root_label,
        preliminary_document=document,
        state=CompilationState(running_report=report, last_processed_index=index),
        chunk_size=chunk_size,
        overlap=overlap,
    )


def clear_checkpoint(path: Path) -> bool:
    if path.exists():
        path.unlink()
        return True
    return False
