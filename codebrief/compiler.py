"""Fold the preliminary document into one running report, chunk by chunk."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .chunker import split_text
from .perf import PerformanceRecorder, format_duration
from .prompts import compile_prompt, system_prompt

DEFAULT_COMPILE_CHUNK_SIZE = 2048


@dataclass(frozen=True)
class CompilationState:
    """The fold accumulator and its resumption point.

    last_processed_index is the number of chunks already folded into
    running_report; the next chunk to process has that index.
    """
    running_report: str
    last_processed_index: int = 0


class CompilationAborted(RuntimeError):
    """A chunk kept failing after every retry.

    state is the CompilationState from before the failing chunk, so it can
    be passed back to compile_report as initial_state.
    """

    def __init__(self, state: CompilationState, total_chunks: int, cause: BaseException) -> None:
        super().__init__(
            f"compilation stopped at chunk {state.last_processed_index + 1}/{total_chunks}: "
            f"{type(cause).__name__}: {cause}"
        )
        self.state = state
        self.total_chunks = total_chunks
        self.cause = cause


class EmptyReplyError(RuntimeError):
    """The service returned nothing usable for a compilation step."""


def seed_report(root_label: str) -> str:
    return f"# Codebase Analysis Report\n\n#### Codebase: {root_label}\n"


def retry_delay(attempt: int, backoff_s: float, max_backoff_s: float) -> float:
    """Exponential backoff before retry number attempt (1-based)."""
    if attempt <= 0 or backoff_s <= 0:
        return 0.0
    return min(backoff_s * (2 ** (attempt - 1)), max_backoff_s)


def compile_report(
    root_label: str,
    preliminary_document: str,
    generate: Callable[..., str],
    prompts: Dict[str, str],
    *,
    initial_state: Optional[CompilationState] = None,
    chunk_size: int = DEFAULT_COMPILE_CHUNK_SIZE,
    overlap: Optional[int] = None,
    max_tokens: Optional[int] = None,
    max_retries: int = 3,
    backoff_s: float = 2.0,
    max_backoff_s: float = 60.0,
    sleep: Callable[[float], None] = time.sleep,
    recorder: Optional[PerformanceRecorder] = None,
    on_chunk: Optional[Callable[[CompilationState], None]] = None,
    log: Optional[Callable[[str], None]] = None,
    verbose: bool = False,
) -> str:
    """Merge every chunk of preliminary_document into a running report.

    Each chunk costs one generate() call whose reply replaces the running
    report. Processing starts at initial_state.last_processed_index, so a
    state saved after chunk k resumes at chunk k without repeating earlier
    chunks. A failed call is retried from the same state after a backoff;
    after max_retries consecutive failures on one chunk, CompilationAborted
    is raised carrying that state.

    Returns the running report once every chunk is folded. A document with
    no chunks returns the seeded header unchanged.
    """
    state = initial_state or CompilationState(running_report=seed_report(root_label))
    chunks = split_text(preliminary_document, chunk_size, overlap)
    total = len(chunks)
    if state.last_processed_index < 0 or state.last_processed_index > total:
        raise ValueError(
            f"last_processed_index={state.last_processed_index} outside 0..{total} chunks"
        )

    if log is not None:
        log(f"[COMPILE] chunks={total} start={state.last_processed_index} chunk_size={chunk_size}")

    system = system_prompt(prompts)
    failures = 0
    while state.last_processed_index < total:
        chunk = chunks[state.last_processed_index]
        number = chunk.index + 1
        if log is not None and verbose:
            log(f"[COMPILE] chunk {number}/{total}")
        started = time.perf_counter()
        try:
            reply = generate(
                system,
                compile_prompt(
                    prompts,
                    root_label=root_label,
                    chunk=chunk.text,
                    running_report=state.running_report,
                    chunk_number=number,
                    chunk_total=total,
                ),
                max_tokens=max_tokens,
                label=f"compile:{number}/{total}",
            )
            if not reply or not reply.strip():
                raise EmptyReplyError("empty reply")
        except Exception as e:
            failures += 1
            if failures > max_retries:
                if log is not None:
                    log(f"[ABORT] chunk {number}/{total} failed {failures} times: {type(e).__name__}: {e}")
                raise CompilationAborted(state, total, e) from e
            wait = retry_delay(failures, backoff_s, max_backoff_s)
            if log is not None:
                log(
                    f"[RETRY] chunk {number}/{total} attempt={failures}/{max_retries} "
                    f"wait={format_duration(wait)} error={type(e).__name__}: {e}"
                )
            if wait > 0:
                sleep(wait)
            continue

        failures = 0
        state = CompilationState(running_report=reply, last_processed_index=state.last_processed_index + 1)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if recorder is not None:
            recorder.add_sample("chunk", elapsed_ms)
        if on_chunk is not None:
            on_chunk(state)
        if log is not None and verbose:
            log(f"[COMPILE] done {number}/{total} in {format_duration(elapsed_ms / 1000.0)}")

    return state.running_report
