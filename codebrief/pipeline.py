"""Run the full report pipeline: scan, analyze, aggregate, compile, standardize."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from .aggregate import aggregate
from .analyzer import UnitAnalysis, analyze_unit, analyze_units
from .checkpoint import Checkpoint, clear_checkpoint, load_checkpoint, save_checkpoint
from .chunker import effective_overlap, split_text
from .compiler import CompilationAborted, CompilationState, compile_report, seed_report
from .config import Settings
from .perf import PerformanceRecorder, format_duration
from .repo_scan import collect_files, ensure_directory, read_source_unit, read_source_units
from .standardize import standardize_report


@dataclass
class ReportResult:
    preliminary_document: str
    compiled_report: str
    report: str
    complete: bool = True
    metrics: Dict[str, float] = field(default_factory=dict)


def partial_report_note(done: int, total: int) -> str:
    return (
        f"\n\n> Note: this report was compiled from {done} of {total} preliminary chunks; "
        "the remaining chunks could not be processed.\n"
    )


def generate_report(
    root: Path,
    settings: Settings,
    generate: Callable[..., str],
    *,
    standardize: bool = True,
    checkpoint_file: Optional[Path] = None,
    exclude_paths: Optional[Iterable[Path]] = None,
    recorder: Optional[PerformanceRecorder] = None,
    sleep: Callable[[float], None] = time.sleep,
    log: Optional[Callable[[str], None]] = None,
    verbose: bool = False,
) -> ReportResult:
    """Produce the final report for root.

    Raises DirectoryNotFound when root is not a directory; every other
    failure is absorbed by the stage where it happens.

    With checkpoint_file set, compilation progress is saved after each chunk
    and a matching checkpoint from an earlier run is resumed instead of
    scanning and analyzing again. A checkpoint made with another chunk_size or
    overlap keeps its preliminary document but recompiles it from the first
    chunk, since its saved index counts different chunks. exclude_paths
    keeps output files written inside root out of the scan.
    """
    recorder = recorder or PerformanceRecorder()
    with recorder.stage("total"):
        root = ensure_directory(root)
        root_label = str(root)
        llm = settings.llm

        cs = settings.compile
        overlap = effective_overlap(cs.chunk_size, cs.overlap)

        resumed: Optional[Checkpoint] = None
        if checkpoint_file is not None:
            resumed = load_checkpoint(checkpoint_file)
            if resumed is not None and resumed.root_label != root_label:
                if log is not None:
                    log(f"[WARN] checkpoint belongs to {resumed.root_label}; ignoring it")
                resumed = None

        initial_state: Optional[CompilationState] = None
        if resumed is not None:
            document = resumed.preliminary_document
            total = len(split_text(document, cs.chunk_size, overlap))
            if resumed.matches_chunking(cs.chunk_size, overlap) and resumed.state.last_processed_index <= total:
                initial_state = resumed.state
                if log is not None:
                    log(f"[RESUME] {checkpoint_file} chunks_done={initial_state.last_processed_index}")
            elif log is not None:
                # saved index counts chunks of a different split; only the document is reusable
                log(
                    f"[WARN] checkpoint (chunk_size={resumed.chunk_size} overlap={resumed.overlap} "
                    f"chunks_done={resumed.state.last_processed_index}) does not fit chunk_size={cs.chunk_size} "
                    f"overlap={overlap} chunks={total}; recompiling its preliminary document from chunk 1"
                )
        else:
            if log is not None:
                log(f"[SCAN] {root}")
            with recorder.stage("file_collection"):
                files = collect_files(root, settings.scan, exclude=exclude_paths)
                units = read_source_units(root, files, settings.scan, log=log, verbose=verbose)
            if log is not None:
                log(f"[SCAN] files={len(files)} readable={len(units)}")

            started = time.perf_counter()
            with recorder.stage("file_analysis"):
                analyses = analyze_units(
                    units,
                    generate,
                    settings.prompts,
                    max_tokens=llm.analysis_max_tokens,
                    delay_s=settings.analysis.file_delay_s,
                    sleep=sleep,
                    on_sample=lambda ms: recorder.add_sample("file", ms),
                    log=log,
                    verbose=verbose,
                )
            if log is not None:
                log(f"[TIME] file_analysis files={len(analyses)} duration={format_duration(time.perf_counter() - started)}")

            with recorder.stage("preliminary_aggregation"):
                document = aggregate(analyses, root_label)

        def _checkpoint(state: CompilationState) -> None:
            if checkpoint_file is None:
                return
            try:
                save_checkpoint(
                    checkpoint_file,
                    Checkpoint(
                        root_label=root_label,
                        preliminary_document=document,
                        state=state,
                        chunk_size=cs.chunk_size,
                        overlap=overlap,
                    ),
                )
            except OSError as e:
                if log is not None:
                    log(f"[WARN] could not write checkpoint {checkpoint_file}: {type(e).__name__}: {e}")

        if initial_state is None:
            # keep the analysis work even if compilation never gets past chunk 0
            _checkpoint(CompilationState(running_report=seed_report(root_label)))

        complete = True
        started = time.perf_counter()
        with recorder.stage("report_compilation"):
            try:
                compiled = compile_report(
                    root_label,
                    document,
                    generate,
                    settings.prompts,
                    initial_state=initial_state,
                    chunk_size=cs.chunk_size,
                    overlap=overlap,
                    max_tokens=llm.compile_max_tokens,
                    max_retries=cs.max_retries,
                    backoff_s=cs.backoff_s,
                    max_backoff_s=cs.max_backoff_s,
                    sleep=sleep,
                    recorder=recorder,
                    on_chunk=_checkpoint,
                    log=log,
                    verbose=verbose,
                )
            except CompilationAborted as e:
                complete = False
                done = e.state.last_processed_index
                if log is not None:
                    log(f"[WARN] {e}; keeping the report from {done}/{e.total_chunks} chunks")
                compiled = e.state.running_report + partial_report_note(done, e.total_chunks)
        if log is not None:
            log(f"[TIME] report_compilation duration={format_duration(time.perf_counter() - started)}")

        if complete and checkpoint_file is not None:
            clear_checkpoint(checkpoint_file)

        report = compiled
        if standardize:
            if log is not None:
                log("[STANDARDIZE] start")
            result = standardize_report(
                compiled,
                generate,
                settings.prompts,
                max_tokens=llm.compile_max_tokens,
                log=log,
            )
            recorder.record("standardization", result.elapsed_ms)
            report = result.standardized_report
            if log is not None:
                log(f"[TIME] standardization duration={format_duration(result.elapsed_ms / 1000.0)}")

    return ReportResult(
        preliminary_document=document,
        compiled_report=compiled,
        report=report,
        complete=complete,
        metrics=recorder.metrics(),
    )


def analyze_single_file(
    file_path: Path,
    settings: Settings,
    generate: Callable[..., str],
    *,
    log: Optional[Callable[[str], None]] = None,
) -> UnitAnalysis:
    """Analyze one file on its own (individual report mode)."""
    p = file_path.expanduser().resolve()
    if not p.is_file():
        raise FileNotFoundError(f'File does not exist: "{p}"')
    unit = read_source_unit(p.parent, p, settings.scan)
    return analyze_unit(
        unit,
        generate,
        settings.prompts,
        max_tokens=settings.llm.analysis_max_tokens,
        log=log,
    )
