"""Wall-clock timing of pipeline stages."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Tuple

STAGE_ROWS: Tuple[Tuple[str, str], ...] = (
    ("total_ms", "Total Time"),
    ("file_collection_ms", "File Collection Time"),
    ("file_analysis_ms", "File Analysis Time"),
    ("avg_file_processing_ms", "Avg File Processing Time"),
    ("preliminary_aggregation_ms", "Preliminary Aggregation Time"),
    ("report_compilation_ms", "Report Compilation Time"),
    ("chunk_processing_ms", "Chunk Processing Time"),
    ("avg_chunk_processing_ms", "Avg Chunk Processing Time"),
    ("standardization_ms", "Standardization Time"),
)


def format_duration(seconds: float) -> str:
    """Format elapsed seconds into a compact, human-readable string."""
    if seconds < 0:
        seconds = 0.0
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m{secs:04.1f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h{int(minutes):02d}m{secs:04.1f}s"


class PerformanceRecorder:
    """Collects stage durations and per-file / per-chunk samples (ms).

    Measurement only: nothing here feeds back into control flow.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self.durations: Dict[str, float] = {}
        self.samples: Dict[str, List[float]] = {"file": [], "chunk": []}

    def record(self, name: str, elapsed_ms: float) -> None:
        self.durations[name] = self.durations.get(name, 0.0) + elapsed_ms

    def add_sample(self, series: str, elapsed_ms: float) -> None:
        self.samples.setdefault(series, []).append(elapsed_ms)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block and add it to the named stage."""
        started = self._clock()
        try:
            yield
        finally:
            self.record(name, (self._clock() - started) * 1000.0)

    def metrics(self) -> Dict[str, float]:
        """Flat record of named durations in milliseconds."""
        files = self.samples.get("file", [])
        chunks = self.samples.get("chunk", [])
        chunk_total = sum(chunks)
        return {
            "total_ms": self.durations.get("total", 0.0),
            "file_collection_ms": self.durations.get("file_collection", 0.0),
            "file_analysis_ms": self.durations.get("file_analysis", 0.0),
            "avg_file_processing_ms": sum(files) / len(files) if files else 0.0,
            "preliminary_aggregation_ms": self.durations.get("preliminary_aggregation", 0.0),
            "report_compilation_ms": self.durations.get("report_compilation", 0.0),
            "chunk_processing_ms": chunk_total,
            "avg_chunk_processing_ms": chunk_total / len(chunks) if chunks else 0.0,
            "standardization_ms": self.durations.get("standardization", 0.0),
        }

    def table_rows(self) -> List[Tuple[int, str, str]]:
        m = self.metrics()
        return [
            (idx, label, f"{m[key] / 1000.0:.2f} seconds")
            for idx, (key, label) in enumerate(STAGE_ROWS, start=1)
        ]

    def format_table(self) -> str:
        """Render the stage timings as a fixed-width text table."""
        header = ("Index", "Stage", "Time")
        rows = [(str(i), stage, t) for i, stage, t in self.table_rows()]
        widths = [max(len(r[col]) for r in [header, *rows]) for col in range(3)]
        sep = "+-" + "-+-".join("-" * w for w in widths) + "-+"

        def _line(cells: Tuple[str, str, str]) -> str:
            return "| " + " | ".join(c.ljust(w) for c, w in zip(cells, widths)) + " |"

        out = [sep, _line(header), sep]
        out.extend(_line(r) for r in rows)
        out.append(sep)
        return "\n".join(out)
