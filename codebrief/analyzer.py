"""Per-file analysis through the text-generation service."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .prompts import system_prompt, unit_analysis_prompt
from .repo_scan import SourceUnit

WRAPPING_FENCE_RE = re.compile(r"\A\s*```(?:markdown|md)?[ \t]*\n(.*?)\n?```\s*\Z", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class UnitAnalysis:
    path: str
    analysis_text: str


def failure_placeholder(path: str) -> str:
    return f"Failed to generate report for file: {path} due to unexpected system error."


def strip_wrapping_fence(text: str) -> str:
    """Remove a code fence that wraps the whole reply, if any."""
    m = WRAPPING_FENCE_RE.match(text)
    if m:
        return m.group(1).strip()
    return text.strip()


def analyze_unit(
    unit: SourceUnit,
    generate: Callable[..., str],
    prompts: Dict[str, str],
    *,
    max_tokens: Optional[int] = None,
    log: Optional[Callable[[str], None]] = None,
) -> UnitAnalysis:
    """Analyze one file. Never raises: failures become placeholder text."""
    try:
        text = generate(
            system_prompt(prompts),
            unit_analysis_prompt(prompts, unit.path, unit.content),
            max_tokens=max_tokens,
            label=f"analyze:{unit.path}",
        )
        text = strip_wrapping_fence(text or "")
        if not text:
            raise ValueError("empty reply")
    except Exception as e:
        if log is not None:
            log(f"[WARN] analysis failed for {unit.path}: {type(e).__name__}: {e}")
        return UnitAnalysis(path=unit.path, analysis_text=failure_placeholder(unit.path))
    return UnitAnalysis(path=unit.path, analysis_text=text)


def analyze_units(
    units: List[SourceUnit],
    generate: Callable[..., str],
    prompts: Dict[str, str],
    *,
    max_tokens: Optional[int] = None,
    delay_s: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
    on_sample: Optional[Callable[[float], None]] = None,
    log: Optional[Callable[[str], None]] = None,
    verbose: bool = False,
) -> List[UnitAnalysis]:
    """Analyze files one at a time, in order, pausing delay_s between calls.

    on_sample receives the elapsed milliseconds of each file.
    """
    results: List[UnitAnalysis] = []
    total = len(units)
    for idx, unit in enumerate(units, start=1):
        started = time.perf_counter()
        if log is not None and verbose:
            log(f"[ANALYZE] {idx}/{total} {unit.path}")
        results.append(analyze_unit(unit, generate, prompts, max_tokens=max_tokens, log=log))
        if delay_s > 0 and idx < total:
            sleep(delay_s)
        if on_sample is not None:
            on_sample((time.perf_counter() - started) * 1000.0)
    return results
