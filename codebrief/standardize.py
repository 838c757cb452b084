"""Reformat a compiled report into the fixed section template."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .prompts import standardize_prompt, system_prompt

STANDARDIZE_FAILED_TEXT = "# Sorry, couldn't standardize your report."


@dataclass(frozen=True)
class StandardizeResult:
    standardized_report: str
    elapsed_ms: float


def standardize_report(
    report: str,
    generate: Callable[..., str],
    prompts: Dict[str, str],
    *,
    max_tokens: Optional[int] = None,
    log: Optional[Callable[[str], None]] = None,
) -> StandardizeResult:
    """One best-effort call; any failure yields STANDARDIZE_FAILED_TEXT."""
    started = time.perf_counter()
    try:
        text = generate(
            system_prompt(prompts),
            standardize_prompt(prompts, report),
            max_tokens=max_tokens,
            label="standardize",
        )
        if not text or not text.strip():
            raise ValueError("empty reply")
    except Exception as e:
        if log is not None:
            log(f"[WARN] standardization failed: {type(e).__name__}: {e}")
        text = STANDARDIZE_FAILED_TEXT
    return StandardizeResult(
        standardized_report=text,
        elapsed_ms=(time.perf_counter() - started) * 1000.0,
    )
