"""Render prompt templates from configuration."""

from __future__ import annotations

from typing import Dict


def _template(prompts: Dict[str, str], name: str) -> str:
    value = prompts.get(name)
    if not value:
        raise KeyError(f'Missing "{name}" prompt in config')
    return value


def system_prompt(prompts: Dict[str, str]) -> str:
    return _template(prompts, "system")


def unit_analysis_prompt(prompts: Dict[str, str], path: str, content: str) -> str:
    return _template(prompts, "unit_analysis").format(path=path, content=content)


def compile_prompt(
    prompts: Dict[str, str],
    *,
    root_label: str,
    chunk: str,
    running_report: str,
    chunk_number: int,
    chunk_total: int,
) -> str:
    return _template(prompts, "compile").format(
        root_label=root_label,
        chunk=chunk,
        running_report=running_report,
        chunk_number=chunk_number,
        chunk_total=chunk_total,
    )


def standardize_prompt(prompts: Dict[str, str], report: str) -> str:
    return _template(prompts, "standardize").format(report=report)
