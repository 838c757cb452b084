"""CLI runner for codebase report generation."""

from __future__ import annotations

import argparse
import dataclasses
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .config import PROVIDERS, ConfigError, Settings, load_settings, resolve_config_path
from .llm_client import TextGenerator
from .output import (
    checkpoint_path,
    clear_reports,
    individual_report_path,
    preliminary_path,
    run_log_path,
    write_text,
)
from .perf import PerformanceRecorder, format_duration
from .pipeline import analyze_single_file, generate_report
from .repo_scan import DirectoryNotFound


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="codebrief",
        description="Analyze every file of a codebase with an LLM and compile one report",
    )
    ap.add_argument("--directory", help="Directory to analyze")
    ap.add_argument("--file", help="Analyze a single file and write <file>.report.txt next to it")
    ap.add_argument("--out", help="Report output path (default: <directory>/codebase.report.txt)")
    ap.add_argument("--config", help="YAML config overriding the packaged defaults (env: CODEBRIEF_CONFIG)")
    ap.add_argument("--env", help="Path to a .env file (default: ./.env when present)")
    ap.add_argument("--provider", choices=PROVIDERS, help="Text-generation provider")
    ap.add_argument("--model", help="Model name")
    ap.add_argument("--base-url", help="Provider base URL")
    ap.add_argument("--temperature", type=float, help="Sampling temperature")
    ap.add_argument("--timeout", type=int, help="HTTP timeout seconds")
    ap.add_argument("--chunk-size", type=int, help="Characters per compilation chunk")
    ap.add_argument("--max-retries", type=int, help="Retries per failing compilation chunk")
    ap.add_argument("--verbose", action="store_true", help="Log per-file and per-chunk details")
    ap.add_argument("--performance-stats", action="store_true", help="Print stage timings after the run")
    ap.add_argument("--write-preliminary", action="store_true", help="Also write the preliminary analysis")
    ap.add_argument("--no-standardize", dest="standardize", action="store_false", default=True,
                    help="Write the compiled report without the standardization pass")
    ap.add_argument("--resume", action="store_true",
                    help="Checkpoint compilation and resume from an earlier interrupted run")
    ap.add_argument("--clear", action="store_true", help="Delete generated report files under --directory and exit")
    return ap


def validate_args(args: argparse.Namespace) -> List[str]:
    """Return a list of argument errors (empty when the combination is valid)."""
    errors: List[str] = []
    if args.clear:
        if not args.directory:
            errors.append("--clear needs --directory")
        if args.file:
            errors.append("--clear cannot be combined with --file")
        for flag, used in (
            ("--out", args.out),
            ("--resume", args.resume),
            ("--write-preliminary", args.write_preliminary),
            ("--no-standardize", not args.standardize),
            ("--performance-stats", args.performance_stats),
        ):
            if used:
                errors.append(f"--clear cannot be combined with {flag}")
        return errors
    if not args.directory and not args.file:
        errors.append("no directory provided (use --directory, or --file for a single file)")
    if args.directory and args.file:
        errors.append("cannot process a directory and an individual file at the same time")
    if args.chunk_size is not None and args.chunk_size <= 0:
        errors.append("--chunk-size must be > 0")
    if args.max_retries is not None and args.max_retries < 0:
        errors.append("--max-retries must be >= 0")
    return errors


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply CLI flags on top of the loaded configuration."""
    llm_changes = {}
    if args.provider:
        llm_changes["provider"] = args.provider
    if args.model:
        llm_changes["model"] = args.model
    if args.base_url:
        llm_changes["base_url"] = args.base_url.rstrip("/")
    if args.temperature is not None:
        llm_changes["temperature"] = args.temperature
    if args.timeout is not None:
        llm_changes["timeout_s"] = args.timeout
    compile_changes = {}
    if args.chunk_size is not None:
        compile_changes["chunk_size"] = args.chunk_size
    if args.max_retries is not None:
        compile_changes["max_retries"] = args.max_retries
    return dataclasses.replace(
        settings,
        llm=dataclasses.replace(settings.llm, **llm_changes),
        compile=dataclasses.replace(settings.compile, **compile_changes),
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI and orchestrate the report pipeline."""
    args = build_parser().parse_args(argv)

    run_log: Optional[Path] = None

    def _append_log(line: str) -> None:
        if run_log is None:
            return
        run_log.parent.mkdir(parents=True, exist_ok=True)
        with run_log.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def _log(msg: str, *, stderr: bool = False) -> None:
        if msg.startswith(("[WARN]", "[ERROR]", "[ABORT]")):
            stderr = True
        stream = sys.stderr if stderr else sys.stdout
        print(msg, file=stream)
        _append_log(msg)

    errors = validate_args(args)
    if errors:
        for e in errors:
            _log(f"[ERROR] {e}", stderr=True)
        return 2

    if args.env:
        env_path = Path(args.env).expanduser()
        if not env_path.is_file():
            _log(f'[ERROR] .env file not found: "{env_path}"', stderr=True)
            return 2
        load_dotenv(env_path, override=False)
    else:
        found = find_dotenv(usecwd=True)
        if found:
            load_dotenv(found, override=False)

    try:
        settings = apply_overrides(load_settings(resolve_config_path(args.config)), args)
    except ConfigError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2

    if args.clear:
        directory = Path(args.directory).expanduser().resolve()
        if not directory.is_dir():
            _log(f'[ERROR] Directory does not exist: "{directory}"', stderr=True)
            return 2
        removed = clear_reports(
            directory,
            settings.scan,
            settings.output.report_suffix,
            log=_log if args.verbose else None,
        )
        _log(f"[OK] removed {len(removed)} report file(s) under {directory}")
        return 0

    try:
        generate = TextGenerator(settings.llm, log=_log if args.verbose else None)
    except ConfigError as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2

    if args.file:
        file_path = Path(args.file).expanduser().resolve()
        try:
            analysis = analyze_single_file(file_path, settings, generate, log=_log)
        except FileNotFoundError as e:
            _log(f"[ERROR] {e}", stderr=True)
            return 2
        out = Path(args.out).expanduser().resolve() if args.out else individual_report_path(
            file_path, settings.output.report_suffix
        )
        write_text(out, analysis.analysis_text)
        _log(f"[OK] {file_path} -> {out}")
        return 0

    directory = Path(args.directory).expanduser().resolve()
    if not directory.is_dir():
        _log(f'[ERROR] Directory does not exist: "{directory}"', stderr=True)
        return 2
    report_path = (
        Path(args.out).expanduser().resolve()
        if args.out
        else directory / settings.output.default_report_name
    )
    prelim_path = preliminary_path(report_path)
    ckpt_path = checkpoint_path(report_path)
    run_log = run_log_path(report_path)
    _append_log(f"[RUN] start {time.strftime('%Y-%m-%d %H:%M:%S')}")
    _log(
        f"[RUN] directory={directory} provider={settings.llm.provider} model={settings.llm.model} "
        f"config={settings.source or 'defaults'}"
    )

    recorder = PerformanceRecorder()
    try:
        result = generate_report(
            directory,
            settings,
            generate,
            standardize=args.standardize,
            checkpoint_file=ckpt_path if args.resume else None,
            exclude_paths=[report_path, prelim_path, ckpt_path, run_log],
            recorder=recorder,
            log=_log,
            verbose=args.verbose,
        )
    except DirectoryNotFound as e:
        _log(f"[ERROR] {e}", stderr=True)
        return 2

    write_text(report_path, result.report)
    if args.write_preliminary:
        write_text(prelim_path, result.preliminary_document)
        _log(f"[OK] preliminary analysis -> {prelim_path}")
    if not result.complete:
        hint = " (rerun with --resume to continue)" if args.resume else ""
        _log(f"[WARN] report is partial{hint}")

    _log(f"[TIME] total duration={format_duration(result.metrics['total_ms'] / 1000.0)}")
    if args.performance_stats:
        _log(recorder.format_table())
    _log(f"[OK] {directory} -> {report_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
