"""Load and validate the YAML configuration."""

from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

CONFIG_ENV_VAR = "CODEBRIEF_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "defaults.yaml"

PROVIDERS = ("openai", "ollama")
REQUIRED_PROMPTS = ("system", "unit_analysis", "compile", "standardize")


class ConfigError(RuntimeError):
    """Raised when configuration is missing, unreadable or malformed."""


@dataclass(frozen=True)
class LLMSettings:
    provider: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o"
    temperature: float = 0.7
    timeout_s: int = 600
    num_ctx: int = 32768
    analysis_max_tokens: int = 1024
    compile_max_tokens: int = 16384
    api_key_env: str = "OPENAI_API_KEY"


@dataclass(frozen=True)
class ScanRules:
    ignore_dirs: Tuple[str, ...] = ()
    ignore_suffixes: Tuple[str, ...] = ()
    max_file_bytes: int = 200_000
    redact_secrets: bool = True


@dataclass(frozen=True)
class AnalysisSettings:
    file_delay_s: float = 0.1


@dataclass(frozen=True)
class CompileSettings:
    chunk_size: int = 2048
    overlap: Optional[int] = None
    max_retries: int = 3
    backoff_s: float = 2.0
    max_backoff_s: float = 60.0


@dataclass(frozen=True)
class OutputSettings:
    report_suffix: str = ".report.txt"
    default_report_name: str = "codebase.report.txt"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration threaded through every pipeline stage."""
    llm: LLMSettings
    scan: ScanRules
    analysis: AnalysisSettings
    compile: CompileSettings
    output: OutputSettings
    prompts: Dict[str, str] = field(default_factory=dict)
    source: Optional[Path] = None


def _load_config(path: Path) -> Dict[str, Any]:
    """Read the YAML config from disk and validate its top-level type."""
    if not path.exists():
        raise ConfigError(f'Config file not found: "{path}"')
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f'Failed to read config "{path}": {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Config file "{path}" must be a YAML mapping at top level')
    return data


def resolve_config_path(explicit: Optional[str] = None) -> Optional[Path]:
    """Resolve the user config path from an explicit value or env override."""
    value = (explicit or "").strip() or os.environ.get(CONFIG_ENV_VAR, "").strip()
    if value:
        return Path(value).expanduser().resolve()
    return None


def _merge_sections(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay override sections on base, one level deep."""
    merged = deepcopy(base)
    for name, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(name), dict):
            section = dict(merged[name])
            section.update(value)
            merged[name] = section
        else:
            merged[name] = deepcopy(value)
    return merged


def _require_section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Fetch a required config section and validate its type."""
    value = data.get(name)
    if not isinstance(value, dict):
        raise ConfigError(f'Config section "{name}" missing or not a mapping')
    return value


def _get(section: Dict[str, Any], section_name: str, key: str, kind: type, default: Any) -> Any:
    """Read one typed value from a section, falling back to default."""
    value = section.get(key, default)
    if value is None:
        return default
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ConfigError(f'Config value "{section_name}.{key}" must be {kind.__name__}')
    return value


def _str_list(section: Dict[str, Any], section_name: str, key: str) -> Tuple[str, ...]:
    """Normalize a list of non-empty strings from config values."""
    value = section.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f'Config value "{section_name}.{key}" must be a list')
    out: List[str] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            out.append(item.strip())
    return tuple(out)


def _build_settings(data: Dict[str, Any], source: Optional[Path]) -> Settings:
    llm_cfg = _require_section(data, "llm")
    d_llm = LLMSettings()
    provider = _get(llm_cfg, "llm", "provider", str, d_llm.provider).lower()
    if provider not in PROVIDERS:
        raise ConfigError(f'Config value "llm.provider" must be one of {", ".join(PROVIDERS)}')
    llm = LLMSettings(
        provider=provider,
        base_url=_get(llm_cfg, "llm", "base_url", str, d_llm.base_url).rstrip("/"),
        model=_get(llm_cfg, "llm", "model", str, d_llm.model),
        temperature=_get(llm_cfg, "llm", "temperature", float, d_llm.temperature),
        timeout_s=_get(llm_cfg, "llm", "timeout_s", int, d_llm.timeout_s),
        num_ctx=_get(llm_cfg, "llm", "num_ctx", int, d_llm.num_ctx),
        analysis_max_tokens=_get(llm_cfg, "llm", "analysis_max_tokens", int, d_llm.analysis_max_tokens),
        compile_max_tokens=_get(llm_cfg, "llm", "compile_max_tokens", int, d_llm.compile_max_tokens),
        api_key_env=_get(llm_cfg, "llm", "api_key_env", str, d_llm.api_key_env),
    )

    scan_cfg = _require_section(data, "scan")
    scan = ScanRules(
        ignore_dirs=tuple(d.lower() for d in _str_list(scan_cfg, "scan", "ignore_dirs")),
        ignore_suffixes=tuple(s.lower() for s in _str_list(scan_cfg, "scan", "ignore_suffixes")),
        max_file_bytes=_get(scan_cfg, "scan", "max_file_bytes", int, ScanRules.max_file_bytes),
        redact_secrets=_get(scan_cfg, "scan", "redact_secrets", bool, ScanRules.redact_secrets),
    )

    analysis_cfg = data.get("analysis") or {}
    if not isinstance(analysis_cfg, dict):
        raise ConfigError('Config section "analysis" must be a mapping')
    analysis = AnalysisSettings(
        file_delay_s=_get(analysis_cfg, "analysis", "file_delay_s", float, AnalysisSettings.file_delay_s),
    )

    compile_cfg = _require_section(data, "compile")
    d_compile = CompileSettings()
    compile_settings = CompileSettings(
        chunk_size=_get(compile_cfg, "compile", "chunk_size", int, d_compile.chunk_size),
        overlap=_get(compile_cfg, "compile", "overlap", int, None),
        max_retries=_get(compile_cfg, "compile", "max_retries", int, d_compile.max_retries),
        backoff_s=_get(compile_cfg, "compile", "backoff_s", float, d_compile.backoff_s),
        max_backoff_s=_get(compile_cfg, "compile", "max_backoff_s", float, d_compile.max_backoff_s),
    )
    if compile_settings.chunk_size <= 0:
        raise ConfigError('Config value "compile.chunk_size" must be > 0')
    if compile_settings.max_retries < 0:
        raise ConfigError('Config value "compile.max_retries" must be >= 0')

    output_cfg = data.get("output") or {}
    if not isinstance(output_cfg, dict):
        raise ConfigError('Config section "output" must be a mapping')
    output = OutputSettings(
        report_suffix=_get(output_cfg, "output", "report_suffix", str, OutputSettings.report_suffix),
        default_report_name=_get(
            output_cfg, "output", "default_report_name", str, OutputSettings.default_report_name
        ),
    )

    prompts_cfg = _require_section(data, "prompts")
    prompts: Dict[str, str] = {}
    for name in REQUIRED_PROMPTS:
        value = prompts_cfg.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f'Prompt "prompts.{name}" missing or empty')
        prompts[name] = value

    return Settings(
        llm=llm,
        scan=scan,
        analysis=analysis,
        compile=compile_settings,
        output=output,
        prompts=prompts,
        source=source,
    )


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load packaged defaults, overlay an optional user config, and validate."""
    data = _load_config(DEFAULT_CONFIG_PATH)
    if path is not None:
        data = _merge_sections(data, _load_config(path))
    return _build_settings(data, path)
