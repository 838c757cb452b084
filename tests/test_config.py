from pathlib import Path

import pytest

from codebrief.config import (
    CONFIG_ENV_VAR,
    ConfigError,
    load_settings,
    resolve_config_path,
)


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_packaged_defaults_load(settings):
    assert settings.llm.provider == "openai"
    assert settings.compile.chunk_size == 2048
    assert settings.compile.overlap is None
    assert settings.compile.max_retries == 3
    assert settings.output.report_suffix == ".report.txt"
    assert ".git" in settings.scan.ignore_dirs
    for name in ("system", "unit_analysis", "compile", "standardize"):
        assert settings.prompts[name].strip()
    assert settings.source is None


def test_user_config_overrides_single_keys(tmp_path):
    path = _write(
        tmp_path,
        "llm:\n  provider: Ollama\n  base_url: http://localhost:11434/\n"
        "compile:\n  chunk_size: 512\n  backoff_s: 1\n",
    )
    s = load_settings(path)
    assert s.llm.provider == "ollama"
    assert s.llm.base_url == "http://localhost:11434"
    # untouched keys keep their packaged values
    assert s.llm.model == "gpt-4o"
    assert s.compile.chunk_size == 512
    assert s.compile.backoff_s == 1.0
    assert s.compile.max_retries == 3
    assert s.source == path


def test_empty_user_config_is_allowed(tmp_path):
    s = load_settings(_write(tmp_path, ""))
    assert s.llm.model == "gpt-4o"


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "missing.yaml")


def test_non_mapping_config(tmp_path):
    with pytest.raises(ConfigError, match="mapping"):
        load_settings(_write(tmp_path, "- a\n- b\n"))


def test_unknown_provider(tmp_path):
    with pytest.raises(ConfigError, match="llm.provider"):
        load_settings(_write(tmp_path, "llm:\n  provider: carrier-pigeon\n"))


@pytest.mark.parametrize(
    "text,key",
    [
        ("compile:\n  chunk_size: big\n", "compile.chunk_size"),
        ("compile:\n  chunk_size: 0\n", "compile.chunk_size"),
        ("compile:\n  max_retries: -1\n", "compile.max_retries"),
        ("compile:\n  max_retries: true\n", "compile.max_retries"),
        ("scan:\n  ignore_dirs: node_modules\n", "scan.ignore_dirs"),
    ],
)
def test_invalid_values(tmp_path, text, key):
    with pytest.raises(ConfigError, match=key):
        load_settings(_write(tmp_path, text))


def test_blank_prompt_rejected(tmp_path):
    with pytest.raises(ConfigError, match="prompts.compile"):
        load_settings(_write(tmp_path, "prompts:\n  compile: '  '\n"))


def test_resolve_config_path(monkeypatch, tmp_path):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    assert resolve_config_path() is None
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yaml"))
    assert resolve_config_path() == (tmp_path / "env.yaml").resolve()
    assert resolve_config_path(str(tmp_path / "cli.yaml")) == (tmp_path / "cli.yaml").resolve()
