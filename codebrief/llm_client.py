"""Chat clients for the text-generation service (Ollama or OpenAI-compatible)."""

from __future__ import annotations

import os
from typing import Callable, Optional

import httpx

from .config import ConfigError, LLMSettings


class LLMResponseError(RuntimeError):
    """Raised when the service answers with an unexpected payload."""


def _log_request(
    log: Optional[Callable[[str], None]],
    label: str,
    model: str,
    system: str,
    user: str,
    extra: str,
) -> None:
    if log is None:
        return
    prompt_chars = len(system) + len(user)
    prompt_bytes = len(system.encode("utf-8", errors="ignore")) + len(user.encode("utf-8", errors="ignore"))
    log(f"[LLM] {label} model={model} prompt_chars={prompt_chars} prompt_bytes={prompt_bytes} {extra}".rstrip())


def _post(
    url: str,
    payload: dict,
    *,
    timeout_s: int,
    headers: Optional[dict] = None,
    client: Optional[httpx.Client] = None,
) -> dict:
    """POST a JSON payload and return the decoded JSON body."""
    if client is not None:
        r = client.post(url, json=payload, headers=headers, timeout=timeout_s)
        r.raise_for_status()
        return r.json()
    with httpx.Client(timeout=timeout_s) as own:
        r = own.post(url, json=payload, headers=headers)
        r.raise_for_status()
        return r.json()


def ollama_chat(
    base_url: str,
    model: str,
    system: str,
    user: str,
    *,
    temperature: float,
    timeout_s: int,
    num_predict: int,
    num_ctx: int,
    log: Optional[Callable[[str], None]] = None,
    label: str = "request",
    client: Optional[httpx.Client] = None,
) -> str:
    """Send a single chat request to Ollama and return the response text."""
    _log_request(log, label, model, system, user, f"num_ctx={num_ctx} num_predict={num_predict}")
    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "options": {
            "temperature": temperature,
            "num_predict": num_predict,
            "num_ctx": num_ctx,
        },
        "stream": False,
    }
    data = _post(f"{base_url}/api/chat", payload, timeout_s=timeout_s, client=client)
    try:
        return data["message"]["content"]
    except (KeyError, TypeError) as e:
        raise LLMResponseError(f"Unexpected Ollama response shape: missing {e}") from e


def openai_chat(
    base_url: str,
    model: str,
    system: str,
    user: str,
    *,
    api_key: str,
    temperature: float,
    timeout_s: int,
    max_tokens: int,
    log: Optional[Callable[[str], None]] = None,
    label: str = "request",
    client: Optional[httpx.Client] = None,
) -> str:
    """Send a single chat completion request to an OpenAI-compatible API."""
    _log_request(log, label, model, system, user, f"max_tokens={max_tokens}")
    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    headers = {"Authorization": f"Bearer {api_key}"}
    data = _post(f"{base_url}/chat/completions", payload, timeout_s=timeout_s, headers=headers, client=client)
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMResponseError(f"Unexpected OpenAI response shape: missing {e}") from e
    return content or ""


class TextGenerator:
    """Callable bound to one provider: generate(system, user, ...) -> text.

    Model and temperature default to the configured values and can be
    overridden per call. No retries happen here; callers decide what a
    failure means for them.
    """

    def __init__(
        self,
        settings: LLMSettings,
        *,
        api_key: Optional[str] = None,
        log: Optional[Callable[[str], None]] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self.log = log
        self.client = client
        self.api_key = api_key
        if settings.provider == "openai" and not self.api_key:
            self.api_key = os.environ.get(settings.api_key_env, "").strip()
            if not self.api_key:
                raise ConfigError(f"Environment variable {settings.api_key_env} is not set")

    def __call__(
        self,
        system: str,
        user: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        label: str = "request",
    ) -> str:
        s = self.settings
        model = model or s.model
        temperature = s.temperature if temperature is None else temperature
        max_tokens = max_tokens or s.analysis_max_tokens
        if s.provider == "ollama":
            return ollama_chat(
                s.base_url,
                model,
                system,
                user,
                temperature=temperature,
                timeout_s=s.timeout_s,
                num_predict=max_tokens,
                num_ctx=s.num_ctx,
                log=self.log,
                label=label,
                client=self.client,
            )
        return openai_chat(
            s.base_url,
            model,
            system,
            user,
            api_key=self.api_key or "",
            temperature=temperature,
            timeout_s=s.timeout_s,
            max_tokens=max_tokens,
            log=self.log,
            label=label,
            client=self.client,
        )
