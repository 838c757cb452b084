import re
from typing import Callable, List, Optional

import pytest

from codebrief.config import load_settings

COMPILE_PROMPTS = {
    "system": "SYS",
    "unit_analysis": "FILE {path}\n{content}",
    "compile": "CHUNK {chunk_number}/{chunk_total}\n<<{chunk}>>\n[[{running_report}]]",
    "standardize": "STD\n{report}",
}

CHUNK_RE = re.compile(r"<<(.*?)>>\n\[\[(.*)\]\]\Z", re.DOTALL)


def fold_reply(user: str) -> str:
    """Deterministic compile reply: running report + '|' + chunk text."""
    m = CHUNK_RE.search(user)
    assert m, user
    return m.group(2) + "|" + m.group(1)


class FakeGenerator:
    """Scriptable stand-in for the text-generation service.

    script maps a call label prefix ("analyze", "compile", "standardize") to a
    callable (system, user, label) -> str that may raise.
    """

    def __init__(self, script: Optional[dict] = None) -> None:
        self.script = script or {}
        self.calls: List[dict] = []

    def __call__(self, system, user, *, model=None, temperature=None, max_tokens=None, label="request"):
        self.calls.append({"system": system, "user": user, "label": label, "max_tokens": max_tokens})
        kind = label.split(":", 1)[0]
        handler: Optional[Callable] = self.script.get(kind)
        if handler is not None:
            return handler(system, user, label)
        if kind == "compile":
            return fold_reply(user)
        if kind == "standardize":
            return "STANDARDIZED\n" + user
        return f"analysis of {label.split(':', 1)[-1]}"

    def labels(self, kind: str) -> List[str]:
        return [c["label"] for c in self.calls if c["label"].startswith(kind)]


@pytest.fixture
def settings():
    return load_settings()


@pytest.fixture
def fake_generate():
    return FakeGenerator()


@pytest.fixture
def no_sleep():
    waits: List[float] = []

    def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits
    return _sleep
