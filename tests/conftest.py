"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import io
import os
import tarfile
import zipfile

import pytest

from redactyl.scanner.base import Finding, Severity
from redactyl.scanner.engine import ScanConfig

# Realistic-looking but fake credentials.
GITHUB_TOKEN = "ghp_" + "a1B2c3D4e5F6g7H8i9J0k1L2m3N4o5P6q7R8"
OPENAI_KEY = "sk-" + "Ab3dEf6hIj9lMn2pQr5tUv8xYz1BcD4fGh7jKl0nOp3rSt6v"


@pytest.fixture(autouse=True)
def isolated_config_env(monkeypatch, tmp_path_factory):
    """Keep real user config and REDACTYL_* variables out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    for name in list(os.environ):
        if name.startswith("REDACTYL_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def github_token():
    return GITHUB_TOKEN


@pytest.fixture
def openai_key():
    return OPENAI_KEY


@pytest.fixture
def env_with_secrets():
    """File content with two high-severity secrets on separate lines."""
    return f"api_key={OPENAI_KEY}\ntoken: {GITHUB_TOKEN}\n"


@pytest.fixture
def repo(tmp_path):
    """An empty scan root."""
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def make_config(repo):
    """Factory for a single-threaded ScanConfig rooted at ``repo``."""

    def _make(**overrides) -> ScanConfig:
        overrides.setdefault("root", repo)
        overrides.setdefault("threads", 1)
        return ScanConfig(**overrides)

    return _make


@pytest.fixture
def make_finding():
    """Factory for findings with sensible defaults."""

    def _make(
        path: str = "app/config.py",
        line: int = 1,
        match: str = GITHUB_TOKEN,
        detector: str = "github_token",
        severity: Severity = Severity.HIGH,
        confidence: float = 0.9,
        **metadata: str,
    ) -> Finding:
        return Finding(
            path=path,
            line=line,
            match=match,
            detector=detector,
            severity=severity,
            confidence=confidence,
            metadata=dict(metadata),
        )

    return _make


@pytest.fixture
def build_zip():
    """Factory returning zip bytes for a ``{name: data}`` mapping."""

    def _build(entries: dict[str, bytes]) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            for name, data in entries.items():
                zf.writestr(name, data)
        return buf.getvalue()

    return _build


@pytest.fixture
def build_tar():
    """Factory returning tar bytes; pass ``mode="w:gz"`` for a tgz."""

    def _build(entries: dict[str, bytes], mode: str = "w") -> bytes:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode=mode) as tf:
            for name, data in entries.items():
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
        return buf.getvalue()

    return _build
