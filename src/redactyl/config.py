"""Configuration loading for redactyl.

Settings come from four layers, highest precedence first:

1. CLI flags
2. Environment variables (``REDACTYL_THREADS=8``)
3. Local config in the scan root: ``.redactyl.toml``, ``.redactyl.yaml``,
   ``.redactyl.yml``, ``redactyl.toml``, ``redactyl.yaml``, ``redactyl.yml``,
   or ``[tool.redactyl]`` in ``pyproject.toml`` (first found wins)
4. Global config: ``$XDG_CONFIG_HOME/redactyl/config.{toml,yaml,yml}``
   (``~/.config`` when ``XDG_CONFIG_HOME`` is unset)

Example ``.redactyl.toml``::

    threads = 8
    exclude = ["fixtures/**"]
    min_confidence = 0.6
    archives = true
    scan_time_budget = "30s"
    fail_on = "high"
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from redactyl.detectors.verify import VerifyMode
from redactyl.errors import ConfigError
from redactyl.scanner.engine import CachePolicy, ScanConfig

LOCAL_CONFIG_NAMES = (
    ".redactyl.toml",
    ".redactyl.yaml",
    ".redactyl.yml",
    "redactyl.toml",
    "redactyl.yaml",
    "redactyl.yml",
)
GLOBAL_CONFIG_NAMES = ("config.toml", "config.yaml", "config.yml")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str | float | int | None) -> float | None:
    """Parse a duration into seconds.

    Accepts numbers (seconds) and Go-style strings such as ``"5s"``,
    ``"1m30s"`` or ``"250ms"``. ``None``, empty strings and zero mean
    "no budget".

    Raises:
        ValueError: The string is not a valid duration.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            return None
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for m in _DURATION_PART.finditer(text):
                if m.start() != pos:
                    raise ValueError(f"invalid duration: {value!r}") from None
                seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
                pos = m.end()
            if pos != len(text) or pos == 0:
                raise ValueError(f"invalid duration: {value!r}") from None
    if seconds < 0:
        raise ValueError(f"negative duration: {value!r}")
    return seconds or None


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class FileConfig(BaseModel):
    """Settings accepted in a config file. Every field is optional."""

    model_config = ConfigDict(extra="forbid")

    include: list[str] | None = None
    exclude: list[str] | None = None
    max_bytes: int | None = Field(default=None, ge=0)
    threads: int | None = Field(default=None, ge=0)
    enable: list[str] | None = None
    disable: list[str] | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    default_excludes: bool | None = None
    no_cache: bool | None = None
    cache_policy: Literal["skip", "replay"] | None = None
    archives: bool | None = None
    containers: bool | None = None
    iac: bool | None = None
    helm: bool | None = None
    k8s: bool | None = None
    max_archive_bytes: int | None = Field(default=None, ge=0)
    max_entries: int | None = Field(default=None, ge=0)
    max_depth: int | None = Field(default=None, ge=0)
    scan_time_budget: str | float | None = None
    global_artifact_budget: str | float | None = None
    verify: Literal["off", "safe"] | None = None
    fail_on: Literal["low", "medium", "high"] | None = None
    baseline: str | None = None

    @field_validator("include", "exclude", "enable", "disable", mode="before")
    @classmethod
    def _csv(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("scan_time_budget", "global_artifact_budget")
    @classmethod
    def _duration(cls, value: str | float | None) -> str | float | None:
        parse_duration(value)
        return value

    def settings(self) -> dict[str, Any]:
        """Only the values that were set."""
        return self.model_dump(exclude_none=True)


class EnvConfig(BaseSettings):
    """Overrides read from ``REDACTYL_*`` environment variables.

    List-valued settings are comma-separated strings here.
    """

    model_config = SettingsConfigDict(env_prefix="REDACTYL_", extra="ignore")

    include: str | None = None
    exclude: str | None = None
    max_bytes: int | None = Field(default=None, ge=0)
    threads: int | None = Field(default=None, ge=0)
    enable: str | None = None
    disable: str | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    default_excludes: bool | None = None
    no_cache: bool | None = None
    cache_policy: Literal["skip", "replay"] | None = None
    scan_time_budget: str | None = None
    global_artifact_budget: str | None = None
    verify: Literal["off", "safe"] | None = None
    fail_on: Literal["low", "medium", "high"] | None = None
    baseline: str | None = None

    def settings(self) -> dict[str, Any]:
        values = self.model_dump(exclude_none=True)
        for key in ("include", "exclude", "enable", "disable"):
            if key in values:
                values[key] = _split_csv(values[key])
        return values


def _read_mapping(path: Path) -> dict[str, Any] | None:
    """Read a config mapping from ``path``; None if it holds no redactyl section."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config: {e}", config_path=str(path)) from e

    try:
        if path.suffix == ".toml":
            data: Any = tomllib.loads(text)
            if path.name == "pyproject.toml":
                data = data.get("tool", {}).get("redactyl")
        else:
            data = yaml.safe_load(text)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Malformed config: {e}", config_path=str(path)) from e

    if data is None:
        return None if path.name == "pyproject.toml" else {}
    if not isinstance(data, dict):
        raise ConfigError("Config must be a table/mapping", config_path=str(path))
    return data


def load_file(path: Path | str) -> FileConfig:
    """Load and validate one config file.

    Raises:
        ConfigError: The file is unreadable, malformed or holds invalid values.
    """
    path = Path(path)
    data = _read_mapping(path) or {}
    try:
        return FileConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}", config_path=str(path)) from e


def find_local_config(root: Path | str) -> Path | None:
    """Return the local config file for ``root`` in search order, if any."""
    root = Path(root)
    for name in LOCAL_CONFIG_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    pyproject = root / "pyproject.toml"
    if pyproject.is_file() and _read_mapping(pyproject) is not None:
        return pyproject
    return None


def load_local(root: Path | str) -> FileConfig | None:
    path = find_local_config(root)
    return load_file(path) if path else None


def global_config_dir() -> Path | None:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "redactyl"
    home = os.environ.get("HOME")
    if home:
        return Path(home) / ".config" / "redactyl"
    return None


def load_global() -> FileConfig | None:
    directory = global_config_dir()
    if directory is None:
        return None
    for name in GLOBAL_CONFIG_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return load_file(candidate)
    return None


def load_env() -> EnvConfig:
    try:
        return EnvConfig()
    except ValidationError as e:
        raise ConfigError(f"Invalid REDACTYL_* environment variable: {e}") from e


def merge_settings(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge setting dicts, later layers winning. None values never override."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        merged.update({k: v for k, v in layer.items() if v is not None})
    return merged


def resolve_budgets(
    cli: Mapping[str, Any] | None,
    local: Mapping[str, Any] | None,
    global_: Mapping[str, Any] | None,
) -> tuple[float | None, float | None]:
    """Resolve ``(scan_time_budget, global_artifact_budget)`` in seconds.

    Each budget takes the first value set in CLI, then local, then global.
    """
    resolved = []
    for key in ("scan_time_budget", "global_artifact_budget"):
        value = None
        for layer in (cli, local, global_):
            if layer and layer.get(key) not in (None, ""):
                value = layer[key]
                break
        try:
            resolved.append(parse_duration(value))
        except ValueError as e:
            raise ConfigError(f"Invalid {key}: {e}") from e
    return resolved[0], resolved[1]


def build_scan_config(
    root: Path | str,
    cli_overrides: Mapping[str, Any] | None = None,
    local: FileConfig | None = None,
    global_: FileConfig | None = None,
    env: EnvConfig | None = None,
) -> ScanConfig:
    """Build a ScanConfig from every layer.

    Args:
        root: Scan root.
        cli_overrides: Values from CLI flags; keys as in :class:`FileConfig`
            plus ``staged``, ``history``, ``base`` and ``dry_run``. None
            values are ignored.
        local: Local config file values.
        global_: Global config file values.
        env: Environment overrides.

    Returns:
        The merged ScanConfig.
    """
    cli = dict(cli_overrides or {})
    global_settings = global_.settings() if global_ else {}
    local_settings = local.settings() if local else {}
    env_settings = env.settings() if env else {}
    s = merge_settings(global_settings, local_settings, env_settings, cli)

    scan_budget, artifact_budget = resolve_budgets(
        merge_settings(env_settings, cli), local_settings, global_settings
    )
    defaults = ScanConfig()
    return ScanConfig(
        root=Path(root),
        include=list(s.get("include", [])),
        exclude=list(s.get("exclude", [])),
        max_bytes=s.get("max_bytes", defaults.max_bytes),
        enable_detectors=list(s.get("enable", [])),
        disable_detectors=list(s.get("disable", [])),
        min_confidence=s.get("min_confidence", defaults.min_confidence),
        threads=s.get("threads", defaults.threads),
        use_cache=not s.get("no_cache", False),
        cache_policy=CachePolicy(s.get("cache_policy", defaults.cache_policy.value)),
        default_excludes=s.get("default_excludes", defaults.default_excludes),
        scan_archives=s.get("archives", False),
        scan_containers=s.get("containers", False),
        scan_iac=s.get("iac", False),
        scan_helm=s.get("helm", False),
        scan_k8s=s.get("k8s", False),
        max_archive_bytes=s.get("max_archive_bytes", defaults.max_archive_bytes),
        max_entries=s.get("max_entries", defaults.max_entries),
        max_depth=s.get("max_depth", defaults.max_depth),
        scan_time_budget=scan_budget,
        global_artifact_budget=artifact_budget,
        scan_staged=s.get("staged", False),
        history_commits=s.get("history", 0),
        base_branch=s.get("base", ""),
        dry_run=s.get("dry_run", False),
        verify_mode=VerifyMode(s.get("verify", VerifyMode.OFF.value)),
    )
