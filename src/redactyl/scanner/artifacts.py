"""Build and deploy artifacts scanned beyond plain text files.

Supported kinds, each behind its own ``ScanConfig`` toggle:

- ``archive``: zip/jar, tar, tar.gz/tgz and bare gzip files.
- ``container``: image tarballs (``docker save`` output, identified by a
  top-level ``manifest.json``); layer tars are expanded as nested archives.
- ``helm``: packaged charts (``.tgz`` holding a ``Chart.yaml``).
- ``iac``: Terraform state, flattened to one ``address.attribute = value``
  line per attribute and one virtual entry per resource instance.
- ``k8s``: ``Secret`` manifests, with ``data`` values base64-decoded and
  emitted as ``key=value`` lines under ``file::namespace/name``.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import re
import tarfile
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml

from redactyl.scanner.archive import ArchiveLimits, archive_kind, iter_archive, join_virtual_path
from redactyl.scanner.base import ArtifactStats
from redactyl.scanner.ignore import IgnoreMatcher
from redactyl.scanner.walk import iter_paths

if TYPE_CHECKING:
    from redactyl.scanner.engine import ScanConfig

logger = logging.getLogger(__name__)

TFSTATE_SUFFIXES = (".tfstate", ".tfstate.backup")
YAML_SUFFIXES = (".yaml", ".yml")
_SECRET_KIND = re.compile(rb"(?m)^kind:\s*[\"']?Secret[\"']?\s*$")


@dataclass
class Artifact:
    """One artifact file found in the working tree."""

    path: str
    kind: str
    data: bytes

    def leaves(self, limits: ArchiveLimits, stats: ArtifactStats) -> Iterator[tuple[str, bytes]]:
        """Yield ``(virtual_path, bytes)`` for each scannable unit inside."""
        if self.kind == "iac":
            yield from flatten_tfstate(self.path, self.data)
        elif self.kind == "k8s":
            yield from k8s_secret_entries(self.path, self.data)
        else:
            yield from iter_archive(self.path, self.data, limits, stats)


def _tar_names(data: bytes, mode: str) -> list[str]:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode=mode) as tf:
            return [name.removeprefix("./") for name in tf.getnames()]
    except (tarfile.TarError, OSError, EOFError) as e:
        logger.debug("Could not list tar members: %s", e)
        return []


def is_container_image(data: bytes) -> bool:
    return "manifest.json" in _tar_names(data, "r:")


def is_helm_chart(data: bytes) -> bool:
    names = _tar_names(data, "r:gz")
    return any(name == "Chart.yaml" or name.endswith("/Chart.yaml") for name in names)


def classify(rel_path: str, data: bytes, config: ScanConfig) -> str | None:
    """Return the artifact kind for a file, or None if no enabled kind applies."""
    lower = rel_path.lower()
    if lower.endswith(TFSTATE_SUFFIXES):
        return "iac" if config.scan_iac else None
    if lower.endswith(YAML_SUFFIXES):
        return "k8s" if config.scan_k8s and _SECRET_KIND.search(data) else None

    kind = archive_kind(rel_path)
    if kind is None:
        return None
    if kind == "tar" and config.scan_containers and is_container_image(data):
        return "container"
    if kind == "tgz" and config.scan_helm and is_helm_chart(data):
        return "helm"
    if config.scan_archives:
        return "archive"
    return None


def artifacts_enabled(config: ScanConfig) -> bool:
    return any(
        (
            config.scan_archives,
            config.scan_containers,
            config.scan_iac,
            config.scan_helm,
            config.scan_k8s,
        )
    )


def find_artifacts(
    config: ScanConfig, ignore: IgnoreMatcher, stats: ArtifactStats
) -> Iterator[Artifact]:
    """Yield every artifact in the working tree whose kind is enabled.

    Files larger than ``config.max_archive_bytes`` are skipped and counted
    against the byte budget.
    """
    for rel, full in iter_paths(config, ignore):
        lower = rel.lower()
        if not (
            lower.endswith(TFSTATE_SUFFIXES)
            or lower.endswith(YAML_SUFFIXES)
            or archive_kind(rel) is not None
        ):
            continue
        try:
            if full.stat().st_size > config.max_archive_bytes:
                stats.increment("bytes")
                logger.debug("Artifact %s exceeds the byte budget", rel)
                continue
            data = full.read_bytes()
        except OSError as e:
            logger.debug("Skipping unreadable artifact %s: %s", rel, e)
            continue
        kind = classify(rel, data, config)
        if kind is not None:
            yield Artifact(path=rel, kind=kind, data=data)


def _flatten(prefix: str, value: Any) -> Iterator[tuple[str, str]]:
    if isinstance(value, dict):
        for key in sorted(value):
            yield from _flatten(f"{prefix}.{key}" if prefix else str(key), value[key])
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _flatten(f"{prefix}[{index}]", item)
    elif value is None:
        return
    elif isinstance(value, str):
        yield prefix, value
    else:
        yield prefix, json.dumps(value)


def _list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _resource_address(resource: dict[str, Any], instance: dict[str, Any]) -> str:
    parts = []
    if resource.get("module"):
        parts.append(str(resource["module"]))
    if resource.get("mode") == "data":
        parts.append("data")
    parts.append(f"{resource.get('type', 'unknown')}.{resource.get('name', 'unknown')}")
    address = ".".join(parts)
    if "index_key" in instance:
        address += f"[{json.dumps(instance['index_key'])}]"
    return address


def flatten_tfstate(path: str, data: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield one virtual entry per resource instance (plus one for outputs)."""
    try:
        state = json.loads(data)
    except ValueError as e:
        logger.debug("Invalid Terraform state %s: %s", path, e)
        return
    if not isinstance(state, dict):
        return

    outputs = state.get("outputs") or {}
    if isinstance(outputs, dict) and outputs:
        lines = [
            f"output.{name}{'.' + key if key else ''} = {value}"
            for name, output in sorted(outputs.items())
            if isinstance(output, dict)
            for key, value in _flatten("", output.get("value"))
        ]
        if lines:
            yield join_virtual_path(path, "outputs"), "\n".join(lines).encode("utf-8")

    for resource in _list(state.get("resources")):
        if not isinstance(resource, dict):
            continue
        for instance in _list(resource.get("instances")):
            if not isinstance(instance, dict):
                continue
            address = _resource_address(resource, instance)
            lines = [
                f"{address}.{key} = {value}"
                for key, value in _flatten("", instance.get("attributes") or {})
            ]
            if lines:
                yield join_virtual_path(path, address), "\n".join(lines).encode("utf-8")


def _decode_secret_value(value: Any) -> str:
    raw = str(value)
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return raw


def _mapping(value: Any) -> dict[Any, Any]:
    return value if isinstance(value, dict) else {}


def _sorted_items(value: Any) -> list[tuple[str, Any]]:
    return sorted(((str(k), v) for k, v in _mapping(value).items()), key=lambda item: item[0])


def k8s_secret_entries(path: str, data: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield decoded ``Secret`` manifests found in a YAML file."""
    try:
        documents = list(yaml.safe_load_all(data))
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML %s: %s", path, e)
        return

    for doc in documents:
        if not isinstance(doc, dict) or doc.get("kind") != "Secret":
            continue
        meta = _mapping(doc.get("metadata"))
        namespace = meta.get("namespace") or "default"
        name = meta.get("name") or "unnamed"
        lines = [
            f"{key}={_decode_secret_value(value)}"
            for key, value in _sorted_items(doc.get("data"))
        ]
        lines.extend(f"{key}={value}" for key, value in _sorted_items(doc.get("stringData")))
        if lines:
            yield join_virtual_path(path, f"{namespace}/{name}"), "\n".join(lines).encode("utf-8")
