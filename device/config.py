"""Workflow configuration.

Values come from, in increasing priority: built-in defaults, an optional
JSON file whose keys match the ``WorkflowConfig`` fields, and ``EYESCAN_*``
environment variables (which ``main`` may populate from a ``.env`` file).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from cloud.api.client import DEFAULT_CLASSIFY_URL, DEFAULT_DETAIL_URL

from .workflow import DETAIL_LABELS, HEALTHY_LABEL

logger = logging.getLogger(__name__)

ENV_PREFIX = "EYESCAN_"


@dataclass(frozen=True)
class WorkflowConfig:
    classify_url: str = DEFAULT_CLASSIFY_URL
    detail_url: str = DEFAULT_DETAIL_URL
    healthy_label: str = HEALTHY_LABEL
    detail_labels: tuple[str, ...] = DETAIL_LABELS
    timeout: float = 20.0


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> WorkflowConfig:
    """Build a ``WorkflowConfig`` from an optional file plus the environment.

    A missing file or one with invalid JSON falls back to defaults (the
    latter with a warning). Values that cannot be coerced raise ``ValueError``.
    """
    config = WorkflowConfig()
    if path is not None:
        config = _apply(config, _read_file(path), source=str(path))
    env = os.environ if environ is None else environ
    overrides = {
        f.name: env[ENV_PREFIX + f.name.upper()]
        for f in fields(WorkflowConfig)
        if ENV_PREFIX + f.name.upper() in env
    }
    return _apply(config, overrides, source="environment")


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.info("No workflow config found at %s; using defaults", path)
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to load workflow config from %s: %s; using defaults", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Workflow config in %s is not an object; using defaults", path)
        return {}
    return data


def _apply(config: WorkflowConfig, values: Mapping[str, Any], *, source: str) -> WorkflowConfig:
    known = {f.name for f in fields(WorkflowConfig)}
    updates: dict[str, Any] = {}
    for key, raw in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %r from %s", key, source)
            continue
        updates[key] = _coerce(key, raw)
    return replace(config, **updates)


def _coerce(key: str, raw: Any) -> Any:
    if key == "timeout":
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be a number, got {raw!r}") from exc
        if value <= 0:
            raise ValueError(f"{key} must be positive")
        return value
    if key == "detail_labels":
        items = raw.split(",") if isinstance(raw, str) else raw
        if not isinstance(items, (list, tuple)):
            raise ValueError(f"{key} must be a list or comma separated string")
        return tuple(str(item).strip() for item in items if str(item).strip())
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return raw.strip()


__all__ = ["WorkflowConfig", "load_config", "ENV_PREFIX"]
