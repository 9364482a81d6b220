"""Job configurations for flaky test reporting."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

__all__ = ["CONFIG_FILE", "SlackChannel", "JobConfig", "load_job_configs"]

log = logging.getLogger(__name__)

CONFIG_FILE = "config/config.yaml"


@dataclass
class SlackChannel:
    """A Slack channel to notify."""

    name: str = ""
    identity: str = ""


@dataclass
class JobConfig:
    """Which job of which repository to scan, and where to report."""

    name: str = ""
    org: str = ""
    repo: str = ""
    type: str = ""
    issue_repo: str = ""
    slack_channels: list[SlackChannel] = field(default_factory=list)


def _lookup(mapping: Mapping[str, Any], key: str) -> Any:
    """Find key exactly, otherwise case-insensitively."""
    if key in mapping:
        return mapping[key]
    folded = key.casefold()
    for candidate, value in mapping.items():
        if isinstance(candidate, str) and candidate.casefold() == folded:
            return value
    return None


def _mapping(value: Any) -> Mapping:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"expected a mapping, got {type(value).__name__}")
    return value


def _list(value: Any) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list, got {type(value).__name__}")
    return value


def _text(mapping: Mapping, key: str) -> str:
    value = _lookup(mapping, key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _job_config(raw: Any) -> JobConfig:
    data = _mapping(raw)
    channels = []
    for entry in _list(_lookup(data, "slackChannels")):
        entry = _mapping(entry)
        channels.append(SlackChannel(name=_text(entry, "name"), identity=_text(entry, "identity")))
    return JobConfig(
        name=_text(data, "name"),
        org=_text(data, "org"),
        repo=_text(data, "repo"),
        type=_text(data, "type"),
        issue_repo=_text(data, "issueRepo"),
        slack_channels=channels,
    )


def _read(path: Path) -> str:
    try:
        return path.read_text()
    except OSError:
        if path.is_absolute():
            raise
        # When run from elsewhere, resolve relative to the executable's directory.
        base = Path(os.path.abspath(os.path.dirname(sys.argv[0] if sys.argv else "")))
        return (base / path).read_text()


def load_job_configs(path: str | os.PathLike[str] = CONFIG_FILE) -> list[JobConfig]:
    """Load the job configs from a YAML file.

    A file that cannot be read or parsed is logged and yields no configs.
    """
    try:
        contents = _read(Path(path))
    except OSError as exc:
        log.warning("Failed to load the config file: %s", exc)
        return []
    try:
        data = _mapping(yaml.safe_load(contents))
        return [_job_config(raw) for raw in _list(_lookup(data, "jobConfigs"))]
    except (yaml.YAMLError, ValueError) as exc:
        log.warning("Failed to unmarshal %r: %s", contents, exc)
        return []