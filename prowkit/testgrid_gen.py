"""Build the TestGrid configuration from the dashboard annotations of Prow jobs."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from prowkit.configgen import TESTGRID_DASHBOARD_ANNOTATION, TESTGRID_DASHBOARD_TAB_ANNOTATION
from prowkit.testgrid import Config, Dashboard, DashboardGroup

__all__ = [
    "TESTGRID_CONFIG_FILE_HEADER",
    "DashboardCollector",
    "generate_testgrid_config",
]

log = logging.getLogger(__name__)

TESTGRID_CONFIG_FILE_HEADER = """\
# #######################################################################
# ####                                                               ####
# ####      THIS FILE IS AUTOMATICALLY GENERATED. DO NOT EDIT.       ####
# ####   USE "./hack/generate-configs.sh" TO REGENERATE THIS FILE.   ####
# ####                                                               ####
# #######################################################################
# Dashboards need to be specified here to be created on TestGrid
# A prow annotation will be invalid if it references a dashboard that doesn't exist
"""


def _as_mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class DashboardCollector:
    """Gathers dashboard names and per-org dashboard groups from Prow job configs."""

    def __init__(self) -> None:
        self.dashboard_names: set[str] = set()
        # Key is the dashboard group (org) name, value the dashboard names.
        self.dashboard_groups: dict[str, set[str]] = {}

    def parse_annotations(self, job_config: Mapping[str, Any]) -> None:
        """Record the TestGrid annotations of the periodic jobs in job_config."""
        for periodic in _as_list(_as_mapping(job_config).get("periodics")):
            periodic = _as_mapping(periodic)
            annotations = _as_mapping(periodic.get("annotations"))
            dashboard = str(annotations.get(TESTGRID_DASHBOARD_ANNOTATION) or "")
            tab = str(annotations.get(TESTGRID_DASHBOARD_TAB_ANNOTATION) or "")
            if not dashboard or not tab:
                continue
            extra_refs = _as_list(periodic.get("extra_refs"))
            if not extra_refs:
                continue

            self.dashboard_names.add(dashboard)

            first_ref = _as_mapping(extra_refs[0])
            org = str(first_ref.get("org") or "")
            branch = str(first_ref.get("base_ref") or "")
            # Main branch dashboards are grouped under their org.
            if branch == "main":
                self.dashboard_groups.setdefault(org, set()).add(dashboard)

    def build_config(self) -> Config:
        """Return the TestGrid config, with names in sorted order."""
        return Config(
            dashboards=[Dashboard(name=name) for name in sorted(self.dashboard_names)],
            dashboard_groups=[
                DashboardGroup(name=group, dashboard_names=sorted(names))
                for group, names in sorted(self.dashboard_groups.items())
            ],
        )

    def write(self, output: str | os.PathLike[str]) -> None:
        """Write the TestGrid config, preceded by the generated-file header, to output."""
        log.info("Writing the generated TestGrid config to %r", os.fspath(output))
        body = yaml.safe_dump(
            self.build_config().to_dict(), sort_keys=True, default_flow_style=False
        )
        Path(output).write_text(TESTGRID_CONFIG_FILE_HEADER + body)


def _yaml_files(root: Path) -> list[Path]:
    if root.is_file():
        return [root] if root.name.endswith(".yaml") else []
    if not root.exists():
        raise FileNotFoundError(f"error walking dir {os.fspath(root)!r}: no such file or directory")
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.endswith(".yaml"):
                found.append(Path(dirpath) / filename)
    return found


def generate_testgrid_config(
    prow_jobs_config: str | os.PathLike[str], output: str | os.PathLike[str]
) -> Config:
    """Read every Prow job config under prow_jobs_config and write the TestGrid config.

    Returns the config that was written.
    """
    collector = DashboardCollector()
    for path in _yaml_files(Path(prow_jobs_config)):
        log.info("Parsing TestGrid annotations for %r", os.fspath(path))
        try:
            text = path.read_text()
        except OSError as exc:
            raise OSError(f"error reading file {os.fspath(path)!r}: {exc}") from exc
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"error parsing Prow job config {os.fspath(path)!r}: {exc}") from exc
        if data is not None and not isinstance(data, Mapping):
            raise ValueError(
                f"error parsing Prow job config {os.fspath(path)!r}: not a mapping"
            )
        collector.parse_annotations(data or {})
    try:
        collector.write(output)
    except OSError as exc:
        raise OSError(
            f"error writing generated TestGrid config to {os.fspath(output)!r}: {exc}"
        ) from exc
    return collector.build_config()