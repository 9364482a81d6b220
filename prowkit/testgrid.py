"""TestGrid configuration model and tab URL lookup."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

__all__ = [
    "BASE_URL",
    "DashboardTab",
    "Dashboard",
    "DashboardGroup",
    "Config",
    "get_testgrid_tab_url",
]

BASE_URL = "https://testgrid.knative.dev"

_JOB_TAB_URLS = {
    "continuous_serving_main_periodic": "serving#continuous",
    "istio-latest-mesh-serving_main_periodic": "serving#istio-latest-mesh",
    "istio-latest-no-mesh-serving_main_periodic": "serving#istio-latest-no-mesh",
    "kourier-stable-serving_main_periodic": "serving#kourier-stable",
    "contour-latest-serving_main_periodic": "serving#contour-latest",
    "gateway-api-latest-serving_main_periodic": "serving#gateway-api-latest",
}


@dataclass
class DashboardTab:
    """A single tab on a dashboard."""

    name: str = ""
    test_group_name: str = ""


@dataclass
class Dashboard:
    """A dashboard holding tabs."""

    name: str = ""
    dashboard_tab: list[DashboardTab] = field(default_factory=list)


@dataclass
class DashboardGroup:
    """A named group of dashboards."""

    name: str = ""
    dashboard_names: list[str] = field(default_factory=list)


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


def _sequence(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{what} must be a list, got {type(value).__name__}")
    return value


@dataclass
class Config:
    """A whole TestGrid configuration."""

    dashboards: list[Dashboard] = field(default_factory=list)
    dashboard_groups: list[DashboardGroup] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load a configuration from a YAML file."""
        data = yaml.safe_load(Path(path).read_text())
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Build a configuration from parsed YAML data."""
        data = _mapping(data, "config")
        dashboards = []
        for raw in _sequence(data.get("dashboards"), "dashboards"):
            raw = _mapping(raw, "dashboard")
            tabs = [
                DashboardTab(
                    name=str(tab.get("name") or ""),
                    test_group_name=str(tab.get("test_group_name") or ""),
                )
                for tab in (
                    _mapping(t, "dashboard_tab")
                    for t in _sequence(raw.get("dashboard_tab"), "dashboard_tab")
                )
            ]
            dashboards.append(Dashboard(name=str(raw.get("name") or ""), dashboard_tab=tabs))
        groups = []
        for raw in _sequence(data.get("dashboard_groups"), "dashboard_groups"):
            raw = _mapping(raw, "dashboard group")
            groups.append(
                DashboardGroup(
                    name=str(raw.get("name") or ""),
                    dashboard_names=[
                        str(n) for n in _sequence(raw.get("dashboard_names"), "dashboard_names")
                    ],
                )
            )
        return cls(dashboards=dashboards, dashboard_groups=groups)

    def to_dict(self) -> dict:
        """Return the configuration as plain data ready for YAML."""
        dashboards = []
        for dashboard in self.dashboards:
            entry: dict[str, Any] = {"name": dashboard.name}
            if dashboard.dashboard_tab:
                entry["dashboard_tab"] = [
                    {"name": tab.name, "test_group_name": tab.test_group_name}
                    for tab in dashboard.dashboard_tab
                ]
            dashboards.append(entry)
        return {
            "dashboards": dashboards,
            "dashboard_groups": [
                {"name": group.name, "dashboard_names": list(group.dashboard_names)}
                for group in self.dashboard_groups
            ],
        }

    def get_tab_rel_url(self, test_group_name: str) -> str:
        """Return ``dashboard#tab`` for the tab showing the given test group."""
        for dashboard in self.dashboards:
            for tab in dashboard.dashboard_tab:
                if tab.test_group_name == test_group_name:
                    return f"{dashboard.name}#{tab.name}"
        raise LookupError(f"testgroup name '{test_group_name}' not exist")


def get_testgrid_tab_url(job_name: str, filters: Iterable[str] = ()) -> str:
    """Return the TestGrid URL for a known job, with the given filters appended."""
    try:
        url = _JOB_TAB_URLS[job_name]
    except KeyError:
        raise LookupError(f"cannot find Testgrid tab for job '{job_name}'") from None
    url += "".join("&" + f for f in filters)
    return f"{BASE_URL}/{url}"