"""Schedules and TestGrid annotations for generated periodic Prow jobs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Iterable

__all__ = [
    "DEFAULT_TIMEOUT",
    "MAIN_BRANCH_NAME",
    "PERIODIC_PROW_JOB_TYPE",
    "TESTGRID_DASHBOARD_ANNOTATION",
    "TESTGRID_DASHBOARD_TAB_ANNOTATION",
    "JobSpec",
    "JobsConfig",
    "has_periodic",
    "utc_time",
    "calculate_hash",
    "generate_cron",
    "add_schedule",
    "add_annotations",
]

DEFAULT_TIMEOUT = 120  # minutes
MAIN_BRANCH_NAME = "main"
PERIODIC_PROW_JOB_TYPE = "periodic"

TESTGRID_DASHBOARD_ANNOTATION = "testgrid-dashboards"
TESTGRID_DASHBOARD_TAB_ANNOTATION = "testgrid-tab-name"

_FNV32_OFFSET = 2166136261
_FNV32_PRIME = 16777619


@dataclass
class JobSpec:
    """One job of a jobs configuration file."""

    name: str = ""
    types: list[str] = field(default_factory=list)
    interval: str = ""
    cron: str = ""
    timeout: timedelta | None = None
    annotations: dict[str, str] | None = None


@dataclass
class JobsConfig:
    """The jobs configured for one repository branch."""

    org: str = ""
    repo: str = ""
    branches: list[str] = field(default_factory=list)
    jobs: list[JobSpec] = field(default_factory=list)


def _branch(jobs_config: JobsConfig) -> str:
    if not jobs_config.branches:
        raise ValueError(f"jobs config for {jobs_config.org}/{jobs_config.repo} has no branch")
    return jobs_config.branches[0]


def has_periodic(job_types: Iterable[str]) -> bool:
    """Return whether the job types include a periodic job."""
    return PERIODIC_PROW_JOB_TYPE in job_types


def utc_time(hour: int) -> int:
    """Convert a Pacific hour of the day to the UTC hour."""
    result = hour + 7
    return result - 24 if result > 23 else result


def calculate_hash(*args: str) -> int:
    """Return the 32-bit FNV-1a hash of the concatenated strings."""
    value = _FNV32_OFFSET
    for text in args:
        for byte in text.encode("utf-8"):
            value ^= byte
            value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


def _minute_offset(*args: str) -> int:
    return calculate_hash(*args) % 60


def _hour_offset(*args: str) -> int:
    return calculate_hash(*args) % 24


def generate_cron(org: str, repo: str, branch: str, job_name: str, timeout: int) -> str:
    """Return a stable cron schedule for a job, spread out by hashing its identity.

    The timeout in minutes decides how many hours apart repeated runs are.
    """
    hour_offset = _hour_offset(org, repo, branch, job_name)
    minutes = _minute_offset(org, repo, branch, job_name)
    hours = int((timeout + 5) / 60) + 1
    hour_cron = f"{minutes} */{hours * 3} * * *"

    def daily(pacific_hour: int) -> str:
        return f"{minutes} {utc_time(pacific_hour)} * * *"

    def weekly(pacific_hour: int, day_of_week: int) -> str:
        return f"{minutes} {utc_time(pacific_hour)} * * {day_of_week}"

    if job_name == "continuous":
        return hour_cron if branch == MAIN_BRANCH_NAME else daily(hour_offset)
    if job_name == "nightly":
        return daily(2)
    if job_name == "release":
        return hour_cron if branch == MAIN_BRANCH_NAME else weekly(2, 2)
    return hour_cron if repo == "serving" else daily(hour_offset)


def add_schedule(jobs_config: JobsConfig) -> JobsConfig:
    """Return a copy with a cron schedule for periodic jobs that have none."""
    branch = _branch(jobs_config)
    jobs = []
    for job in jobs_config.jobs:
        if has_periodic(job.types) and not job.interval and not job.cron:
            timeout = 0
            if job.timeout is not None:
                timeout = int(job.timeout.total_seconds() / 60)
            if timeout == 0:
                timeout = DEFAULT_TIMEOUT
            job = replace(
                job,
                cron=generate_cron(jobs_config.org, jobs_config.repo, branch, job.name, timeout),
            )
        jobs.append(job)
    return replace(jobs_config, jobs=jobs)


def add_annotations(jobs_config: JobsConfig) -> JobsConfig:
    """Return a copy whose periodic jobs carry TestGrid dashboard annotations.

    Main branch jobs get a dashboard per repository; jobs of release branches
    are gathered on one dashboard per org and branch.
    """
    jobs = []
    for job in jobs_config.jobs:
        if has_periodic(job.types):
            annotations = dict(job.annotations or {})
            branch = _branch(jobs_config)
            if branch == MAIN_BRANCH_NAME:
                annotations[TESTGRID_DASHBOARD_ANNOTATION] = jobs_config.repo
                annotations[TESTGRID_DASHBOARD_TAB_ANNOTATION] = job.name
            else:
                annotations[TESTGRID_DASHBOARD_ANNOTATION] = f"{jobs_config.org}-{branch}"
                annotations[TESTGRID_DASHBOARD_TAB_ANNOTATION] = f"{jobs_config.repo}-{job.name}"
            job = replace(job, annotations=annotations)
        jobs.append(job)
    return replace(jobs_config, jobs=jobs)