"""Per-test results across builds, and flakiness decisions on them."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from prowkit.flaky_config import JobConfig
from prowkit.junit import CaseStatus, JunitCase, JunitSuite, JunitSuites, unmarshal
from prowkit.prow import Build, Job, StorageClient, get_local_artifacts_dir, new_job

__all__ = [
    "REQUIRED_RATIO",
    "COUNT_THRESHOLD",
    "PERCENT_THRESHOLD",
    "FLAKY_STATUS",
    "PASSED_STATUS",
    "LACK_DATA_STATUS",
    "FAILED_STATUS",
    "CaseStats",
    "RepoData",
    "required_count",
    "filter_out_parent_tests",
    "create_artifact_for_repo",
    "combined_results_for_build",
    "latest_finished_builds",
    "collect_test_results_for_repo",
]

log = logging.getLogger(__name__)

# Minimal ratio of results to count as valid results for each test case.
REQUIRED_RATIO = 0.8
# Do nothing if more than 5 tests, or 1% of tests, are flaky, whichever comes first.
COUNT_THRESHOLD = 5
PERCENT_THRESHOLD = 0.01

FLAKY_STATUS = "Flaky"
PASSED_STATUS = "Passed"
LACK_DATA_STATUS = "NotEnoughData"
FAILED_STATUS = "Failed"


def _f32(value: float) -> float:
    """Round value to single precision."""
    return struct.unpack("f", struct.pack("f", value))[0]


def required_count(builds_count: int) -> float:
    """Return the minimal number of results a test needs out of builds_count builds."""
    return _f32(_f32(REQUIRED_RATIO) * _f32(builds_count))


@dataclass
class CaseStats:
    """Results of one test case across builds: the build IDs per outcome."""

    test_name: str = ""
    passed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def is_flaky(self) -> bool:
        """Return whether the test both failed and passed at least once."""
        return bool(self.failed) and bool(self.passed)

    def is_passed(self, required_count: float) -> bool:
        """Return whether the test never failed over enough runs."""
        return self.has_enough_runs(required_count) and not self.failed

    def has_enough_runs(self, required_count: float) -> bool:
        """Return whether passed and failed runs reach required_count."""
        return _f32(len(self.passed) + len(self.failed)) >= required_count

    def status(self, required_count: float) -> str:
        """Return Flaky, Passed, NotEnoughData or Failed."""
        if self.is_flaky():
            return FLAKY_STATUS
        if self.is_passed(required_count):
            return PASSED_STATUS
        if not self.has_enough_runs(required_count):
            return LACK_DATA_STATUS
        return FAILED_STATUS


_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


def _json_text(data: object) -> str:
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def _ints_or_null(values: list[int]) -> list[int] | None:
    return list(values) if values else None


@dataclass
class RepoData:
    """Configuration and collected test results of one job of a repository."""

    config: JobConfig = field(default_factory=JobConfig)
    test_stats: dict[str, CaseStats] = field(default_factory=dict)
    build_ids: list[int] = field(default_factory=list)
    last_build_start_time: int | None = None

    def flaky_tests(self) -> list[str]:
        """Return the full names of the flaky tests."""
        return [name for name, stats in self.test_stats.items() if stats.is_flaky()]

    def flaky_rate(self) -> float:
        """Return the share of tests that are flaky, 0 when there are none."""
        total = len(self.test_stats)
        if total == 0:
            return 0.0
        return _f32(_f32(len(self.flaky_tests())) / _f32(total))

    def flaky_rate_above_threshold(self) -> bool:
        """Return whether too many tests are flaky to report them one by one."""
        total = len(self.test_stats)
        if total == 0:
            return True
        threshold = _f32(_f32(COUNT_THRESHOLD) / _f32(total))
        percent = _f32(PERCENT_THRESHOLD)
        if percent > threshold:
            threshold = percent
        return self.flaky_rate() > threshold

    def add_suite(self, suite: JunitSuite, build_id: int) -> None:
        """Record the results of the suite's leaf test cases for build_id."""
        for case in filter_out_parent_tests(suite.test_cases):
            full_name = f"{suite.name}.{case.name}"
            stats = self.test_stats.setdefault(full_name, CaseStats(test_name=full_name))
            status = case.status()
            if status is CaseStatus.PASSED:
                stats.passed.append(build_id)
            elif status is CaseStatus.SKIPPED:
                stats.skipped.append(build_id)
            else:
                stats.failed.append(build_id)

    def result_slice_for_test(self, test_name: str) -> list[CaseStatus]:
        """Return the test's outcome for each scanned build, in build order."""
        stats = self.test_stats[test_name]
        results = []
        for build_id in self.build_ids:
            if build_id in stats.failed:
                results.append(CaseStatus.FAILED)
            elif build_id in stats.passed:
                results.append(CaseStatus.PASSED)
            else:
                results.append(CaseStatus.SKIPPED)
        return results

    def to_json(self) -> str:
        """Return the data as the JSON document stored among the artifacts."""
        channels = [
            {"Name": c.name, "Identity": c.identity} for c in self.config.slack_channels
        ]
        data = {
            "Config": {
                "Name": self.config.name,
                "Org": self.config.org,
                "Repo": self.config.repo,
                "Type": self.config.type,
                "IssueRepo": self.config.issue_repo,
                "SlackChannels": channels or None,
            },
            "TestStats": {
                name: {
                    "TestName": stats.test_name,
                    "Passed": _ints_or_null(stats.passed),
                    "Skipped": _ints_or_null(stats.skipped),
                    "Failed": _ints_or_null(stats.failed),
                }
                for name, stats in sorted(self.test_stats.items())
            },
            "BuildIDs": _ints_or_null(self.build_ids),
            "LastBuildStartTime": self.last_build_start_time,
        }
        return _json_text(data)


def filter_out_parent_tests(cases: Iterable[JunitCase]) -> list[JunitCase]:
    """Drop the cases that are parents of other cases (``a`` when ``a/b`` exists)."""
    cases = list(cases)
    parents = {case.name.rsplit("/", 1)[0] for case in cases if "/" in case.name}
    return [case for case in cases if case.name not in parents]


def create_artifact_for_repo(
    repo_data: RepoData, artifacts_dir: str | os.PathLike[str] | None = None
) -> Path:
    """Write repo_data as ``<artifacts>/<repo>/<job>.json`` and return that path."""
    base = Path(artifacts_dir if artifacts_dir is not None else get_local_artifacts_dir())
    repo_dir = base / repo_data.config.repo
    repo_dir.mkdir(parents=True, exist_ok=True)
    out = repo_dir / f"{repo_data.config.name}.json"
    out.write_text(repo_data.to_json(), encoding="utf-8")
    return out


def combined_results_for_build(build: Build) -> list[JunitSuites]:
    """Parse every ``junit_*.xml`` artifact of the build; empty files are skipped."""
    all_suites = []
    for artifact in build.artifacts():
        file_name = posixpath.basename(artifact)
        if not file_name.startswith("junit_") or not file_name.endswith(".xml"):
            continue
        rel_path = posixpath.relpath(artifact, build.storage_path)
        contents = build.read_file(rel_path)
        if not contents.strip():
            continue
        all_suites.append(unmarshal(contents))
    return all_suites


def latest_finished_builds(job: Job, count: int) -> list[Build]:
    """Return up to count finished builds, highest build ID first.

    Assumes build IDs increase over time.
    """
    builds: list[Build] = []
    for build_id in sorted(job.build_ids(), reverse=True):
        if len(builds) >= count:
            break
        build = job.new_build(build_id)
        if build.finish_time is not None:
            if build.start_time is None:
                raise RuntimeError(
                    f"Failed parsing start time for finished build '{build.storage_path}'"
                )
            builds.append(build)
    return builds


def collect_test_results_for_repo(
    job_config: JobConfig, storage: StorageClient, builds_count: int
) -> RepoData:
    """Gather test results of the latest finished builds of the configured job."""
    repo_data = RepoData(config=job_config)
    job = new_job(storage, job_config.name, job_config.type, job_config.org, job_config.repo, 0)
    if not job.path_exists():
        raise FileNotFoundError(f"job path not exist '{job_config.name}'")
    builds = latest_finished_builds(job, builds_count)
    log.info("latest builds: ")
    for index, build in enumerate(builds):
        log.info("\t%d", build.build_id)
        repo_data.build_ids.append(build.build_id)
        if index == 0:  # builds are newest first
            repo_data.last_build_start_time = build.start_time
        for suites in combined_results_for_build(build):
            for suite in suites.suites:
                repo_data.add_suite(suite, build.build_id)
    return repo_data