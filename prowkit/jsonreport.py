"""Concise JSON reports of the flaky tests found in each repository."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from prowkit.prow import PERIODIC_JOB, Build, Job, StorageClient, get_local_artifacts_dir, new_job

__all__ = [
    "FILENAME",
    "DEFAULT_JOB_NAME",
    "MAX_AGE_DAYS",
    "Report",
    "JSONClient",
    "FakeJSONClient",
]

log = logging.getLogger(__name__)

FILENAME = "flaky-tests.json"
# The Prow job name of the flaky test reporter.
DEFAULT_JOB_NAME = "ci-knative-flakes-reporter"
# Maximum age in days for which JSON data is considered valid.
MAX_AGE_DAYS = 4

_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


@dataclass
class Report:
    """The flaky tests of one repository."""

    repo: str = ""
    flaky: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        """Return the report as its JSON document."""
        data = {"repo": self.repo, "flaky": list(self.flaky) or None}
        text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)

    @classmethod
    def from_json(cls, contents: bytes | str) -> "Report":
        """Parse a report from its JSON document."""
        data = json.loads(contents)
        if not isinstance(data, dict):
            raise ValueError("report is not a JSON object")
        repo = data.get("repo") or ""
        flaky = data.get("flaky") or []
        if not isinstance(repo, str) or not isinstance(flaky, list):
            raise ValueError("report has fields of the wrong type")
        if not all(isinstance(name, str) for name in flaky):
            raise ValueError("report lists a test name that is not a string")
        return cls(repo=repo, flaky=list(flaky))


class JSONClient:
    """Writes reports to the local artifacts directory and reads them back from storage."""

    def __init__(
        self,
        storage: StorageClient | None = None,
        artifacts_dir: str | os.PathLike[str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._artifacts_dir = artifacts_dir
        self._clock = clock

    def create_report(self, repo: str, flaky: Iterable[str] | None, write_file: bool) -> Report:
        """Build the report for repo, writing it to the artifacts directory if asked."""
        report = Report(repo=repo, flaky=list(flaky or []))
        if write_file:
            self._write_to_artifacts_dir(report)
        return report

    def _write_to_artifacts_dir(self, report: Report) -> Path:
        base = Path(
            self._artifacts_dir if self._artifacts_dir is not None else get_local_artifacts_dir()
        )
        repo_dir = base / report.repo
        repo_dir.mkdir(parents=True, exist_ok=True)
        out = repo_dir / FILENAME
        out.write_text(report.to_json(), encoding="utf-8")
        return out

    def get_flaky_tests(self, job_name: str, repo: str) -> list[str]:
        """Return the latest flaky tests of repo."""
        reports = self.get_flaky_test_report(job_name, repo, -1)
        if len(reports) != 1:
            raise ValueError(f"invalid entries for given repo: {len(reports)}")
        return reports[0].flaky

    def get_report_repos(self, job_name: str) -> list[str]:
        """Return every repository that has a report in the latest valid build."""
        return [report.repo for report in self.get_flaky_test_report(job_name, "", -1)]

    def get_flaky_test_report(self, job_name: str, repo: str, build_id: int) -> list[Report]:
        """Return the reports of build_id for repo.

        An empty repo selects every repository; build_id -1 selects the most
        recent build with a valid report.
        """
        if self._storage is None:
            raise RuntimeError("no storage client configured for reading reports")
        job = new_job(self._storage, job_name or DEFAULT_JOB_NAME, PERIODIC_JOB, "", "", 0)
        if build_id == -1:
            build_id = self._latest_valid_build(job, repo)
        build = job.new_build(build_id)
        return [Report.from_json(build.read_file(path)) for path in self._report_paths(build, repo)]

    def _latest_valid_build(self, job: Job, repo: str) -> int:
        """Find the most recent build holding a report; build IDs grow with time."""
        try:
            latest = job.latest_build_number()
        except (OSError, ValueError):
            pass
        else:
            if self._report_paths(job.new_build(latest), repo):
                return latest
        max_elapsed = MAX_AGE_DAYS * 24 * 3600
        for build_id in sorted(job.build_ids(), reverse=True):
            build = job.new_build(build_id)
            if not self._report_paths(build, repo):
                continue
            try:
                start = build.get_start_time()
            except (OSError, ValueError):
                continue
            elapsed = self._clock() - start
            if elapsed < max_elapsed:
                return build_id
            raise LookupError(f"latest JSON log is outdated: {elapsed / 86400:.2f} days old")
        raise LookupError("no JSON logs found in recent builds")

    @staticmethod
    def _report_paths(build: Build, repo: str) -> list[str]:
        suffix = posixpath.join(repo, FILENAME)
        return [
            artifact.removeprefix(build.storage_path).lstrip("/")
            for artifact in build.artifacts()
            if artifact.endswith(suffix)
        ]


class FakeJSONClient:
    """A report client that keeps the last written report in memory."""

    def __init__(self) -> None:
        self.data = b""

    def create_report(self, repo: str, flaky: Iterable[str] | None, write_file: bool) -> Report:
        """Build the report for repo, keeping it in memory if asked."""
        report = Report(repo=repo, flaky=list(flaky or []))
        if write_file:
            self.data = report.to_json().encode("utf-8")
        return report

    def get_flaky_tests(self, job_name: str, repo: str) -> list[str]:
        """Return the flaky tests of the stored report."""
        reports = self.get_flaky_test_report("", repo, -1)
        if len(reports) != 1:
            raise ValueError(f"invalid entries for given repo: {len(reports)}")
        return reports[0].flaky

    def get_report_repos(self, job_name: str) -> list[str]:
        """Return the repository of the stored report."""
        return [report.repo for report in self.get_flaky_test_report("", "", -1)]

    def get_flaky_test_report(self, job_name: str, repo: str, build_id: int) -> list[Report]:
        """Return the stored report; raise ValueError if none was written."""
        return [Report.from_json(self.data)]