"""Write the flaky tests of every repository as JSON reports."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Protocol

from prowkit.flaky_result import RepoData
from prowkit.jsonreport import JSONClient, Report

__all__ = ["get_flaky_test_set", "write_flaky_tests_to_json"]

log = logging.getLogger(__name__)


class _ReportWriter(Protocol):
    def create_report(self, repo: str, flaky: Iterable[str] | None, write_file: bool) -> Report: ...


def get_flaky_test_set(repo_data_all: Iterable[RepoData]) -> dict[str, set[str]]:
    """Merge the flaky tests of all jobs into one set per repository."""
    flaky: dict[str, set[str]] = {}
    for repo_data in repo_data_all:
        flaky.setdefault(repo_data.config.repo, set()).update(repo_data.flaky_tests())
    return flaky


def write_flaky_tests_to_json(
    repo_data_all: Iterable[RepoData],
    client: _ReportWriter | None = None,
    dry_run: bool = False,
) -> dict[str, Report]:
    """Write one report per repository, in parallel.

    Returns the written reports by repository; nothing is written in a dry
    run. Raises RuntimeError listing every repository that failed.
    """
    writer = client if client is not None else JSONClient()
    flaky_sets = get_flaky_test_set(repo_data_all)

    def write(repo: str) -> tuple[str, Report | None, str | None]:
        tests = sorted(flaky_sets[repo])
        if dry_run:
            log.info("[dry run] writing JSON report for repo '%s'", repo)
            log.info("[dry run] JSON report not written to bucket")
            return repo, None, None
        try:
            report = writer.create_report(repo, tests, True)
        except Exception as exc:  # each failure is collected and reported together
            message = f"failed writing JSON report for repo '{repo}': {exc}"
            log.error(message)
            return repo, None, message
        return repo, report, None

    written: dict[str, Report] = {}
    errors: list[str] = []
    if flaky_sets:
        with ThreadPoolExecutor(max_workers=len(flaky_sets)) as pool:
            for repo, report, error in pool.map(write, sorted(flaky_sets)):
                if error is not None:
                    errors.append(error)
                elif report is not None:
                    written[repo] = report
    if errors:
        raise RuntimeError("\n".join(errors))
    return written