"""Select test projects and delete their old resources concurrently."""

from __future__ import annotations

import argparse
import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

__all__ = [
    "DEFAULT_PROJECT_REGEX",
    "Options",
    "parse_options",
    "select_projects",
    "from_resource_files",
    "BaseResourceDeleter",
]

log = logging.getLogger(__name__)

DEFAULT_PROJECT_REGEX = "knative-boskos-[a-zA-Z0-9]+"

DeleteFunc = Callable[[str, int, bool], int]


@dataclass
class Options:
    """Command-line settings of the cleanup tool."""

    project_resource_yaml: list[str] = field(default_factory=list)
    project: list[str] = field(default_factory=list)
    re_project_name: str = DEFAULT_PROJECT_REGEX
    days_to_keep_images: int = 365
    hours_to_keep_clusters: int = 720
    registry: str = "gcr.io"
    service_account: str = ""
    concurrent_operations: int = 10
    dry_run: bool = False


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cleanup",
        description="Delete old images and test clusters from test projects.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--project-resource-yaml", "-project-resource-yaml",
        dest="project_resource_yaml", action="append", default=[],
        help="Resources file containing the names of the projects to be cleaned up.",
    )
    parser.add_argument(
        "--project", "-project", dest="project", action="append", default=[],
        help="Project to be cleaned up.",
    )
    parser.add_argument(
        "--re-project-name", "-re-project-name", dest="re_project_name",
        default=DEFAULT_PROJECT_REGEX,
        help="Regular expression for filtering project names from the resources file.",
    )
    parser.add_argument(
        "--days-to-keep-images", "-days-to-keep-images", dest="days_to_keep_images",
        type=int, default=365,
        help="Images older than this amount of days will be deleted (-1 means 'forever').",
    )
    parser.add_argument(
        "--hours-to-keep-clusters", "-hours-to-keep-clusters", dest="hours_to_keep_clusters",
        type=int, default=720,
        help="Clusters older than this amount of hours will be deleted (-1 means 'forever').",
    )
    parser.add_argument(
        "--gcr", "-gcr", dest="registry", default="gcr.io",
        help="The registry hostname to use (currently only GCR is supported).",
    )
    parser.add_argument(
        "--service-account", "-service-account", dest="service_account", default="",
        help="Specify the key file of the service account to use.",
    )
    parser.add_argument(
        "--concurrent-operations", "-concurrent-operations", dest="concurrent_operations",
        type=int, default=10,
        help="How many deletion operations to run concurrently.",
    )
    parser.add_argument(
        "--dry-run", "-dry-run", dest="dry_run", action="store_true",
        help="Performs a dry run for all deletion functions.",
    )
    return parser


def parse_options(argv: Sequence[str] | None = None) -> Options:
    """Parse command-line arguments into Options."""
    namespace = _parser().parse_args(argv)
    return Options(**vars(namespace))


def select_projects(
    projects: Sequence[str], resource_files: Sequence[str], regex: str
) -> list[str]:
    """Return the projects to iterate over, given directly or via resource files."""
    if not projects and not resource_files:
        raise ValueError("neither project nor resource file provided")
    if projects and resource_files:
        raise ValueError("provided both project and resource file")
    if projects:
        log.info("Iterating over projects %s", list(projects))
        return list(projects)
    return from_resource_files(resource_files, regex)


def from_resource_files(resource_files: Sequence[str], regex: str) -> list[str]:
    """Extract project names matching regex from the lines of the resource files."""
    try:
        project_re = re.compile(regex)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {regex!r}: {exc}") from exc
    found: list[str] = []
    for resource_file in resource_files:
        content = Path(resource_file).read_text()
        log.info("Iterating over projects defined in %r, matching %r", resource_file, regex)
        count = 0
        for line in content.split("\n"):
            if not line:
                continue
            match = project_re.search(line)
            if match is not None:
                log.info("\t- %s", match.group(0))
                found.append(match.group(0))
                count += 1
        log.info("Found %d projects", count)
    if not found:
        files = " ".join(resource_files)
        raise ValueError(f"no project found in '[{files}]' matching {regex!r}")
    return found


class BaseResourceDeleter:
    """Deletes one kind of resource across a set of projects.

    Subclasses override delete_resources; a delete_func given to the
    constructor takes its place instead.
    """

    def __init__(self, projects: Sequence[str], delete_func: DeleteFunc | None = None) -> None:
        self._projects = list(projects)
        self._delete_func = delete_func

    @property
    def projects(self) -> list[str]:
        """The projects this deleter cleans up."""
        return list(self._projects)

    def delete_resources(self, project: str, hours_to_keep: int, dry_run: bool) -> int:
        """Delete old resources of one project and return how many were deleted."""
        raise NotImplementedError("not implemented")

    def _delete_one(self, project: str, hours_to_keep: int, dry_run: bool) -> int:
        if self._delete_func is not None:
            return self._delete_func(project, hours_to_keep, dry_run)
        return self.delete_resources(project, hours_to_keep, dry_run)

    def delete(
        self, hours_to_keep: int, concurrent_operations: int, dry_run: bool
    ) -> tuple[int, list[str]]:
        """Clean up every project in parallel.

        Returns the number of deleted resources and the sorted, distinct error
        messages. Once an error occurred, projects not yet started are skipped.
        """
        if concurrent_operations < 1:
            raise ValueError(
                f"concurrent_operations must be at least 1, got {concurrent_operations}"
            )
        lock = threading.Lock()
        errors: list[str] = []
        total = 0

        def run(project: str) -> None:
            nonlocal total
            with lock:
                if errors:
                    return
            try:
                count = self._delete_one(project, hours_to_keep, dry_run)
            except Exception as exc:  # every failure is reported, not raised
                with lock:
                    errors.append(str(exc))
                return
            with lock:
                total += count

        projects = self._projects
        if projects:
            with ThreadPoolExecutor(max_workers=concurrent_operations) as pool:
                list(pool.map(run, projects))
        return total, sorted(set(errors))

    def show_stats(self, count: int, errors: Sequence[str]) -> None:
        """Log the number of deleted resources and any errors."""
        log.info("%d resources deleted", count)
        if errors:
            log.info("%d errors occurred: %s", len(errors), ", ".join(errors))