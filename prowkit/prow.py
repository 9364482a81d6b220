"""Prow jobs and builds as they are laid out in cloud storage."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import re
from dataclasses import dataclass, field
from typing import Callable, Mapping, Protocol, Sequence

__all__ = [
    "BUCKET_NAME",
    "LATEST",
    "BUILD_LOG",
    "STARTED_JSON",
    "FINISHED_JSON",
    "ARTIFACTS_DIR",
    "PRESUBMIT_JOB",
    "POSTSUBMIT_JOB",
    "PERIODIC_JOB",
    "BATCH_JOB",
    "StorageClient",
    "InMemoryStorage",
    "UnknownJobTypeError",
    "Build",
    "Job",
    "new_job",
    "is_ci",
    "get_local_artifacts_dir",
    "build_id_from_path",
]

log = logging.getLogger(__name__)

BUCKET_NAME = "knative-prow"
LATEST = "latest-build.txt"
BUILD_LOG = "build-log.txt"
STARTED_JSON = "started.json"
FINISHED_JSON = "finished.json"
ARTIFACTS_DIR = "artifacts"

PRESUBMIT_JOB = "presubmit"
POSTSUBMIT_JOB = "postsubmit"
PERIODIC_JOB = "periodic"
BATCH_JOB = "batch"

_INT_RE = re.compile(r"[+-]?[0-9]+")


class StorageClient(Protocol):
    """The storage operations jobs and builds rely on."""

    def exists(self, bucket: str, path: str) -> bool: ...

    def read_object(self, bucket: str, path: str) -> bytes: ...

    def list_direct_children(self, bucket: str, path: str) -> list[str]: ...

    def list_children_files(self, bucket: str, path: str) -> list[str]: ...


def _clean(path: str) -> str:
    return path.strip("/")


def _prefix(key: str) -> str:
    return key + "/" if key else ""


class InMemoryStorage:
    """A storage client that keeps objects in a dictionary."""

    def __init__(self, objects: Mapping[tuple[str, str], bytes | str] | None = None) -> None:
        self._objects: dict[tuple[str, str], bytes] = {}
        for (bucket, path), data in (objects or {}).items():
            self.put(bucket, path, data)

    def put(self, bucket: str, path: str, data: bytes | str) -> None:
        """Store an object, replacing any previous one at that path."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._objects[(bucket, _clean(path))] = bytes(data)

    def _keys(self, bucket: str) -> list[str]:
        return [key for b, key in self._objects if b == bucket]

    def exists(self, bucket: str, path: str) -> bool:
        """Return whether an object or a directory exists at path."""
        key = _clean(path)
        if (bucket, key) in self._objects:
            return True
        prefix = _prefix(key)
        return any(k.startswith(prefix) for k in self._keys(bucket))

    def read_object(self, bucket: str, path: str) -> bytes:
        """Return the object's contents; raise FileNotFoundError if absent."""
        try:
            return self._objects[(bucket, _clean(path))]
        except KeyError:
            raise FileNotFoundError(f"object {bucket}/{_clean(path)} not found") from None

    def list_direct_children(self, bucket: str, path: str) -> list[str]:
        """List files and sub-directories (with a trailing slash) right under path."""
        prefix = _prefix(_clean(path))
        children = set()
        for key in self._keys(bucket):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            head, sep, _ = rest.partition("/")
            children.add(prefix + head + ("/" if sep else ""))
        return sorted(children)

    def list_children_files(self, bucket: str, path: str) -> list[str]:
        """List every file below path, at any depth."""
        prefix = _prefix(_clean(path))
        return sorted(key for key in self._keys(bucket) if key.startswith(prefix))


class UnknownJobTypeError(ValueError):
    """Raised for a job type Prow does not define."""


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text, 10)


def build_id_from_path(build_path: str) -> int:
    """Return the build number that is the last component of a build path."""
    trimmed = build_path.rstrip(" /")
    return _atoi(trimmed.rsplit("/", 1)[-1])


def is_ci(environ: Mapping[str, str] | None = None) -> bool:
    """Return whether the environment is a CI environment."""
    env = os.environ if environ is None else environ
    return env.get("CI", "").casefold() == "true"


def get_local_artifacts_dir(environ: Mapping[str, str] | None = None) -> str:
    """Return the local artifacts directory, from ARTIFACTS or the default."""
    env = os.environ if environ is None else environ
    directory = env.get("ARTIFACTS", "")
    if not directory:
        log.info("Env variable ARTIFACTS not set. Using %s instead.", ARTIFACTS_DIR)
        directory = ARTIFACTS_DIR
    return directory


@dataclass
class Build:
    """A build stored under a storage path."""

    storage: StorageClient = field(repr=False, compare=False)
    job_name: str = ""
    storage_path: str = ""
    build_id: int = 0
    bucket: str = BUCKET_NAME
    start_time: int | None = None
    finish_time: int | None = None

    def _path(self, rel_path: str) -> str:
        return posixpath.join(self.storage_path, rel_path)

    def is_started(self) -> bool:
        """Return whether started.json exists for this build."""
        return self.storage.exists(self.bucket, self._path(STARTED_JSON))

    def is_finished(self) -> bool:
        """Return whether finished.json exists for this build."""
        return self.storage.exists(self.bucket, self._path(FINISHED_JSON))

    def _timestamp(self, name: str) -> int:
        data = json.loads(self.read_file(name))
        if data is None:
            return 0
        if not isinstance(data, dict):
            raise ValueError(f"{name} is not a JSON object")
        stamp = data.get("timestamp", 0)
        if stamp is None:
            return 0
        if isinstance(stamp, bool) or not isinstance(stamp, int):
            raise ValueError(f"invalid timestamp in {name}: {stamp!r}")
        return stamp

    def get_start_time(self) -> int:
        """Return the epoch seconds recorded in started.json."""
        return self._timestamp(STARTED_JSON)

    def get_finish_time(self) -> int:
        """Return the epoch seconds recorded in finished.json."""
        return self._timestamp(FINISHED_JSON)

    def artifacts(self) -> list[str]:
        """Return the storage paths of all artifacts of this build."""
        return self.storage.list_children_files(self.bucket, self.artifacts_dir())

    def artifacts_dir(self) -> str:
        """Return the storage path of the artifacts directory."""
        return self._path(ARTIFACTS_DIR)

    def build_log_path(self) -> str:
        """Return the storage path of build-log.txt."""
        return self._path(BUILD_LOG)

    def read_file(self, rel_path: str) -> bytes:
        """Read a file given relative to the build directory."""
        return self.storage.read_object(self.bucket, self._path(rel_path))

    def parse_log(self, check_log: Callable[[list[str]], str | None]) -> list[str]:
        """Run check_log over the whitespace-split lines of the build log.

        Keeps every non-None value it returns.
        """
        text = self.storage.read_object(self.bucket, self.build_log_path()).decode("utf-8", "replace")
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        results = []
        for line in lines:
            found = check_log(line.removesuffix("\r").split())
            if found is not None:
                results.append(found)
        return results


@dataclass
class Job:
    """A job directory in storage."""

    storage: StorageClient = field(repr=False, compare=False)
    name: str = ""
    job_type: str = ""
    bucket: str = BUCKET_NAME
    org: str = ""
    repo: str = ""
    storage_path: str = ""
    pull_id: int = 0
    builds: list[Build] = field(default_factory=list)

    def path_exists(self) -> bool:
        """Return whether the job's storage path exists."""
        return self.storage.exists(self.bucket, self.storage_path)

    def latest_build_number(self) -> int:
        """Return the number stored in latest-build.txt."""
        contents = self.storage.read_object(self.bucket, posixpath.join(self.storage_path, LATEST))
        return _atoi(contents.decode("utf-8").removesuffix("\n"))

    def new_build(self, build_id: int) -> Build:
        """Describe a build of this job, reading its start and finish times if present."""
        build = Build(
            self.storage,
            job_name=self.name,
            storage_path=posixpath.join(self.storage_path, str(build_id)),
            build_id=build_id,
            bucket=self.bucket,
        )
        try:
            build.start_time = build.get_start_time()
        except (OSError, ValueError):
            pass
        try:
            build.finish_time = build.get_finish_time()
        except (OSError, ValueError):
            pass
        return build

    def finished_builds(self) -> list[Build]:
        """Return the builds that have a finished.json."""
        return [build for build in self.builds() if build.is_finished()]

    def builds(self) -> list[Build]:
        """Return every build of this job, with start and finish times."""
        return [self.new_build(build_id) for build_id in self.build_ids()]

    def build_ids(self) -> list[int]:
        """Return the numeric names of the job directory's direct children."""
        ids = []
        for child in self.storage.list_direct_children(self.bucket, self.storage_path):
            try:
                ids.append(build_id_from_path(child))
            except ValueError:
                continue
        return ids

    def latest_builds(self, count: int) -> list[Build]:
        """Return up to count finished builds, newest start time first."""
        if count < 0:
            raise ValueError(f"count must not be negative, got {count}")
        builds = sorted(
            self.finished_builds(),
            key=lambda b: (b.start_time is None, -(b.start_time or 0)),
        )
        return builds[:count]


def new_job(
    storage: StorageClient,
    job_name: str,
    job_type: str,
    org: str = "",
    repo: str = "",
    pull_id: int = 0,
) -> Job:
    """Create a job whose storage path follows from its type."""
    job = Job(storage, name=job_name, job_type=job_type, org=org, repo=repo)
    if job_type in (PERIODIC_JOB, POSTSUBMIT_JOB):
        job.storage_path = posixpath.join("logs", job_name)
    elif job_type == PRESUBMIT_JOB:
        job.pull_id = pull_id
        job.storage_path = posixpath.join("pr-logs", "pull", f"{org}_{repo}", str(pull_id), job_name)
    elif job_type == BATCH_JOB:
        job.storage_path = posixpath.join("pr-logs", "pull", "batch", job_name)
    else:
        raise UnknownJobTypeError(f"unknown job spec type: {job_type}")
    return job