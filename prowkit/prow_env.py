"""Environment variables set by Prow for a CI job."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Callable, Mapping

__all__ = ["EnvConfig", "get_env_config"]

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}
_UINT_MAX = 2**64 - 1


def _parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean {value!r}")


def _parse_uint(value: str) -> int:
    if not value or value[0] in "+-":
        raise ValueError(f"invalid unsigned integer {value!r}")
    try:
        if len(value) > 1 and value[0] == "0" and value[1].isdigit():
            number = int(value[1:], 8)
        else:
            number = int(value, 0)
    except ValueError:
        raise ValueError(f"invalid unsigned integer {value!r}") from None
    if number > _UINT_MAX:
        raise ValueError(f"unsigned integer out of range {value!r}")
    return number


def _env(key: str, parse: Callable[[str], object] = str, default: object = ""):
    return field(default=default, metadata={"env": key, "parse": parse})


@dataclass
class EnvConfig:
    """Values of the environment variables a Prow job may set."""

    ci: bool = _env("CI", _parse_bool, False)
    artifacts: str = _env("ARTIFACTS")
    job_name: str = _env("JOB_NAME")
    job_type: str = _env("JOB_TYPE")
    job_spec: str = _env("JOB_SPEC")
    build_id: str = _env("BUILD_ID")
    prow_job_id: str = _env("PROW_JOB_ID")
    repo_owner: str = _env("REPO_OWNER")
    repo_name: str = _env("REPO_NAME")
    pull_base_ref: str = _env("PULL_BASE_REF")
    pull_base_sha: str = _env("PULL_BASE_SHA")
    pull_refs: str = _env("PULL_REFS")
    pull_number: int = _env("PULL_NUMBER", _parse_uint, 0)
    pull_pull_sha: str = _env("PULL_PULL_SHA")


def get_env_config(environ: Mapping[str, str] | None = None) -> EnvConfig:
    """Read the Prow variables from environ (default: the process environment).

    Raises ValueError if a variable cannot be parsed and RuntimeError when
    not running in CI.
    """
    env = os.environ if environ is None else environ
    values = {}
    for f in fields(EnvConfig):
        key = f.metadata["env"]
        if key not in env:
            continue
        try:
            values[f.name] = f.metadata["parse"](env[key])
        except ValueError as exc:
            raise ValueError(
                f"failed getting environment variables for Prow: {key}: {exc}"
            ) from exc
    config = EnvConfig(**values)
    if not config.ci:
        raise RuntimeError("this function is not expected to be called from a non-CI environment")
    return config