"""A small key/value store kept as metadata.json in the artifacts directory."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from prowkit.prow import get_local_artifacts_dir

__all__ = ["FILENAME", "MetadataClient"]

log = logging.getLogger(__name__)

FILENAME = "metadata.json"

_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


def _dumps(metadata: dict[str, str]) -> str:
    text = json.dumps(metadata, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


class MetadataClient:
    """Reads and writes string metadata in ``<directory>/metadata.json``."""

    def __init__(self, directory: str | os.PathLike[str] = "") -> None:
        if not os.fspath(directory):
            log.info("Getting artifacts dir from prow")
            directory = get_local_artifacts_dir()
        self.metadata: dict[str, str] = {}
        base = Path(directory)
        self.path = base / FILENAME
        if not base.exists():
            base.mkdir(parents=True)

    def _sync(self) -> None:
        """Create the file if missing, otherwise merge its contents into metadata."""
        if not self.path.exists():
            self.path.write_text(_dumps(self.metadata), encoding="utf-8")
            return
        loaded = json.loads(self.path.read_bytes())
        if not isinstance(loaded, dict) or not all(isinstance(v, str) for v in loaded.values()):
            raise ValueError(f"{self.path} does not hold a map of strings")
        self.metadata.update(loaded)

    def set(self, key: str, value: str) -> None:
        """Store key with value, replacing any previous value."""
        self._sync()
        if key in self.metadata:
            log.info("Overriding meta %r:%r with new value %r", key, self.metadata[key], value)
        self.metadata[key] = value
        self.path.write_text(_dumps(self.metadata), encoding="utf-8")

    def get(self, key: str) -> str:
        """Return the value stored for key.

        Raises FileNotFoundError when no metadata file exists and LookupError
        when the key is missing.
        """
        if not self.path.exists():
            raise FileNotFoundError(f'file "{self.path}" doesn\'t exist')
        self._sync()
        try:
            return self.metadata[key]
        except KeyError:
            raise LookupError(f'key "{key}" doesn\'t exist') from None