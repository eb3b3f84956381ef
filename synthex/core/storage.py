"""
Durable Local Storage
=====================

A small key/value store for the records that must survive process restarts:
the session record ({token, user}) and the favorite/saved id sets.

Every record is a separate JSON file named "<namespace>.<key>.json" inside
the storage directory, wrapped in a versioned envelope:

    {"schema": 1, "data": <record>}

Writes go to a temporary file in the same directory and are moved into place
with os.replace, so a crash mid-write leaves either the old record or the new
one, never a partial file. Records are read once at startup and written from
the event-loop thread only, so no locking is needed beyond that.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from .config import DEFAULT_STORAGE_DIR, STORAGE_NAMESPACE, STORAGE_SCHEMA_VERSION


class LocalStore:
    """
    Namespaced, versioned, atomically written JSON records.

    Attributes:
        root: Directory holding the record files
        namespace: Prefix for every record file name
    """

    def __init__(self, root: Union[str, Path, None] = None, namespace: str = STORAGE_NAMESPACE):
        self.root = Path(root) if root is not None else DEFAULT_STORAGE_DIR
        self.namespace = namespace
        self.logger = logging.getLogger(__name__)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.root / f"{self.namespace}.{key}.json"

    def read(self, key: str) -> Optional[Any]:
        """
        Return the record stored under `key`, or None if there is none.

        Records written before the envelope existed (a bare JSON value) are
        accepted as schema 0 and returned unchanged. A record that cannot be
        parsed or decoded is moved aside to "<file>.corrupt", and a record
        written by a newer client is moved aside to "<file>.schema<N>", so
        neither is overwritten by the next write. None is returned for both.
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            # ValueError covers both JSONDecodeError and UnicodeDecodeError
            self.logger.error(f"Stored record '{key}' is unreadable: {e}")
            self._quarantine(path, ".corrupt")
            return None

        if isinstance(raw, dict) and "schema" in raw and "data" in raw:
            schema = raw.get("schema")
            if not isinstance(schema, int) or schema > STORAGE_SCHEMA_VERSION:
                self.logger.warning(
                    f"Record '{key}' has schema {schema!r}, this client supports up to "
                    f"{STORAGE_SCHEMA_VERSION}; setting it aside"
                )
                self._quarantine(path, f".schema{schema if isinstance(schema, int) else '-unknown'}")
                return None
            return raw["data"]

        self.logger.info(f"Migrating legacy record '{key}' to schema {STORAGE_SCHEMA_VERSION}")
        return raw

    def write(self, key: str, data: Any) -> None:
        """Atomically replace the record stored under `key`."""
        path = self.path_for(key)
        envelope = {"schema": STORAGE_SCHEMA_VERSION, "data": data}

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(self.root))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(envelope, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

        self.logger.debug(f"Stored record '{key}'")

    def remove(self, key: str) -> None:
        """Delete the record under `key`; missing records are ignored."""
        try:
            self.path_for(key).unlink()
            self.logger.debug(f"Removed record '{key}'")
        except FileNotFoundError:
            pass

    def _quarantine(self, path: Path, suffix: str) -> None:
        target = path.with_name(path.name + suffix)
        try:
            os.replace(path, target)
            self.logger.warning(f"Moved record to {target}")
        except OSError as e:
            self.logger.error(f"Could not move record {path} aside: {e}")
