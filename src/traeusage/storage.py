import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Protocol

import structlog

from traeusage.models import UsageRecord, UsageStore

logger = structlog.get_logger()

# logical key of the persisted usage store
STORE_KEY = "usage_store"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class BlobStorage(Protocol):
    """
    BlobStorage is a persistent key-value store of opaque
    byte blobs. write_blob must replace the previous value
    as a whole or not at all.
    """

    def read_blob(self, key: "str") -> "bytes | None": ...

    def write_blob(self, key: "str", data: "bytes") -> "None": ...


def atomic_write(path: "Path", data: "bytes") -> "None":
    """
    writes data to path through a temp file in the same directory,
    fsyncs it and renames it over the target.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileBlobStorage:
    """
    FileBlobStorage keeps one file per key inside a directory.
    """

    def __init__(self, directory: "Path") -> "None":
        self._dir = directory

    def _path(self, key: "str") -> "Path":
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"invalid blob key: {key!r}")
        return self._dir / f"{key}.json"

    def read_blob(self, key: "str") -> "bytes | None":
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def write_blob(self, key: "str", data: "bytes") -> "None":
        atomic_write(self._path(key), data)


class MemoryBlobStorage:
    def __init__(self) -> "None":
        self._lock: "threading.Lock" = threading.Lock()
        self._blobs: "dict[str, bytes]" = {}

    def read_blob(self, key: "str") -> "bytes | None":
        with self._lock:
            return self._blobs.get(key)

    def write_blob(self, key: "str", data: "bytes") -> "None":
        with self._lock:
            self._blobs[key] = bytes(data)


def encode_store(store: "UsageStore") -> "bytes":
    payload = {
        "last_update_time": store.last_update_time,
        "covered_start": store.covered_start,
        "covered_end": store.covered_end,
        "records": {sid: r.to_dict() for sid, r in store.records.items()},
    }
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def decode_store(data: "bytes") -> "UsageStore":
    """
    parses a serialized store. Raises ValueError (or KeyError, TypeError or
    AttributeError for structurally broken records) on malformed input.
    """
    raw = json.loads(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("usage store is not a JSON object")

    raw_records = raw.get("records") or {}
    if not isinstance(raw_records, dict):
        raise ValueError("usage store records are not a JSON object")

    records: "dict[str, UsageRecord]" = {}
    for item in raw_records.values():
        if not isinstance(item, dict):
            raise ValueError("usage store record is not a JSON object")
        record = UsageRecord.from_api(item)
        records[record.session_id] = record

    return UsageStore(
        last_update_time=int(raw.get("last_update_time", 0)),
        covered_start=int(raw.get("covered_start", 0)),
        covered_end=int(raw.get("covered_end", 0)),
        records=records,
    )


def load_store(blobs: "BlobStorage", key: "str" = STORE_KEY) -> "UsageStore":
    """
    loads the persisted store, falling back to an empty one when
    nothing was stored yet or the blob cannot be parsed.
    """
    data = blobs.read_blob(key)
    if data is None:
        logger.debug("usage_store_missing", key=key)
        return UsageStore()

    try:
        return decode_store(data)
    except (ValueError, KeyError, TypeError, AttributeError):
        logger.warning("usage_store_unparseable", key=key, size=len(data))
        return UsageStore()


def save_store(
    blobs: "BlobStorage",
    store: "UsageStore",
    key: "str" = STORE_KEY,
) -> "None":
    blobs.write_blob(key, encode_store(store))
    logger.debug("usage_store_saved", key=key, record_count=len(store.records))
