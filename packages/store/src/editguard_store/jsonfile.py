"""JsonFileEventLog — the shared, append-only event log on local disk.

Data format: a single JSON file (by default ``.editguard/events.json`` in the
workspace) holding a JSON array of event dicts, newest entries appended.
External readers consume this file directly, so the format is kept flat and
pretty-printed.

Durability model:
- Every append rewrites the whole array to a uniquely named temp file in the
  same directory and renames it over the canonical file, so a reader never
  observes a half-written array.
- Within one process, appends to the same path are serialised through a
  WriteQueue lane: no appender reads a stale array.
- Across processes there is no lock. Two processes racing on the final
  rename both succeed, and whichever renames last wins; the other append is
  lost. The file itself is never corrupt.

Malformed entries: array elements that are not JSON objects are skipped by
read() but carried through untouched on append, so one bad entry never costs
the other entries or anything an external writer put there. A file that is
not a JSON array at all is reset to an empty array on the next append.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path

from editguard_store.base import EventLog
from editguard_store.models import Event
from editguard_store.write_queue import WriteQueue

logger = logging.getLogger(__name__)

DEFAULT_LOG_PATH = Path(".editguard") / "events.json"


def write_json_atomic(path: Path, payload) -> None:
    """Write ``payload`` as JSON to ``path`` via temp file + rename.

    Raises OSError/TypeError on failure after removing the temp file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with open(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(temp_path, path)
    except (OSError, TypeError, ValueError):
        Path(temp_path).unlink(missing_ok=True)
        raise


class JsonFileEventLog(EventLog):
    """Stores events as a JSON array in one file.

    Pass a shared WriteQueue when several log instances in the same process
    may point at the same file; otherwise each instance owns a private queue
    and closes it in aclose().
    """

    def __init__(self, path: str | Path = DEFAULT_LOG_PATH, write_queue: WriteQueue | None = None):
        self._path = Path(path)
        self._lane_key = str(self._path.resolve())
        self._owns_queue = write_queue is None
        self._queue = write_queue if write_queue is not None else WriteQueue()

    @property
    def path(self) -> Path:
        return self._path

    async def append(self, event: Event) -> bool:
        try:
            return await self._queue.submit(self._lane_key, lambda: asyncio.to_thread(self._append_sync, event))
        except Exception as e:
            # Never let a logging failure reach the edit workflow.
            logger.warning("JsonFileEventLog.append() failed (%s): %s", type(e).__name__, e)
            return False

    async def read(self) -> list[Event]:
        try:
            return await asyncio.to_thread(self._read_sync)
        except Exception as e:
            logger.warning("JsonFileEventLog.read() failed (%s): %s", type(e).__name__, e)
            return []

    async def aclose(self) -> None:
        if self._owns_queue:
            await self._queue.aclose()

    # ------------------------------------------------------------------ #
    # Blocking helpers, only ever run via asyncio.to_thread               #
    # ------------------------------------------------------------------ #

    def _append_sync(self, event: Event) -> bool:
        records = self._load_for_append()
        records.append(event.to_dict())
        try:
            write_json_atomic(self._path, records)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write %s (%s): %s", self._path, type(e).__name__, e)
            return False
        return True

    def _load_for_append(self) -> list:
        """Read the current array, resetting to [] if it is unusable."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("%s is unreadable, resetting to empty: %s", self._path, e)
            return []

        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("%s contains invalid JSON, resetting to empty: %s", self._path, e)
            return []
        if not isinstance(records, list):
            logger.warning("%s is not a JSON array, resetting to empty", self._path)
            return []
        return records

    def _read_sync(self) -> list[Event]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read %s: %s", self._path, e)
            return []

        try:
            records = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("%s contains invalid JSON, returning empty", self._path)
            return []
        if not isinstance(records, list):
            logger.warning("%s is not a JSON array, returning empty", self._path)
            return []
        return [Event.from_dict(r) for r in records if isinstance(r, dict)]
