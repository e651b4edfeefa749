"""Client-local state: result cache and last query.

Two small JSON files under the client state directory (``~/.fsenquiry`` by
default):

  cache.json       — ``{"<reference>:<serial>": {query, records, timestamp}}``
                     entries older than CLIENT_CACHE_TTL_S are evicted on read
  last_query.json  — ``{"fsref": ..., "fserial": ...}`` for pre-filling the
                     next enquiry

Only the orchestrator reads or writes these files; the gateway keeps no
state of its own. A corrupt or unreadable file is logged and treated as
empty, and a malformed entry is logged and evicted, so a bad cache never
blocks an enquiry.
"""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from fsenquiry.constants import CLIENT_CACHE_TTL_S, DEFAULT_CLIENT_STATE_DIR
from fsenquiry.parser import FirearmRecord
from fsenquiry.utils.logger import get_logger, mask_value

logger = get_logger(__name__)

CACHE_FILENAME = "cache.json"
LAST_QUERY_FILENAME = "last_query.json"


def cache_key(reference: str, serial: Optional[str] = None) -> str:
    return f"{reference}:{serial or ''}"


@dataclass(frozen=True)
class CachedResult:
    records: list[FirearmRecord]
    stored_at: float


class ResultCache:
    """TTL cache of successful lookups plus the remembered last query."""

    def __init__(
        self,
        state_dir: Optional[str | os.PathLike[str]] = None,
        ttl_s: int = CLIENT_CACHE_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state_dir = Path(os.path.expanduser(str(state_dir or DEFAULT_CLIENT_STATE_DIR)))
        self.ttl_s = ttl_s
        self._clock = clock

    @property
    def cache_path(self) -> Path:
        return self.state_dir / CACHE_FILENAME

    @property
    def last_query_path(self) -> Path:
        return self.state_dir / LAST_QUERY_FILENAME

    # ── Results ───────────────────────────────────────────────────────────────

    def get(self, reference: str, serial: Optional[str] = None) -> Optional[list[FirearmRecord]]:
        """Return cached records for the query, or None on a miss or expiry."""
        hit = self.lookup(reference, serial)
        return hit.records if hit else None

    def lookup(self, reference: str, serial: Optional[str] = None) -> Optional[CachedResult]:
        """Like get(), but also report when the records were stored."""
        store = self._read(self.cache_path)
        key = cache_key(reference, serial)
        entry = store.get(key)
        if entry is None:
            logger.debug("Cache miss", key=mask_value(key))
            return None

        try:
            stored_at = _entry_timestamp(entry)
            records = [FirearmRecord.from_dict(item) for item in entry.get("records", [])]
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Malformed cache entry evicted", key=mask_value(key), error=str(exc))
            del store[key]
            self._write(self.cache_path, store)
            return None

        age = self._clock() - stored_at
        if age > self.ttl_s:
            logger.debug("Cache expired", key=mask_value(key), age_s=round(age, 1))
            del store[key]
            self._write(self.cache_path, store)
            return None

        logger.debug("Cache hit", key=mask_value(key), age_s=round(age, 1))
        return CachedResult(records=records, stored_at=stored_at)

    def put(self, reference: str, serial: Optional[str], records: list[FirearmRecord]) -> None:
        store = self._read(self.cache_path)
        store[cache_key(reference, serial)] = {
            "query": {"fsref": reference, "fserial": serial or None},
            "records": [record.to_dict() for record in records],
            "timestamp": self._clock(),
        }
        self._write(self.cache_path, store)

    def clear_entry(self, reference: str, serial: Optional[str] = None) -> None:
        store = self._read(self.cache_path)
        if store.pop(cache_key(reference, serial), None) is not None:
            self._write(self.cache_path, store)

    def clear_all(self) -> None:
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            pass

    def stats(self) -> dict[str, Any]:
        """Count and age of the live (unexpired) entries. Malformed entries are skipped."""
        now = self._clock()
        entries = []
        for key, entry in self._read(self.cache_path).items():
            try:
                age = now - _entry_timestamp(entry)
            except (TypeError, ValueError, AttributeError):
                continue
            if age <= self.ttl_s:
                entries.append({"query": key.rstrip(":"), "age_s": round(age, 1)})
        return {"count": len(entries), "entries": entries}

    # ── Last query ────────────────────────────────────────────────────────────

    def get_last_query(self) -> Optional[dict[str, str]]:
        data = self._read(self.last_query_path)
        if not data.get("fsref"):
            return None
        return {"fsref": str(data["fsref"]), "fserial": str(data.get("fserial") or "")}

    def save_last_query(self, reference: str, serial: Optional[str]) -> None:
        self._write(self.last_query_path, {"fsref": reference, "fserial": serial or ""})

    # ── File I/O ──────────────────────────────────────────────────────────────

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Client state unreadable, ignoring", path=str(path), error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, path: Path, data: dict[str, Any]) -> None:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.warning("Client state not saved", path=str(path), error=str(exc))


def _entry_timestamp(entry: Any) -> float:
    timestamp = entry.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise TypeError(f"timestamp must be a number, got {type(timestamp).__name__}")
    return float(timestamp)
