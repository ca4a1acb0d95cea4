"""
Content-addressed result cache.

One JSON file per URL under the cache directory; the file name is the SHA-256
hex digest of the URL. Each file holds a flat record::

    {"url": ..., "title": ..., "content": ..., "fetched_at": <epoch ms>}

Entries older than the caller's TTL are deleted on read. Writes go through a
temp file and ``os.replace`` so a reader never sees a half-written entry.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ghostbrowse.core.errors import ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 10 * 60 * 1000


def _epoch_ms() -> float:
    return time.time() * 1000


class ResultCache:
    """
    File-backed TTL cache for page reads.

    Parameters
    ----------
    cache_dir:
        Directory holding the entries (created lazily on first write).
    clock:
        Injectable wall clock returning epoch milliseconds.
    """

    def __init__(
        self,
        cache_dir: str | os.PathLike,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.cache_dir = Path(cache_dir).expanduser()
        self._clock = clock or _epoch_ms

    @staticmethod
    def key_for(url: str) -> str:
        """Cache key for a URL."""
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def _path(self, url: str) -> Path:
        return self.cache_dir / f"{self.key_for(url)}.json"

    def get(self, url: str, ttl_ms: int = DEFAULT_TTL_MS) -> Optional[Dict[str, Any]]:
        """
        Stored data for *url*, or None if missing, expired or unreadable.

        Hits carry ``from_cache=True``; ``fetched_at`` is not returned.
        """
        path = self._path(url)
        if not path.exists():
            return None

        try:
            record = json.loads(path.read_text(encoding="utf-8"))
            fetched_at = float(record["fetched_at"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "[Cache] %s: unreadable entry for %s: %s",
                ErrorKind.PARSE_FAILURE.value, url, exc,
            )
            return None

        if self._clock() - fetched_at > ttl_ms:
            self._remove(path)
            logger.debug("[Cache] Expired entry removed: %s", path.name)
            return None

        logger.debug("[Cache] Hit: %s", url)
        data = {k: v for k, v in record.items() if k != "fetched_at"}
        data["from_cache"] = True
        return data

    def set(self, url: str, data: Dict[str, Any]) -> None:
        """Store *data* for *url*, replacing any previous entry atomically."""
        record = {"url": url, **data, "fetched_at": self._clock()}
        record.pop("from_cache", None)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, ensure_ascii=False)
            os.replace(tmp_name, self._path(url))
        except BaseException:
            self._remove(Path(tmp_name))
            raise

    def stats(self) -> Dict[str, Any]:
        """Entry count and on-disk size."""
        entries = 0
        total = 0
        for path in self._entries():
            try:
                total += path.stat().st_size
            except OSError:
                continue
            entries += 1
        return {
            "entries": entries,
            "total_size_bytes": total,
            "size_kb": round(total / 1024),
        }

    def clear(self) -> int:
        """Delete every entry; returns how many were removed."""
        removed = 0
        for path in self._entries():
            if self._remove(path):
                removed += 1
        return removed

    # ── Internal ─────────────────────────────────────────────────

    def _entries(self):
        if not self.cache_dir.is_dir():
            return []
        return sorted(self.cache_dir.glob("*.json"))

    @staticmethod
    def _remove(path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("[Cache] Could not remove %s: %s", path.name, exc)
            return False
