"""
File Cache Storage - Expiring key/value store for raw Last.FM responses

Each key maps to two files in the cache directory:
    <key>.json  the payload exactly as it was stored
    <key>.meta  {"key", "createdAt", "expiresAt", "sizeBytes"} (UTC, ISO-8601)

Both must exist and agree for a hit. An entry is never returned once
``now > expiresAt``; expired reads hand the key to an eviction worker and
report a miss straight away. I/O problems never propagate out of the read
path: they are logged and treated as a miss.
"""
from __future__ import annotations

import json
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union

from platformdirs import user_cache_dir

from lfm_curator.cache.eviction import EvictionWorker, SyncEviction
from lfm_curator.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_MINUTES = 10
PAYLOAD_SUFFIX = '.json'
META_SUFFIX = '.meta'
TEMP_SUFFIX = '.tmp'

_KEY_PATTERN = re.compile(r'^[A-Za-z0-9_-][A-Za-z0-9_.-]*$')

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def default_cache_dir() -> Path:
    """Per-user cache directory (e.g. ~/.cache/lfm on Linux)"""
    return Path(user_cache_dir('lfm', appauthor=False))


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CacheEntry:
    """Metadata record stored next to every payload"""
    key: str
    created_at: datetime
    expires_at: datetime
    size_bytes: int

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'createdAt': self.created_at.isoformat(),
            'expiresAt': self.expires_at.isoformat(),
            'sizeBytes': self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CacheEntry':
        """
        Raises:
            KeyError, TypeError, ValueError: on malformed metadata
        """
        return cls(
            key=str(data['key']),
            created_at=_parse_timestamp(data['createdAt']),
            expires_at=_parse_timestamp(data['expiresAt']),
            size_bytes=int(data['sizeBytes']),
        )


@dataclass(frozen=True)
class CacheStatistics:
    """Point-in-time snapshot of the cache directory"""
    total_entries: int
    total_files: int
    expired_entries: int
    total_size_bytes: int
    cache_directory: str
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None
    corrupt_entries: int = 0

    @property
    def valid_entries(self) -> int:
        return self.total_entries - self.expired_entries

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalEntries': self.total_entries,
            'validEntries': self.valid_entries,
            'expiredEntries': self.expired_entries,
            'corruptEntries': self.corrupt_entries,
            'totalFiles': self.total_files,
            'totalSizeBytes': self.total_size_bytes,
            'cacheDirectory': self.cache_directory,
            'oldestEntry': self.oldest_entry.isoformat() if self.oldest_entry else None,
            'newestEntry': self.newest_entry.isoformat() if self.newest_entry else None,
        }


class FileCacheStorage:
    """Handles persistence of cached payloads to disk"""

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        clock: Optional[Clock] = None,
        eviction: Optional[Union[EvictionWorker, SyncEviction]] = None,
    ):
        """
        Initialize the store

        Args:
            cache_dir: Directory for cache files (defaults to the per-user cache dir)
            clock: Callable returning the current aware UTC datetime
            eviction: Where expired reads send their keys (defaults to a
                background EvictionWorker)
        """
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self._clock = clock or utc_now
        self.eviction = eviction if eviction is not None else EvictionWorker()

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Store stays usable in degraded mode: every write fails, every read misses
            logger.warning(f"Cache directory unavailable ({self.cache_dir}): {e}")

        logger.debug(f"Initialized file cache: {self.cache_dir}")

    # ------------------------------------------------------------------
    # Paths and helpers
    # ------------------------------------------------------------------

    @staticmethod
    def is_valid_key(key: Any) -> bool:
        return isinstance(key, str) and bool(_KEY_PATTERN.match(key))

    def _payload_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}{PAYLOAD_SUFFIX}"

    def _meta_path(self, key: str) -> Path:
        return self.cache_dir / f"{key}{META_SUFFIX}"

    def _now(self) -> datetime:
        return self._clock()

    def _atomic_write(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{TEMP_SUFFIX}")
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(text)
            os.replace(tmp_path, path)
        except OSError:
            self._unlink_quietly(tmp_path)
            raise

    @staticmethod
    def _unlink_quietly(path: Path) -> bool:
        """Delete a file, logging (not raising) failures. Returns True if a file was removed."""
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete cache file {path.name}: {e}")
            return False

    def _load_entry(self, meta_path: Path) -> CacheEntry:
        """
        Raises:
            OSError, KeyError, TypeError, ValueError: when the metadata is unreadable
        """
        with open(meta_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("metadata is not an object")
        return CacheEntry.from_dict(data)

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        """Metadata for key, or None when missing, corrupt or mismatched"""
        meta_path = self._meta_path(key)
        try:
            entry = self._load_entry(meta_path)
        except FileNotFoundError:
            return None
        except (OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Unreadable cache metadata for {key[:12]}...: {e}")
            return None

        if entry.key != key:
            logger.warning(f"Cache metadata key mismatch for {key[:12]}... (found {entry.key[:12]}...)")
            return None
        return entry

    def _iter_meta_files(self) -> Iterator[Path]:
        try:
            yield from sorted(self.cache_dir.glob(f"*{META_SUFFIX}"))
        except OSError as e:
            logger.warning(f"Failed to scan cache directory {self.cache_dir}: {e}")

    def _request_eviction(self, key: str) -> None:
        try:
            self.eviction.submit(key, self.evict_if_expired)
        except Exception as e:  # eviction must never affect the read that triggered it
            logger.warning(f"Eviction request for {key[:12]}... failed: {e}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def store(self, key: str, payload: Union[str, bytes],
              expiry_minutes: float = DEFAULT_EXPIRY_MINUTES) -> bool:
        """
        Persist a payload with its metadata

        Args:
            key: Cache key (filesystem-safe token, see CacheKeyGenerator)
            payload: Serialized payload; bytes are decoded as UTF-8
            expiry_minutes: Time-to-live in minutes (fractions allowed)

        Returns:
            True if both payload and metadata were written

        Raises:
            ValidationError: on empty/invalid key, None payload or negative TTL
        """
        if not key or not str(key).strip():
            raise ValidationError("Cache key cannot be empty")
        if not self.is_valid_key(key):
            raise ValidationError(f"Cache key contains unsupported characters: {key!r}")
        if payload is None:
            raise ValidationError("Cache payload cannot be None")
        if expiry_minutes is None or not expiry_minutes >= 0:
            raise ValidationError(f"Cache expiry must be a non-negative number of minutes (got {expiry_minutes})")

        if isinstance(payload, bytes):
            try:
                payload = payload.decode('utf-8')
            except UnicodeDecodeError as e:
                raise ValidationError("Cache payload must be UTF-8 text", technical_details=str(e))

        now = self._now()
        entry = CacheEntry(
            key=key,
            created_at=now,
            expires_at=now + timedelta(minutes=expiry_minutes),
            size_bytes=len(payload.encode('utf-8')),
        )

        try:
            self._atomic_write(self._payload_path(key), payload)
            self._atomic_write(self._meta_path(key), json.dumps(entry.to_dict()))
        except OSError as e:
            logger.warning(f"Failed to write cache entry {key[:12]}...: {e}")
            # A half-written entry must not be readable later
            self._unlink_quietly(self._meta_path(key))
            self._unlink_quietly(self._payload_path(key))
            return False

        logger.debug(f"Cached {entry.size_bytes} bytes under {key[:12]}... (expires {entry.expires_at.isoformat()})")
        return True

    def retrieve(self, key: str) -> Optional[str]:
        """
        Get a payload if present and not expired

        Returns:
            The stored payload, or None on a miss
        """
        if not self.is_valid_key(key):
            logger.debug(f"Cache MISS (invalid key): {key!r}")
            return None

        entry = self._read_entry(key)
        if entry is None:
            logger.debug(f"Cache MISS: {key[:12]}...")
            return None

        if entry.is_expired(self._now()):
            logger.debug(f"Cache EXPIRED: {key[:12]}...")
            self._request_eviction(key)
            return None

        try:
            payload = self._payload_path(key).read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.debug(f"Cache MISS (payload missing): {key[:12]}...")
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read cached payload {key[:12]}...: {e}")
            return None

        logger.debug(f"Cache HIT: {key[:12]}...")
        return payload

    def exists(self, key: str) -> bool:
        """Same hit/miss decision as retrieve() without reading the payload"""
        if not self.is_valid_key(key):
            return False

        entry = self._read_entry(key)
        if entry is None:
            return False

        if entry.is_expired(self._now()):
            self._request_eviction(key)
            return False

        try:
            return self._payload_path(key).is_file()
        except OSError as e:
            logger.warning(f"Failed to stat cached payload {key[:12]}...: {e}")
            return False

    def remove(self, key: str) -> bool:
        """
        Delete an entry

        Returns:
            True if any artifact of the entry was deleted
        """
        if not self.is_valid_key(key):
            return False
        removed_meta = self._unlink_quietly(self._meta_path(key))
        removed_payload = self._unlink_quietly(self._payload_path(key))
        return removed_meta or removed_payload

    def evict_if_expired(self, key: str) -> bool:
        """
        Remove an entry only if it is still expired

        Re-checks metadata so an entry rewritten since the expired read survives.
        """
        entry = self._read_entry(key)
        if entry is None or not entry.is_expired(self._now()):
            return False
        return self.remove(key)

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry

        Corrupt metadata files are logged and skipped.

        Returns:
            Number of entries removed
        """
        now = self._now()
        removed = 0
        skipped = 0

        for meta_path in self._iter_meta_files():
            try:
                entry = self._load_entry(meta_path)
            except (OSError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping corrupt cache metadata {meta_path.name}: {e}")
                skipped += 1
                continue

            if entry.is_expired(now):
                key = meta_path.name[:-len(META_SUFFIX)]
                if self.remove(key):
                    removed += 1

        if removed or skipped:
            logger.info(f"Cleared {removed} expired cache entries ({skipped} unreadable skipped)")
        return removed

    def clear_all(self) -> bool:
        """
        Delete every cache file, tolerating individual failures

        Returns:
            True if the cache directory is still reachable afterwards
        """
        failures = 0
        deleted = 0
        try:
            files = [p for p in self.cache_dir.iterdir()
                     if p.is_file() and p.name.endswith((PAYLOAD_SUFFIX, META_SUFFIX, TEMP_SUFFIX))]
        except OSError as e:
            logger.error(f"Failed to list cache directory {self.cache_dir}: {e}")
            return False

        for path in files:
            try:
                path.unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                failures += 1
                logger.warning(f"Failed to delete cache file {path.name}: {e}")

        logger.info(f"Cleared cache: {deleted} files deleted, {failures} failures")
        return self.cache_dir.is_dir()

    def statistics(self) -> CacheStatistics:
        """Scan metadata and aggregate counts, sizes and age bounds (read-only)"""
        now = self._now()
        total_entries = 0
        expired = 0
        corrupt = 0
        oldest = None
        newest = None

        for meta_path in self._iter_meta_files():
            try:
                entry = self._load_entry(meta_path)
            except (OSError, KeyError, TypeError, ValueError):
                corrupt += 1
                continue
            total_entries += 1
            if entry.is_expired(now):
                expired += 1
            if oldest is None or entry.created_at < oldest:
                oldest = entry.created_at
            if newest is None or entry.created_at > newest:
                newest = entry.created_at

        total_files = 0
        total_size = 0
        try:
            for path in self.cache_dir.iterdir():
                if path.is_file() and path.name.endswith((PAYLOAD_SUFFIX, META_SUFFIX)):
                    total_files += 1
                    total_size += path.stat().st_size
        except OSError as e:
            logger.warning(f"Failed to scan cache directory {self.cache_dir}: {e}")

        return CacheStatistics(
            total_entries=total_entries,
            total_files=total_files,
            expired_entries=expired,
            total_size_bytes=total_size,
            cache_directory=str(self.cache_dir),
            oldest_entry=oldest,
            newest_entry=newest,
            corrupt_entries=corrupt,
        )

    def close(self) -> None:
        """Stop the eviction worker (pending requests are dropped)"""
        self.eviction.close()
