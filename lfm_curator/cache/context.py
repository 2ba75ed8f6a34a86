"""
Per-request cache context - behavior switch, timing records and warn-once state

A CacheContext is created for each command and passed through every
cache-fronted call, so no cache state leaks between requests.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Set


class CacheBehavior(Enum):
    """How a cache-fronted call treats the cache"""
    NORMAL = "normal"          # read cache first, call API on miss, write back
    FORCE_API = "force-api"    # skip the read, call API, write back
    NO_CACHE = "no-cache"      # neither read nor write

    @property
    def reads_cache(self) -> bool:
        return self is CacheBehavior.NORMAL

    @property
    def writes_cache(self) -> bool:
        return self is not CacheBehavior.NO_CACHE


@dataclass(frozen=True)
class TimingInfo:
    method: str
    cache_hit: bool
    elapsed_ms: float
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'cacheHit': self.cache_hit,
            'elapsedMs': round(self.elapsed_ms, 1),
            'details': self.details,
        }


@dataclass
class CacheContext:
    """
    State threaded through one request

    Attributes:
        behavior: Cache behavior for every call in this request
        record_timings: Whether to collect TimingInfo records
        timings: Collected per-call timings
        warnings_shown: Warning identifiers already emitted in this request
    """
    behavior: CacheBehavior = CacheBehavior.NORMAL
    record_timings: bool = False
    timings: List[TimingInfo] = field(default_factory=list)
    warnings_shown: Set[str] = field(default_factory=set)

    def record(self, method: str, cache_hit: bool, elapsed_ms: float, details: str = "") -> None:
        if self.record_timings:
            self.timings.append(TimingInfo(method, cache_hit, elapsed_ms, details))

    def warn_once(self, warning_id: str) -> bool:
        """True the first time a warning id is seen in this request"""
        if warning_id in self.warnings_shown:
            return False
        self.warnings_shown.add(warning_id)
        return True

    @property
    def cache_hits(self) -> int:
        return sum(1 for t in self.timings if t.cache_hit)

    @property
    def api_calls(self) -> int:
        return sum(1 for t in self.timings if not t.cache_hit)
