"""
Cached Last.FM Client - Cache-first access to the statistics Last.FM provides

Every call builds a key with CacheKeyGenerator, tries FileCacheStorage, and
on a miss asks LastFMClient and writes the raw JSON back. The cache can break
in any way (I/O errors, corrupt entries, failed writes) and the call still
succeeds through the API; upstream errors propagate unchanged.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from lfm_curator.cache.context import CacheContext
from lfm_curator.cache.key_generator import CacheKeyGenerator
from lfm_curator.cache.storage import DEFAULT_EXPIRY_MINUTES, FileCacheStorage
from lfm_curator.errors import DataError
from lfm_curator.lastfm_client import LastFMClient
from lfm_curator.models import (
    ArtistTag,
    PageAttributes,
    RankedAlbum,
    RankedArtist,
    Scrobble,
    SimilarArtist,
    Track,
    parse_artist_tags,
    parse_recent_tracks,
    parse_similar_artists,
    parse_top_albums,
    parse_top_artists,
    parse_top_tracks,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CachedLastFMClient:
    """Last.FM statistics source fronted by the file cache"""

    def __init__(
        self,
        client: LastFMClient,
        storage: Optional[FileCacheStorage] = None,
        key_generator: Optional[CacheKeyGenerator] = None,
        expiry_minutes: float = DEFAULT_EXPIRY_MINUTES,
        cache_enabled: bool = True,
    ):
        """
        Args:
            client: Raw Last.FM client
            storage: Cache store (None disables caching)
            key_generator: Key generator (default instance if omitted)
            expiry_minutes: TTL for newly written entries
            cache_enabled: Master switch from config
        """
        self.client = client
        self.storage = storage
        self.keys = key_generator or CacheKeyGenerator()
        self.expiry_minutes = expiry_minutes
        self.cache_enabled = cache_enabled and storage is not None

    # ------------------------------------------------------------------
    # Cache plumbing
    # ------------------------------------------------------------------

    def _read_cached(self, key: str, ctx: CacheContext) -> Optional[Any]:
        try:
            payload = self.storage.retrieve(key)
            if payload is None:
                return None
            return json.loads(payload)
        except (OSError, ValueError) as e:
            if ctx.warn_once('cache-read'):
                logger.warning(f"Cache read failed, falling back to Last.FM: {e}")
            else:
                logger.debug(f"Cache read failed for {key[:12]}...: {e}")
            return None

    def _write_cached(self, key: str, data: Any, ctx: CacheContext) -> None:
        try:
            stored = self.storage.store(key, json.dumps(data, ensure_ascii=False), self.expiry_minutes)
        except (OSError, TypeError, ValueError) as e:
            logger.debug(f"Cache write raised for {key[:12]}...: {e}")
            stored = False
        if not stored and ctx.warn_once('cache-write'):
            logger.warning("Failed to write to cache; results will be fetched again next time")

    def _fetch(
        self,
        method: str,
        key: str,
        ctx: Optional[CacheContext],
        call: Callable[[], Dict[str, Any]],
        parse: Callable[[Any], T],
        details: str = "",
    ) -> T:
        ctx = ctx or CacheContext()
        start = time.perf_counter()

        if self.cache_enabled and ctx.behavior.reads_cache:
            cached = self._read_cached(key, ctx)
            if cached is not None:
                try:
                    result = parse(cached)
                except DataError as e:
                    logger.warning(f"Discarding unparseable cache entry for {method} ({details}): {e}")
                else:
                    ctx.record(method, True, (time.perf_counter() - start) * 1000, details)
                    return result

        data = call()
        result = parse(data)  # raises DataError before anything is cached

        if self.cache_enabled and ctx.behavior.writes_cache:
            self._write_cached(key, data, ctx)

        ctx.record(method, False, (time.perf_counter() - start) * 1000, details)
        return result

    # ------------------------------------------------------------------
    # User charts
    # ------------------------------------------------------------------

    def get_top_tracks(self, user: str, period: str = 'overall', limit: int = 50, page: int = 1,
                       ctx: Optional[CacheContext] = None) -> Tuple[List[Track], PageAttributes]:
        """
        Get one page of the user's top tracks

        Returns:
            Tuple of (tracks in rank order, page attributes)
        """
        return self._fetch(
            'user.getTopTracks',
            self.keys.for_top_tracks(user, period, limit, page),
            ctx,
            lambda: self.client.request('user.getTopTracks', user=user, period=period,
                                        limit=limit, page=page),
            parse_top_tracks,
            details=f"{user} {period} limit={limit} page={page}",
        )

    def get_top_artists(self, user: str, period: str = 'overall', limit: int = 50, page: int = 1,
                        ctx: Optional[CacheContext] = None) -> Tuple[List[RankedArtist], PageAttributes]:
        return self._fetch(
            'user.getTopArtists',
            self.keys.for_top_artists(user, period, limit, page),
            ctx,
            lambda: self.client.request('user.getTopArtists', user=user, period=period,
                                        limit=limit, page=page),
            parse_top_artists,
            details=f"{user} {period} limit={limit} page={page}",
        )

    def get_top_albums(self, user: str, period: str = 'overall', limit: int = 50, page: int = 1,
                       ctx: Optional[CacheContext] = None) -> Tuple[List[RankedAlbum], PageAttributes]:
        return self._fetch(
            'user.getTopAlbums',
            self.keys.for_top_albums(user, period, limit, page),
            ctx,
            lambda: self.client.request('user.getTopAlbums', user=user, period=period,
                                        limit=limit, page=page),
            parse_top_albums,
            details=f"{user} {period} limit={limit} page={page}",
        )

    def get_recent_tracks(self, user: str, start: int, end: int, limit: int = 200, page: int = 1,
                          ctx: Optional[CacheContext] = None) -> Tuple[List[Scrobble], PageAttributes]:
        """
        Get one page of scrobbles between two unix timestamps (inclusive)

        Returns:
            Tuple of (scrobbles newest first, page attributes)
        """
        return self._fetch(
            'user.getRecentTracks',
            self.keys.for_recent_tracks(user, start, end, limit, page),
            ctx,
            lambda: self.client.request('user.getRecentTracks', user=user, limit=limit, page=page,
                                        **{'from': start, 'to': end}),
            parse_recent_tracks,
            details=f"{user} {start}-{end} limit={limit} page={page}",
        )

    # ------------------------------------------------------------------
    # Artist lookups
    # ------------------------------------------------------------------

    def get_similar_artists(self, artist: str, limit: int = 50,
                            ctx: Optional[CacheContext] = None) -> List[SimilarArtist]:
        return self._fetch(
            'artist.getSimilar',
            self.keys.for_similar_artists(artist, limit),
            ctx,
            lambda: self.client.request('artist.getSimilar', artist=artist, limit=limit, autocorrect=1),
            parse_similar_artists,
            details=f"{artist} limit={limit}",
        )

    def get_artist_top_tracks(self, artist: str, limit: int = 10,
                              ctx: Optional[CacheContext] = None) -> List[Track]:
        return self._fetch(
            'artist.getTopTracks',
            self.keys.for_artist_top_tracks(artist, limit),
            ctx,
            lambda: self.client.request('artist.getTopTracks', artist=artist, limit=limit, autocorrect=1),
            lambda data: parse_top_tracks(data)[0],
            details=f"{artist} limit={limit}",
        )

    def get_artist_top_tags(self, artist: str, autocorrect: bool = True,
                            ctx: Optional[CacheContext] = None) -> List[ArtistTag]:
        return self._fetch(
            'artist.getTopTags',
            self.keys.for_artist_top_tags(artist, autocorrect),
            ctx,
            lambda: self.client.request('artist.getTopTags', artist=artist,
                                        autocorrect=1 if autocorrect else 0),
            parse_artist_tags,
            details=artist,
        )
