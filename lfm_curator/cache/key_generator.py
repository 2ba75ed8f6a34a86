"""
Cache Key Generator - Deterministic, filesystem-safe keys for Last.FM lookups

Keys are the SHA-256 hex digest of a canonical, lower-cased
``method|user|period|limit|page`` string, so requests that differ only in
letter case share one cache entry.
"""
import hashlib
import logging

from lfm_curator.errors import ValidationError

logger = logging.getLogger(__name__)

# Placeholder period for lookups that are not time-bounded
NO_PERIOD = "n/a"


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


class CacheKeyGenerator:
    """Builds cache keys for every cache-fronted Last.FM call"""

    def generate_key(self, method: str, user: str, period: str, limit: int, page: int = 1) -> str:
        """
        Generate a cache key from lookup parameters

        Args:
            method: Last.FM API method (e.g. user.getTopTracks)
            user: Username, or artist name for artist-scoped lookups
            period: Time period (overall, 7day, ...)
            limit: Page size
            page: Page number

        Returns:
            64-character lowercase hex key

        Raises:
            ValidationError: if method, user or period is blank
        """
        for label, value in (('method', method), ('user', user), ('period', period)):
            if value is None or not str(value).strip():
                raise ValidationError(f"Cache key {label} cannot be empty")

        parameters = f"{method}|{user}|{period}|{limit}|{page}".lower()
        key = _sha256_hex(parameters)
        logger.debug("Cache key %s... for %s", key[:12], parameters)
        return key

    def generate_key_from_string(self, parameters: str) -> str:
        """
        Hash an ad hoc parameter string as-is (no case normalization)

        Raises:
            ValidationError: if parameters is blank
        """
        if parameters is None or not str(parameters).strip():
            raise ValidationError("Cache key parameters cannot be empty")
        return _sha256_hex(parameters)

    def for_top_tracks(self, user: str, period: str, limit: int, page: int = 1) -> str:
        return self.generate_key('user.getTopTracks', user, period, limit, page)

    def for_top_artists(self, user: str, period: str, limit: int, page: int = 1) -> str:
        return self.generate_key('user.getTopArtists', user, period, limit, page)

    def for_top_albums(self, user: str, period: str, limit: int, page: int = 1) -> str:
        return self.generate_key('user.getTopAlbums', user, period, limit, page)

    def for_similar_artists(self, artist: str, limit: int) -> str:
        return self.generate_key('artist.getSimilar', artist, NO_PERIOD, limit, 1)

    def for_artist_top_tracks(self, artist: str, limit: int) -> str:
        return self.generate_key('artist.getTopTracks', artist, NO_PERIOD, limit, 1)

    def for_artist_top_tags(self, artist: str, autocorrect: bool = True) -> str:
        mode = 'autocorrect' if autocorrect else 'noautocorrect'
        return self.generate_key('artist.getTopTags', artist, mode, 0, 1)

    def for_recent_tracks(self, user: str, start: int, end: int, limit: int, page: int = 1) -> str:
        """Key for one page of scrobbles between two unix timestamps"""
        if user is None or not str(user).strip():
            raise ValidationError("Cache key user cannot be empty")
        return self.generate_key_from_string(
            f"user.getrecenttracks|{str(user).lower()}|{int(start)}-{int(end)}|{limit}|{page}"
        )
