"""
Shared result types - Tracks, ranked items and playlist/recommendation results

Parsers here turn raw Last.FM JSON into immutable records. A payload that
does not have the expected shape raises DataError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from lfm_curator.errors import DataError, ValidationError
from lfm_curator.string_utils import artist_key

logger = logging.getLogger(__name__)

VALID_PERIODS = ('overall', '7day', '1month', '3month', '6month', '12month')


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(value: Any) -> List[Dict[str, Any]]:
    # Last.FM collapses single-item collections into a bare object
    if value is None:
        return []
    if not isinstance(value, list):
        return [value]
    return value


def _artist_name(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get('name') or value.get('#text') or '').strip()
    return str(value or '').strip()


def _rank(item: Dict[str, Any], fallback: int) -> int:
    attr = item.get('@attr') or {}
    return _to_int(attr.get('rank'), fallback) if isinstance(attr, dict) else fallback


def _section(data: Any, root: str, collection: str) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Pull the item list and '@attr' block out of a Last.FM response

    Raises:
        DataError: when the response does not contain the expected root object
    """
    if not isinstance(data, dict) or not isinstance(data.get(root), dict):
        raise DataError(
            f"Unexpected response from Last.FM: missing '{root}'",
            technical_details=str(data)[:200],
        )
    block = data[root]
    items = [item for item in _as_list(block.get(collection)) if isinstance(item, dict)]
    attrs = block.get('@attr') or {}
    return items, attrs if isinstance(attrs, dict) else {}


@dataclass(frozen=True)
class PageAttributes:
    """Paging information returned alongside every ranked list"""
    user: str = ''
    total_pages: int = 0
    page: int = 1
    total: int = 0
    per_page: int = 0

    @classmethod
    def from_api(cls, attrs: Dict[str, Any], page: int = 1) -> 'PageAttributes':
        return cls(
            user=str(attrs.get('user', '')),
            total_pages=_to_int(attrs.get('totalPages')),
            page=_to_int(attrs.get('page'), page),
            total=_to_int(attrs.get('total')),
            per_page=_to_int(attrs.get('perPage')),
        )

    @property
    def is_last_page(self) -> bool:
        """True when Last.FM reported a page count and this page is the last one"""
        return self.total_pages > 0 and self.page >= self.total_pages


@dataclass(frozen=True)
class Track:
    """A single track with the owning artist and the user's play count"""
    name: str
    artist: str
    play_count: int = 0
    rank: int = 0
    url: str = ''
    mbid: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'artist': self.artist,
            'playcount': self.play_count,
            'rank': self.rank,
            'url': self.url,
        }


@dataclass(frozen=True)
class RankedArtist:
    name: str
    play_count: int = 0
    rank: int = 0
    url: str = ''
    mbid: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'playcount': self.play_count, 'rank': self.rank, 'url': self.url}


@dataclass(frozen=True)
class RankedAlbum:
    name: str
    artist: str
    play_count: int = 0
    rank: int = 0
    url: str = ''
    mbid: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'artist': self.artist,
            'playcount': self.play_count,
            'rank': self.rank,
            'url': self.url,
        }


@dataclass(frozen=True)
class SimilarArtist:
    """Candidate artist with Last.FM's similarity score (0..1)"""
    name: str
    match: float
    mbid: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'match': round(self.match, 4)}


@dataclass(frozen=True)
class ArtistTag:
    name: str
    count: int = 0


@dataclass(frozen=True)
class Scrobble:
    """One play from user.getRecentTracks"""
    name: str
    artist: str
    played_at: int = 0
    url: str = ''


def parse_top_tracks(data: Any, root: str = 'toptracks') -> Tuple[List[Track], PageAttributes]:
    """
    Parse user.getTopTracks / artist.getTopTracks responses

    Args:
        data: Decoded JSON response
        root: Root object name (both endpoints use 'toptracks')

    Returns:
        Tuple of (tracks in rank order, page attributes)
    """
    items, attrs = _section(data, root, 'track')
    tracks = []
    for idx, item in enumerate(items, 1):
        name = str(item.get('name', '')).strip()
        artist = _artist_name(item.get('artist'))
        if not name or not artist:
            logger.debug("Skipping track without name/artist: %r", item)
            continue
        tracks.append(Track(
            name=name,
            artist=artist,
            play_count=_to_int(item.get('playcount')),
            rank=_rank(item, idx),
            url=item.get('url', '') or '',
            mbid=item.get('mbid', '') or '',
        ))
    return tracks, PageAttributes.from_api(attrs)


def parse_top_artists(data: Any) -> Tuple[List[RankedArtist], PageAttributes]:
    items, attrs = _section(data, 'topartists', 'artist')
    artists = []
    for idx, item in enumerate(items, 1):
        name = str(item.get('name', '')).strip()
        if not name:
            continue
        artists.append(RankedArtist(
            name=name,
            play_count=_to_int(item.get('playcount')),
            rank=_rank(item, idx),
            url=item.get('url', '') or '',
            mbid=item.get('mbid', '') or '',
        ))
    return artists, PageAttributes.from_api(attrs)


def parse_top_albums(data: Any) -> Tuple[List[RankedAlbum], PageAttributes]:
    items, attrs = _section(data, 'topalbums', 'album')
    albums = []
    for idx, item in enumerate(items, 1):
        name = str(item.get('name', '')).strip()
        if not name:
            continue
        albums.append(RankedAlbum(
            name=name,
            artist=_artist_name(item.get('artist')),
            play_count=_to_int(item.get('playcount')),
            rank=_rank(item, idx),
            url=item.get('url', '') or '',
            mbid=item.get('mbid', '') or '',
        ))
    return albums, PageAttributes.from_api(attrs)


def parse_similar_artists(data: Any) -> List[SimilarArtist]:
    items, _ = _section(data, 'similarartists', 'artist')
    similar = []
    for item in items:
        name = str(item.get('name', '')).strip()
        if name:
            similar.append(SimilarArtist(
                name=name,
                match=_to_float(item.get('match')),
                mbid=item.get('mbid', '') or '',
            ))
    return similar


def parse_artist_tags(data: Any) -> List[ArtistTag]:
    items, _ = _section(data, 'toptags', 'tag')
    return [
        ArtistTag(name=str(item.get('name', '')).strip(), count=_to_int(item.get('count')))
        for item in items
        if str(item.get('name', '')).strip()
    ]


def parse_recent_tracks(data: Any) -> Tuple[List[Scrobble], PageAttributes]:
    """
    Parse a user.getRecentTracks page

    The currently playing track (flagged with @attr.nowplaying) has no
    timestamp yet and is skipped.
    """
    items, attrs = _section(data, 'recenttracks', 'track')
    scrobbles = []
    for item in items:
        attr = item.get('@attr') or {}
        if isinstance(attr, dict) and str(attr.get('nowplaying', '')).lower() == 'true':
            continue
        name = str(item.get('name', '')).strip()
        artist = _artist_name(item.get('artist'))
        if not name or not artist:
            continue
        date = item.get('date') or {}
        scrobbles.append(Scrobble(
            name=name,
            artist=artist,
            played_at=_to_int(date.get('uts')) if isinstance(date, dict) else 0,
            url=item.get('url', '') or '',
        ))
    return scrobbles, PageAttributes.from_api(attrs)


@dataclass(frozen=True)
class RecommendationResult:
    """
    One recommended artist with its composite score

    Attributes:
        artist_name: Candidate artist
        score: average_similarity * occurrence_count
        average_similarity: Mean of the similarity scores from each source artist
        occurrence_count: Number of distinct source artists that listed the candidate
        user_play_count: How often the user already played the candidate
        source_artists: Contributing source artists, in the order they were seen
        top_tracks: Optional top tracks attached after ranking
    """
    artist_name: str
    score: float
    average_similarity: float
    occurrence_count: int
    user_play_count: int = 0
    source_artists: Tuple[str, ...] = ()
    top_tracks: Optional[Tuple[Track, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'artist': self.artist_name,
            'score': round(self.score, 4),
            'averageSimilarity': round(self.average_similarity, 4),
            'occurrenceCount': self.occurrence_count,
            'userPlayCount': self.user_play_count,
            'sourceArtists': list(self.source_artists),
        }
        if self.top_tracks is not None:
            data['topTracks'] = [t.to_dict() for t in self.top_tracks]
        return data


@dataclass(frozen=True)
class PlaylistRequest:
    """
    Selection parameters shared by top-tracks, mixtape and recommendation playlists

    Exactly one of total_tracks / total_artists may be set.
    """
    total_tracks: Optional[int] = None
    total_artists: Optional[int] = None
    tracks_per_artist: int = 1
    bias: float = 0.3
    min_plays: int = 0
    seed: Optional[int] = None

    def validate(self, max_total: Optional[int] = None, require_target: bool = True) -> None:
        """
        Check the request before any upstream work happens

        Args:
            max_total: Upper bound for total_tracks / total_artists
            require_target: Whether one of the totals must be present

        Raises:
            ValidationError: on conflicting or out-of-range parameters
        """
        if self.total_tracks is not None and self.total_artists is not None:
            raise ValidationError("Specify either total tracks or total artists, not both")
        if require_target and self.total_tracks is None and self.total_artists is None:
            raise ValidationError("Specify a total number of tracks or artists")
        for label, value in (('total tracks', self.total_tracks), ('total artists', self.total_artists)):
            if value is None:
                continue
            if value < 1:
                raise ValidationError(f"{label.capitalize()} must be at least 1 (got {value})")
            if max_total is not None and value > max_total:
                raise ValidationError(f"{label.capitalize()} must be at most {max_total} (got {value})")
        if self.tracks_per_artist < 1:
            raise ValidationError(f"Tracks per artist must be at least 1 (got {self.tracks_per_artist})")
        if not 0.0 <= self.bias <= 1.0:
            raise ValidationError(f"Bias must be between 0 and 1 (got {self.bias})")
        if self.min_plays < 0:
            raise ValidationError(f"Minimum plays cannot be negative (got {self.min_plays})")

    @property
    def target_tracks(self) -> Optional[int]:
        """Number of tracks the request asks for"""
        if self.total_tracks is not None:
            return self.total_tracks
        if self.total_artists is not None:
            return self.total_artists * self.tracks_per_artist
        return None


@dataclass
class PlaylistResult:
    """Ordered tracks plus the effective parameters that produced them"""
    tracks: List[Track]
    mode: str
    requested: int
    tracks_per_artist: int
    total_artists: Optional[int] = None
    bias: Optional[float] = None
    seed: Optional[int] = None
    min_plays: Optional[int] = None
    pool_size: Optional[int] = None
    exhausted: bool = False
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.tracks)

    @property
    def artist_count(self) -> int:
        return len({artist_key(t.artist) for t in self.tracks})

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.count)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'mode': self.mode,
            'tracks': [t.to_dict() for t in self.tracks],
            'count': self.count,
            'requested': self.requested,
            'tracksPerArtist': self.tracks_per_artist,
            'totalArtists': self.artist_count,
            'exhausted': self.exhausted,
        }
        if self.mode == 'mixtape':
            data.update({
                'bias': self.bias,
                'minPlays': self.min_plays,
                'seed': self.seed,
                'poolSize': self.pool_size,
            })
        return data
