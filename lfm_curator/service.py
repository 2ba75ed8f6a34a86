"""
Last.FM Service - Request validation and orchestration for every command

All parameters are validated before the first upstream call. The service then
pulls data through the cache-fronted client and hands it to the
recommendation engine or the playlist builders.
"""
import logging
from typing import Dict, List, Optional, Tuple

from lfm_curator.cache.context import CacheContext
from lfm_curator.cached_client import CachedLastFMClient
from lfm_curator.config_loader import Config
from lfm_curator.date_range import DateRange
from lfm_curator.errors import ConfigurationError, DataError, LfmError, ValidationError
from lfm_curator.logging_utils import stage_timer
from lfm_curator.models import (
    VALID_PERIODS,
    PageAttributes,
    PlaylistRequest,
    PlaylistResult,
    RankedAlbum,
    RankedArtist,
    RecommendationResult,
    Scrobble,
    SimilarArtist,
    Track,
)
from lfm_curator.playlist.diversity import DiverseTrackCollector
from lfm_curator.playlist.mixtape import sample_mixtape
from lfm_curator.recommendations import RecommendationEngine, artists_needed
from lfm_curator.scrobble_charts import aggregate_artists, aggregate_tracks
from lfm_curator.string_utils import artist_key
from lfm_curator.tag_filter import TagFilter

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 1000
MAX_ANALYSIS_LIMIT = 200
MAX_RECOMMENDATIONS = 100
MAX_PLAYLIST_TRACKS = 1000
MAX_SIMILAR = 100


class LastFMService:
    """High-level operations behind the command-line interface"""

    def __init__(self, source: CachedLastFMClient, config: Config,
                 engine: Optional[RecommendationEngine] = None):
        self.source = source
        self.config = config
        self.engine = engine or RecommendationEngine()

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def resolve_username(self, user: Optional[str]) -> str:
        username = (user or self.config.lastfm_username or '').strip()
        if not username:
            raise ConfigurationError(
                "No Last.FM username given",
                technical_details="Pass --user, set lastfm.username or LASTFM_USERNAME",
            )
        return username

    def resolve_period(self, period: Optional[str]) -> str:
        period = (period or self.config.default_period).lower()
        if period not in VALID_PERIODS:
            raise ValidationError(f"Period must be one of {', '.join(VALID_PERIODS)} (got {period})")
        return period

    @staticmethod
    def _check_range(label: str, value: int, low: int, high: int) -> None:
        if not low <= value <= high:
            raise ValidationError(f"{label} must be between {low} and {high} (got {value})")

    def _resolve_window(self, user: Optional[str], period: Optional[str],
                        date_range: Optional[DateRange]) -> Tuple[str, str]:
        """Username plus the period, or the date range label when one is given"""
        if date_range is not None and period:
            raise ValidationError("Use either a period or a date range, not both")
        username = self.resolve_username(user)
        if date_range is not None:
            return username, date_range.label
        return username, self.resolve_period(period)

    @staticmethod
    def _require_artist(artist: Optional[str]) -> str:
        artist = (artist or '').strip()
        if not artist:
            raise ValidationError("Artist name cannot be empty")
        return artist

    # ------------------------------------------------------------------
    # Custom date ranges
    # ------------------------------------------------------------------

    def _scrobbles(self, user: str, date_range: DateRange,
                   ctx: Optional[CacheContext]) -> Tuple[List[Scrobble], int]:
        """
        All plays inside the range, up to history.max_pages pages

        Returns:
            Tuple of (scrobbles, pages fetched)
        """
        page_size = min(self.config.history_page_size, MAX_PAGE_LIMIT)
        scrobbles: List[Scrobble] = []
        pages = 0
        with stage_timer(f"Scrobbles {date_range.label}", logger):
            for page in range(1, self.config.history_max_pages + 1):
                batch, attrs = self.source.get_recent_tracks(
                    user, date_range.from_timestamp, date_range.to_timestamp, page_size, page, ctx)
                pages += 1
                scrobbles.extend(batch)
                if not batch or attrs.is_last_page or attrs.total_pages == 0:
                    break
            else:
                logger.warning(
                    f"Stopped after {pages} pages of scrobbles for {date_range.label}; "
                    f"raise history.max_pages to include older plays"
                )
        logger.info(f"Loaded {len(scrobbles)} scrobbles for {user} ({date_range.label})")
        return scrobbles, pages

    def _range_tracks(self, user: str, date_range: DateRange,
                      ctx: Optional[CacheContext]) -> Tuple[List[Track], int]:
        scrobbles, pages = self._scrobbles(user, date_range, ctx)
        return aggregate_tracks(scrobbles), pages

    # ------------------------------------------------------------------
    # Charts
    # ------------------------------------------------------------------

    def top_artists(self, user: Optional[str] = None, period: Optional[str] = None,
                    limit: Optional[int] = None, page: int = 1,
                    ctx: Optional[CacheContext] = None,
                    date_range: Optional[DateRange] = None) -> Tuple[List[RankedArtist], PageAttributes]:
        limit = self.config.default_limit if limit is None else limit
        self._check_range("Limit", limit, 1, MAX_PAGE_LIMIT)
        self._check_range("Page", page, 1, 10_000)
        user, period = self._resolve_window(user, period, date_range)
        if date_range is None:
            return self.source.get_top_artists(user, period, limit, page, ctx)

        scrobbles, _ = self._scrobbles(user, date_range, ctx)
        ranked = aggregate_artists(scrobbles)
        start = (page - 1) * limit
        attrs = PageAttributes(
            user=user,
            total_pages=-(-len(ranked) // limit),
            page=page,
            total=len(ranked),
            per_page=limit,
        )
        return ranked[start:start + limit], attrs

    def top_albums(self, user: Optional[str] = None, period: Optional[str] = None,
                   limit: Optional[int] = None, page: int = 1,
                   ctx: Optional[CacheContext] = None) -> Tuple[List[RankedAlbum], PageAttributes]:
        limit = self.config.default_limit if limit is None else limit
        self._check_range("Limit", limit, 1, MAX_PAGE_LIMIT)
        self._check_range("Page", page, 1, 10_000)
        user, period = self.resolve_username(user), self.resolve_period(period)
        return self.source.get_top_albums(user, period, limit, page, ctx)

    # ------------------------------------------------------------------
    # Playlists
    # ------------------------------------------------------------------

    def _fill_from_chart(self, collector: DiverseTrackCollector, user: str, period: str,
                         ctx: Optional[CacheContext]) -> Tuple[int, int]:
        """
        Feed user.getTopTracks pages into the collector

        Returns:
            Tuple of (pages fetched, tracks seen)
        """
        page_size = min(self.config.page_size, MAX_PAGE_LIMIT)
        empty_windows = 0
        pages = 0
        seen = 0

        with stage_timer("Top tracks fetch", logger):
            for page in range(1, self.config.max_windows + 1):
                tracks, attrs = self.source.get_top_tracks(user, period, page_size, page, ctx)
                pages += 1
                seen += len(tracks)
                if not tracks:
                    break

                added = collector.offer(tracks)
                logger.debug(f"Window {page}: {added}/{len(tracks)} tracks accepted "
                             f"({len(collector.tracks)}/{collector.target})")
                if collector.is_full:
                    break

                empty_windows = 0 if added else empty_windows + 1
                if empty_windows >= self.config.max_empty_windows:
                    logger.info(f"Stopping after {empty_windows} windows without new tracks")
                    break
                if attrs.is_last_page or len(tracks) < page_size:
                    break
        return pages, seen

    def top_tracks_playlist(self, request: PlaylistRequest, user: Optional[str] = None,
                            period: Optional[str] = None,
                            ctx: Optional[CacheContext] = None,
                            date_range: Optional[DateRange] = None) -> PlaylistResult:
        """
        Build a diversity-capped playlist from the user's top tracks

        Pages through user.getTopTracks feeding a DiverseTrackCollector and stops
        when the target is reached, the chart runs out, max_empty_windows
        consecutive pages add nothing, or max_windows pages were read. With a
        date range the chart is built from the scrobbles in that range instead.
        """
        request.validate(max_total=MAX_PLAYLIST_TRACKS)
        user, period = self._resolve_window(user, period, date_range)

        target = request.target_tracks
        collector = DiverseTrackCollector(request.tracks_per_artist, target)
        if date_range is not None:
            chart, pages = self._range_tracks(user, date_range, ctx)
            seen = len(chart)
            collector.offer(chart)
        else:
            pages, seen = self._fill_from_chart(collector, user, period, ctx)

        if seen == 0:
            raise DataError(f"No top tracks found for {user} ({period})")

        return PlaylistResult(
            tracks=collector.tracks,
            mode='toptracks',
            requested=target,
            tracks_per_artist=request.tracks_per_artist,
            total_artists=request.total_artists,
            exhausted=not collector.is_full,
            stats={'pages': pages, 'tracks_seen': seen, 'skipped': collector.skipped},
        )

    def _chart_pool(self, user: str, period: str, ctx: Optional[CacheContext]) -> List[Track]:
        page_size = min(self.config.page_size, MAX_PAGE_LIMIT)
        pool: List[Track] = []
        with stage_timer("Mixtape pool fetch", logger):
            for page in range(1, self.config.mixtape_pool_pages + 1):
                tracks, attrs = self.source.get_top_tracks(user, period, page_size, page, ctx)
                pool.extend(tracks)
                if not tracks or attrs.is_last_page or len(tracks) < page_size:
                    break
        return pool

    def mixtape(self, request: PlaylistRequest, user: Optional[str] = None,
                period: Optional[str] = None, ctx: Optional[CacheContext] = None,
                date_range: Optional[DateRange] = None) -> PlaylistResult:
        """Sample a weighted random playlist from the user's top tracks (or a date range's plays)"""
        request.validate(max_total=MAX_PLAYLIST_TRACKS)
        user, period = self._resolve_window(user, period, date_range)

        if date_range is not None:
            pool, _ = self._range_tracks(user, date_range, ctx)
        else:
            pool = self._chart_pool(user, period, ctx)

        if not pool:
            raise DataError(f"No top tracks found for {user} ({period})")

        result = sample_mixtape(
            pool,
            total_tracks=request.target_tracks,
            bias=request.bias,
            min_plays=request.min_plays,
            tracks_per_artist=request.tracks_per_artist,
            seed=request.seed,
        )
        result.total_artists = request.total_artists
        return result

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _user_play_counts(self, user: str, ctx: Optional[CacheContext]) -> Dict[str, int]:
        """Artist key -> play count from the user's overall top artists"""
        counts: Dict[str, int] = {}
        for page in range(1, self.config.play_count_pages + 1):
            try:
                artists, attrs = self.source.get_top_artists(user, 'overall', MAX_PAGE_LIMIT, page, ctx)
            except LfmError as e:
                logger.warning(f"Could not load play counts (page {page}), treating unknown artists as unplayed: {e}")
                break
            for artist in artists:
                counts.setdefault(artist_key(artist.name), artist.play_count)
            if not artists or attrs.is_last_page or len(artists) < MAX_PAGE_LIMIT:
                break
        logger.debug(f"Loaded play counts for {len(counts)} artists")
        return counts

    def recommendations(
        self,
        user: Optional[str] = None,
        period: Optional[str] = None,
        analysis_limit: Optional[int] = None,
        total_artists: Optional[int] = None,
        total_tracks: Optional[int] = None,
        tracks_per_artist: int = 0,
        filter_threshold: Optional[int] = None,
        exclude_tags: Optional[List[str]] = None,
        ctx: Optional[CacheContext] = None,
        date_range: Optional[DateRange] = None,
    ) -> List[RecommendationResult]:
        """
        Recommend artists similar to the user's top artists

        Args:
            user: Last.FM username (config default if omitted)
            period: Period for the source artists
            analysis_limit: Number of top artists to analyse (1-200)
            total_artists: Recommendations to return (1-100)
            total_tracks: Alternatively, enough recommendations for this many tracks
            tracks_per_artist: Top tracks to attach to each recommendation
            filter_threshold: Exclude candidates the user played this often
            exclude_tags: Drop candidates tagged with any of these tags
            ctx: Cache context for this request
            date_range: Analyse the top artists of this range instead of a period

        Raises:
            ValidationError: before any upstream call, on invalid parameters
        """
        analysis_limit = self.config.analysis_limit if analysis_limit is None else analysis_limit
        filter_threshold = self.config.filter_threshold if filter_threshold is None else filter_threshold
        if total_artists is None and total_tracks is None:
            total_artists = min(self.config.default_limit, MAX_RECOMMENDATIONS)

        self._check_range("Analysis limit", analysis_limit, 1, MAX_ANALYSIS_LIMIT)
        artists_needed(total_artists, total_tracks, tracks_per_artist)
        if total_artists is not None:
            self._check_range("Total artists", total_artists, 1, MAX_RECOMMENDATIONS)
        if total_tracks is not None:
            self._check_range("Total tracks", total_tracks, 1, MAX_RECOMMENDATIONS)
        self._check_range("Tracks per artist", tracks_per_artist, 0, 50)
        if filter_threshold < 0:
            raise ValidationError(f"Filter threshold cannot be negative (got {filter_threshold})")
        user, period = self._resolve_window(user, period, date_range)

        tag_filter = TagFilter(
            exclude_tags if exclude_tags else self.config.excluded_tags,
            threshold=self.config.tag_threshold,
            enabled=bool(exclude_tags) or self.config.tag_filter_enabled,
        )

        if date_range is not None:
            scrobbles, _ = self._scrobbles(user, date_range, ctx)
            top_artists = aggregate_artists(scrobbles)[:analysis_limit]
        else:
            top_artists, _ = self.source.get_top_artists(user, period, analysis_limit, 1, ctx)
        if not top_artists:
            raise DataError(f"No top artists found for {user} ({period})")

        play_counts: Optional[Dict[str, int]] = None

        def play_count_lookup(artist: str) -> int:
            nonlocal play_counts
            if play_counts is None:
                play_counts = self._user_play_counts(user, ctx)
            return play_counts.get(artist_key(artist), 0)

        similar_limit = self.config.similar_limit
        with stage_timer(f"Recommendations from {len(top_artists)} artists", logger):
            return self.engine.recommend(
                top_artists,
                similar_lookup=lambda artist: self.source.get_similar_artists(artist, similar_limit, ctx),
                filter_threshold=filter_threshold,
                play_count_lookup=play_count_lookup,
                tracks_lookup=lambda artist, n: self.source.get_artist_top_tracks(artist, n, ctx),
                tracks_per_artist=tracks_per_artist,
                total_artists=total_artists,
                total_tracks=total_tracks,
                tag_filter=tag_filter,
                tags_lookup=lambda artist: self.source.get_artist_top_tags(artist, ctx=ctx),
            )

    # ------------------------------------------------------------------
    # Artist lookups
    # ------------------------------------------------------------------

    def similar_artists(self, artist: str, limit: Optional[int] = None,
                        ctx: Optional[CacheContext] = None) -> List[SimilarArtist]:
        """Artists Last.FM considers similar to one artist, best match first"""
        limit = min(self.config.default_limit, MAX_SIMILAR) if limit is None else limit
        self._check_range("Limit", limit, 1, MAX_SIMILAR)
        artist = self._require_artist(artist)
        similar = self.source.get_similar_artists(artist, limit, ctx)
        return sorted(similar, key=lambda s: -s.match)[:limit]

    def artist_tracks(self, artist: str, user: Optional[str] = None, limit: Optional[int] = None,
                      max_pages: Optional[int] = None,
                      ctx: Optional[CacheContext] = None) -> Tuple[List[Track], int]:
        """
        The user's most played tracks by one artist

        Searches the user's overall top tracks page by page, keeping tracks
        whose artist matches case- and accent-insensitively.

        Args:
            artist: Artist to search for
            user: Last.FM username (config default if omitted)
            limit: Number of tracks to return
            max_pages: Chart pages to search (playlists.max_windows if omitted)
            ctx: Cache context for this request

        Returns:
            Tuple of (matching tracks in chart order, pages searched)
        """
        limit = self.config.default_limit if limit is None else limit
        max_pages = self.config.max_windows if max_pages is None else max_pages
        self._check_range("Limit", limit, 1, MAX_PAGE_LIMIT)
        self._check_range("Pages", max_pages, 1, 1000)
        artist = self._require_artist(artist)
        user = self.resolve_username(user)

        wanted = artist_key(artist)
        page_size = min(self.config.page_size, MAX_PAGE_LIMIT)
        matches: List[Track] = []
        pages = 0
        with stage_timer(f"Search top tracks for {artist}", logger):
            for page in range(1, max_pages + 1):
                tracks, attrs = self.source.get_top_tracks(user, 'overall', page_size, page, ctx)
                pages += 1
                matches.extend(t for t in tracks if artist_key(t.artist) == wanted)
                if len(matches) >= limit:
                    break
                if not tracks or attrs.is_last_page or len(tracks) < page_size:
                    break
        logger.info(f"Found {len(matches)} tracks by {artist} in {pages} pages")
        return matches[:limit], pages
