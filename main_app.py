# -*- coding: utf-8 -*-
"""
lfm_curator - Main Application
Top charts, similar-artist recommendations and mixtapes from Last.FM listening data
"""
import argparse
import logging
import sys
import uuid
from typing import Any, Dict, List, Optional

from lfm_curator import console_output as out
from lfm_curator.cache.context import CacheBehavior, CacheContext
from lfm_curator.cache.eviction import make_eviction
from lfm_curator.cache.storage import FileCacheStorage
from lfm_curator.cached_client import CachedLastFMClient
from lfm_curator.config_loader import Config
from lfm_curator.date_range import DateRange, resolve_time_selection
from lfm_curator.errors import LfmError, UnknownError, ValidationError
from lfm_curator.lastfm_client import LastFMClient
from lfm_curator.logging_utils import add_logging_args, configure_logging, resolve_log_level
from lfm_curator.models import VALID_PERIODS, PlaylistRequest
from lfm_curator.recommendations import flatten_recommendation_tracks
from lfm_curator.service import LastFMService

logger = logging.getLogger(__name__)


class CuratorApp:
    """Wires config, cache, Last.FM client and service together for one run"""

    def __init__(self, config: Config, behavior: CacheBehavior = CacheBehavior.NORMAL,
                 record_timings: bool = False):
        self.config = config
        self.ctx = CacheContext(behavior=behavior, record_timings=record_timings)
        self.storage = FileCacheStorage(
            config.cache_directory,
            eviction=make_eviction(config.cache_eviction, config.cache_eviction_queue_size),
        )
        self._service: Optional[LastFMService] = None

    @property
    def service(self) -> LastFMService:
        # Built lazily so cache maintenance commands work without an API key
        if self._service is None:
            client = LastFMClient(
                api_key=self.config.lastfm_api_key,
                calls_per_second=self.config.lastfm_calls_per_second,
            )
            source = CachedLastFMClient(
                client,
                self.storage,
                expiry_minutes=self.config.cache_expiry_minutes,
                cache_enabled=self.config.cache_enabled,
            )
            self._service = LastFMService(source, self.config)
        return self._service

    def close(self) -> None:
        self.storage.eviction.join()
        self.storage.close()
        if self._service is not None:
            self._service.source.client.close()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _date_range(self, args) -> Optional[DateRange]:
        return resolve_time_selection(
            getattr(args, 'period', None),
            getattr(args, 'from_date', None),
            getattr(args, 'to_date', None),
            getattr(args, 'year', None),
        )

    def _window(self, args, date_range: Optional[DateRange]) -> str:
        if date_range is not None:
            return date_range.label
        return self.service.resolve_period(args.period)

    @staticmethod
    def _emit(data: Dict[str, Any], date_range: Optional[DateRange]) -> None:
        if date_range is not None:
            data['dateRange'] = date_range.to_dict()
        out.json_output(data)

    def run_artists(self, args) -> None:
        date_range = self._date_range(args)
        artists, attrs = self.service.top_artists(args.user, args.period, args.limit, args.page, self.ctx,
                                                  date_range=date_range)
        if args.json:
            self._emit(out.ranked_payload(artists, attrs), date_range)
        else:
            out.render_artists(artists, attrs, self._window(args, date_range))

    def run_albums(self, args) -> None:
        albums, attrs = self.service.top_albums(args.user, args.period, args.limit, args.page, self.ctx)
        period = self.service.resolve_period(args.period)
        if args.json:
            out.json_output(out.ranked_payload(albums, attrs))
        else:
            out.render_albums(albums, attrs, period)

    def _tracks_per_artist(self, args) -> int:
        if args.tracks_per_artist is None:
            return self.config.default_tracks_per_artist
        return args.tracks_per_artist

    def run_toptracks(self, args) -> None:
        date_range = self._date_range(args)
        request = PlaylistRequest(
            total_tracks=args.tracks,
            total_artists=args.artists,
            tracks_per_artist=self._tracks_per_artist(args),
        )
        if request.total_tracks is None and request.total_artists is None:
            request = PlaylistRequest(total_tracks=self.config.default_limit,
                                      tracks_per_artist=request.tracks_per_artist)
        result = self.service.top_tracks_playlist(request, args.user, args.period, self.ctx, date_range=date_range)
        if args.json:
            self._emit(out.playlist_payload(result, self.ctx), date_range)
        else:
            out.render_playlist(result, "TOP TRACKS", self._window(args, date_range))

    def run_mixtape(self, args) -> None:
        date_range = self._date_range(args)
        request = PlaylistRequest(
            total_tracks=args.tracks,
            total_artists=args.artists,
            tracks_per_artist=self._tracks_per_artist(args),
            bias=self.config.mixtape_bias if args.bias is None else args.bias,
            min_plays=self.config.min_plays if args.min_plays is None else args.min_plays,
            seed=args.seed,
        )
        if request.total_tracks is None and request.total_artists is None:
            request = PlaylistRequest(
                total_tracks=self.config.default_limit,
                tracks_per_artist=request.tracks_per_artist,
                bias=request.bias,
                min_plays=request.min_plays,
                seed=request.seed,
            )
        result = self.service.mixtape(request, args.user, args.period, self.ctx, date_range=date_range)
        if args.json:
            self._emit(out.playlist_payload(result, self.ctx), date_range)
        else:
            out.render_playlist(result, "MIXTAPE", self._window(args, date_range))

    def run_recommendations(self, args) -> None:
        date_range = self._date_range(args)
        exclude_tags = [t.strip() for t in args.exclude_tags.split(',')] if args.exclude_tags else None
        filter_threshold = self.config.filter_threshold if args.filter is None else args.filter
        tracks_per_artist = 0 if args.tracks_per_artist is None else args.tracks_per_artist
        results = self.service.recommendations(
            user=args.user,
            period=args.period,
            analysis_limit=args.analysis_limit,
            total_artists=args.limit,
            total_tracks=args.tracks,
            tracks_per_artist=tracks_per_artist,
            filter_threshold=filter_threshold,
            exclude_tags=exclude_tags,
            ctx=self.ctx,
            date_range=date_range,
        )
        if args.json:
            playlist = flatten_recommendation_tracks(results, tracks_per_artist, args.tracks)
            self._emit(out.recommendations_payload(results, self.ctx, playlist), date_range)
        else:
            out.render_recommendations(
                results,
                self.service.resolve_username(args.user),
                self._window(args, date_range),
                filter_threshold,
            )

    def run_similar(self, args) -> None:
        similar = self.service.similar_artists(args.artist, args.limit, self.ctx)
        if args.json:
            out.json_output(out.similar_payload(args.artist.strip(), similar, self.ctx))
        else:
            out.render_similar(args.artist.strip(), similar)

    def run_artist_tracks(self, args) -> None:
        tracks, pages = self.service.artist_tracks(args.artist, args.user, args.limit, args.depth, self.ctx)
        user = self.service.resolve_username(args.user)
        if args.json:
            out.json_output(out.artist_tracks_payload(args.artist.strip(), tracks, user, pages))
        else:
            out.render_artist_tracks(args.artist.strip(), tracks, user, pages)

    def run_cache_status(self, args) -> None:
        stats = self.storage.statistics()
        if args.json:
            data = stats.to_dict()
            data.update({'enabled': self.config.cache_enabled,
                         'expiryMinutes': self.config.cache_expiry_minutes})
            out.json_output(data)
        else:
            out.render_cache_stats(stats, self.config.cache_expiry_minutes, self.config.cache_enabled)

    def run_cache_clear(self, args) -> None:
        if args.expired:
            removed = self.storage.cleanup_expired()
            if args.json:
                out.json_output({'removed': removed, 'mode': 'expired'})
            else:
                out.success(f"Removed {removed} expired cache entries")
            return

        cleared = self.storage.clear_all()
        if args.json:
            out.json_output({'cleared': cleared, 'mode': 'all'})
        elif cleared:
            out.success("Cache cleared")
        else:
            out.warning("Cache could not be fully cleared; see log for details")


def _add_cache_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--force-api", action="store_true", help="Bypass cache reads (results are still cached)")
    parser.add_argument("--no-cache", action="store_true", help="Neither read nor write the cache")
    parser.add_argument("--timing", action="store_true", help="Show per-call cache/API timings")


def _add_common_args(parser: argparse.ArgumentParser, data_command: bool = True) -> None:
    parser.add_argument("--json", action="store_true", help="Print JSON instead of formatted text")
    if not data_command:
        return
    parser.add_argument("--user", "-u", type=str, help="Last.FM username (default from config)")
    parser.add_argument("--period", "-p", choices=VALID_PERIODS, help="Time period (default from config)")
    _add_cache_args(parser)


def _add_range_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="from_date", metavar="DATE",
                        help="Start of a custom date range (YYYY-MM-DD or YYYY); requires --to")
    parser.add_argument("--to", dest="to_date", metavar="DATE",
                        help="End of a custom date range (YYYY-MM-DD or YYYY); requires --from")
    parser.add_argument("--year", type=str, help="Shortcut for one calendar year (e.g. 2017)")


def _add_selection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--tracks", "-n", type=int, help="Total number of tracks")
    parser.add_argument("--artists", type=int, help="Total number of artists (tracks = artists x tracks-per-artist)")
    parser.add_argument("--tracks-per-artist", "-k", type=int, help="Maximum tracks per artist")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lfm",
        description="Top charts, recommendations and mixtapes from your Last.FM listening history",
    )
    parser.add_argument("--config", "-c", type=str, help="Path to config.yaml")
    add_logging_args(parser)

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("artists", help="Show your top artists")
    _add_common_args(p)
    _add_range_args(p)
    p.add_argument("--limit", "-l", type=int, help="Artists per page")
    p.add_argument("--page", type=int, default=1, help="Page number (default: 1)")

    p = sub.add_parser("albums", help="Show your top albums")
    _add_common_args(p)
    p.add_argument("--limit", "-l", type=int, help="Albums per page")
    p.add_argument("--page", type=int, default=1, help="Page number (default: 1)")

    p = sub.add_parser("toptracks", help="Top tracks with a per-artist limit")
    _add_common_args(p)
    _add_range_args(p)
    _add_selection_args(p)

    p = sub.add_parser("mixtape", help="Weighted random playlist from your top tracks")
    _add_common_args(p)
    _add_range_args(p)
    _add_selection_args(p)
    p.add_argument("--bias", "-b", type=float, help="0 = uniform, 1 = weighted by play count (default from config)")
    p.add_argument("--min-plays", type=int, help="Ignore tracks played fewer times than this")
    p.add_argument("--seed", type=int, help="Random seed for a reproducible mixtape")

    p = sub.add_parser("recommendations", help="Artists similar to your top artists")
    _add_common_args(p)
    _add_range_args(p)
    p.add_argument("--analysis-limit", "-a", type=int, help="Top artists to analyse (1-200)")
    p.add_argument("--limit", "-l", type=int, help="Number of recommendations (1-100)")
    p.add_argument("--tracks", "-n", type=int, help="Recommend enough artists for this many tracks")
    p.add_argument("--tracks-per-artist", "-k", type=int, help="Top tracks to show per recommendation")
    p.add_argument("--filter", "-f", type=int,
                   help="Exclude artists you played at least this often (0 = any play)")
    p.add_argument("--exclude-tags", type=str, help="Comma-separated tags to exclude")

    p = sub.add_parser("similar", help="Artists similar to a given artist")
    p.add_argument("artist", help="Artist name")
    _add_common_args(p, data_command=False)
    _add_cache_args(p)
    p.add_argument("--limit", "-l", type=int, help="Number of similar artists (1-100)")

    p = sub.add_parser("artist-tracks", help="Your most played tracks by a specific artist")
    p.add_argument("artist", help="Artist name")
    _add_common_args(p, data_command=False)
    _add_cache_args(p)
    p.add_argument("--user", "-u", type=str, help="Last.FM username (default from config)")
    p.add_argument("--limit", "-l", type=int, help="Number of tracks to show")
    p.add_argument("--depth", "-d", type=int,
                   help="Pages of your top tracks to search (default: playlists.max_windows)")

    p = sub.add_parser("cache-status", help="Show cache statistics")
    _add_common_args(p, data_command=False)

    p = sub.add_parser("cache-clear", help="Delete cached responses")
    _add_common_args(p, data_command=False)
    p.add_argument("--expired", action="store_true", help="Only delete expired entries")

    return parser


_COMMANDS = {
    "artists": CuratorApp.run_artists,
    "albums": CuratorApp.run_albums,
    "toptracks": CuratorApp.run_toptracks,
    "mixtape": CuratorApp.run_mixtape,
    "recommendations": CuratorApp.run_recommendations,
    "similar": CuratorApp.run_similar,
    "artist-tracks": CuratorApp.run_artist_tracks,
    "cache-status": CuratorApp.run_cache_status,
    "cache-clear": CuratorApp.run_cache_clear,
}


def _behavior(args) -> CacheBehavior:
    if getattr(args, 'no_cache', False):
        return CacheBehavior.NO_CACHE
    if getattr(args, 'force_api', False):
        return CacheBehavior.FORCE_API
    return CacheBehavior.NORMAL


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point"""
    args = build_parser().parse_args(argv)
    configure_logging(level=resolve_log_level(args), log_file=args.log_file, run_id=uuid.uuid4().hex[:8])

    app = None
    try:
        config = Config(args.config) if args.config else Config()
        app = CuratorApp(config, behavior=_behavior(args), record_timings=getattr(args, 'timing', False))
        _COMMANDS[args.command](app, args)
        if getattr(args, 'timing', False) and not args.json:
            out.render_timings(app.ctx)
        return 0
    except LfmError as e:
        logger.debug("Command failed", exc_info=True)
        _report_error(e, args.json)
        return 2 if isinstance(e, ValidationError) else 1
    except Exception as e:
        logger.exception("Unexpected error")
        _report_error(UnknownError(f"Unexpected error: {e}", technical_details=type(e).__name__), args.json)
        return 1
    finally:
        if app is not None:
            app.close()


def _report_error(e: LfmError, as_json: bool) -> None:
    if as_json:
        out.json_output({'error': e.to_dict()})
        return
    out.error(e.message)
    if e.technical_details and e.requires_user_action:
        out.bullet(e.technical_details)


if __name__ == "__main__":
    sys.exit(main())
