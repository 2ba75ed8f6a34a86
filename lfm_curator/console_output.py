"""
Console output formatting for lfm_curator.

All user-facing output goes through this module; library code only logs.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from lfm_curator.cache.context import CacheContext
from lfm_curator.cache.storage import CacheStatistics
from lfm_curator.models import (
    PageAttributes,
    PlaylistResult,
    RankedAlbum,
    RankedArtist,
    RecommendationResult,
    SimilarArtist,
    Track,
)

logger = logging.getLogger(__name__)

BOX_H = "─"
BOX_V = "│"
BOX_TL = "┌"
BOX_TR = "┐"
BOX_BL = "└"
BOX_BR = "┘"

BULLET = "•"
ARROW = "→"
CHECK = "✓"
CROSS = "✗"

WIDTH = 70

# Share of expired entries above which cache-status suggests a cleanup
EXPIRED_WARNING_RATIO = 0.3


def _safe_print(text: str = "") -> None:
    """Print with UTF-8 encoding safety."""
    try:
        print(text)
    except UnicodeEncodeError:
        print(text.encode('ascii', 'replace').decode('ascii'))


def header(title: str, subtitle: str = "") -> None:
    """
    Print a major section header with box drawing.

    ┌──────────────────────────────────────────────────────────────────────┐
    │  MIXTAPE                                                             │
    │  rj · overall · 25 tracks                                            │
    └──────────────────────────────────────────────────────────────────────┘
    """
    inner_width = WIDTH - 2
    _safe_print()
    _safe_print(BOX_TL + BOX_H * inner_width + BOX_TR)
    _safe_print(f"{BOX_V}  {title:<{inner_width - 2}}{BOX_V}")
    if subtitle:
        _safe_print(f"{BOX_V}  {subtitle:<{inner_width - 2}}{BOX_V}")
    _safe_print(BOX_BL + BOX_H * inner_width + BOX_BR)


def section(title: str) -> None:
    title_part = f" {title} "
    _safe_print()
    _safe_print(BOX_H * 3 + title_part + BOX_H * max(0, WIDTH - len(title_part) - 3))


def info(label: str, value: Any, indent: int = 0) -> None:
    """
    Print a labeled value.

      Bias:          0.3
    """
    prefix = "  " * indent
    _safe_print(f"{prefix}  {label + ':':<14} {value}")


def bullet(text: str, indent: int = 0) -> None:
    _safe_print(f"{'  ' * indent}  {BULLET} {text}")


def track_line(index: int, artist: str, title: str, marker: str = "") -> None:
    """
    Print a formatted track line.

    01. Radiohead - Karma Police [42 plays]
    """
    line = f"{index:02d}. {artist} - {title}"
    if marker:
        line = f"{line} [{marker}]"
    _safe_print(f"    {line}")


def success(message: str) -> None:
    _safe_print(f"\n  {CHECK} {message}")


def error(message: str) -> None:
    _safe_print(f"\n  {CROSS} {message}")


def warning(message: str) -> None:
    _safe_print(f"\n  ! {message}")


def json_output(data: Any) -> None:
    """Print data as indented JSON (the only output in --json mode)."""
    _safe_print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _plays(count: int) -> str:
    return f"{count:,} play" + ("" if count == 1 else "s")


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


# ----------------------------------------------------------------------
# Command renderers
# ----------------------------------------------------------------------

def render_artists(artists: Sequence[RankedArtist], attrs: PageAttributes, period: str) -> None:
    header("TOP ARTISTS", f"{attrs.user or '-'} · {period} · page {attrs.page}/{attrs.total_pages or 1}")
    if not artists:
        bullet("No artists found")
        return
    for artist in artists:
        _safe_print(f"    {artist.rank:>3}. {artist.name} ({_plays(artist.play_count)})")


def render_albums(albums: Sequence[RankedAlbum], attrs: PageAttributes, period: str) -> None:
    header("TOP ALBUMS", f"{attrs.user or '-'} · {period} · page {attrs.page}/{attrs.total_pages or 1}")
    if not albums:
        bullet("No albums found")
        return
    for album in albums:
        _safe_print(f"    {album.rank:>3}. {album.artist} - {album.name} ({_plays(album.play_count)})")


def render_playlist(result: PlaylistResult, title: str, subtitle: str = "") -> None:
    header(title, subtitle)

    section("PARAMETERS")
    info("Requested", f"{result.requested} tracks")
    info("Per artist", result.tracks_per_artist)
    if result.mode == 'mixtape':
        info("Bias", result.bias)
        info("Min plays", result.min_plays)
        info("Seed", result.seed if result.seed is not None else "random")
        info("Pool", f"{result.pool_size} eligible tracks")

    section("TRACKLIST")
    if not result.tracks:
        bullet("No tracks selected")
    for i, track in enumerate(result.tracks, 1):
        track_line(i, track.artist, track.name, _plays(track.play_count))

    if result.exhausted:
        warning(f"Only {result.count} of {result.requested} tracks could be selected "
                f"(ran out of tracks under the {result.tracks_per_artist}-per-artist limit)")
    else:
        success(f"{result.count} tracks from {result.artist_count} artists")


def render_recommendations(results: Sequence[RecommendationResult], user: str, period: str,
                           filter_threshold: int) -> None:
    header("RECOMMENDATIONS", f"{user} · {period} · filter < {filter_threshold or 1} plays")
    if not results:
        bullet("No recommendations found")
        return

    for i, rec in enumerate(results, 1):
        _safe_print(
            f"    {i:02d}. {rec.artist_name}  score {rec.score:.2f} "
            f"(avg {rec.average_similarity:.2f} × {rec.occurrence_count})"
        )
        sources = ", ".join(rec.source_artists[:3])
        if len(rec.source_artists) > 3:
            sources += f" (+{len(rec.source_artists) - 3} more)"
        _safe_print(f"        {ARROW} similar to {sources}")
        if rec.user_play_count:
            _safe_print(f"        {ARROW} you played them {_plays(rec.user_play_count)}")
        for track in rec.top_tracks or ():
            _safe_print(f"          {BULLET} {track.name}")


def render_similar(artist: str, similar: Sequence[SimilarArtist]) -> None:
    header("SIMILAR ARTISTS", f"{artist} · {len(similar)} artists")
    if not similar:
        bullet("No similar artists found")
        return
    for i, candidate in enumerate(similar, 1):
        _safe_print(f"    {i:02d}. {candidate.name}  {candidate.match * 100:5.1f}% match")


def render_artist_tracks(artist: str, tracks: Sequence[Track], user: str, pages: int) -> None:
    header("ARTIST TRACKS", f"{user} · {artist} · {pages} chart pages searched")
    if not tracks:
        bullet(f"No tracks by {artist} in your top tracks (try a larger --depth)")
        return
    for track in tracks:
        _safe_print(f"    {track.rank:>4}. {track.name} ({_plays(track.play_count)})")


def render_cache_stats(stats: CacheStatistics, expiry_minutes: float, enabled: bool) -> None:
    header("CACHE STATUS", stats.cache_directory)
    info("Enabled", "yes" if enabled else "no")
    info("Entries", f"{stats.total_entries} ({stats.valid_entries} valid, {stats.expired_entries} expired)")
    info("Files", stats.total_files)
    info("Size", _format_bytes(stats.total_size_bytes))
    info("Expiry", f"{expiry_minutes:g} minutes")
    if stats.oldest_entry:
        info("Oldest", stats.oldest_entry.strftime('%Y-%m-%d %H:%M:%S UTC'))
    if stats.newest_entry:
        info("Newest", stats.newest_entry.strftime('%Y-%m-%d %H:%M:%S UTC'))

    if stats.corrupt_entries:
        warning(f"{stats.corrupt_entries} unreadable metadata files")
    if stats.total_entries and stats.expired_entries / stats.total_entries > EXPIRED_WARNING_RATIO:
        warning("Many entries are expired; run 'cache-clear --expired' to free space")


def render_timings(ctx: CacheContext) -> None:
    if not ctx.timings:
        return
    section("TIMINGS")
    for timing in ctx.timings:
        source = "cache" if timing.cache_hit else "api"
        _safe_print(f"    {timing.method:<22} {source:<5} {timing.elapsed_ms:8.1f} ms  {timing.details}")
    total = sum(t.elapsed_ms for t in ctx.timings)
    info("Total", f"{total:.1f} ms ({ctx.cache_hits} cached, {ctx.api_calls} api)")


def playlist_payload(result: PlaylistResult, ctx: Optional[CacheContext] = None) -> Dict[str, Any]:
    data = result.to_dict()
    if ctx is not None and ctx.timings:
        data['timings'] = [t.to_dict() for t in ctx.timings]
    return data


def recommendations_payload(results: Sequence[RecommendationResult],
                            ctx: Optional[CacheContext] = None,
                            playlist: Optional[Sequence[Track]] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'recommendations': [r.to_dict() for r in results],
        'count': len(results),
    }
    if playlist:
        data['playlist'] = [t.to_dict() for t in playlist]
    if ctx is not None and ctx.timings:
        data['timings'] = [t.to_dict() for t in ctx.timings]
    return data


def ranked_payload(items: List[Any], attrs: PageAttributes) -> Dict[str, Any]:
    return {
        'items': [item.to_dict() for item in items],
        'count': len(items),
        'page': attrs.page,
        'totalPages': attrs.total_pages,
        'total': attrs.total,
        'user': attrs.user,
    }


def similar_payload(artist: str, similar: Sequence[SimilarArtist],
                    ctx: Optional[CacheContext] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        'artist': artist,
        'similar': [s.to_dict() for s in similar],
        'count': len(similar),
    }
    if ctx is not None and ctx.timings:
        data['timings'] = [t.to_dict() for t in ctx.timings]
    return data


def artist_tracks_payload(artist: str, tracks: Sequence[Track], user: str, pages: int) -> Dict[str, Any]:
    return {
        'artist': artist,
        'user': user,
        'tracks': [t.to_dict() for t in tracks],
        'count': len(tracks),
        'pagesSearched': pages,
    }
