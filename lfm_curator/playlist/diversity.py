"""
Diversity-constrained selection - cap how often one artist appears.

Artists are compared case-insensitively through normalize_artist_key, so
"Radiohead" and "RADIOHEAD" share one quota.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Optional

from lfm_curator.errors import ValidationError
from lfm_curator.models import Track
from lfm_curator.string_utils import artist_key

logger = logging.getLogger(__name__)


def resolve_target(tracks_per_artist: int, total_tracks: Optional[int] = None,
                   total_artists: Optional[int] = None) -> Optional[int]:
    """
    Number of tracks a diversity-constrained build should produce

    Args:
        tracks_per_artist: Per-artist cap
        total_tracks: Explicit track count
        total_artists: Artist count; target becomes tracks_per_artist * total_artists

    Returns:
        Target track count, or None for "as many as the input allows"

    Raises:
        ValidationError: on both totals set or non-positive values
    """
    if tracks_per_artist < 1:
        raise ValidationError(f"Tracks per artist must be at least 1 (got {tracks_per_artist})")
    if total_tracks is not None and total_artists is not None:
        raise ValidationError("Specify either total tracks or total artists, not both")
    if total_tracks is not None:
        if total_tracks < 1:
            raise ValidationError(f"Total tracks must be at least 1 (got {total_tracks})")
        return total_tracks
    if total_artists is not None:
        if total_artists < 1:
            raise ValidationError(f"Total artists must be at least 1 (got {total_artists})")
        return total_artists * tracks_per_artist
    return None


class ArtistQuota:
    """Running per-artist counts against a fixed cap"""

    def __init__(self, tracks_per_artist: int):
        if tracks_per_artist < 1:
            raise ValidationError(f"Tracks per artist must be at least 1 (got {tracks_per_artist})")
        self.tracks_per_artist = tracks_per_artist
        self.counts: Counter = Counter()

    def allows(self, artist: str) -> bool:
        return self.counts[artist_key(artist)] < self.tracks_per_artist

    def admit(self, artist: str) -> bool:
        """Count one track for artist if it is under the cap"""
        key = artist_key(artist)
        if self.counts[key] >= self.tracks_per_artist:
            return False
        self.counts[key] += 1
        return True

    def is_full(self, artist: str) -> bool:
        return not self.allows(artist)

    @property
    def artist_count(self) -> int:
        return len(self.counts)


class DiverseTrackCollector:
    """
    Accepts tracks in rank order until a target is reached

    Used directly by build_diverse_playlist and incrementally by the
    expanding-window top-tracks fetch, which feeds it one page at a time.
    """

    def __init__(self, tracks_per_artist: int, target: Optional[int] = None):
        self.quota = ArtistQuota(tracks_per_artist)
        self.target = target
        self.tracks: List[Track] = []
        self.skipped = 0

    @property
    def is_full(self) -> bool:
        return self.target is not None and len(self.tracks) >= self.target

    def offer(self, tracks: Iterable[Track]) -> int:
        """
        Consider tracks in order

        Returns:
            Number of tracks accepted
        """
        added = 0
        for track in tracks:
            if self.is_full:
                break
            if self.quota.admit(track.artist):
                self.tracks.append(track)
                added += 1
            else:
                self.skipped += 1
        return added


def build_diverse_playlist(
    tracks: Iterable[Track],
    tracks_per_artist: int,
    total_tracks: Optional[int] = None,
    total_artists: Optional[int] = None,
) -> List[Track]:
    """
    Walk tracks in rank order keeping at most tracks_per_artist per artist

    Args:
        tracks: Rank-ordered tracks
        tracks_per_artist: Per-artist cap
        total_tracks: Stop after this many tracks
        total_artists: Stop after tracks_per_artist * total_artists tracks

    Returns:
        Selected tracks in their original order
    """
    target = resolve_target(tracks_per_artist, total_tracks, total_artists)
    collector = DiverseTrackCollector(tracks_per_artist, target)
    collector.offer(tracks)

    logger.info(
        f"Diversified to {len(collector.tracks)} tracks from {collector.quota.artist_count} artists "
        f"(max {tracks_per_artist} per artist, {collector.skipped} skipped)"
    )
    return collector.tracks
