"""
Mixtape sampling - seeded, play-count-weighted random selection.

Each eligible track gets the weight

    w_i = (1 - bias) / n + bias * plays_i / sum(plays)

so bias=0 is uniform and bias=1 is proportional to play count. Tracks are
drawn without replacement with numpy's Generator seeded by ``seed``; the same
inputs and seed always give the same playlist. Once an artist reaches
tracks_per_artist, its remaining tracks leave the pool and later draws come
from what is left, so every draw removes at least one track and sampling ends
after at most len(pool) draws.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from lfm_curator.models import PlaylistRequest, PlaylistResult, Track
from lfm_curator.playlist.diversity import ArtistQuota
from lfm_curator.string_utils import artist_key

logger = logging.getLogger(__name__)

DEFAULT_BIAS = 0.3


def mixtape_weights(play_counts: Sequence[int], bias: float) -> np.ndarray:
    """
    Blend uniform and play-count-proportional selection probabilities

    Args:
        play_counts: Play count per track
        bias: 0 = uniform, 1 = proportional to play count

    Returns:
        Probability vector summing to 1 (empty for empty input)
    """
    counts = np.asarray(play_counts, dtype=float)
    n = counts.size
    if n == 0:
        return counts

    uniform = np.full(n, 1.0 / n)
    total = counts.sum()
    proportional = counts / total if total > 0 else uniform
    return (1.0 - bias) * uniform + bias * proportional


def sample_mixtape(
    tracks: Sequence[Track],
    total_tracks: int,
    bias: float = DEFAULT_BIAS,
    min_plays: int = 0,
    tracks_per_artist: int = 1,
    seed: Optional[int] = None,
) -> PlaylistResult:
    """
    Draw a weighted random playlist

    Args:
        tracks: Candidate pool (order matters for reproducibility)
        total_tracks: Tracks wanted
        bias: Weighting between uniform (0) and play-count-proportional (1)
        min_plays: Drop tracks played fewer times than this
        tracks_per_artist: Per-artist cap enforced while drawing
        seed: RNG seed; None draws fresh entropy

    Returns:
        PlaylistResult; exhausted=True when the pool ran out before total_tracks

    Raises:
        ValidationError: on out-of-range parameters
    """
    PlaylistRequest(
        total_tracks=total_tracks,
        tracks_per_artist=tracks_per_artist,
        bias=bias,
        min_plays=min_plays,
        seed=seed,
    ).validate()

    pool = [t for t in tracks if t.play_count >= min_plays]
    weights = mixtape_weights([t.play_count for t in pool], bias)
    keys = [artist_key(t.artist) for t in pool]

    rng = np.random.default_rng(seed)
    quota = ArtistQuota(tracks_per_artist)
    available = np.ones(len(pool), dtype=bool)
    selected: List[Track] = []
    draws = 0

    while len(selected) < total_tracks and available.any():
        candidates = np.flatnonzero(available)
        p = weights[candidates]
        p_sum = p.sum()
        # Only zero-weight tracks left (bias=1 with unplayed tracks): fall back to uniform
        p = p / p_sum if p_sum > 0 else np.full(candidates.size, 1.0 / candidates.size)

        pick = int(candidates[rng.choice(candidates.size, p=p)])
        available[pick] = False
        draws += 1

        track = pool[pick]
        if not quota.admit(track.artist):
            continue
        selected.append(track)

        if quota.is_full(track.artist):
            key = keys[pick]
            for idx in candidates:
                if keys[idx] == key:
                    available[idx] = False

    exhausted = len(selected) < total_tracks
    if exhausted:
        logger.warning(
            f"Mixtape pool exhausted: {len(selected)}/{total_tracks} tracks "
            f"({len(pool)} eligible, max {tracks_per_artist} per artist)"
        )
    else:
        logger.info(f"Sampled {len(selected)} tracks from a pool of {len(pool)} (bias={bias}, seed={seed})")

    return PlaylistResult(
        tracks=selected,
        mode='mixtape',
        requested=total_tracks,
        tracks_per_artist=tracks_per_artist,
        bias=bias,
        seed=seed,
        min_plays=min_plays,
        pool_size=len(pool),
        exhausted=exhausted,
        stats={'filtered_out': len(tracks) - len(pool), 'draws': draws},
    )
