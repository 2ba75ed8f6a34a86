"""
Recommendation Engine - Rank new artists from the user's top artists' similar-artist lists

Each of the user's top artists ("source artists") contributes its similar
artists. A candidate listed by several source artists accumulates one
similarity score per source; its score is

    average_similarity * occurrence_count

so breadth of corroboration outranks a single high-similarity hit.
Candidates the user already knows well (play count at or above the filter
threshold) are dropped.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from lfm_curator.errors import LfmError, ValidationError
from lfm_curator.models import RankedArtist, RecommendationResult, SimilarArtist, Track
from lfm_curator.string_utils import normalize_artist_key
from lfm_curator.tag_filter import TagFilter, TagsLookup

logger = logging.getLogger(__name__)

SourceArtist = Union[RankedArtist, Tuple[str, int]]
SimilarEntry = Union[SimilarArtist, Tuple[str, float]]
SimilarLookup = Callable[[str], Sequence[SimilarEntry]]
PlayCountLookup = Callable[[str], int]
TracksLookup = Callable[[str, int], Sequence[Track]]


def _source_pair(item: SourceArtist) -> Tuple[str, int]:
    if isinstance(item, RankedArtist):
        return item.name, item.play_count
    name, play_count = item
    return name, int(play_count or 0)


def _similar_pair(item: SimilarEntry) -> Tuple[str, float]:
    if isinstance(item, SimilarArtist):
        return item.name, item.match
    name, similarity = item
    return name, float(similarity)


@dataclass
class _Candidate:
    name: str
    similarities: List[float] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    source_keys: set = field(default_factory=set)

    def add(self, source: str, source_key: str, similarity: float) -> None:
        if source_key in self.source_keys:
            return
        self.source_keys.add(source_key)
        self.sources.append(source)
        self.similarities.append(similarity)


def is_excluded_by_play_count(play_count: int, filter_threshold: int) -> bool:
    """
    Whether a candidate is already too familiar to recommend

    Never-played candidates always pass. Otherwise a candidate is excluded once
    its play count reaches the threshold, so 0 and 1 both mean "only artists
    the user has never played".
    """
    return play_count > 0 and play_count >= filter_threshold


def artists_needed(total_artists: Optional[int], total_tracks: Optional[int],
                   tracks_per_artist: int) -> Optional[int]:
    """
    Number of ranked candidates to keep for the active selection mode

    Raises:
        ValidationError: when both totals are set, or total_tracks is set
            without a positive tracks_per_artist
    """
    if total_artists is not None and total_tracks is not None:
        raise ValidationError("Specify either total tracks or total artists, not both")
    if total_artists is not None:
        return total_artists
    if total_tracks is not None:
        if tracks_per_artist < 1:
            raise ValidationError("Tracks per artist must be at least 1 when total tracks is set")
        return math.ceil(total_tracks / tracks_per_artist)
    return None


class RecommendationEngine:
    """Aggregates similar-artist lists into a ranked recommendation list"""

    def recommend(
        self,
        top_artists: Iterable[SourceArtist],
        similar_lookup: SimilarLookup,
        filter_threshold: int = 0,
        play_count_lookup: Optional[PlayCountLookup] = None,
        tracks_lookup: Optional[TracksLookup] = None,
        tracks_per_artist: int = 0,
        total_artists: Optional[int] = None,
        total_tracks: Optional[int] = None,
        tag_filter: Optional[TagFilter] = None,
        tags_lookup: Optional[TagsLookup] = None,
    ) -> List[RecommendationResult]:
        """
        Build ranked recommendations

        Args:
            top_artists: Source artists as RankedArtist or (name, play_count)
            similar_lookup: artist -> similar artists (SimilarArtist or (name, similarity))
            filter_threshold: Exclude candidates with 0 < play_count >= threshold
            play_count_lookup: artist -> user's overall play count; called at most
                once per candidate. Without it the counts in top_artists are used
                and other candidates count as unplayed
            tracks_lookup: (artist, limit) -> top tracks, used when tracks_per_artist > 0
            tracks_per_artist: Top tracks to attach to each kept recommendation
            total_artists: Keep this many recommendations
            total_tracks: Keep enough recommendations to fill this many tracks
            tag_filter: Optional tag-based exclusion applied while selecting
            tags_lookup: artist -> tags, required for tag_filter

        Returns:
            Recommendations sorted by score, occurrence count, then name

        Raises:
            ValidationError: on conflicting or out-of-range parameters
            LfmError: when every similar-artist lookup failed
        """
        keep = artists_needed(total_artists, total_tracks, tracks_per_artist)
        if filter_threshold < 0:
            raise ValidationError(f"Filter threshold cannot be negative (got {filter_threshold})")
        if tracks_per_artist < 0:
            raise ValidationError(f"Tracks per artist cannot be negative (got {tracks_per_artist})")

        sources = [_source_pair(a) for a in top_artists]
        play_counts: Dict[str, int] = {}
        if play_count_lookup is None:
            # An explicit lookup is authoritative over the (period-scoped) chart counts
            for name, count in sources:
                play_counts.setdefault(normalize_artist_key(name), count)

        candidates = self._collect_candidates(sources, similar_lookup)

        results = []
        excluded = 0
        for key, candidate in candidates.items():
            play_count = self._play_count(key, candidate.name, play_counts, play_count_lookup)
            if is_excluded_by_play_count(play_count, filter_threshold):
                excluded += 1
                continue
            average = sum(candidate.similarities) / len(candidate.similarities)
            occurrences = len(candidate.sources)
            results.append(RecommendationResult(
                artist_name=candidate.name,
                score=average * occurrences,
                average_similarity=average,
                occurrence_count=occurrences,
                user_play_count=play_count,
                source_artists=tuple(candidate.sources),
            ))

        results.sort(key=lambda r: (-r.score, -r.occurrence_count, r.artist_name.casefold()))
        logger.info(
            f"Ranked {len(results)} candidates from {len(sources)} source artists "
            f"({excluded} excluded at threshold {filter_threshold})"
        )

        selected = self._select(results, keep, tag_filter, tags_lookup)

        if tracks_per_artist > 0 and tracks_lookup is not None:
            selected = [self._attach_tracks(r, tracks_lookup, tracks_per_artist) for r in selected]
        return selected

    def _collect_candidates(self, sources: List[Tuple[str, int]],
                            similar_lookup: SimilarLookup) -> Dict[str, _Candidate]:
        candidates: Dict[str, _Candidate] = {}
        failures: List[LfmError] = []

        for source_name, _ in sources:
            source_key = normalize_artist_key(source_name)
            try:
                similar = similar_lookup(source_name)
            except LfmError as e:
                logger.warning(f"Similar artists lookup failed for {source_name}: {e}")
                failures.append(e)
                continue

            for entry in similar:
                name, similarity = _similar_pair(entry)
                key = normalize_artist_key(name)
                if not key or key == source_key:
                    continue
                candidate = candidates.get(key)
                if candidate is None:
                    candidate = candidates[key] = _Candidate(name=name)
                candidate.add(source_name, source_key, similarity)

        if sources and len(failures) == len(sources):
            raise failures[-1]
        return candidates

    @staticmethod
    def _play_count(key: str, name: str, memo: Dict[str, int],
                    lookup: Optional[PlayCountLookup]) -> int:
        if key in memo:
            return memo[key]
        count = 0
        if lookup is not None:
            try:
                count = int(lookup(name) or 0)
            except LfmError as e:
                logger.debug(f"Play count lookup failed for {name}, assuming 0: {e}")
        memo[key] = count
        return count

    @staticmethod
    def _select(results: List[RecommendationResult], keep: Optional[int],
                tag_filter: Optional[TagFilter],
                tags_lookup: Optional[TagsLookup]) -> List[RecommendationResult]:
        filtering = tag_filter is not None and tag_filter.active and tags_lookup is not None
        if not filtering:
            return results if keep is None else results[:keep]

        selected = []
        for result in results:
            if keep is not None and len(selected) >= keep:
                break
            if not tag_filter.is_excluded(result.artist_name, tags_lookup):
                selected.append(result)
        return selected

    @staticmethod
    def _attach_tracks(result: RecommendationResult, tracks_lookup: TracksLookup,
                       tracks_per_artist: int) -> RecommendationResult:
        try:
            tracks = list(tracks_lookup(result.artist_name, tracks_per_artist))
        except LfmError as e:
            logger.warning(f"Top tracks lookup failed for {result.artist_name}: {e}")
            return result
        return replace(result, top_tracks=tuple(tracks[:tracks_per_artist]))


def flatten_recommendation_tracks(results: Sequence[RecommendationResult], tracks_per_artist: int,
                                  total_tracks: Optional[int] = None) -> List[Track]:
    """Concatenate attached top tracks, capped per artist and overall"""
    tracks: List[Track] = []
    for result in results:
        for track in (result.top_tracks or ())[:tracks_per_artist]:
            if total_tracks is not None and len(tracks) >= total_tracks:
                return tracks
            tracks.append(track)
    return tracks
