"""
Tag Filter - Drop artists carrying unwanted Last.FM tags
"""
import logging
from typing import Callable, Iterable, List, Sequence

from lfm_curator.errors import LfmError
from lfm_curator.models import ArtistTag
from lfm_curator.string_utils import normalize_text

logger = logging.getLogger(__name__)

TagsLookup = Callable[[str], Sequence[ArtistTag]]


class TagFilter:
    """
    Excludes artists tagged with any of a set of tags

    A tag only counts when its Last.FM tag count is at least ``threshold``,
    so a stray low-weight tag does not remove an artist. Artists whose tags
    cannot be fetched are kept.
    """

    def __init__(self, excluded_tags: Iterable[str] = (), threshold: int = 0, enabled: bool = True):
        self.excluded = {normalize_text(t) for t in excluded_tags if t and str(t).strip()}
        self.threshold = threshold
        self.enabled = enabled

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.excluded)

    def matching_tags(self, tags: Sequence[ArtistTag]) -> List[str]:
        return [
            tag.name for tag in tags
            if tag.count >= self.threshold and normalize_text(tag.name) in self.excluded
        ]

    def should_exclude(self, tags: Sequence[ArtistTag]) -> bool:
        return self.active and bool(self.matching_tags(tags))

    def is_excluded(self, artist: str, tags_lookup: TagsLookup) -> bool:
        if not self.active:
            return False
        try:
            tags = tags_lookup(artist)
        except LfmError as e:
            logger.warning(f"Could not fetch tags for {artist}, keeping it: {e}")
            return False

        matched = self.matching_tags(tags)
        if matched:
            logger.debug(f"Excluding {artist} (tags: {', '.join(matched)})")
            return True
        return False

    def filter_artists(self, artists: Iterable[str], tags_lookup: TagsLookup) -> List[str]:
        """Return the artists that pass the filter, order preserved"""
        artists = list(artists)
        if not self.active:
            return artists
        kept = [a for a in artists if not self.is_excluded(a, tags_lookup)]
        logger.info(f"Tag filter kept {len(kept)}/{len(artists)} artists")
        return kept
