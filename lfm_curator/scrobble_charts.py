"""
Scrobble Charts - Top artist and track charts built from raw plays

Last.FM only serves top charts for fixed periods. For a custom date range the
plays are fetched with user.getRecentTracks and counted here. Names are
grouped with artist_key, keeping the spelling seen first; ties keep
first-seen order.
"""
import logging
from collections import Counter
from typing import Dict, Iterable, List, Tuple

from lfm_curator.models import RankedArtist, Scrobble, Track
from lfm_curator.string_utils import artist_key, normalize_text

logger = logging.getLogger(__name__)


def aggregate_artists(scrobbles: Iterable[Scrobble]) -> List[RankedArtist]:
    """Artists ranked by number of plays"""
    counts: Counter = Counter()
    names: Dict[str, str] = {}
    for scrobble in scrobbles:
        key = artist_key(scrobble.artist)
        names.setdefault(key, scrobble.artist)
        counts[key] += 1

    return [
        RankedArtist(name=names[key], play_count=count, rank=rank)
        for rank, (key, count) in enumerate(counts.most_common(), 1)
    ]


def aggregate_tracks(scrobbles: Iterable[Scrobble]) -> List[Track]:
    """Tracks ranked by number of plays"""
    counts: Counter = Counter()
    first: Dict[Tuple[str, str], Scrobble] = {}
    for scrobble in scrobbles:
        key = (artist_key(scrobble.artist), normalize_text(scrobble.name))
        first.setdefault(key, scrobble)
        counts[key] += 1

    tracks = []
    for rank, (key, count) in enumerate(counts.most_common(), 1):
        seen = first[key]
        tracks.append(Track(name=seen.name, artist=seen.artist, play_count=count, rank=rank, url=seen.url))
    logger.debug(f"Aggregated {sum(counts.values())} plays into {len(tracks)} tracks")
    return tracks
