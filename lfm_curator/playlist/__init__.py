from .diversity import (
    ArtistQuota,
    DiverseTrackCollector,
    build_diverse_playlist,
    resolve_target,
)
from .mixtape import DEFAULT_BIAS, mixtape_weights, sample_mixtape

__all__ = [
    "ArtistQuota",
    "DEFAULT_BIAS",
    "DiverseTrackCollector",
    "build_diverse_playlist",
    "mixtape_weights",
    "resolve_target",
    "sample_mixtape",
]
