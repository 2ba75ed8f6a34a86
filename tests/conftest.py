"""Test configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from lfm_curator.cache.eviction import SyncEviction
from lfm_curator.cache.storage import FileCacheStorage
from lfm_curator.cached_client import CachedLastFMClient
from lfm_curator.errors import DataError


class FakeClock:
    """Controllable UTC clock for expiry tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _paginate(items, limit, page):
    limit = int(limit)
    page = int(page)
    total_pages = max(1, -(-len(items) // limit)) if items else 0
    start = (page - 1) * limit
    return items[start:start + limit], total_pages


class FakeLastFM:
    """
    In-memory stand-in for LastFMClient.request().

    Charts are stored per user, or per (user, period) pair, as lists of
    (artist, name, plays) tuples for tracks and (name, plays) tuples for
    artists; similar artists, artist top tracks and tags are stored per
    artist. ``recent`` holds each user's scrobbles as (artist, name, uts)
    tuples, newest first, and ``now_playing`` an optional (artist, name)
    track reported ahead of them. ``failures`` maps an artist name
    to an exception raised by every artist-scoped lookup for it.
    """

    def __init__(self):
        self.top_tracks = {}
        self.top_artists = {}
        self.top_albums = {}
        self.recent = {}
        self.now_playing = {}
        self.similar = {}
        self.artist_tracks = {}
        self.tags = {}
        self.failures = {}
        self.calls = []

    def calls_for(self, method):
        return [params for m, params in self.calls if m == method]

    def close(self):
        pass

    def request(self, method, **params):
        self.calls.append((method, params))
        handler = {
            'user.getTopTracks': self._top_tracks,
            'user.getTopArtists': self._top_artists,
            'user.getTopAlbums': self._top_albums,
            'user.getRecentTracks': self._recent_tracks,
            'artist.getSimilar': self._similar,
            'artist.getTopTracks': self._artist_tracks,
            'artist.getTopTags': self._tags,
        }[method]
        return handler(**params)

    def _chart(self, charts, user, period):
        # (user, period) entries override the per-user default chart
        return charts.get((user, period), charts.get(user, []))

    def _attr(self, user, page, limit, total, total_pages):
        return {
            'user': user,
            'page': str(page),
            'perPage': str(limit),
            'total': str(total),
            'totalPages': str(total_pages),
        }

    def _top_tracks(self, user, period, limit, page):
        items = self._chart(self.top_tracks, user, period)
        chunk, total_pages = _paginate(items, limit, page)
        offset = (int(page) - 1) * int(limit)
        return {'toptracks': {
            'track': [
                {
                    'name': name,
                    'playcount': str(plays),
                    'artist': {'name': artist},
                    'url': f'https://www.last.fm/music/{artist}/_/{name}',
                    '@attr': {'rank': str(offset + i)},
                }
                for i, (artist, name, plays) in enumerate(chunk, 1)
            ],
            '@attr': self._attr(user, page, limit, len(items), total_pages),
        }}

    def _top_artists(self, user, period, limit, page):
        items = self._chart(self.top_artists, user, period)
        chunk, total_pages = _paginate(items, limit, page)
        offset = (int(page) - 1) * int(limit)
        return {'topartists': {
            'artist': [
                {'name': name, 'playcount': str(plays), '@attr': {'rank': str(offset + i)}}
                for i, (name, plays) in enumerate(chunk, 1)
            ],
            '@attr': self._attr(user, page, limit, len(items), total_pages),
        }}

    def _top_albums(self, user, period, limit, page):
        items = self.top_albums.get(user, [])
        chunk, total_pages = _paginate(items, limit, page)
        return {'topalbums': {
            'album': [
                {'name': name, 'artist': {'name': artist}, 'playcount': str(plays)}
                for artist, name, plays in chunk
            ],
            '@attr': self._attr(user, page, limit, len(items), total_pages),
        }}

    def _recent_tracks(self, user, limit, page, **window):
        start, end = int(window['from']), int(window['to'])
        items = [s for s in self.recent.get(user, []) if start <= s[2] <= end]
        chunk, total_pages = _paginate(items, limit, page)
        tracks = [
            {'name': name, 'artist': {'#text': artist}, 'date': {'uts': str(uts)}}
            for artist, name, uts in chunk
        ]
        if user in self.now_playing and int(page) == 1:
            artist, name = self.now_playing[user]
            tracks.insert(0, {'name': name, 'artist': {'#text': artist}, '@attr': {'nowplaying': 'true'}})
        return {'recenttracks': {
            'track': tracks,
            '@attr': self._attr(user, page, limit, len(items), total_pages),
        }}

    def _check_failure(self, artist):
        if artist in self.failures:
            raise self.failures[artist]

    def _similar(self, artist, limit, autocorrect=1):
        self._check_failure(artist)
        if artist not in self.similar:
            raise DataError(f"The artist you supplied could not be found: {artist}")
        return {'similarartists': {
            'artist': [{'name': name, 'match': str(match)} for name, match in self.similar[artist][:int(limit)]],
            '@attr': {'artist': artist},
        }}

    def _artist_tracks(self, artist, limit, autocorrect=1):
        self._check_failure(artist)
        tracks = self.artist_tracks.get(artist, [])
        return {'toptracks': {
            'track': [
                {'name': name, 'playcount': str(plays), 'artist': {'name': artist}, '@attr': {'rank': str(i)}}
                for i, (name, plays) in enumerate(tracks[:int(limit)], 1)
            ],
            '@attr': {'artist': artist},
        }}

    def _tags(self, artist, autocorrect=1):
        self._check_failure(artist)
        return {'toptags': {
            'tag': [{'name': name, 'count': count} for name, count in self.tags.get(artist, [])],
            '@attr': {'artist': artist},
        }}


@pytest.fixture()
def clock():
    """Fake clock starting at a fixed UTC instant."""
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def storage(tmp_path, clock):
    """File cache in a temp directory with synchronous eviction."""
    return FileCacheStorage(tmp_path / "cache", clock=clock, eviction=SyncEviction())


@pytest.fixture()
def fake_api():
    return FakeLastFM()


@pytest.fixture()
def cached_source(fake_api, storage):
    """Cache-fronted client over the fake API."""
    return CachedLastFMClient(fake_api, storage, expiry_minutes=10)
