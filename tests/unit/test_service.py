"""Tests for LastFMService validation and orchestration."""

import pytest

from lfm_curator.cache.context import CacheContext
from lfm_curator.config_loader import Config
from lfm_curator.date_range import parse_date_range
from lfm_curator.errors import ConfigurationError, DataError, ValidationError
from lfm_curator.models import PlaylistRequest
from lfm_curator.service import LastFMService


@pytest.fixture(autouse=True)
def _no_env_credentials(monkeypatch):
    monkeypatch.delenv('LASTFM_USERNAME', raising=False)
    monkeypatch.delenv('LASTFM_API_KEY', raising=False)


def _config(**playlists):
    return Config.from_dict({
        'lastfm': {'username': 'rj'},
        'playlists': {'page_size': 2, 'max_windows': 10, 'max_empty_windows': 2, **playlists},
        'recommendations': {'similar_limit': 10},
    })


@pytest.fixture()
def service(cached_source):
    return LastFMService(cached_source, _config())


class TestValidationBeforeUpstream:

    def test_both_totals_rejected(self, service, fake_api):
        with pytest.raises(ValidationError):
            service.top_tracks_playlist(PlaylistRequest(total_tracks=5, total_artists=5))
        assert fake_api.calls == []

    def test_recommendations_both_totals_rejected(self, service, fake_api):
        with pytest.raises(ValidationError):
            service.recommendations(total_artists=5, total_tracks=10, tracks_per_artist=2)
        assert fake_api.calls == []

    @pytest.mark.parametrize("kwargs", [
        {'analysis_limit': 0},
        {'analysis_limit': 500},
        {'total_artists': 101},
        {'filter_threshold': -1},
        {'tracks_per_artist': -1},
        {'period': 'fortnight'},
    ])
    def test_recommendation_ranges(self, service, fake_api, kwargs):
        with pytest.raises(ValidationError):
            service.recommendations(**kwargs)
        assert fake_api.calls == []

    def test_mixtape_bias_rejected(self, service, fake_api):
        with pytest.raises(ValidationError):
            service.mixtape(PlaylistRequest(total_tracks=5, bias=2.0))
        assert fake_api.calls == []

    def test_missing_username(self, cached_source, fake_api):
        service = LastFMService(cached_source, Config.from_dict({}))
        with pytest.raises(ConfigurationError):
            service.top_artists()
        assert fake_api.calls == []

    def test_chart_limit_range(self, service):
        with pytest.raises(ValidationError):
            service.top_artists(limit=0)


class TestCharts:

    def test_top_artists_and_albums(self, service, fake_api):
        fake_api.top_artists['rj'] = [('Radiohead', 300), ('Bjork', 200)]
        fake_api.top_albums['rj'] = [('Radiohead', 'OK Computer', 150)]

        artists, attrs = service.top_artists(limit=10)
        albums, _ = service.top_albums(limit=10)

        assert [a.name for a in artists] == ['Radiohead', 'Bjork']
        assert attrs.total == 2
        assert albums[0].artist == 'Radiohead'

    def test_explicit_user_overrides_config(self, service, fake_api):
        fake_api.top_artists['other'] = [('Muse', 10)]
        artists, _ = service.top_artists(user='other')
        assert artists[0].name == 'Muse'


class TestTopTracksPlaylist:

    def test_expanding_windows(self, service, fake_api):
        fake_api.top_tracks['rj'] = [
            ('A', 'a1', 90), ('A', 'a2', 80),
            ('A', 'a3', 70), ('B', 'b1', 60),
            ('C', 'c1', 50), ('D', 'd1', 40),
        ]
        result = service.top_tracks_playlist(PlaylistRequest(total_tracks=3, tracks_per_artist=1))

        assert [t.name for t in result.tracks] == ['a1', 'b1', 'c1']
        assert result.exhausted is False
        assert result.stats['pages'] == 3
        assert len(fake_api.calls_for('user.getTopTracks')) == 3

    def test_stops_after_empty_windows(self, service, fake_api):
        fake_api.top_tracks['rj'] = [('A', f'a{i}', 100 - i) for i in range(10)] + [('B', 'b1', 1)]
        result = service.top_tracks_playlist(PlaylistRequest(total_tracks=2, tracks_per_artist=1))

        # page 1 adds a0, pages 2 and 3 add nothing
        assert [t.name for t in result.tracks] == ['a0']
        assert result.exhausted is True
        assert result.shortfall == 1
        assert result.stats['pages'] == 3

    def test_total_artists_mode(self, service, fake_api):
        fake_api.top_tracks['rj'] = [('A', 'a1', 9), ('A', 'a2', 8), ('B', 'b1', 7), ('B', 'b2', 6), ('C', 'c1', 5)]
        result = service.top_tracks_playlist(PlaylistRequest(total_artists=2, tracks_per_artist=2))
        assert [t.name for t in result.tracks] == ['a1', 'a2', 'b1', 'b2']
        assert result.requested == 4

    def test_short_chart_not_an_error(self, service, fake_api):
        fake_api.top_tracks['rj'] = [('A', 'a1', 9)]
        result = service.top_tracks_playlist(PlaylistRequest(total_tracks=10))
        assert result.count == 1
        assert result.exhausted is True

    def test_empty_chart(self, service, fake_api):
        with pytest.raises(DataError):
            service.top_tracks_playlist(PlaylistRequest(total_tracks=5))

    def test_second_run_uses_cache(self, service, fake_api):
        fake_api.top_tracks['rj'] = [('A', 'a1', 9), ('B', 'b1', 8)]
        ctx = CacheContext(record_timings=True)
        service.top_tracks_playlist(PlaylistRequest(total_tracks=2), ctx=ctx)
        service.top_tracks_playlist(PlaylistRequest(total_tracks=2), ctx=ctx)
        assert len(fake_api.calls_for('user.getTopTracks')) == 1
        assert ctx.cache_hits == 1


class TestMixtape:

    def test_reproducible(self, cached_source, fake_api):
        service = LastFMService(cached_source, _config(mixtape_pool_pages=10))
        fake_api.top_tracks['rj'] = [(f'Artist {i % 4}', f'song {i}', 50 - i) for i in range(12)]
        request = PlaylistRequest(total_tracks=6, tracks_per_artist=2, bias=0.5, seed=42)

        first = service.mixtape(request)
        second = service.mixtape(request)

        assert [t.name for t in first.tracks] == [t.name for t in second.tracks]
        assert first.count == 6
        assert first.pool_size == 12

    def test_pool_pages_limited(self, cached_source, fake_api):
        service = LastFMService(cached_source, _config(mixtape_pool_pages=2))
        fake_api.top_tracks['rj'] = [(f'Artist {i}', f'song {i}', 10) for i in range(10)]
        result = service.mixtape(PlaylistRequest(total_tracks=3, seed=1))
        assert result.pool_size == 4
        assert len(fake_api.calls_for('user.getTopTracks')) == 2

    def test_empty_pool(self, service):
        with pytest.raises(DataError):
            service.mixtape(PlaylistRequest(total_tracks=3, seed=1))


class TestRecommendations:

    @pytest.fixture()
    def listening(self, fake_api):
        fake_api.top_artists['rj'] = [('A', 120), ('B', 80)]
        fake_api.similar['A'] = [('X', 0.8), ('Known', 0.9)]
        fake_api.similar['B'] = [('X', 0.6), ('Y', 0.5)]
        fake_api.artist_tracks['X'] = [('x1', 500), ('x2', 400)]
        fake_api.artist_tracks['Y'] = [('y1', 300)]
        return fake_api

    def test_ranked_results(self, service, listening):
        listening.top_artists['rj'].append(('Known', 5))
        results = service.recommendations(filter_threshold=5, total_artists=10)

        assert [r.artist_name for r in results] == ['X', 'Y']
        assert results[0].score == pytest.approx(1.4)

    def test_short_period_filters_on_overall_play_counts(self, service, fake_api):
        fake_api.top_artists['rj'] = [('A', 1000), ('B', 900), ('C', 500)]
        fake_api.top_artists[('rj', '7day')] = [('A', 4), ('C', 3)]
        fake_api.similar['A'] = [('C', 0.9), ('X', 0.7)]
        fake_api.similar['C'] = [('A', 0.8), ('X', 0.6)]

        results = service.recommendations(period='7day', filter_threshold=10, total_artists=10)

        assert [r.artist_name for r in results] == ['X']

    def test_play_counts_loaded_lazily_once(self, service, listening):
        service.recommendations(filter_threshold=1, total_artists=10)
        # one call for the analysed chart, one for the overall play counts
        assert len(listening.calls_for('user.getTopArtists')) == 2

    def test_tracks_attached(self, service, listening):
        results = service.recommendations(total_artists=2, tracks_per_artist=1)
        assert [t.name for t in results[0].top_tracks] == ['x1']

    def test_excluded_tags(self, service, listening):
        listening.tags['X'] = [('christmas', 100)]
        results = service.recommendations(total_artists=10, exclude_tags=['Christmas'])
        assert 'X' not in [r.artist_name for r in results]

    def test_failed_similar_lookup_skipped(self, service, listening):
        listening.top_artists['rj'].append(('Unknown Artist', 3))
        results = service.recommendations(total_artists=10)
        assert 'X' in [r.artist_name for r in results]

    def test_no_top_artists(self, service):
        with pytest.raises(DataError):
            service.recommendations(total_artists=5)


# Mid-2017 and mid-2014 unix timestamps
IN_2017 = 1500000000
IN_2014 = 1400000000
YEAR_2017 = parse_date_range("2017-01-01", "2017-12-31")


class TestDateRanges:

    @pytest.fixture()
    def history(self, fake_api):
        fake_api.recent['rj'] = [
            ('A', 'a1', IN_2017 + 5), ('A', 'a1', IN_2017 + 4), ('A', 'a2', IN_2017 + 3),
            ('B', 'b1', IN_2017 + 2), ('b', 'b1', IN_2017 + 1),
            ('Old', 'o1', IN_2014),
        ]
        fake_api.now_playing['rj'] = ('Now', 'n1')
        return fake_api

    def test_top_tracks_from_range(self, service, history):
        result = service.top_tracks_playlist(PlaylistRequest(total_tracks=3, tracks_per_artist=1),
                                             date_range=YEAR_2017)

        assert [t.name for t in result.tracks] == ['a1', 'b1']
        assert [t.play_count for t in result.tracks] == [2, 2]
        assert result.exhausted is True
        assert history.calls_for('user.getTopTracks') == []
        call = history.calls_for('user.getRecentTracks')[0]
        assert (call['from'], call['to']) == (YEAR_2017.from_timestamp, YEAR_2017.to_timestamp)

    def test_scrobbles_paged(self, cached_source, history):
        service = LastFMService(cached_source, Config.from_dict({
            'lastfm': {'username': 'rj'}, 'history': {'page_size': 2},
        }))
        artists, attrs = service.top_artists(date_range=YEAR_2017)

        assert [(a.name, a.play_count) for a in artists] == [('A', 3), ('B', 2)]
        assert attrs.total == 2
        assert len(history.calls_for('user.getRecentTracks')) == 3

    def test_history_page_cap(self, cached_source, history):
        service = LastFMService(cached_source, Config.from_dict({
            'lastfm': {'username': 'rj'}, 'history': {'page_size': 2, 'max_pages': 1},
        }))
        artists, _ = service.top_artists(date_range=YEAR_2017)

        assert [(a.name, a.play_count) for a in artists] == [('A', 2)]
        assert len(history.calls_for('user.getRecentTracks')) == 1

    def test_top_artists_range_paginated(self, service, history):
        artists, attrs = service.top_artists(limit=1, page=2, date_range=YEAR_2017)
        assert [a.name for a in artists] == ['B']
        assert (attrs.page, attrs.total_pages) == (2, 2)

    def test_mixtape_from_range(self, service, history):
        result = service.mixtape(PlaylistRequest(total_tracks=2, seed=7), date_range=YEAR_2017)
        assert result.pool_size == 3
        assert {t.name for t in result.tracks} <= {'a1', 'a2', 'b1'}

    def test_recommendations_from_range(self, service, history):
        history.top_artists['rj'] = [('Y', 50), ('A', 900)]
        history.similar['A'] = [('X', 0.8)]
        history.similar['B'] = [('X', 0.6), ('Y', 0.5)]

        results = service.recommendations(filter_threshold=10, total_artists=10, date_range=YEAR_2017)

        assert [r.artist_name for r in results] == ['X']
        assert results[0].source_artists == ('A', 'B')
        assert {c['period'] for c in history.calls_for('user.getTopArtists')} == {'overall'}

    def test_empty_range(self, service, history):
        with pytest.raises(DataError):
            service.top_tracks_playlist(PlaylistRequest(total_tracks=3),
                                        date_range=parse_date_range("2010-01-01", "2010-12-31"))

    def test_period_and_range_conflict(self, service, fake_api):
        with pytest.raises(ValidationError):
            service.mixtape(PlaylistRequest(total_tracks=3), period='7day', date_range=YEAR_2017)
        assert fake_api.calls == []

    def test_range_cached(self, service, history):
        ctx = CacheContext()
        service.top_artists(date_range=YEAR_2017, ctx=ctx)
        service.top_artists(date_range=YEAR_2017, ctx=ctx)
        assert len(history.calls_for('user.getRecentTracks')) == 1


class TestArtistLookups:

    def test_similar_artists(self, service, fake_api):
        fake_api.similar['Radiohead'] = [('Muse', 0.7), ('Thom Yorke', 0.9)]
        similar = service.similar_artists('  Radiohead ', limit=5)
        assert [s.name for s in similar] == ['Thom Yorke', 'Muse']
        assert fake_api.calls_for('artist.getSimilar')[0]['artist'] == 'Radiohead'

    @pytest.mark.parametrize("artist,limit", [('Radiohead', 0), ('Radiohead', 101), ('  ', 5)])
    def test_similar_validation(self, service, fake_api, artist, limit):
        with pytest.raises(ValidationError):
            service.similar_artists(artist, limit=limit)
        assert fake_api.calls == []

    @pytest.fixture()
    def chart(self, fake_api):
        fake_api.top_tracks['rj'] = [
            ('A', 'a1', 9), ('B', 'b1', 8),
            ('a', 'a2', 7), ('C', 'c1', 6),
            ('Á', 'a3', 5),
        ]
        return fake_api

    def test_artist_tracks_stop_at_limit(self, service, chart):
        tracks, pages = service.artist_tracks('A', limit=2)
        assert [t.name for t in tracks] == ['a1', 'a2']
        assert pages == 2
        assert {c['period'] for c in chart.calls_for('user.getTopTracks')} == {'overall'}

    def test_artist_tracks_search_whole_chart(self, service, chart):
        tracks, pages = service.artist_tracks('a', limit=10)
        assert [t.name for t in tracks] == ['a1', 'a2', 'a3']
        assert pages == 3

    def test_artist_tracks_depth(self, service, chart):
        tracks, pages = service.artist_tracks('A', limit=10, max_pages=1)
        assert [t.name for t in tracks] == ['a1']
        assert pages == 1

    def test_artist_tracks_validation(self, service, fake_api):
        with pytest.raises(ValidationError):
            service.artist_tracks('', limit=5)
        with pytest.raises(ValidationError):
            service.artist_tracks('A', max_pages=0)
        assert fake_api.calls == []
