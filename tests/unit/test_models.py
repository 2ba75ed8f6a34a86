"""Tests for Last.FM payload parsing and request/result records."""

import pytest

from lfm_curator.errors import DataError, ValidationError
from lfm_curator.models import (
    PlaylistRequest,
    PlaylistResult,
    RecommendationResult,
    Track,
    parse_artist_tags,
    parse_recent_tracks,
    parse_similar_artists,
    parse_top_albums,
    parse_top_artists,
    parse_top_tracks,
)


class TestParsers:

    def test_top_tracks(self):
        data = {'toptracks': {
            'track': [
                {'name': 'Airbag', 'playcount': '40', 'artist': {'name': 'Radiohead'},
                 'url': 'https://www.last.fm/music/Radiohead/_/Airbag', '@attr': {'rank': '1'}},
                {'name': '', 'playcount': '1', 'artist': {'name': 'Nobody'}},
                {'name': 'Joga', 'playcount': 'n/a', 'artist': {'#text': 'Bjork'}},
            ],
            '@attr': {'user': 'rj', 'page': '1', 'perPage': '50', 'totalPages': '3', 'total': '120'},
        }}
        tracks, attrs = parse_top_tracks(data)

        assert [(t.artist, t.name, t.play_count) for t in tracks] == [('Radiohead', 'Airbag', 40), ('Bjork', 'Joga', 0)]
        assert tracks[1].rank == 3
        assert attrs.total_pages == 3
        assert attrs.is_last_page is False

    def test_single_item_collapsed_to_object(self):
        data = {'topartists': {'artist': {'name': 'Radiohead', 'playcount': '5'}, '@attr': {'page': '2', 'totalPages': '2'}}}
        artists, attrs = parse_top_artists(data)
        assert [a.name for a in artists] == ['Radiohead']
        assert attrs.is_last_page is True

    def test_missing_root(self):
        with pytest.raises(DataError):
            parse_top_tracks({'error': 6, 'message': 'User not found'})
        with pytest.raises(DataError):
            parse_similar_artists(None)

    def test_empty_collection(self):
        tracks, attrs = parse_top_tracks({'toptracks': {'track': [], '@attr': {'totalPages': '0'}}})
        assert tracks == []
        assert attrs.is_last_page is False

    def test_albums_similar_and_tags(self):
        albums, _ = parse_top_albums({'topalbums': {'album': [
            {'name': 'OK Computer', 'artist': {'name': 'Radiohead'}, 'playcount': '12'}]}})
        similar = parse_similar_artists({'similarartists': {'artist': [
            {'name': 'Muse', 'match': '0.87'}, {'name': 'Odd', 'match': None}]}})
        tags = parse_artist_tags({'toptags': {'tag': [{'name': 'rock', 'count': 100}, {'name': ' '}]}})

        assert albums[0].artist == 'Radiohead'
        assert [(s.name, s.match) for s in similar] == [('Muse', 0.87), ('Odd', 0.0)]
        assert [t.name for t in tags] == ['rock']

    def test_recent_tracks_skip_now_playing(self):
        scrobbles, attrs = parse_recent_tracks({'recenttracks': {
            'track': [
                {'name': 'Live Now', 'artist': {'#text': 'Muse'}, '@attr': {'nowplaying': 'true'}},
                {'name': 'Airbag', 'artist': {'#text': 'Radiohead'}, 'date': {'uts': '1500000000'}},
                {'name': '', 'artist': {'#text': 'Nobody'}, 'date': {'uts': '1400000000'}},
            ],
            '@attr': {'user': 'rj', 'page': '1', 'totalPages': '1', 'total': '2'},
        }})

        assert [(s.artist, s.name, s.played_at) for s in scrobbles] == [('Radiohead', 'Airbag', 1500000000)]
        assert attrs.is_last_page is True


class TestPlaylistRequest:

    def test_target_tracks(self):
        assert PlaylistRequest(total_tracks=7).target_tracks == 7
        assert PlaylistRequest(total_artists=3, tracks_per_artist=2).target_tracks == 6
        assert PlaylistRequest().target_tracks is None

    @pytest.mark.parametrize("kwargs", [
        {'total_tracks': 5, 'total_artists': 5},
        {},
        {'total_tracks': 0},
        {'total_tracks': 2000},
        {'total_tracks': 5, 'tracks_per_artist': 0},
        {'total_tracks': 5, 'bias': 1.01},
        {'total_tracks': 5, 'min_plays': -3},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            PlaylistRequest(**kwargs).validate(max_total=1000)

    def test_target_optional(self):
        PlaylistRequest().validate(require_target=False)


class TestResults:

    def test_playlist_result_summary(self):
        tracks = [Track('a', 'Radiohead', 3), Track('b', 'RADIOHEAD', 2), Track('c', 'Bjork', 1)]
        result = PlaylistResult(tracks=tracks, mode='toptracks', requested=5, tracks_per_artist=2)
        assert result.count == 3
        assert result.artist_count == 2
        assert result.shortfall == 2
        data = result.to_dict()
        assert 'seed' not in data
        assert data['tracks'][0] == {'name': 'a', 'artist': 'Radiohead', 'playcount': 3, 'rank': 0, 'url': ''}

    def test_artist_count_matches_quota_grouping(self):
        tracks = [Track('a', 'Beyoncé', 3), Track('b', 'Beyonce', 2), Track('c', 'AC/DC', 1), Track('d', 'AC DC', 1)]
        result = PlaylistResult(tracks=tracks, mode='toptracks', requested=4, tracks_per_artist=2)
        assert result.artist_count == 2
        assert result.to_dict()['totalArtists'] == 2

    def test_recommendation_to_dict(self):
        rec = RecommendationResult('X', 1.4, 0.7, 2, 0, ('A', 'B'), (Track('x1', 'X'),))
        data = rec.to_dict()
        assert data['sourceArtists'] == ['A', 'B']
        assert data['topTracks'][0]['name'] == 'x1'
        assert 'topTracks' not in RecommendationResult('Y', 0.5, 0.5, 1).to_dict()
