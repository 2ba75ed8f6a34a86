"""
lfm_curator - Last.FM listening statistics turned into recommendations and playlists.
"""

__version__ = "0.1.0"
