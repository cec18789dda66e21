"""
YouTube remote access for playlist-sync.

This module provides:
    - YouTubeClient: Data API v3 wrapper listing playlist pages
    - SnapshotFetcher: Paginated, quota-metered, retrying snapshot fetch
    - RemotePage / RemoteSnapshot / PageSource: the fetch boundary types

Usage:
    from playlist_sync.youtube import YouTubeClient, SnapshotFetcher

    fetcher = SnapshotFetcher(YouTubeClient.from_config(config.youtube))
"""

from playlist_sync.youtube.client import YouTubeClient
from playlist_sync.youtube.fetcher import SnapshotFetcher
from playlist_sync.youtube.models import PageSource, RemotePage, RemoteSnapshot

__all__ = [
    "YouTubeClient",
    "SnapshotFetcher",
    "PageSource",
    "RemotePage",
    "RemoteSnapshot",
]
