"""
Data models for remote playlist pages.

The sync engine only depends on the PageSource protocol defined here;
YouTubeClient is the default implementation, and tests plug in fakes.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from playlist_sync.core.models import RemoteItem


@dataclass(frozen=True)
class RemotePage:
    """
    One page of a remote playlist listing.

    Attributes:
        items: Entries in remote order.
        next_page_token: Token for the following page, None on the last page.
    """
    items: tuple[RemoteItem, ...]
    next_page_token: str | None = None

    @classmethod
    def from_api_response(cls, response: dict[str, Any]) -> "RemotePage":
        """
        Build a page from a playlistItems.list response.

        Entries without a video id (deleted or private videos that the API
        still lists) are skipped.

        Example response item:
            {
                "id": "UExh...",
                "snippet": {"title": "Song", "publishedAt": "2024-01-01T00:00:00Z"},
                "contentDetails": {"videoId": "dQw4w9WgXcQ"}
            }
        """
        items = []
        for entry in response.get("items", []) or []:
            details = entry.get("contentDetails") or {}
            snippet = entry.get("snippet") or {}
            video_id = details.get("videoId") or (snippet.get("resourceId") or {}).get("videoId")
            if not video_id:
                continue
            items.append(RemoteItem(
                remote_item_id=video_id,
                title=snippet.get("title"),
                added_at=snippet.get("publishedAt"),
            ))

        return cls(
            items=tuple(items),
            next_page_token=response.get("nextPageToken") or None,
        )


@dataclass(frozen=True)
class RemoteSnapshot:
    """
    Full remote ordering of a playlist.

    Attributes:
        items: Every entry across all pages, in remote order.
        pages: Number of pages fetched successfully.
    """
    items: tuple[RemoteItem, ...]
    pages: int

    @property
    def item_ids(self) -> list[str]:
        return [item.remote_item_id for item in self.items]

    def by_id(self) -> dict[str, RemoteItem]:
        """Items keyed by id, first occurrence wins."""
        result: dict[str, RemoteItem] = {}
        for item in self.items:
            result.setdefault(item.remote_item_id, item)
        return result


class PageSource(Protocol):
    """Anything that can list one page of a remote playlist."""

    def fetch_page(self, remote_id: str, page_token: str | None = None) -> RemotePage:
        ...
