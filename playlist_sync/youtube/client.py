"""
YouTube Data API client for playlist-sync.

Thin wrapper around google-api-python-client that lists playlist pages
and maps API failures onto RemoteFetchError.

Authentication:
    Two modes are supported:
    1. API key: enough for public and unlisted playlists.
    2. Stored OAuth token file (authorized-user JSON, as written by
       google-auth-oauthlib): needed for private playlists.
    Acquiring or refreshing tokens interactively is not handled here.

Error Mapping:
    HTTP 429 and 5xx          -> RemoteFetchError(is_retryable=True)
    HTTP 403 quotaExceeded    -> RemoteFetchError(is_retryable=False)
    HTTP 404                  -> RemoteFetchError("Playlist not found")
    Other HTTP errors         -> RemoteFetchError(is_retryable=False)
    Transport errors          -> RemoteFetchError(is_retryable=True)

Usage:
    client = YouTubeClient.from_config(config.youtube)
    page = client.fetch_page("PLabc123")
    while page.next_page_token:
        page = client.fetch_page("PLabc123", page.next_page_token)
"""

from typing import Any

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from playlist_sync.core.config import YouTubeConfig
from playlist_sync.core.exceptions import ConfigError, RemoteFetchError
from playlist_sync.core.logger import get_logger
from playlist_sync.youtube.models import RemotePage

logger = get_logger(__name__)


# Maximum page size accepted by playlistItems.list
MAX_RESULTS = 50

READONLY_SCOPE = "https://www.googleapis.com/auth/youtube.readonly"

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def _error_reason(error: HttpError) -> str:
    content = error.content or b""
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if "quotaExceeded" in content or "dailyLimitExceeded" in content:
        return "quotaExceeded"
    return getattr(error, "reason", None) or str(error)


def _wrap_http_error(error: HttpError, remote_id: str) -> RemoteFetchError:
    status = error.resp.status if error.resp is not None else None
    reason = _error_reason(error)
    details = {"remote_id": remote_id, "http_status": status, "reason": reason}

    if status == 404:
        return RemoteFetchError(
            f"Playlist not found: {remote_id}",
            details=details,
            http_status=status
        )

    if status == 403 and reason == "quotaExceeded":
        return RemoteFetchError(
            "YouTube API quota exceeded",
            details=details,
            http_status=status
        )

    return RemoteFetchError(
        f"YouTube API error {status}: {reason}",
        details=details,
        http_status=status,
        is_retryable=status in RETRYABLE_STATUSES
    )


class YouTubeClient:
    """
    Lists YouTube playlists through the Data API v3.

    Implements the PageSource protocol used by SnapshotFetcher.
    """

    def __init__(self, service: Any) -> None:
        """
        Args:
            service: A googleapiclient Resource for the youtube v3 API.
        """
        self._service = service

    @classmethod
    def from_config(cls, config: YouTubeConfig) -> "YouTubeClient":
        """
        Build a client from the youtube configuration section.

        Raises:
            ConfigError: If no credentials are configured or the token
                         file cannot be loaded.
        """
        if config.token_file is not None:
            try:
                credentials = Credentials.from_authorized_user_file(
                    str(config.token_file), scopes=[READONLY_SCOPE]
                )
            except (OSError, ValueError, GoogleAuthError) as e:
                raise ConfigError(
                    f"Failed to load token file: {e}",
                    details={"field": "youtube.token_file", "path": str(config.token_file)}
                ) from e
            service = build("youtube", "v3", credentials=credentials, cache_discovery=False)
            logger.debug("YouTube client using stored OAuth token")
            return cls(service)

        if config.api_key:
            service = build("youtube", "v3", developerKey=config.api_key, cache_discovery=False)
            logger.debug("YouTube client using API key")
            return cls(service)

        raise ConfigError(
            "No YouTube credentials configured: set 'youtube.api_key' or 'youtube.token_file'",
            details={"section": "youtube"}
        )

    def fetch_page(self, remote_id: str, page_token: str | None = None) -> RemotePage:
        """
        Fetch one page (up to 50 entries) of a playlist.

        Costs one playlist.items quota unit per call.

        Raises:
            RemoteFetchError: On any API or transport failure.
        """
        try:
            response = self._service.playlistItems().list(
                part="snippet,contentDetails",
                playlistId=remote_id,
                maxResults=MAX_RESULTS,
                pageToken=page_token,
            ).execute()
        except HttpError as e:
            raise _wrap_http_error(e, remote_id) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise RemoteFetchError(
                f"Network error while fetching playlist {remote_id}: {e}",
                details={"remote_id": remote_id, "original_error": str(e)},
                is_retryable=True
            ) from e

        return RemotePage.from_api_response(response)

    def playlist_details(self, remote_id: str) -> dict[str, Any]:
        """
        Fetch title and item count of a playlist.

        Costs one playlist.details quota unit.

        Returns:
            Dict with: remote_id, title, item_count.

        Raises:
            RemoteFetchError: If the playlist does not exist or the call fails.
        """
        try:
            response = self._service.playlists().list(
                part="snippet,contentDetails",
                id=remote_id,
                maxResults=1,
            ).execute()
        except HttpError as e:
            raise _wrap_http_error(e, remote_id) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise RemoteFetchError(
                f"Network error while fetching playlist {remote_id}: {e}",
                details={"remote_id": remote_id, "original_error": str(e)},
                is_retryable=True
            ) from e

        items = response.get("items") or []
        if not items:
            raise RemoteFetchError(
                f"Playlist not found: {remote_id}",
                details={"remote_id": remote_id},
                http_status=404
            )

        playlist = items[0]
        return {
            "remote_id": remote_id,
            "title": (playlist.get("snippet") or {}).get("title"),
            "item_count": (playlist.get("contentDetails") or {}).get("itemCount", 0),
        }
