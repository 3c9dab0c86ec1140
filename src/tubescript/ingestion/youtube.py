"""YouTube caption acquisition via the watch page and the InnerTube player API.

This module is the only place that knows about the platform's
undocumented endpoints. If YouTube changes its contract, only
YouTubeCaptionFetcher needs to change.
"""

import logging
import re
from collections.abc import Iterable
from typing import Any

import httpx

from tubescript.config import Settings
from tubescript.errors import InvalidInputError, NetworkError, NoCaptionsError, ParseError
from tubescript.models import CaptionSource, CaptionTrack

logger = logging.getLogger(__name__)

_HOST = r"(?:(?:www|m|mobile|music)\.)?youtube\.com"

_URL_PATTERNS = [
    re.compile(_HOST + r"/watch\?(?:[^#\s]*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(_HOST + r"/(?:embed|v|shorts|live)/([A-Za-z0-9_-]{11})"),
]

_BARE_ID = re.compile(r"^([A-Za-z0-9_-]{11})$")


def extract_video_id(value: str) -> str | None:
    """Return the 11-character video ID in ``value``, or None.

    Accepts watch, short-link, embed, /v/, /shorts/ and /live/ URLs
    (with or without scheme and extra query parameters) as well as a
    bare ID.
    """
    text = (value or "").strip()
    for pattern in _URL_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)

    match = _BARE_ID.match(text)
    return match.group(1) if match else None


def parse_video_id(value: str) -> str:
    """Like extract_video_id, but raises InvalidInputError when nothing matches."""
    video_id = extract_video_id(value)
    if video_id is None:
        raise InvalidInputError(f"Invalid YouTube URL or video ID: {value!r}")
    return video_id


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def parse_language_preference(value: str | Iterable[str] | None) -> list[str]:
    """Normalise a preference like ``"DE, fr,,it"`` into ``["de", "fr", "it"]``."""
    if not value:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    return [code.strip().lower() for code in parts if code and code.strip()]


def select_caption_track(
    tracks: list[CaptionTrack],
    preference: str | Iterable[str] | None = None,
    default_language: str = "en",
) -> CaptionTrack:
    """Pick one caption track.

    Tries each preferred language in order, then ``default_language``,
    then the first track. Matching is case-insensitive.

    Raises:
        NoCaptionsError: If ``tracks`` is empty.
    """
    if not tracks:
        raise NoCaptionsError("No captions available for this video")

    by_code: dict[str, CaptionTrack] = {}
    for track in tracks:
        by_code.setdefault(track.language_code.lower(), track)

    for code in parse_language_preference(preference):
        if code in by_code:
            return by_code[code]

    return by_code.get(default_language.lower(), tracks[0])


class YouTubeCaptionFetcher:
    """Three-step handshake: watch page -> API key -> player API.

    The caller owns the httpx client; this class never closes it.
    """

    WATCH_URL = "https://www.youtube.com/watch"
    PLAYER_URL = "https://www.youtube.com/youtubei/v1/player"

    _API_KEY_PATTERN = re.compile(r'"INNERTUBE_API_KEY":\s*"([a-zA-Z0-9_-]+)"')

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str,
        accept_language: str = "en-US,en;q=0.9",
        client_name: str = "WEB",
        client_version: str = "2.20231219.00.00",
        interface_language: str = "en",
        region: str = "US",
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._accept_language = accept_language
        self._client_name = client_name
        self._client_version = client_version
        self._hl = interface_language
        self._gl = region
        self._timeout = timeout

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, config: Settings) -> "YouTubeCaptionFetcher":
        return cls(
            client,
            user_agent=config.user_agent,
            accept_language=config.accept_language,
            client_name=config.innertube_client_name,
            client_version=config.innertube_client_version,
            interface_language=config.interface_language,
            region=config.region,
            timeout=config.http_timeout,
        )

    async def fetch_source(self, video_id: str) -> CaptionSource:
        """Run the handshake and return caption tracks plus video metadata.

        Raises:
            NetworkError: On a failed or non-2xx platform request.
            ParseError: If the API key cannot be found in the watch page.
            NoCaptionsError: If the video has no caption tracks.
        """
        html = await self._fetch_watch_page(video_id)
        api_key = self.extract_api_key(html)
        data = await self._fetch_player(video_id, api_key)
        source = self.parse_player_response(video_id, data)
        logger.debug(
            "Found %d caption track(s) for %s: %s",
            len(source.tracks),
            video_id,
            ", ".join(t.language_code for t in source.tracks),
        )
        return source

    async def fetch_caption_document(self, track: CaptionTrack) -> str:
        """Download the raw caption markup for one track."""
        response = await self._request("GET", track.source_url, what="transcript")
        return response.text

    async def _fetch_watch_page(self, video_id: str) -> str:
        response = await self._request(
            "GET",
            self.WATCH_URL,
            what="video page",
            params={"v": video_id},
            headers={"User-Agent": self._user_agent, "Accept-Language": self._accept_language},
        )
        return response.text

    @classmethod
    def extract_api_key(cls, html: str) -> str:
        match = cls._API_KEY_PATTERN.search(html or "")
        if not match:
            raise ParseError(
                "Could not extract InnerTube API key from YouTube page. "
                "The page layout may have changed or the request was blocked."
            )
        return match.group(1)

    async def _fetch_player(self, video_id: str, api_key: str) -> dict[str, Any]:
        body = {
            "context": {
                "client": {
                    "clientName": self._client_name,
                    "clientVersion": self._client_version,
                    "hl": self._hl,
                    "gl": self._gl,
                }
            },
            "videoId": video_id,
        }
        response = await self._request(
            "POST",
            self.PLAYER_URL,
            what="video info",
            params={"key": api_key},
            json=body,
            headers={
                "User-Agent": self._user_agent,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError("Player API returned a non-JSON response") from e
        if not isinstance(data, dict):
            raise ParseError("Player API returned an unexpected payload")
        return data

    @staticmethod
    def parse_player_response(video_id: str, data: dict[str, Any]) -> CaptionSource:
        """Turn a player API payload into a CaptionSource.

        Raises:
            NoCaptionsError: If the caption-track list is missing or empty.
        """
        details = data.get("videoDetails") or {}
        raw_tracks = (
            (data.get("captions") or {})
            .get("playerCaptionsTracklistRenderer", {})
            .get("captionTracks")
        ) or []

        tracks = [
            CaptionTrack(
                language_code=t.get("languageCode", ""),
                source_url=t["baseUrl"],
                name=_track_name(t),
            )
            for t in raw_tracks
            if t.get("baseUrl")
        ]
        if not tracks:
            raise NoCaptionsError("No captions available for this video", {"video_id": video_id})

        return CaptionSource(
            video_id=video_id,
            title=details.get("title") or "YouTube Transcript",
            channel_name=details.get("author") or None,
            tracks=tracks,
            metadata=details,
        )

    async def _request(self, method: str, url: str, *, what: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to fetch {what}: {e}", url=url) from e

        if not response.is_success:
            snippet = response.text[:200] if response.text else "Unknown error"
            raise NetworkError(
                f"Failed to fetch {what}: {response.status_code} {snippet}",
                status_code=response.status_code,
                url=url,
            )
        return response


def _track_name(track: dict[str, Any]) -> str:
    name = track.get("name") or {}
    if "simpleText" in name:
        return name["simpleText"]
    runs = name.get("runs") or []
    return "".join(r.get("text", "") for r in runs)
