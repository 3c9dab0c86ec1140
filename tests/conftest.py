# tests/conftest.py
"""Shared fixtures for tubescript tests."""

import inspect
import json

import httpx
import pytest

from tubescript.config import Settings
from tubescript.models import LLMProviderConfig, ProviderKind, TranscriptSegment

VIDEO_ID = "dQw4w9WgXcQ"
API_KEY = "AIzaSyTestKey_123-abc"
WATCH_URL = "https://www.youtube.com/watch"
PLAYER_URL = "https://www.youtube.com/youtubei/v1/player"
TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"


class FakeWeb:
    """Routes httpx requests to canned responses by method and URL (query ignored).

    A route is either a callable ``(request) -> Response`` (sync or
    async) or a list of such callables consumed one per request.
    Unrouted requests get a 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, route) -> None:
        self.routes[(method, url)] = route

    def json(self, method: str, url: str, payload, status: int = 200, headers=None) -> None:
        self.add(method, url, lambda request: httpx.Response(status, json=payload, headers=headers))

    def text(self, method: str, url: str, body: str, status: int = 200, headers=None) -> None:
        self.add(method, url, lambda request: httpx.Response(status, text=body, headers=headers))

    def sent(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if _bare_url(r) == url]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, _bare_url(request)))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        response = route(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _bare_url(request: httpx.Request) -> str:
    url = request.url
    return f"{url.scheme}://{url.host}{url.path}"


def chat_reply(content: str) -> dict:
    """OpenAI-style chat completion body."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def sample_segments():
    """List of TranscriptSegment objects for testing."""
    return [
        TranscriptSegment(start=0.0, text="Hello and welcome to this video."),
        TranscriptSegment(start=5.0, text="Today we'll talk about"),
        TranscriptSegment(start=7.5, text="machine learning."),
        TranscriptSegment(start=9.5, text="Let's start with neural networks."),
        TranscriptSegment(start=65.0, text="Thanks for watching!"),
    ]


@pytest.fixture
def caption_xml():
    """Caption document as served by the timedtext endpoint, entities double-encoded."""
    return (
        '<?xml version="1.0" encoding="utf-8" ?><transcript>'
        '<text start="0.0" dur="5.0">Hello and welcome to this video.</text>'
        '<text start="5.0" dur="4.5">Today we&amp;#39;ll talk about machine learning.</text>'
        '<text start="9.5" dur="6.0">Let&amp;#39;s start with neural networks.</text>'
        '<text start="65.0" dur="4.0">Thanks for watching &amp;amp; see you next time.</text>'
        "</transcript>"
    )


@pytest.fixture
def watch_html():
    return (
        "<!DOCTYPE html><html><head><script>"
        f'ytcfg.set({{"INNERTUBE_API_KEY": "{API_KEY}", "INNERTUBE_CLIENT_NAME": "WEB"}});'
        "</script></head><body></body></html>"
    )


@pytest.fixture
def player_payload():
    """Player API response with English and French caption tracks."""
    return {
        "videoDetails": {
            "videoId": VIDEO_ID,
            "title": "Intro to Machine Learning",
            "author": "TechChannel",
            "lengthSeconds": "70",
        },
        "captions": {
            "playerCaptionsTracklistRenderer": {
                "captionTracks": [
                    {
                        "baseUrl": f"{TIMEDTEXT_URL}?v={VIDEO_ID}&lang=en",
                        "languageCode": "en",
                        "name": {"simpleText": "English"},
                    },
                    {
                        "baseUrl": f"{TIMEDTEXT_URL}?v={VIDEO_ID}&lang=fr",
                        "languageCode": "fr",
                        "name": {"runs": [{"text": "French"}]},
                    },
                ]
            }
        },
    }


@pytest.fixture
def web(watch_html, player_payload, caption_xml):
    """FakeWeb serving a complete, healthy YouTube handshake."""
    fake = FakeWeb()
    fake.text("GET", WATCH_URL, watch_html)
    fake.add("POST", PLAYER_URL, lambda request: httpx.Response(200, json=player_payload))

    def timedtext(request):
        if request.url.params.get("lang") == "fr":
            return httpx.Response(
                200, text='<transcript><text start="1.0">Bonjour tout le monde.</text></transcript>'
            )
        return httpx.Response(200, text=caption_xml)

    fake.add("GET", TIMEDTEXT_URL, timedtext)
    return fake


@pytest.fixture
def fast_settings():
    """Settings with no backoff so rate-limit retries run instantly."""
    return Settings(rate_limit_backoff_seconds=0)


@pytest.fixture
def openai_config():
    return LLMProviderConfig(
        id="openai",
        display_name="OpenAI",
        kind=ProviderKind.OPENAI,
        api_key="sk-test",
        model="gpt-4o-mini",
    )


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content)
