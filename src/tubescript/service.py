"""Core business logic for tubescript."""

import logging
from collections.abc import Iterable

import httpx

from tubescript.config import Settings
from tubescript.formatting import format_plain, format_transcript
from tubescript.ingestion.captions import parse_caption_xml
from tubescript.ingestion.youtube import (
    YouTubeCaptionFetcher,
    parse_video_id,
    select_caption_track,
    watch_url,
)
from tubescript.llm.orchestrator import LLMOrchestrator, RetryDecider, StatusCallback
from tubescript.models import (
    CaptionSource,
    FormattingOptions,
    LLMProviderConfig,
    PromptOptions,
    TranscriptResult,
)

logger = logging.getLogger(__name__)


class TranscriptService:
    """Single orchestration point: URL in, TranscriptResult out.

    Both the CLI and MCP server are thin wrappers over this class. The
    service holds no per-call state, so one instance can serve
    concurrent calls. Pass ``client`` to share a connection pool (and
    to inject a transport in tests); otherwise each call opens and
    closes its own.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, config: Settings | None = None) -> None:
        self._client = client
        self._config = config or Settings()

    async def get_transcript(
        self,
        url_or_id: str,
        want_summary: bool = False,
        provider: LLMProviderConfig | None = None,
        formatting: FormattingOptions | None = None,
        language_preference: str | Iterable[str] | None = None,
        *,
        prompt_options: PromptOptions | None = None,
        decider: RetryDecider | None = None,
        on_status: StatusCallback | None = None,
    ) -> TranscriptResult:
        """Fetch, parse, format and optionally LLM-process a video transcript.

        Args:
            url_or_id: Any supported YouTube URL or a bare video ID.
            want_summary: Ask the LLM for a summary section.
            provider: LLM provider to run the transcript through; None skips the LLM.
            formatting: Timestamp policy for the rendered text.
            language_preference: Ordered caption languages, e.g. ``"de,fr"``.
            prompt_options: Base prompt and language lock settings.
            decider: Resolves retry/decline/cancel on timeouts and rate limits.
            on_status: Receives progress messages; None clears the status.

        Raises:
            AcquisitionError: Bad input, platform failure, or no captions.
            LLMError: Terminal LLM failure, or UserCancelledError.
        """
        formatting = formatting or FormattingOptions()
        video_id = parse_video_id(url_or_id)
        logger.info("Fetching transcript for %s", video_id)

        def status(message: str | None) -> None:
            if on_status is not None:
                on_status(message)

        try:
            if self._client is not None:
                return await self._run(
                    self._client, video_id, want_summary, provider, formatting,
                    language_preference, prompt_options, decider, status,
                )
            async with httpx.AsyncClient(follow_redirects=True) as client:
                return await self._run(
                    client, video_id, want_summary, provider, formatting,
                    language_preference, prompt_options, decider, status,
                )
        finally:
            status(None)

    async def list_tracks(self, url_or_id: str) -> CaptionSource:
        """Run only the handshake and return the available caption tracks."""
        video_id = parse_video_id(url_or_id)
        if self._client is not None:
            return await self._fetcher(self._client).fetch_source(video_id)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._fetcher(client).fetch_source(video_id)

    async def _run(
        self,
        client: httpx.AsyncClient,
        video_id: str,
        want_summary: bool,
        provider: LLMProviderConfig | None,
        formatting: FormattingOptions,
        language_preference,
        prompt_options: PromptOptions | None,
        decider: RetryDecider | None,
        status: StatusCallback,
    ) -> TranscriptResult:
        fetcher = self._fetcher(client)

        status("Fetching video information...")
        source = await fetcher.fetch_source(video_id)
        track = select_caption_track(
            source.tracks, language_preference, default_language=self._config.interface_language
        )
        logger.debug("Selected caption track %s for %s", track.language_code, video_id)

        status("Fetching transcript data...")
        document = await fetcher.fetch_caption_document(track)
        segments = parse_caption_xml(document)

        url = watch_url(video_id)
        transcript = format_transcript(segments, video_id, formatting, url)
        summary = None

        if provider is not None:
            send_timestamps = formatting.include_timestamps and formatting.include_timestamps_in_llm
            llm_input = transcript if send_timestamps else format_plain(segments)
            options = prompt_options or PromptOptions()
            options = options.model_copy(update={"preserve_timestamps": send_timestamps})
            orchestrator = LLMOrchestrator(
                provider,
                client,
                prompt_options=options,
                decider=decider,
                on_status=status,
                backoff_seconds=self._config.rate_limit_backoff_seconds,
            )
            processed = await orchestrator.process(llm_input, want_summary, track.language_code)
            transcript, summary = processed.transcript, processed.summary
        elif want_summary:
            logger.warning("Summary generation requested but no LLM provider is configured. Using raw transcript.")

        logger.info("Transcript ready for %s (%d segments)", video_id, len(segments))
        return TranscriptResult(
            transcript=transcript,
            title=source.title,
            summary=summary,
            channel_name=source.channel_name,
            metadata=source.metadata or None,
            video_id=video_id,
            language_code=track.language_code,
        )

    def _fetcher(self, client: httpx.AsyncClient) -> YouTubeCaptionFetcher:
        return YouTubeCaptionFetcher.from_settings(client, self._config)
