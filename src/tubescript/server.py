"""FastMCP server exposing TranscriptService as MCP tools."""

from fastmcp import FastMCP

from tubescript.config import settings
from tubescript.errors import TubeScriptError
from tubescript.llm.providers import provider_config
from tubescript.models import FormattingOptions, PromptOptions, ProviderKind
from tubescript.service import TranscriptService


mcp = FastMCP(
    name="tubescript",
    instructions=(
        "tubescript fetches YouTube caption transcripts. Use list_caption_languages "
        "to see which languages a video offers, then get_transcript to fetch one, "
        "optionally cleaned up and summarized by an LLM provider."
    ),
)

_service: TranscriptService | None = None


def _get_service() -> TranscriptService:
    """Lazy-initialise the service singleton with default dependencies."""
    global _service
    if _service is None:
        _service = TranscriptService(config=settings)
    return _service


async def get_transcript(
    url: str,
    language: str | None = None,
    include_timestamps: bool = True,
    timestamp_frequency: int = 0,
    provider: str | None = None,
    model: str | None = None,
    summary: bool = False,
    force_language: bool = False,
) -> dict:
    """Fetch the caption transcript of a YouTube video.

    API keys for LLM providers are read from the server's environment.
    Timeouts and rate limits are reported as errors rather than retried.

    Args:
        url: YouTube URL (watch, youtu.be, embed, shorts, live) or bare video ID.
        language: Preferred caption languages, comma-separated (e.g. "de,fr").
        include_timestamps: Insert timestamp links into the transcript.
        timestamp_frequency: Seconds between timestamps; 0 places one per sentence.
        provider: LLM provider for clean-up: openai, gemini, claude. Omit for the raw transcript.
        model: Model id; the provider default is used if omitted.
        summary: Ask the LLM for a summary section as well.
        force_language: Tell the LLM to answer in the caption language.
    """
    llm = None
    if provider:
        try:
            kind = ProviderKind(provider.strip().lower())
        except ValueError:
            return {"error": f"Unknown provider: {provider}"}
        llm = provider_config(kind, model=model, timeout_minutes=settings.llm_timeout_minutes)

    try:
        result = await _get_service().get_transcript(
            url,
            want_summary=summary,
            provider=llm,
            formatting=FormattingOptions(
                include_timestamps=include_timestamps,
                timestamp_frequency=max(timestamp_frequency, 0),
                local_video_extension=settings.local_video_extension,
            ),
            language_preference=language or settings.preferred_languages or None,
            prompt_options=PromptOptions(force_language=force_language),
        )
        return result.model_dump(mode="json", exclude={"metadata"})
    except TubeScriptError as e:
        return {"error": str(e)}


async def list_caption_languages(url: str) -> dict:
    """List the caption tracks available for a YouTube video.

    Args:
        url: YouTube URL or bare video ID.
    """
    try:
        source = await _get_service().list_tracks(url)
    except TubeScriptError as e:
        return {"error": str(e)}
    return {
        "video_id": source.video_id,
        "title": source.title,
        "languages": [
            {"language_code": t.language_code, "name": t.name} for t in source.tracks
        ],
    }


# Registered without rebinding so the coroutines stay directly callable
mcp.tool(annotations={"readOnlyHint": True, "openWorldHint": True})(get_transcript)
mcp.tool(annotations={"readOnlyHint": True, "openWorldHint": True})(list_caption_languages)
