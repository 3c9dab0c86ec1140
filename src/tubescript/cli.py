"""CLI interface, a thin wrapper over TranscriptService and the FastMCP server."""

import asyncio
import logging
from pathlib import Path

import httpx
import typer

from tubescript.config import settings
from tubescript.errors import TubeScriptError, UserCancelledError
from tubescript.llm.catalog import DEFAULT_MODEL_LISTS, fetch_models
from tubescript.llm.providers import api_key_from_env, provider_config
from tubescript.models import (
    FormattingOptions,
    LLMProviderConfig,
    PromptOptions,
    ProviderKind,
    RetryContext,
    RetryDecision,
)
from tubescript.service import TranscriptService


app = typer.Typer(
    name="tubescript",
    help="Fetch YouTube caption transcripts and clean them up with an LLM.",
    no_args_is_help=True,
)

_CHOICES = {
    "r": RetryDecision.RETRY,
    "u": RetryDecision.DECLINE_USE_RAW,
    "c": RetryDecision.CANCEL,
}


class PromptRetryDecider:
    """Asks the user at the terminal what to do after a timeout or rate limit."""

    def ask_retry(self, context: RetryContext) -> RetryDecision:
        typer.echo(f"⚠️  {context.error_message}", err=True)
        while True:
            answer = typer.prompt(
                f"[r]etry {context.provider_name}, [u]se raw transcript, or [c]ancel?",
                default="u",
                err=True,
            )
            decision = _CHOICES.get(answer.strip().lower()[:1])
            if decision is not None:
                return decision
            typer.echo("Please answer r, u or c.", err=True)


def _get_service() -> TranscriptService:
    """Create a service instance with default dependencies."""
    return TranscriptService(config=settings)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _parse_headers(values: list[str] | None) -> dict[str, str]:
    headers = {}
    for value in values or []:
        key, sep, val = value.partition(":")
        if not sep or not key.strip():
            typer.echo(f"❌ Invalid header {value!r}, expected KEY:VALUE", err=True)
            raise typer.Exit(code=1)
        headers[key.strip()] = val.strip()
    return headers


def _show_status(message: str | None) -> None:
    if message:
        typer.echo(f"… {message}", err=True)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="YouTube URL or 11-character video ID."),
    summary: bool = typer.Option(False, "--summary", "-s", help="Ask the LLM for a summary as well."),
    provider: ProviderKind | None = typer.Option(None, "--provider", "-p", help="LLM provider for clean-up."),
    model: str | None = typer.Option(None, "--model", "-m", help="Model id (provider default if omitted)."),
    api_key: str | None = typer.Option(None, "--api-key", help="API key (read from the environment if omitted)."),
    endpoint: str = typer.Option("", "--endpoint", help="Endpoint URL, required for the custom provider."),
    header: list[str] | None = typer.Option(None, "--header", "-H", help="Extra request header KEY:VALUE (repeatable)."),
    timeout: float = typer.Option(settings.llm_timeout_minutes, "--timeout", help="LLM timeout in minutes."),
    lang: str = typer.Option(settings.preferred_languages, "--lang", "-l", help="Preferred caption languages, e.g. 'de,fr'."),
    timestamps: bool = typer.Option(True, "--timestamps/--no-timestamps", help="Insert timestamp links."),
    frequency: int = typer.Option(0, "--frequency", min=0, help="Seconds between timestamps (0 = every sentence)."),
    local_dir: str = typer.Option("", "--local-dir", help="Link timestamps to a local video file in this directory."),
    timestamps_in_llm: bool = typer.Option(False, "--timestamps-in-llm", help="Send the timestamped text to the LLM."),
    force_language: bool = typer.Option(False, "--force-language", help="Tell the LLM to keep the caption language."),
    output: str | None = typer.Option(None, "--output", "-o", help="Save the transcript to a file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Fetch a video's transcript, optionally cleaned up and summarized by an LLM."""
    _configure_logging(verbose)

    llm: LLMProviderConfig | None = None
    if provider is not None:
        llm = provider_config(
            provider,
            api_key=api_key,
            model=model,
            endpoint=endpoint,
            timeout_minutes=timeout,
            extra_headers=_parse_headers(header),
        )
    formatting = FormattingOptions(
        include_timestamps=timestamps,
        timestamp_frequency=frequency,
        local_video_directory=local_dir,
        local_video_extension=settings.local_video_extension,
        include_timestamps_in_llm=timestamps_in_llm,
    )

    svc = _get_service()
    try:
        result = asyncio.run(
            svc.get_transcript(
                url,
                want_summary=summary,
                provider=llm,
                formatting=formatting,
                language_preference=lang or None,
                prompt_options=PromptOptions(force_language=force_language),
                decider=PromptRetryDecider(),
                on_status=_show_status,
            )
        )
    except UserCancelledError:
        raise typer.Exit(code=1)
    except TubeScriptError as e:
        typer.echo(f"❌ {e.message}", err=True)
        raise typer.Exit(code=1)

    rendered = f"# {result.title}\n\n{result.transcript}\n"
    if output:
        Path(output).write_text(rendered, encoding="utf-8")
        typer.echo(f"✅ Transcript saved: {output}")
    else:
        typer.echo(rendered)


@app.command()
def languages(url: str = typer.Argument(..., help="YouTube URL or 11-character video ID.")) -> None:
    """List the caption languages available for a video."""
    svc = _get_service()
    try:
        source = asyncio.run(svc.list_tracks(url))
    except TubeScriptError as e:
        typer.echo(f"❌ {e.message}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"{source.title} ({source.video_id})")
    if not source.tracks:
        typer.echo("No caption tracks available.")
        return
    for i, track in enumerate(source.tracks, 1):
        typer.echo(f"  {i}. {track.language_code:<8s} {track.name}")


@app.command()
def models(
    provider: ProviderKind = typer.Argument(..., help="Provider to list models for."),
    api_key: str | None = typer.Option(None, "--api-key", help="API key (read from the environment if omitted)."),
) -> None:
    """List chat models offered by a provider.

    Without an API key the built-in default list is shown.
    """
    key = api_key if api_key is not None else api_key_from_env(provider)
    if not key and provider in DEFAULT_MODEL_LISTS:
        typer.echo(f"No {provider.value} API key configured; showing defaults.", err=True)
        found = DEFAULT_MODEL_LISTS[provider]
    else:
        try:
            found = asyncio.run(_fetch_models(provider, key))
        except TubeScriptError as e:
            typer.echo(f"❌ {e.message}", err=True)
            raise typer.Exit(code=1)

    for info in found:
        label = f"  {info.display_name}" if info.display_name else ""
        typer.echo(f"  {info.id}{label}")


async def _fetch_models(provider: ProviderKind, api_key: str):
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        return await fetch_models(provider, api_key, client)


@app.command()
def serve(
    stdio: bool = typer.Option(False, "--stdio", help="Use stdio transport instead of HTTP."),
    host: str = typer.Option(settings.host, "--host", help="Host to bind to."),
    port: int = typer.Option(settings.port, "--port", help="Port to bind to."),
) -> None:
    """Start the tubescript MCP server."""
    from tubescript.server import mcp

    if stdio:
        typer.echo("Starting tubescript MCP server (stdio)...", err=True)
        mcp.run(transport="stdio")
    else:
        typer.echo(f"Starting tubescript MCP server on http://{host}:{port}/mcp")
        mcp.run(transport="streamable-http", host=host, port=port)
