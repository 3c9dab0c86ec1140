"""LLM post-processing: prompt, timed request, failure classification, retry flow."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

import httpx

from tubescript.errors import LLMTimeoutError, ProviderError, RateLimitError, UserCancelledError
from tubescript.llm.parser import parse_llm_response
from tubescript.llm.prompt import build_prompt, processing_status
from tubescript.llm.providers import LLMProviderAdapter, ProviderRequest, get_adapter
from tubescript.models import (
    FailureReason,
    LLMProviderConfig,
    LLMResponse,
    PromptOptions,
    RetryContext,
    RetryDecision,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

StatusCallback = Callable[[str | None], None]

# Requests that lost a timeout race; held so they are not garbage collected mid-flight
_abandoned: set[asyncio.Future] = set()


class RetryDecider(Protocol):
    """Resolves what to do after a timeout or rate limit.

    Implementations may be sync or async.
    """

    def ask_retry(self, context: RetryContext) -> RetryDecision | Awaitable[RetryDecision]: ...


async def first_of(operation: Awaitable[T], timeout: float, on_timeout: Callable[[], BaseException]) -> T:
    """Race ``operation`` against a timer and return whichever settles first.

    The outcome future is assigned once; a request that loses the race
    keeps running in the background but its result is dropped.
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future = loop.create_future()
    task = asyncio.ensure_future(operation)

    def settle_from_task(done: asyncio.Future) -> None:
        _abandoned.discard(done)
        if done.cancelled():
            if not outcome.done():
                outcome.cancel()
            return
        exc = done.exception()
        if outcome.done():
            return
        if exc is not None:
            outcome.set_exception(exc)
        else:
            outcome.set_result(done.result())

    def settle_from_timer() -> None:
        if not outcome.done():
            _abandoned.add(task)
            outcome.set_exception(on_timeout())

    task.add_done_callback(settle_from_task)
    timer = loop.call_later(timeout, settle_from_timer)
    try:
        return await outcome
    finally:
        timer.cancel()
        if outcome.cancelled():
            task.cancel()


class LLMOrchestrator:
    """Runs one transcript through one provider.

    Recoverable failures (timeout, rate limit) go to the decision
    collaborator; without one they are raised like any other error.
    """

    def __init__(
        self,
        config: LLMProviderConfig,
        client: httpx.AsyncClient,
        *,
        prompt_options: PromptOptions | None = None,
        decider: RetryDecider | None = None,
        on_status: StatusCallback | None = None,
        backoff_seconds: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._adapter: LLMProviderAdapter = get_adapter(config)
        self._client = client
        self._prompt_options = prompt_options or PromptOptions()
        self._decider = decider
        self._on_status = on_status
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @property
    def provider_name(self) -> str:
        return self._adapter.name

    def build_prompt(self, transcript: str, want_summary: bool, language_hint: str | None = None) -> str:
        options = self._prompt_options
        return build_prompt(
            options.base_prompt,
            transcript,
            want_summary,
            preserve_timestamps=options.preserve_timestamps,
            language_code=language_hint if options.force_language else None,
        )

    async def process(
        self, transcript: str, want_summary: bool, language_hint: str | None = None
    ) -> LLMResponse:
        """Clean up (and optionally summarize) ``transcript``.

        Returns the input unchanged with no summary when no API key is
        configured or the user declines a retry.

        Raises:
            AuthError, NotFoundError, ProviderError: Misconfiguration or provider failure.
            LLMTimeoutError, RateLimitError: Recoverable failures nobody chose to recover from.
            UserCancelledError: The user aborted.
        """
        name = self.provider_name
        if not self._config.has_api_key:
            logger.warning(
                "%s processing requested but API key is not configured. Using raw transcript instead.",
                name,
            )
            return LLMResponse(transcript=transcript, summary=None)

        prompt = self.build_prompt(transcript, want_summary, language_hint)
        logger.info("Processing transcript with %s (%s), summary=%s", name, self._adapter.model, want_summary)
        logger.debug("Prompt length: %d chars", len(prompt))
        self._status(processing_status(name))
        try:
            try:
                return await self._attempt(prompt, want_summary)
            except LLMTimeoutError as e:
                return await self._recover(e, FailureReason.TIMEOUT, transcript, prompt, want_summary)
            except RateLimitError as e:
                return await self._recover(e, FailureReason.RATE_LIMIT, transcript, prompt, want_summary)
        finally:
            self._status(None)

    async def _attempt(self, prompt: str, want_summary: bool) -> LLMResponse:
        request = self._adapter.build_request(prompt)
        timeout = self._adapter.timeout_seconds
        response = await first_of(self._send(request), timeout, lambda: self._timeout_error(timeout))

        if not response.is_success:
            raise self._adapter.classify_error(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.provider_name} returned a non-JSON response",
                self.provider_name,
                status_code=response.status_code,
                body=response.text[:200],
            ) from e

        text = self._adapter.extract_text(payload) if isinstance(payload, dict) else None
        if not text or not text.strip():
            raise ProviderError(f"No response from {self.provider_name}", self.provider_name)
        return parse_llm_response(text.strip(), want_summary)

    async def _send(self, request: ProviderRequest) -> httpx.Response:
        try:
            return await self._client.post(
                request.url,
                json=request.json,
                headers=request.headers,
                params=request.params or None,
                timeout=None,  # the race in first_of owns the deadline
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.provider_name} request failed: {e}", self.provider_name) from e

    async def _recover(
        self,
        error: LLMTimeoutError | RateLimitError,
        reason: FailureReason,
        transcript: str,
        prompt: str,
        want_summary: bool,
    ) -> LLMResponse:
        name = self.provider_name
        if self._decider is None:
            raise error

        self._status(None)
        message = error.message
        if reason is FailureReason.RATE_LIMIT:
            message += (
                "\n\nYou can retry after waiting a few minutes, or use the raw transcript "
                f"without {name} processing."
            )
        context = RetryContext(
            provider_name=name,
            reason=reason,
            error_message=message,
            retry_after=getattr(error, "retry_after", None),
        )
        ask = self._decider.ask_retry
        if inspect.iscoroutinefunction(ask):
            decision = await ask(context)
        else:
            # Sync deciders may block on terminal input; keep the loop running
            decision = await asyncio.to_thread(ask, context)
            if inspect.isawaitable(decision):
                decision = await decision

        if decision == RetryDecision.CANCEL:
            raise UserCancelledError(provider=name) from error
        if decision == RetryDecision.DECLINE_USE_RAW:
            logger.warning("Using raw transcript (%s processing skipped after %s)", name, reason.value)
            return LLMResponse(transcript=transcript, summary=None)

        if reason is FailureReason.RATE_LIMIT:
            self._status(f"Waiting before retrying {name} processing (rate limit)...")
            await self._sleep(self._backoff_seconds)
        self._status(f"Retrying {name} processing...")

        try:
            return await self._attempt(prompt, want_summary)
        except RateLimitError:
            if reason is not FailureReason.RATE_LIMIT:
                raise
            logger.warning("Still rate limited by %s. Using raw transcript instead.", name)
            return LLMResponse(transcript=transcript, summary=None)

    def _timeout_error(self, seconds: float) -> LLMTimeoutError:
        minutes = seconds / 60.0
        unit = "minute" if minutes == 1 else "minutes"
        return LLMTimeoutError(
            f"{self.provider_name} request timed out after {minutes:g} {unit}", self.provider_name
        )

    def _status(self, message: str | None) -> None:
        if self._on_status is not None:
            self._on_status(message)
