# tests/test_orchestrator.py
"""Tests for LLM orchestration: timed requests, error classification and the retry flow."""

import asyncio
import logging
import threading
from unittest.mock import MagicMock

import httpx
import pytest

from conftest import OPENAI_URL, FakeWeb, chat_reply, request_json
from tubescript.errors import (
    AuthError,
    LLMTimeoutError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    UserCancelledError,
)
from tubescript.llm import orchestrator as orchestrator_mod
from tubescript.llm.orchestrator import LLMOrchestrator, first_of
from tubescript.models import FailureReason, PromptOptions, RetryDecision

RAW = "raw words from the captions"
CLEAN = "## Summary\n\nShort.\n\n## Transcript\n\nClean words."


class ScriptedDecider:
    """Returns queued decisions and records what it was asked."""

    def __init__(self, *decisions):
        self.decisions = list(decisions)
        self.contexts = []

    def ask_retry(self, context):
        self.contexts.append(context)
        return self.decisions.pop(0)


class AsyncScriptedDecider(ScriptedDecider):
    async def ask_retry(self, context):
        return super().ask_retry(context)


def ok(content=CLEAN):
    return lambda request: httpx.Response(200, json=chat_reply(content))


def status(code, **kwargs):
    return lambda request: httpx.Response(code, **kwargs)


def slow(seconds=0.3):
    async def handler(request):
        await asyncio.sleep(seconds)
        return httpx.Response(200, json=chat_reply("too late"))

    return handler


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(openai_config, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    def factory(*routes, decider=None, config=None, prompt_options=None, on_status=None):
        web = FakeWeb()
        web.add("POST", OPENAI_URL, list(routes))
        cfg = config or openai_config.model_copy(update={"timeout_minutes": 0.001})
        orch = LLMOrchestrator(
            cfg,
            web.client(),
            prompt_options=prompt_options,
            decider=decider,
            on_status=on_status,
            backoff_seconds=60.0,
            sleep=fake_sleep,
        )
        return orch, web

    return factory


class TestFirstOf:
    @pytest.mark.asyncio
    async def test_operation_wins(self):
        async def quick():
            return "done"

        assert await first_of(quick(), 1.0, lambda: LLMTimeoutError("late")) == "done"

    @pytest.mark.asyncio
    async def test_operation_error_propagates(self):
        async def broken():
            raise ProviderError("boom")

        with pytest.raises(ProviderError, match="boom"):
            await first_of(broken(), 1.0, lambda: LLMTimeoutError("late"))

    @pytest.mark.asyncio
    async def test_timer_wins_and_loser_is_discarded(self):
        finished = []

        async def lagging():
            await asyncio.sleep(0.05)
            finished.append(True)
            return "ignored"

        pending = len(orchestrator_mod._abandoned)
        with pytest.raises(LLMTimeoutError, match="late"):
            await first_of(lagging(), 0.01, lambda: LLMTimeoutError("late"))
        assert len(orchestrator_mod._abandoned) == pending + 1

        await asyncio.sleep(0.1)
        assert finished == [True]
        assert len(orchestrator_mod._abandoned) == pending


class TestProcess:
    @pytest.mark.asyncio
    async def test_success_without_summary(self, make_orchestrator):
        orch, web = make_orchestrator(ok("  Clean words.  "))
        result = await orch.process(RAW, want_summary=False)
        assert result.transcript == "Clean words."
        assert result.summary is None

        body = request_json(web.requests[0])
        assert body["model"] == "gpt-4o-mini"
        assert body["messages"][0]["content"].endswith(f"\nTranscript:\n{RAW}")

    @pytest.mark.asyncio
    async def test_success_with_summary(self, make_orchestrator):
        orch, _ = make_orchestrator(ok())
        result = await orch.process(RAW, want_summary=True)
        assert result.summary == "Short."
        assert result.transcript == CLEAN

    @pytest.mark.asyncio
    async def test_missing_api_key_returns_raw(self, make_orchestrator, openai_config, caplog):
        config = openai_config.model_copy(update={"api_key": "  "})
        orch, web = make_orchestrator(ok(), config=config)
        with caplog.at_level(logging.WARNING):
            result = await orch.process(RAW, want_summary=True)
        assert result.transcript == RAW
        assert result.summary is None
        assert not web.requests
        assert "API key is not configured" in caplog.text

    @pytest.mark.asyncio
    async def test_language_lock_only_when_forced(self, make_orchestrator):
        orch, web = make_orchestrator(ok(), prompt_options=PromptOptions(force_language=True))
        await orch.process(RAW, True, language_hint="de")
        assert "is in German" in request_json(web.requests[0])["messages"][0]["content"]

        orch, web = make_orchestrator(ok())
        await orch.process(RAW, True, language_hint="de")
        assert "German" not in request_json(web.requests[0])["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_status_messages(self, make_orchestrator):
        seen = []
        orch, _ = make_orchestrator(ok(), on_status=seen.append)
        await orch.process(RAW, want_summary=True)
        assert seen[0].startswith("Processing transcript with OpenAI")
        assert seen[-1] is None


class TestTerminalErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code,error",
        [(401, AuthError), (403, AuthError), (404, NotFoundError), (500, ProviderError)],
    )
    async def test_not_retried(self, make_orchestrator, code, error):
        decider = MagicMock()
        orch, web = make_orchestrator(status(code, json={"error": {"message": "nope"}}), decider=decider)
        with pytest.raises(error):
            await orch.process(RAW, want_summary=False)
        decider.ask_retry.assert_not_called()
        assert len(web.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_orchestrator):
        orch, _ = make_orchestrator(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError, match="No response from OpenAI"):
            await orch.process(RAW, want_summary=False)

    @pytest.mark.asyncio
    async def test_non_json_reply(self, make_orchestrator):
        orch, _ = make_orchestrator(status(200, text="<html>proxy</html>"))
        with pytest.raises(ProviderError, match="non-JSON"):
            await orch.process(RAW, want_summary=False)

    @pytest.mark.asyncio
    async def test_transport_failure(self, make_orchestrator):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        orch, _ = make_orchestrator(refuse)
        with pytest.raises(ProviderError, match="request failed"):
            await orch.process(RAW, want_summary=False)


class TestTimeout:
    @pytest.mark.asyncio
    async def test_without_decider_is_terminal(self, make_orchestrator):
        orch, _ = make_orchestrator(slow())
        with pytest.raises(LLMTimeoutError, match="timed out"):
            await orch.process(RAW, want_summary=True)

    @pytest.mark.asyncio
    async def test_decline_returns_raw(self, make_orchestrator):
        decider = ScriptedDecider(RetryDecision.DECLINE_USE_RAW)
        orch, _ = make_orchestrator(slow(), decider=decider)
        result = await orch.process(RAW, want_summary=True)
        assert result.transcript == RAW
        assert result.summary is None
        assert decider.contexts[0].reason is FailureReason.TIMEOUT
        assert decider.contexts[0].provider_name == "OpenAI"

    @pytest.mark.asyncio
    async def test_cancel(self, make_orchestrator):
        orch, _ = make_orchestrator(slow(), decider=ScriptedDecider(RetryDecision.CANCEL))
        with pytest.raises(UserCancelledError):
            await orch.process(RAW, want_summary=True)

    @pytest.mark.asyncio
    async def test_retry_succeeds(self, make_orchestrator, sleeps):
        orch, web = make_orchestrator(slow(), ok(), decider=ScriptedDecider(RetryDecision.RETRY))
        result = await orch.process(RAW, want_summary=True)
        assert result.summary == "Short."
        assert len(web.requests) == 2
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_retry_times_out_again(self, make_orchestrator):
        decider = ScriptedDecider(RetryDecision.RETRY)
        orch, web = make_orchestrator(slow(), slow(), decider=decider)
        with pytest.raises(LLMTimeoutError):
            await orch.process(RAW, want_summary=True)
        assert len(decider.contexts) == 1
        assert len(web.requests) == 2

    @pytest.mark.asyncio
    async def test_retry_hits_rate_limit(self, make_orchestrator):
        orch, _ = make_orchestrator(slow(), status(429), decider=ScriptedDecider(RetryDecision.RETRY))
        with pytest.raises(RateLimitError):
            await orch.process(RAW, want_summary=True)

    @pytest.mark.asyncio
    async def test_async_decider(self, make_orchestrator):
        orch, _ = make_orchestrator(slow(), decider=AsyncScriptedDecider(RetryDecision.DECLINE_USE_RAW))
        result = await orch.process(RAW, want_summary=True)
        assert result.transcript == RAW

    @pytest.mark.asyncio
    async def test_sync_decider_runs_off_the_loop(self, make_orchestrator):
        asked, released = threading.Event(), threading.Event()

        class BlockingDecider:
            def ask_retry(self, context):
                asked.set()
                answered = released.wait(timeout=2)
                return RetryDecision.DECLINE_USE_RAW if answered else RetryDecision.CANCEL

        async def answer_when_asked():
            while not asked.is_set():
                await asyncio.sleep(0.01)
            released.set()

        orch, _ = make_orchestrator(slow(), decider=BlockingDecider())
        answering = asyncio.create_task(answer_when_asked())
        result = await orch.process(RAW, want_summary=True)
        await answering
        assert result.transcript == RAW


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_without_decider_is_terminal(self, make_orchestrator):
        orch, _ = make_orchestrator(status(429, headers={"retry-after": "12"}))
        with pytest.raises(RateLimitError) as exc_info:
            await orch.process(RAW, want_summary=False)
        assert exc_info.value.retry_after == "12"

    @pytest.mark.asyncio
    async def test_retry_twice_limited_falls_back_to_raw(self, make_orchestrator, sleeps):
        decider = ScriptedDecider(RetryDecision.RETRY)
        orch, web = make_orchestrator(status(429), status(429), decider=decider)
        result = await orch.process(RAW, want_summary=True)
        assert result.transcript == RAW
        assert result.summary is None
        assert len(web.requests) == 2
        assert sleeps == [60.0]
        assert len(decider.contexts) == 1

    @pytest.mark.asyncio
    async def test_retry_after_backoff_succeeds(self, make_orchestrator, sleeps):
        orch, _ = make_orchestrator(status(429), ok(), decider=ScriptedDecider(RetryDecision.RETRY))
        result = await orch.process(RAW, want_summary=True)
        assert result.summary == "Short."
        assert sleeps == [60.0]

    @pytest.mark.asyncio
    async def test_context_carries_hint(self, make_orchestrator):
        decider = ScriptedDecider(RetryDecision.DECLINE_USE_RAW)
        orch, _ = make_orchestrator(status(429, headers={"retry-after": "30"}), decider=decider)
        await orch.process(RAW, want_summary=True)
        context = decider.contexts[0]
        assert context.reason is FailureReason.RATE_LIMIT
        assert context.retry_after == "30"
        assert "raw transcript" in context.error_message

    @pytest.mark.asyncio
    async def test_cancel(self, make_orchestrator, sleeps):
        orch, web = make_orchestrator(status(429), decider=ScriptedDecider(RetryDecision.CANCEL))
        with pytest.raises(UserCancelledError):
            await orch.process(RAW, want_summary=True)
        assert sleeps == []
        assert len(web.requests) == 1
