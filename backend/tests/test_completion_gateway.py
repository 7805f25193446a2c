"""
Tests for the completion gateway, its fallback ladder and prompt truncation.
"""

from typing import List

from app.models.chat import ChatTurn
from app.models.config import LLMConfig, ModelSpec
from app.services.ai_models import (
    AI_MODELS,
    SYSTEM_PROMPT,
    create_system_prompt,
    describe_provider_error,
    estimate_tokens,
    truncate_messages,
)
from app.services.completion_gateway import (
    PLACEHOLDER_CHUNKS,
    CompletionGateway,
    ProviderFailure,
    ProviderSuccess,
    placeholder_stream,
)
from app.services.llm_service import LLMProvider


class WorkingProvider(LLMProvider):

    def __init__(self, chunks: List[str]):
        self.chunks = chunks
        self.calls = []

    async def generate_streaming(self, messages, model, max_tokens, temperature=0.7):
        self.calls.append({"messages": messages, "model": model, "temperature": temperature})
        for chunk in self.chunks:
            yield chunk

    async def health_check(self):
        return True


class BrokenProvider(LLMProvider):

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def generate_streaming(self, messages, model, max_tokens, temperature=0.7):
        self.calls += 1
        raise self.error
        yield  # makes this an async generator

    async def health_check(self):
        return False


class MidStreamFailureProvider(LLMProvider):

    async def generate_streaming(self, messages, model, max_tokens, temperature=0.7):
        yield "partial"
        raise ConnectionError("connection reset")

    async def health_check(self):
        return True


async def collect(stream) -> str:
    return "".join([chunk async for chunk in stream])


def gateway(providers) -> CompletionGateway:
    return CompletionGateway(providers, LLMConfig(placeholder_delay=0.0))


USER_TURN = [ChatTurn(role="user", content="Hello")]


class TestFallbackLadder:

    async def test_broken_primary_falls_through_to_secondary(self):
        broken = BrokenProvider(RuntimeError("Invalid API key"))
        working = WorkingProvider(["Hi", " from", " OpenAI"])

        text = await collect(gateway({"groq": broken, "openai": working}).complete(USER_TURN, "llama3-8b"))

        assert text == "Hi from OpenAI"
        assert broken.calls == 1
        assert working.calls[0]["model"] == "gpt-3.5-turbo"

    async def test_every_provider_failing_yields_placeholder(self):
        providers = {
            "groq": BrokenProvider(RuntimeError("rate limit exceeded")),
            "openai": BrokenProvider(RuntimeError("quota")),
            "anthropic": BrokenProvider(RuntimeError("credit balance too low")),
        }

        text = await collect(gateway(providers).complete(USER_TURN))

        assert text == "".join(PLACEHOLDER_CHUNKS)

    async def test_no_configured_providers_yields_placeholder(self):
        text = await collect(gateway({}).complete(USER_TURN))

        assert text == "".join(PLACEHOLDER_CHUNKS)

    async def test_empty_stream_counts_as_failure(self):
        empty = WorkingProvider([])
        working = WorkingProvider(["ok"])

        text = await collect(gateway({"groq": empty, "openai": working}).complete(USER_TURN))

        assert text == "ok"

    async def test_mid_stream_failure_ends_reply_without_fallback(self):
        backup = WorkingProvider(["should not be used"])

        text = await collect(gateway({"groq": MidStreamFailureProvider(), "openai": backup}).complete(USER_TURN))

        assert text == "partial"
        assert backup.calls == []

    def test_requested_provider_goes_first(self):
        rungs = gateway({}).ladder("claude-3-opus")

        assert [name for name, _ in rungs] == ["anthropic", "groq", "openai"]
        assert rungs[0][1].model == "claude-3-opus-20240229"
        assert rungs[1][1].model == "llama3-8b-8192"

    def test_unknown_model_uses_default(self):
        rungs = gateway({}).ladder("no-such-model")

        assert [name for name, _ in rungs] == ["groq", "openai", "anthropic"]
        assert rungs[0][1] == AI_MODELS["llama3-8b"]

    def test_unknown_model_resolves_against_injected_registry(self):
        local = ModelSpec(name="Local", provider="ollama", model="mistral:7b", context_limit=8192, max_tokens=1024)
        g = CompletionGateway({}, LLMConfig(default_model="local", fallback_order=[]), models={"local": local})

        assert g.ladder("no-such-model") == [("ollama", local)]
        assert g.ladder(None) == [("ollama", local)]

    def test_provider_outside_fallback_order_is_tried_first_only(self):
        rungs = gateway({}).ladder("gemini-1.5-flash")

        assert [name for name, _ in rungs] == ["google", "groq", "openai", "anthropic"]

    async def test_attempt_returns_closed_result_type(self):
        g = gateway({"groq": WorkingProvider(["a"]), "openai": BrokenProvider(ValueError("boom"))})
        spec = AI_MODELS["llama3-8b"]

        success = await g.attempt("groq", spec, USER_TURN)
        failure = await g.attempt("openai", spec, USER_TURN)
        missing = await g.attempt("anthropic", spec, USER_TURN)

        assert isinstance(success, ProviderSuccess)
        assert await collect(success.stream) == "a"
        assert isinstance(failure, ProviderFailure)
        assert failure.reason == "ValueError: boom"
        assert missing.reason == "provider not configured"


class TestPrompt:

    async def test_system_prompt_is_prepended(self):
        working = WorkingProvider(["ok"])

        await collect(gateway({"groq": working}).complete(USER_TURN))

        sent = working.calls[0]["messages"]
        assert sent[0].role == "system"
        assert sent[0].content == SYSTEM_PROMPT
        assert sent[1].content == "Hello"
        assert working.calls[0]["temperature"] == 0.7

    def test_user_context_is_added_to_system_prompt(self):
        prompt = create_system_prompt("likes hiking " * 100)

        assert prompt.startswith(SYSTEM_PROMPT)
        assert "Previous context:" in prompt
        assert len(prompt) < len(SYSTEM_PROMPT) + 700

    def test_token_estimate_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_truncation_keeps_system_and_newest_messages(self):
        system = ChatTurn(role="system", content="abcd")
        turns = [ChatTurn(role="user", content=f"message {i:03d}") for i in range(4)]

        kept = truncate_messages([system] + turns, max_tokens=10)

        assert kept == [system, turns[2], turns[3]]

    def test_truncation_keeps_everything_that_fits(self):
        turns = [ChatTurn(role="user", content="hi"), ChatTurn(role="assistant", content="hello")]

        assert truncate_messages(turns, max_tokens=1000) == turns

    def test_provider_errors_are_described(self):
        assert describe_provider_error(RuntimeError("Rate limit reached")) == "rate limited"
        assert describe_provider_error(RuntimeError("maximum context length exceeded")) == \
            "conversation too long for model context"
        assert describe_provider_error(RuntimeError("Invalid API key")) == "provider authentication failed"


class TestPlaceholder:

    async def test_placeholder_is_three_fixed_chunks(self):
        chunks = [chunk async for chunk in placeholder_stream()]

        assert tuple(chunks) == PLACEHOLDER_CHUNKS

    async def test_placeholder_is_the_same_every_time(self):
        assert await collect(placeholder_stream()) == await collect(placeholder_stream())
