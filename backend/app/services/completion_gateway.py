"""
Chat completion gateway.

Tries providers in order until one starts streaming. The requested model only
decides which provider goes first; after that the configured fallback order
applies. If every provider fails, a fixed placeholder reply is streamed so the
caller always gets a valid response.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

from app.models.chat import ChatTurn
from app.models.config import LLMConfig, ModelSpec
from app.services.ai_models import (
    AI_MODELS,
    create_system_prompt,
    describe_provider_error,
    truncate_messages,
)
from app.services.llm_service import LLMProvider, create_configured_providers
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()

PLACEHOLDER_CHUNKS = (
    "I'm here and listening. ",
    "Enable GROQ_API_KEY, OPENAI_API_KEY or ANTHROPIC_API_KEY for real AI responses. ",
    "Streaming is functioning correctly.",
)


@dataclass
class ProviderSuccess:
    provider: str
    model: str
    stream: AsyncIterator[str]


@dataclass
class ProviderFailure:
    provider: str
    reason: str


ProviderResult = Union[ProviderSuccess, ProviderFailure]


async def _prepend(first: str, rest: AsyncIterator[str]) -> AsyncIterator[str]:
    yield first
    async for chunk in rest:
        yield chunk


async def placeholder_stream(delay: float = 0.0) -> AsyncIterator[str]:
    """The reply streamed when no provider could answer"""
    for chunk in PLACEHOLDER_CHUNKS:
        if delay:
            await asyncio.sleep(delay)
        yield chunk


class CompletionGateway:
    """Streams a completion from the first provider on the ladder that works"""

    def __init__(
        self,
        providers: Dict[str, LLMProvider],
        config: Optional[LLMConfig] = None,
        models: Optional[Dict[str, ModelSpec]] = None
    ):
        self.providers = providers
        self.config = config or LLMConfig()
        self.models = models or AI_MODELS

    def ladder(self, model_id: Optional[str]) -> List[Tuple[str, ModelSpec]]:
        """Providers to try, in order, each paired with the model it should run"""
        requested = self.models.get(model_id) if model_id else None
        if requested is None:
            requested = self.models[self.config.default_model]

        rungs = [(requested.provider, requested)]
        for provider_name in self.config.fallback_order:
            if provider_name == requested.provider:
                continue
            fallback_id = self.config.fallback_models.get(provider_name)
            spec = self.models.get(fallback_id) if fallback_id else None
            if spec is None:
                logger.warning(f"No fallback model configured for provider {provider_name}, skipping")
                continue
            rungs.append((provider_name, spec))
        return rungs

    async def attempt(
        self,
        provider_name: str,
        spec: ModelSpec,
        messages: List[ChatTurn],
        user_context: Optional[str] = None
    ) -> ProviderResult:
        """
        Run one rung of the ladder.

        The first chunk is pulled before returning so that auth, rate-limit
        and network errors surface here as a ProviderFailure instead of
        halfway through the caller's response.
        """
        provider = self.providers.get(provider_name)
        if provider is None:
            return ProviderFailure(provider_name, "provider not configured")

        prompt = [ChatTurn(role="system", content=create_system_prompt(user_context))] + list(messages)
        prompt = truncate_messages(prompt, spec.max_tokens)

        logger.info(f"Trying {provider_name} ({spec.model}) with {len(prompt)} messages")
        try:
            stream = provider.generate_streaming(
                prompt,
                model=spec.model,
                max_tokens=spec.max_tokens,
                temperature=self.config.temperature
            )
            first = await stream.__anext__()
        except StopAsyncIteration:
            return ProviderFailure(provider_name, "empty response")
        except Exception as e:
            return ProviderFailure(provider_name, describe_provider_error(e))

        return ProviderSuccess(provider_name, spec.model, _prepend(first, stream))

    async def complete(
        self,
        messages: List[ChatTurn],
        model_id: Optional[str] = None,
        user_context: Optional[str] = None
    ) -> AsyncIterator[str]:
        """Stream text chunks for a conversation; never raises for provider errors"""
        for provider_name, spec in self.ladder(model_id):
            result = await self.attempt(provider_name, spec, messages, user_context)

            if isinstance(result, ProviderFailure):
                logger.warning(f"Provider {result.provider} failed: {result.reason}")
                continue

            logger.info(f"Streaming completion from {result.provider} ({result.model})")
            try:
                async for chunk in result.stream:
                    yield chunk
            except Exception as e:
                # Part of the reply is already out; switching provider now would garble it
                logger.error(f"Provider {result.provider} failed mid-stream: {describe_provider_error(e)}")
            return

        logger.warning("All providers failed, streaming placeholder reply")
        async for chunk in placeholder_stream(self.config.placeholder_delay):
            yield chunk


# Global instance
_gateway: Optional[CompletionGateway] = None


def get_completion_gateway() -> CompletionGateway:
    """Get the global completion gateway"""
    global _gateway
    if _gateway is None:
        _gateway = CompletionGateway(
            create_configured_providers(),
            LLMConfig(**get_config().get_section('llm'))
        )
    return _gateway
