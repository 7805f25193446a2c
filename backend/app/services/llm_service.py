"""LLM service with multi-provider support"""

from abc import ABC, abstractmethod
from typing import Dict, List, AsyncIterator, Optional
import os

import openai
from anthropic import AsyncAnthropic
from groq import AsyncGroq
import google.generativeai as genai

from app.models.chat import ChatTurn
from app.utils.logger import get_logger

logger = get_logger()

API_KEY_ENV_VARS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    name: str = ""

    @abstractmethod
    async def generate_streaming(
        self,
        messages: List[ChatTurn],
        model: str,
        max_tokens: int,
        temperature: float = 0.7
    ) -> AsyncIterator[str]:
        """Generate streaming response"""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is reachable"""
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation"""

    name = "openai"

    def __init__(self, api_key: str):
        self.client = openai.AsyncOpenAI(api_key=api_key)

    async def generate_streaming(
        self,
        messages: List[ChatTurn],
        model: str,
        max_tokens: int,
        temperature: float = 0.7
    ) -> AsyncIterator[str]:
        """Generate streaming response from OpenAI"""
        stream = await self.client.chat.completions.create(
            model=model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True
        )

        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content

    async def health_check(self) -> bool:
        """Check OpenAI API connectivity"""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.error(f"OpenAI health check failed: {e}")
            return False


class GroqProvider(LLMProvider):
    """Groq provider implementation (OpenAI-compatible chat API, lowest latency)"""

    name = "groq"

    def __init__(self, api_key: str):
        self.client = AsyncGroq(api_key=api_key)

    async def generate_streaming(
        self,
        messages: List[ChatTurn],
        model: str,
        max_tokens: int,
        temperature: float = 0.7
    ) -> AsyncIterator[str]:
        """Generate streaming response from Groq"""
        stream = await self.client.chat.completions.create(
            model=model,
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
            stream=True
        )

        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield chunk.choices[0].delta.content

    async def health_check(self) -> bool:
        """Check Groq API connectivity"""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.error(f"Groq health check failed: {e}")
            return False


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider implementation"""

    name = "anthropic"

    def __init__(self, api_key: str):
        self.client = AsyncAnthropic(api_key=api_key)

    async def generate_streaming(
        self,
        messages: List[ChatTurn],
        model: str,
        max_tokens: int,
        temperature: float = 0.7
    ) -> AsyncIterator[str]:
        """Generate streaming response from Claude"""

        # Claude takes the system prompt separately from the turns
        system_message = "\n\n".join(m.content for m in messages if m.role == "system")
        anthropic_messages = [
            {"role": m.role, "content": m.content}
            for m in messages if m.role != "system"
        ]

        async with self.client.messages.stream(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_message,
            messages=anthropic_messages
        ) as stream:
            async for text in stream.text_stream:
                yield text

    async def health_check(self) -> bool:
        """Check Anthropic API connectivity"""
        try:
            await self.client.models.list()
            return True
        except Exception as e:
            logger.error(f"Anthropic health check failed: {e}")
            return False


class GoogleProvider(LLMProvider):
    """Google Gemini provider implementation"""

    name = "google"

    def __init__(self, api_key: str):
        genai.configure(api_key=api_key)

    async def generate_streaming(
        self,
        messages: List[ChatTurn],
        model: str,
        max_tokens: int,
        temperature: float = 0.7
    ) -> AsyncIterator[str]:
        """Generate streaming response from Gemini"""
        system_instruction = "\n\n".join(m.content for m in messages if m.role == "system") or None
        generative_model = genai.GenerativeModel(model, system_instruction=system_instruction)

        prompt = "".join(
            f"{m.role.capitalize()}: {m.content}\n"
            for m in messages if m.role != "system"
        )

        response = await generative_model.generate_content_async(
            prompt,
            generation_config=genai.types.GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_tokens
            ),
            stream=True
        )

        async for chunk in response:
            if chunk.text:
                yield chunk.text

    async def health_check(self) -> bool:
        """Check Google API connectivity"""
        try:
            genai.list_models()
            return True
        except Exception as e:
            logger.error(f"Google health check failed: {e}")
            return False


PROVIDER_CLASSES = {
    "groq": GroqProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def create_llm_provider(provider_name: str, api_key: Optional[str] = None) -> LLMProvider:
    """Factory function to create an LLM provider"""
    if provider_name not in PROVIDER_CLASSES:
        raise ValueError(f"Unknown LLM provider: {provider_name}")

    if api_key is None:
        api_key = os.getenv(API_KEY_ENV_VARS[provider_name], "")

    logger.info(f"Initializing {provider_name} provider")
    return PROVIDER_CLASSES[provider_name](api_key)


def configured_providers() -> List[str]:
    """Names of providers that have an API key in the environment"""
    return [name for name, env_var in API_KEY_ENV_VARS.items() if os.getenv(env_var)]


def create_configured_providers() -> Dict[str, LLMProvider]:
    """Create every provider that has an API key; the rest are simply absent"""
    return {name: create_llm_provider(name) for name in configured_providers()}
