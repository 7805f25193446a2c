"""Model registry, prompt construction and context-window truncation"""

import math
from typing import Dict, List, Optional

from app.models.chat import ChatTurn
from app.models.config import ModelSpec

SYSTEM_PROMPT = "You are a helpful assistant. Be concise and accurate."

# Fraction of max_tokens the prompt may use; the rest is left for the reply
PROMPT_BUDGET = 0.8

AI_MODELS: Dict[str, ModelSpec] = {
    # Groq (primary, lowest latency)
    "llama3-8b": ModelSpec(name="LLaMA 3 8B", provider="groq", model="llama3-8b-8192",
                           context_limit=8192, max_tokens=1500, description="Fast and efficient 8B model"),
    "llama3-70b": ModelSpec(name="LLaMA 3 70B", provider="groq", model="llama3-70b-8192",
                            context_limit=8192, max_tokens=2000, description="High performance 70B model"),
    "mixtral-8x7b": ModelSpec(name="Mixtral 8x7B", provider="groq", model="mixtral-8x7b-32768",
                              context_limit=32768, max_tokens=2000, description="Balanced performance and speed"),
    "gemma2-9b": ModelSpec(name="Gemma2 9B", provider="groq", model="gemma2-9b-it",
                           context_limit=8192, max_tokens=1500, description="Google Gemma2 model"),

    # OpenAI
    "gpt-4": ModelSpec(name="GPT-4", provider="openai", model="gpt-4",
                       context_limit=8000, max_tokens=2000, description="Most capable model"),
    "gpt-4-turbo": ModelSpec(name="GPT-4 Turbo", provider="openai", model="gpt-4-turbo-preview",
                             context_limit=128000, max_tokens=2000, description="Faster with larger context"),
    "gpt-3.5-turbo": ModelSpec(name="GPT-3.5 Turbo", provider="openai", model="gpt-3.5-turbo",
                               context_limit=4000, max_tokens=1500, description="Fast and efficient"),

    # Anthropic
    "claude-3-opus": ModelSpec(name="Claude 3 Opus", provider="anthropic", model="claude-3-opus-20240229",
                               context_limit=200000, max_tokens=2000, description="Anthropic's most capable"),
    "claude-3-sonnet": ModelSpec(name="Claude 3 Sonnet", provider="anthropic", model="claude-3-sonnet-20240229",
                                 context_limit=200000, max_tokens=2000, description="Balanced performance"),
    "claude-3-haiku": ModelSpec(name="Claude 3 Haiku", provider="anthropic", model="claude-3-haiku-20240307",
                                context_limit=200000, max_tokens=1500, description="Fast and affordable"),

    # Google
    "gemini-1.5-flash": ModelSpec(name="Gemini 1.5 Flash", provider="google", model="gemini-1.5-flash",
                                  context_limit=1000000, max_tokens=2000, description="Generous free tier"),
}


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def create_system_prompt(user_context: Optional[str] = None) -> str:
    if user_context and user_context.strip():
        return (
            f"{SYSTEM_PROMPT}\n\n"
            f"Previous context:\n{user_context[:500]}...\n\n"
            "Use this to personalize responses; do not explicitly mention memory."
        )
    return SYSTEM_PROMPT


def truncate_messages(messages: List[ChatTurn], max_tokens: int) -> List[ChatTurn]:
    """
    Fit a message list into the prompt budget.

    The first system message is always kept. Other messages are kept newest
    first until adding the next one would push the estimate past
    PROMPT_BUDGET * max_tokens; everything older than that is dropped.
    """
    budget = max_tokens * PROMPT_BUDGET
    total = 0
    kept: List[ChatTurn] = []

    system = next((m for m in messages if m.role == "system"), None)
    if system is not None:
        total += estimate_tokens(system.content)

    for message in reversed([m for m in messages if m.role != "system"]):
        tokens = estimate_tokens(message.content)
        if total + tokens > budget:
            break
        kept.insert(0, message)
        total += tokens

    if system is not None:
        kept.insert(0, system)
    return kept


def describe_provider_error(error: Exception) -> str:
    """Short, human-readable reason for a provider failure"""
    message = str(error).lower()
    if "rate limit" in message or "rate_limit" in message:
        return "rate limited"
    if "context length" in message or "context_length" in message:
        return "conversation too long for model context"
    if "api key" in message or "api_key" in message or "authentication" in message:
        return "provider authentication failed"
    if "credit balance" in message or "insufficient funds" in message or "quota" in message:
        return "provider account out of credits"
    return f"{error.__class__.__name__}: {error}"
