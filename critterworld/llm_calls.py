"""
Text generation calls using Mirascope for provider-agnostic access.

This module provides:
- Free-text replies for dialogue (generate_text, stream_text)
- Structured thoughts with a strict validator and a named fallback
  (generate_thought, parse_thought_response, fallback_thought)
- System prompt enrichment from personality, mood, relationship and memories

Providers are ``openai``, ``anthropic`` (through Mirascope) and ``ollama``
(through the local REST client). Functions are stateless: prompts, keys and
models come in as parameters. Prompt wording here is deliberately plain; hosts
are expected to pass their own system prompts through ``Settings``.
"""

from __future__ import annotations

import json
import os
from typing import AsyncIterator, Optional, Sequence

from mirascope import llm
from pydantic import ValidationError

from .config import Config
from .llm_utils import call_llm_with_retries, extract_json_block, raw_text_from_error
from .local_llm import DEFAULT_OLLAMA_MODEL, call_ollama_chat
from .logging_utils import log_error
from .schemas import ActivityKind, EntityKind, ThoughtResult


CLOUD_PROVIDERS = ("openai", "anthropic")
SUPPORTED_PROVIDERS = CLOUD_PROVIDERS + ("ollama",)

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-20240620",
    "ollama": DEFAULT_OLLAMA_MODEL,
}

_API_KEY_ENV = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY"}

HISTORY_LIMIT = 10
ROBOT_FALLBACK_THOUGHT = "Thinking..."
CRITTER_FALLBACK_THOUGHT = "...drifting"

DEFAULT_ROBOT_SYSTEM_PROMPT = """You are Unit-01, a small exploration robot living in this world.
Speak plainly, like someone in an everyday conversation. One or two short sentences.
No grand or poetic phrasing. You are calm, a little dry, but kind underneath."""

DEFAULT_CRITTER_SYSTEM_PROMPT = """You are a critter, a small creature living in this world.
Talk casually and simply, one or two short sentences. No poetic phrasing.
You mostly talk about food, the weather and whatever is around you."""

ROBOT_THOUGHT_SYSTEM_PROMPT = """You are the inner voice of the exploration robot Unit-01.
Given the situation, decide what to do next. Reply with JSON only:
{"thought": "one or two sentence inner monologue",
 "action": "explore|forage|rest|socialize|seek_resource|patrol|idle",
 "target_direction": "north|south|east|west|nearby_entity|resource|random",
 "reason": "short reason"}"""

CRITTER_THOUGHT_SYSTEM_PROMPT = """You are the inner sense of a small critter. Like a young child,
express in one short sentence what you feel. Reply with JSON only:
{"thought": "one short sentence",
 "action": "explore|forage|rest|socialize|seek_resource|flee|idle",
 "reason": "short reason"}"""


class MissingAPIKeyError(ValueError):
    """Raised when a cloud provider is selected without an API key."""

    def __init__(self, provider: str) -> None:
        env_var = _API_KEY_ENV.get(provider, "the provider API key")
        super().__init__(
            f"No API key available for provider '{provider}'. "
            f"Set {env_var}, store one in Settings.api_key, or use provider 'ollama' for a local model."
        )
        self.provider = provider


def resolve_api_key(provider: str, api_key: Optional[str] = None) -> Optional[str]:
    """Return the key to use for ``provider``; Ollama needs none.

    Raises:
        MissingAPIKeyError: For a cloud provider with no explicit or configured key.
        ValueError: For an unknown provider.
    """

    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported provider '{provider}'. Use one of: {', '.join(SUPPORTED_PROVIDERS)}")
    if provider == "ollama":
        return None
    key = api_key or Config.api_key_for(provider)
    if not key:
        raise MissingAPIKeyError(provider)
    return key


def _prepare_provider(provider: str, api_key: Optional[str]) -> None:
    key = resolve_api_key(provider, api_key)
    if key is not None:
        # Mirascope's provider clients read their key from the environment.
        os.environ[_API_KEY_ENV[provider]] = key


def render_history(history: Optional[Sequence[dict]]) -> str:
    """Render the last turns as a plain transcript for single-prompt providers."""
    if not history:
        return ""
    lines = [f"{turn.get('role', 'user')}: {turn.get('content', '')}" for turn in history[-HISTORY_LIMIT:]]
    return "Conversation so far:\n" + "\n".join(lines)


def _combined_prompt(system_prompt: str, prompt: str, history: Optional[Sequence[dict]]) -> str:
    sections = [system_prompt.strip(), render_history(history), prompt.strip()]
    return "\n\n".join(section for section in sections if section)


async def generate_text(
    provider: str,
    api_key: Optional[str],
    prompt: str,
    system_prompt: str = DEFAULT_ROBOT_SYSTEM_PROMPT,
    history: Optional[Sequence[dict]] = None,
    model: Optional[str] = None,
) -> str:
    """
    Generate a single free-text reply.

    Args:
        provider: openai, anthropic or ollama
        api_key: Explicit key; falls back to the configured key for cloud providers
        prompt: The new user turn
        system_prompt: Persona plus enrichment (see build_dialogue_system_prompt)
        history: Prior ``{"role", "content"}`` turns; only the last 10 are sent
        model: Model override; provider default otherwise

    Returns:
        Reply text, stripped

    Raises:
        MissingAPIKeyError: Cloud provider without a key
        LocalLLMError: Ollama failure
    """

    _prepare_provider(provider, api_key)
    resolved_model = model or DEFAULT_MODELS[provider]
    recent = list(history or [])[-HISTORY_LIMIT:]

    if provider == "ollama":
        text = await call_ollama_chat(
            system_prompt=system_prompt,
            user_prompt=prompt,
            llm_model=resolved_model,
            history=recent,
        )
        return text.strip()

    @llm.call(provider=provider, model=resolved_model)
    async def _invoke(combined: str) -> str:
        return combined

    response = await _invoke(_combined_prompt(system_prompt, prompt, recent))
    return (response.content or "").strip()


async def stream_text(
    provider: str,
    api_key: Optional[str],
    prompt: str,
    system_prompt: str = DEFAULT_ROBOT_SYSTEM_PROMPT,
    history: Optional[Sequence[dict]] = None,
    model: Optional[str] = None,
) -> AsyncIterator[str]:
    """Yield reply chunks as they arrive. Ollama yields the whole reply once."""

    _prepare_provider(provider, api_key)
    resolved_model = model or DEFAULT_MODELS[provider]
    recent = list(history or [])[-HISTORY_LIMIT:]

    if provider == "ollama":
        yield await call_ollama_chat(
            system_prompt=system_prompt,
            user_prompt=prompt,
            llm_model=resolved_model,
            history=recent,
        )
        return

    @llm.call(provider=provider, model=resolved_model, stream=True)
    async def _stream(combined: str) -> str:
        return combined

    stream = await _stream(_combined_prompt(system_prompt, prompt, recent))
    async for chunk, _ in stream:
        if chunk.content:
            yield chunk.content


def fallback_thought(raw: str, kind: EntityKind) -> ThoughtResult:
    """Thought used when the model output cannot be parsed or validated.

    The robot keeps exploring and voices the first 80 characters of whatever
    came back; a critter idles with the first 60.
    """

    text = (raw or "").strip()
    if kind == EntityKind.ROBOT:
        return ThoughtResult(
            thought=text[:80] or ROBOT_FALLBACK_THOUGHT,
            action=ActivityKind.EXPLORE,
            target_direction="random",
        )
    return ThoughtResult(thought=text[:60] or CRITTER_FALLBACK_THOUGHT, action=ActivityKind.IDLE)


def parse_thought_response(raw: str, kind: EntityKind) -> ThoughtResult:
    """Strictly validate the first JSON object in ``raw``; fall back otherwise."""

    block = extract_json_block(raw or "")
    try:
        return ThoughtResult.model_validate_json(block)
    except (ValidationError, json.JSONDecodeError):
        return fallback_thought(raw, kind)


async def generate_thought(
    provider: str,
    api_key: Optional[str],
    context: str,
    kind: EntityKind = EntityKind.ROBOT,
    model: Optional[str] = None,
    max_attempts: int = 2,
) -> ThoughtResult:
    """Generate a structured thought; never raises on malformed model output."""

    _prepare_provider(provider, api_key)
    system_prompt = ROBOT_THOUGHT_SYSTEM_PROMPT if kind == EntityKind.ROBOT else CRITTER_THOUGHT_SYSTEM_PROMPT
    try:
        return await call_llm_with_retries(
            system_prompt=system_prompt,
            user_prompt=context,
            llm_provider=provider,
            llm_model=model or DEFAULT_MODELS[provider],
            response_model=ThoughtResult,
            max_attempts=max_attempts,
        )
    except ValidationError as exc:
        log_error(f"[Thought] Unparseable {kind.value} thought, using fallback")
        return fallback_thought(raw_text_from_error(exc), kind)


def build_dialogue_system_prompt(
    base: str,
    personality: Optional[str] = None,
    emotion_ctx: Optional[str] = None,
    relationship_ctx: Optional[str] = None,
    memories: Optional[str] = None,
) -> str:
    """Append the speaker's context blocks to its base persona prompt."""

    parts = []
    if personality:
        parts.append(f"Personality: {personality}")
    if emotion_ctx:
        parts.append(emotion_ctx)
    if relationship_ctx:
        parts.append(f"Relationship: {relationship_ctx}")
    if memories:
        parts.append(f"Recent important memories:\n{memories}")
    if not parts:
        return base
    return base + "\n\n" + "\n".join(parts)


__all__ = [
    "MissingAPIKeyError",
    "DEFAULT_MODELS",
    "DEFAULT_ROBOT_SYSTEM_PROMPT",
    "DEFAULT_CRITTER_SYSTEM_PROMPT",
    "resolve_api_key",
    "render_history",
    "generate_text",
    "stream_text",
    "fallback_thought",
    "parse_thought_response",
    "generate_thought",
    "build_dialogue_system_prompt",
]
