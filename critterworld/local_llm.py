"""Utilities for calling a locally hosted Ollama server."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Sequence
from urllib import error, request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1"
_CHAT_ENDPOINT = "/api/chat"


class LocalLLMError(RuntimeError):
    """Raised when a local LLM invocation fails."""


def _perform_ollama_request(
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> str:
    """Execute the blocking HTTP request against the Ollama REST API."""

    url = f"{base_url.rstrip('/')}{_CHAT_ENDPOINT}"
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.code}: {body or exc.reason}. "
            f"Check that the model is pulled (`ollama pull {payload.get('model')}`)."
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(
            f"Could not reach Ollama at {url}: {exc.reason}. "
            "Start it with `ollama serve` or set LOCAL_LLM_BASE_URL."
        ) from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    content = (parsed.get("message") or {}).get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")

    return content


def build_ollama_messages(
    system_prompt: str,
    user_prompt: str,
    history: Sequence[dict[str, str]] | None = None,
) -> list[dict[str, str]]:
    """System message, prior turns (user/assistant only), then the new user turn."""

    messages: list[dict[str, str]] = []
    if system_prompt.strip():
        messages.append({"role": "system", "content": system_prompt.strip()})
    for turn in history or []:
        role = "assistant" if turn.get("role") == "assistant" else "user"
        messages.append({"role": role, "content": turn.get("content", "")})
    messages.append({"role": "user", "content": user_prompt.strip()})
    return messages


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str | None = None,
    history: Sequence[dict[str, str]] | None = None,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> str:
    """Invoke a local Ollama model and return the assistant text."""

    resolved_base = (
        base_url or os.getenv("LOCAL_LLM_BASE_URL") or DEFAULT_OLLAMA_BASE_URL
    ).rstrip("/")

    if not user_prompt.strip():
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.")

    payload = {
        "model": llm_model or DEFAULT_OLLAMA_MODEL,
        "messages": build_ollama_messages(system_prompt, user_prompt, history),
        "stream": False,
    }

    return await asyncio.to_thread(
        _perform_ollama_request,
        payload,
        resolved_base,
        timeout,
    )


__all__ = [
    "LocalLLMError",
    "call_ollama_chat",
    "build_ollama_messages",
    "DEFAULT_OLLAMA_BASE_URL",
    "DEFAULT_OLLAMA_MODEL",
]
