"""Helper utilities for generative-call error handling and retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from .local_llm import LocalLLMError, call_ollama_chat
from .logging_utils import log_error


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 60.0


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed schema outputs."""

    llm_text: str
    issues: Sequence[str]


def extract_json_block(text: str) -> str:
    """Return the outermost ``{...}`` span of ``text``.

    Models often wrap JSON in prose or code fences. When no braces are present
    the text is returned unchanged so JSON validation reports it as invalid.
    """

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return text
    return text[start : end + 1]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into correction instructions for the model.

    Each issue names the field path, the error message and type, and a short
    preview of the offending input.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            preview = _truncate_preview(err.get("input"))
            if preview:
                details += f" | received={preview}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Return only one JSON object, with no explanations or code fences.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def raw_text_from_error(error: ValidationError) -> str:
    """Best-effort recovery of the raw model text that failed JSON validation."""
    for err in error.errors(include_url=False):
        value = err.get("input")
        if isinstance(value, str):
            return value
    return ""


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout: float = LLM_TIMEOUT_SECONDS,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured call with validation-aware retries.

    Only ``ValidationError`` triggers a retry; the next attempt sees the
    original prompt plus feedback describing what failed. Timeouts and
    provider errors propagate immediately. After ``max_attempts`` the final
    ``ValidationError`` is re-raised.

    For Ollama the raw reply is trimmed to its first JSON object before
    validation.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()
    feedback_payload: ValidationFeedback | None = None

    def _user_section() -> str:
        sections = [base_user_prompt]
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(section for section in sections if section)

    def _combined(user_section: str) -> str:
        return "\n\n".join(section for section in (system_prompt, user_section) if section)

    use_local_llm = llm_provider.lower() == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_local_llm:
        @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            user_section = _user_section()
            try:
                if use_local_llm:
                    raw_response = await asyncio.wait_for(
                        call_ollama_chat(
                            system_prompt=system_prompt,
                            user_prompt=user_section,
                            llm_model=llm_model,
                        ),
                        timeout=timeout,
                    )
                    return response_model.model_validate_json(extract_json_block(raw_response))

                if remote_invoke is None:
                    raise RuntimeError("Remote LLM invoke is not initialized.")

                return await asyncio.wait_for(remote_invoke(_combined(user_section)), timeout=timeout)
            except ValidationError as exc:
                feedback_payload = feedback_builder(exc)
                log_error(
                    f"Schema validation failed for {response_model.__name__} "
                    f"(attempt {attempt_number}/{max_attempts}): {'; '.join(feedback_payload.issues)}"
                )
                raise
            except asyncio.TimeoutError:
                log_error(f"LLM call timed out after {timeout:.0f}s for {response_model.__name__}.")
                raise
            except LocalLLMError as exc:
                log_error(f"Local LLM provider error ({llm_provider}): {exc}")
                raise

    raise RuntimeError("LLM retry mechanism exited unexpectedly")


__all__ = [
    "ValidationFeedback",
    "extract_json_block",
    "inject_validation_feedback",
    "raw_text_from_error",
    "call_llm_with_retries",
]
