"""Unit tests for the LLM retry helper."""

import asyncio

import pytest
from pydantic import BaseModel, ValidationError

from critterworld.llm_utils import call_llm_with_retries, extract_json_block, raw_text_from_error
from critterworld.schemas import ThoughtResult


class DummyModel(BaseModel):
    content: str


@pytest.mark.asyncio
async def test_call_llm_with_retries_success(monkeypatch):
    recorded_prompts: list[str] = []

    async def fake_caller(prompt: str) -> DummyModel:
        recorded_prompts.append(prompt)
        return DummyModel(content="ok")

    def fake_decorator(*, provider, model, response_model):
        assert response_model is DummyModel

        def wrapper(fn):
            async def inner(prompt: str):
                return await fake_caller(prompt)

            return inner

        return wrapper

    monkeypatch.setattr("critterworld.llm_utils.llm.call", fake_decorator)

    result = await call_llm_with_retries(
        system_prompt="System context",
        user_prompt="What now?",
        llm_provider="openai",
        llm_model="gpt-4o",
        response_model=DummyModel,
    )

    assert result.content == "ok"
    assert recorded_prompts == ["System context\n\nWhat now?"]


@pytest.mark.asyncio
async def test_call_llm_with_retries_injects_feedback(monkeypatch):
    attempts: list[str] = []

    try:
        DummyModel.model_validate({})
    except ValidationError as exc:
        validation_error = exc

    async def fake_caller(prompt: str) -> DummyModel:
        attempts.append(prompt)
        if len(attempts) == 1:
            raise validation_error
        return DummyModel(content="fixed")

    def fake_decorator(*, provider, model, response_model):
        def wrapper(fn):
            async def inner(prompt: str):
                return await fake_caller(prompt)

            return inner

        return wrapper

    monkeypatch.setattr("critterworld.llm_utils.llm.call", fake_decorator)

    result = await call_llm_with_retries(
        system_prompt="System",
        user_prompt="User",
        llm_provider="openai",
        llm_model="gpt-4o",
        response_model=DummyModel,
    )

    assert result.content == "fixed"
    assert len(attempts) == 2
    assert "Your previous JSON response failed to validate against the required schema." in attempts[1]
    assert "- content: Field required" in attempts[1]


@pytest.mark.asyncio
async def test_call_llm_with_retries_local_provider_trims_prose(monkeypatch):
    captured_kwargs: dict[str, str] = {}

    async def fake_local_call(*, system_prompt, user_prompt, llm_model, base_url=None, timeout=120.0):
        captured_kwargs["system_prompt"] = system_prompt
        captured_kwargs["user_prompt"] = user_prompt
        captured_kwargs["llm_model"] = llm_model
        return 'Sure! {"content":"ok"} Hope that helps.'

    def fail_decorator(*args, **kwargs):
        raise AssertionError("remote provider path should not be used for ollama")

    monkeypatch.setattr("critterworld.llm_utils.call_ollama_chat", fake_local_call)
    monkeypatch.setattr("critterworld.llm_utils.llm.call", fail_decorator)

    result = await call_llm_with_retries(
        system_prompt="System context",
        user_prompt="User payload",
        llm_provider="ollama",
        llm_model="llama3.1",
        response_model=DummyModel,
    )

    assert result.content == "ok"
    assert captured_kwargs == {
        "system_prompt": "System context",
        "user_prompt": "User payload",
        "llm_model": "llama3.1",
    }


@pytest.mark.asyncio
async def test_call_llm_with_retries_gives_up(monkeypatch):
    calls = []

    async def fake_local_call(**kwargs):
        calls.append(kwargs)
        return "no json here"

    monkeypatch.setattr("critterworld.llm_utils.call_ollama_chat", fake_local_call)

    with pytest.raises(ValidationError) as excinfo:
        await call_llm_with_retries(
            system_prompt="System",
            user_prompt="User",
            llm_provider="ollama",
            llm_model="llama3.1",
            response_model=ThoughtResult,
            max_attempts=2,
        )

    assert len(calls) == 2
    assert raw_text_from_error(excinfo.value) == "no json here"


@pytest.mark.asyncio
async def test_call_llm_with_retries_timeout_is_not_retried(monkeypatch):
    calls = []

    async def slow_local_call(**kwargs):
        calls.append(kwargs)
        await asyncio.sleep(1.0)
        return '{"content":"late"}'

    monkeypatch.setattr("critterworld.llm_utils.call_ollama_chat", slow_local_call)

    with pytest.raises(asyncio.TimeoutError):
        await call_llm_with_retries(
            system_prompt="System",
            user_prompt="User",
            llm_provider="ollama",
            llm_model="llama3.1",
            response_model=DummyModel,
            timeout=0.01,
        )

    assert len(calls) == 1


def test_extract_json_block():
    assert extract_json_block('```json\n{"a": {"b": 1}}\n```') == '{"a": {"b": 1}}'
    assert extract_json_block("plain text") == "plain text"
