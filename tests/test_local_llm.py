import pytest

from critterworld.local_llm import LocalLLMError, build_ollama_messages, call_ollama_chat


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return '{"content":"ok"}'

    monkeypatch.setattr("critterworld.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(
        system_prompt="System context",
        user_prompt="User payload",
        llm_model="llama3.1",
        base_url="http://localhost:11434",
        timeout=30,
    )

    assert result == '{"content":"ok"}'
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["stream"] is False
    assert payload["messages"][0] == {"role": "system", "content": "System context"}
    assert payload["messages"][1] == {"role": "user", "content": "User payload"}
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_rejects_empty_prompt():
    with pytest.raises(LocalLLMError):
        await call_ollama_chat(system_prompt="System", user_prompt="   ")


def test_history_turns_sit_between_system_and_user():
    messages = build_ollama_messages(
        "Be brief.",
        "And now?",
        history=[
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi there"},
            {"role": "tool", "content": "odd role"},
        ],
    )

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user", "user"]
    assert messages[-1]["content"] == "And now?"


def test_blank_system_prompt_is_omitted():
    assert build_ollama_messages("  ", "Hi") == [{"role": "user", "content": "Hi"}]
