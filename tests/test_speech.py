"""Tests for the speech queue."""

import pytest

from critterworld.speech import NullSpeechBackend, SpeechBackend, SpeechQueue


class BrokenBackend(SpeechBackend):
    name = "broken"

    def __init__(self):
        self.cancelled = False

    async def play(self, text, voice):
        raise RuntimeError("speaker unplugged")

    def cancel(self):
        self.cancelled = True


@pytest.mark.asyncio
async def test_lines_play_in_order_with_voice():
    queue = SpeechQueue()

    assert queue.speak("Hello.", is_robot_voice=True)
    assert queue.speak("Hi!")
    await queue.wait_idle()

    assert queue.backends["null"].spoken == [("robot", "Hello."), ("critter", "Hi!")]
    assert queue.pending() == 0


def test_blank_text_and_unknown_provider_rejected():
    queue = SpeechQueue()

    assert not queue.speak("   ")
    assert not queue.speak("Hello", provider="cloud")


def test_without_loop_lines_wait_until_stopped():
    queue = SpeechQueue()
    queue.speak("one")
    queue.speak("two")

    assert queue.pending("null") == 2

    queue.stop_all()
    assert queue.pending() == 0


@pytest.mark.asyncio
async def test_backend_failure_is_logged_and_queue_continues(capsys):
    null = NullSpeechBackend()
    queue = SpeechQueue({"broken": BrokenBackend(), "null": null}, default_provider="broken")

    queue.speak("first")
    queue.speak("second", provider="null")
    await queue.wait_idle()

    assert null.spoken == [("critter", "second")]
    assert queue.pending() == 0
    assert "[Speech] broken failed to play line" in capsys.readouterr().out


def test_stop_all_cancels_backends():
    broken = BrokenBackend()
    queue = SpeechQueue({"broken": broken})

    queue.stop_all()

    assert broken.cancelled


def test_unknown_default_provider_rejected():
    with pytest.raises(ValueError):
        SpeechQueue({"null": NullSpeechBackend()}, default_provider="cloud")
