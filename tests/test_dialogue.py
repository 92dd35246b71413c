"""Tests for dialogue initiation, replies, failures and flag housekeeping."""

from __future__ import annotations

import asyncio

import pytest

from critterworld.config import Config
from critterworld.dialogue import DialogueOrchestrator, is_aggressive_message
from critterworld.schemas import IncomingMessage, MemoryType, Position
from critterworld.speech import SpeechQueue
from critterworld.store import ROBOT_ID


class RecordingGenerator:
    def __init__(self, reply: str = "Hello there.", delay: float = 0.0, error: Exception | None = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: list[dict] = []

    async def __call__(self, provider, api_key, prompt, system_prompt, history, model):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "history": history})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def talkative(store, fixed_rng):
    store.clock = 10.0

    def build(**kwargs):
        return DialogueOrchestrator(store, rng=fixed_rng(0.0), **kwargs)

    return build


@pytest.mark.asyncio
async def test_initiation_applies_through_patch(store, talkative):
    generator = RecordingGenerator("Nice weather today.")
    orchestrator = talkative(generator=generator)

    assert orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    assert store.busy
    assert store.is_in_dialogue(ROBOT_ID)
    assert not orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))

    await orchestrator.drain()
    assert store.dialogue_records == []
    assert store.apply_pending_patches() == 1

    assert [r.text for r in store.conversation_history(ROBOT_ID, "Critter-A")] == ["Nice weather today."]
    assert store.active_dialogues[ROBOT_ID].target_id == "Critter-A"
    assert store.relationships["Critter-A:robot"] == pytest.approx(0.05)
    assert store.memories.get("Critter-A")[-1].type == MemoryType.DIALOGUE
    assert store.incoming_messages["Critter-A"][0].speaker_id == ROBOT_ID
    assert "Critter-A" in generator.calls[0]["prompt"]

    # The gate stays closed for the release delay, then both flags clear.
    assert store.is_busy(15.9)
    orchestrator.update(16.0)
    assert not store.is_busy(16.0)
    assert not store.is_in_dialogue(ROBOT_ID)


@pytest.mark.asyncio
async def test_timeout_releases_gate_without_effects(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator(delay=1.0), timeout=0.01)

    assert orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()

    assert not store.busy
    assert not store.is_in_dialogue(ROBOT_ID)
    assert store.dialogue_records == []
    assert store.relationships == {}


@pytest.mark.asyncio
async def test_provider_error_releases_gate(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator(error=RuntimeError("503")))

    assert orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()

    assert not store.busy
    assert not store.is_in_dialogue(ROBOT_ID)


@pytest.mark.asyncio
async def test_empty_reply_is_a_failure(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator("   "))

    orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()

    assert not store.busy
    assert store.active_dialogues == {}


def test_no_event_loop_means_no_dialogue(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())

    assert not orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    assert not store.busy
    assert not store.is_in_dialogue(ROBOT_ID)


def test_spawn_grace_blocks_new_critters(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())

    assert not orchestrator.check_initiation("Critter-A", 10.0, dict(store.positions))
    assert not store.busy


def test_missing_key_disables_default_generator(store, talkative, monkeypatch, capsys):
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)
    orchestrator = talkative()

    assert not orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    assert not orchestrator.check_initiation(ROBOT_ID, 11.0, dict(store.positions))

    output = capsys.readouterr().out
    assert output.count("[Dialogue] Disabled") == 1
    assert not store.busy


@pytest.mark.asyncio
async def test_reply_to_robot_throttled_by_gap(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator("Hi robot."))
    store.queue_message(IncomingMessage(speaker_id=ROBOT_ID, target_id="Critter-A", text="Hello!", received_at=90.0))

    assert orchestrator.check_response("Critter-A", 100.0)
    await orchestrator.drain()
    store.clock = 100.0
    store.apply_pending_patches()

    conversation = store.conversation("Critter-A")
    assert conversation.turn_count == 1
    assert conversation.last_conversation_end == 105.0
    assert store.relationships["Critter-A:robot"] == pytest.approx(0.05)
    assert store.active_dialogues["Critter-A"].text == "Hi robot."

    orchestrator.update(105.0)
    store.queue_message(IncomingMessage(speaker_id=ROBOT_ID, target_id="Critter-A", text="Again!", received_at=108.0))
    assert not orchestrator.check_response("Critter-A", 110.0)


@pytest.mark.asyncio
async def test_hostile_critter_message_becomes_quarrel(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator("Fine, whatever."))
    store.queue_message(IncomingMessage(speaker_id="Critter-B", target_id="Critter-A", text="Go away!", received_at=0.0))

    assert orchestrator.check_response("Critter-A", 20.0)
    await orchestrator.drain()
    store.clock = 20.0
    store.apply_pending_patches()

    assert store.memories.get("Critter-A")[-1].type == MemoryType.QUARREL
    assert store.relationships["Critter-A:Critter-B"] == pytest.approx(-0.15)

    orchestrator.update(23.0)
    store.queue_message(IncomingMessage(speaker_id="Critter-B", target_id="Critter-A", text="Hey", received_at=24.0))
    assert not orchestrator.check_response("Critter-A", 25.0)
    assert store.conversation("Critter-A").quarrel_count == 0


@pytest.mark.asyncio
async def test_completed_lines_are_spoken_when_enabled(store, talkative):
    speech = SpeechQueue()
    store.update_settings(tts_enabled=True)
    orchestrator = talkative(generator=RecordingGenerator("Beep."), speech=speech)

    orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()
    await speech.wait_idle()

    assert speech.backends["null"].spoken == [("robot", "Beep.")]


def test_stuck_flags_are_cleared(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())
    store.set_in_dialogue("Critter-B", True, now=0.0)

    assert orchestrator.update(10.0) == []
    assert orchestrator.update(10.5) == ["Critter-B"]
    assert not store.is_in_dialogue("Critter-B")


@pytest.mark.parametrize(
    "text,roll,expected",
    [
        ("Go away!", 0.9, True),
        ("don't touch my mushroom", 0.9, True),
        ("I know the way", 0.9, False),
        ("nice weather", 0.1, True),
    ],
)
def test_is_aggressive_message(text, roll, expected):
    assert is_aggressive_message(text, roll) is expected


@pytest.mark.asyncio
async def test_busy_gate_blocks_other_pairs(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())
    positions = dict(store.positions)

    assert orchestrator.check_initiation(ROBOT_ID, 20.0, positions)
    # Critter-B is free and has partners in range, but the robot holds the gate.
    assert not orchestrator.check_initiation("Critter-B", 20.5, positions)
    assert not store.is_in_dialogue("Critter-B")
    assert orchestrator.pending_tasks == 1

    await orchestrator.drain()
    store.clock = 21.0
    store.apply_pending_patches()
    assert not orchestrator.check_initiation("Critter-B", 26.0, positions)

    orchestrator.update(27.0)
    assert orchestrator.check_initiation("Critter-B", 27.0, positions)
    await orchestrator.drain()


@pytest.mark.asyncio
async def test_critter_exchange_goes_back_and_forth(store, fixed_rng):
    store.clock = 20.0
    store.set_position(ROBOT_ID, Position(x=50, y=0.5, z=50))
    store.set_position("Critter-D", Position(x=-50, y=0.5, z=-50))
    orchestrator = DialogueOrchestrator(store, generator=RecordingGenerator("Nice berries today."), rng=fixed_rng(0.0, 0.9))

    assert orchestrator.check_initiation("Critter-C", 20.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()
    opening = store.incoming_messages["Critter-E"][0]
    assert (opening.speaker_id, opening.turn) == ("Critter-C", 1)

    assert orchestrator.check_response("Critter-E", 21.0)
    await orchestrator.drain()
    store.clock = 21.0
    store.apply_pending_patches()
    reply = store.incoming_messages["Critter-C"][0]
    assert (reply.speaker_id, reply.turn) == ("Critter-E", 2)
    assert store.memories.get("Critter-C")[-1].content == 'Critter-E answered me: "Nice berries today."'

    # The initiator answers once its own release delay has passed.
    assert not orchestrator.check_response("Critter-C", 22.0)
    orchestrator.update(23.0)
    assert orchestrator.check_response("Critter-C", 23.0)
    await orchestrator.drain()
    store.clock = 23.0
    store.apply_pending_patches()
    assert store.incoming_messages["Critter-E"][0].turn == 3

    # One round each: Critter-E lets the third line go.
    orchestrator.update(24.0)
    assert not orchestrator.check_response("Critter-E", 24.0)
    assert store.conversation("Critter-E").quarrel_count == 0
    speakers = [record.speaker_id for record in store.conversation_history("Critter-C", "Critter-E")]
    assert speakers == ["Critter-C", "Critter-E", "Critter-C"]


@pytest.mark.asyncio
async def test_robot_answers_critter_reply(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator("Hello there."))

    assert orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()

    assert orchestrator.check_response("Critter-A", 11.0)
    await orchestrator.drain()
    store.clock = 11.0
    store.apply_pending_patches()
    message = store.incoming_messages[ROBOT_ID][0]
    assert (message.speaker_id, message.turn) == ("Critter-A", 2)

    # Still inside the robot's own release window.
    assert not orchestrator.check_response(ROBOT_ID, 12.0)
    orchestrator.update(16.0)
    assert orchestrator.check_response(ROBOT_ID, 16.0)
    assert store.is_busy(16.0)

    await orchestrator.drain()
    store.clock = 16.0
    store.apply_pending_patches()

    assert store.conversation_history(ROBOT_ID, "Critter-A")[-1].speaker_id == ROBOT_ID
    assert store.relationships["Critter-A:robot"] == pytest.approx(0.15)
    assert store.incoming_messages["Critter-A"][0].turn == 3
    assert store.is_busy(20.9)
    orchestrator.update(21.0)
    assert not store.is_busy(21.0)
    assert not store.is_in_dialogue(ROBOT_ID)


def test_robot_reply_waits_for_the_gate(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())
    store.queue_message(IncomingMessage(speaker_id="Critter-A", target_id=ROBOT_ID, text="Hi", received_at=0.0))
    store.acquire_busy(20.0)

    assert not orchestrator.check_response(ROBOT_ID, 20.0)
    assert len(store.incoming_messages[ROBOT_ID]) == 1


def test_malfunctioning_robot_stays_silent(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())
    store.set_robot_status(store.robot_status.model_copy(update={"malfunctioning": True}))
    store.queue_message(IncomingMessage(speaker_id="Critter-A", target_id=ROBOT_ID, text="Hi", received_at=0.0))

    assert not orchestrator.check_response(ROBOT_ID, 20.0)
    assert not store.busy


@pytest.mark.asyncio
async def test_scheduled_release_is_not_stuck(store, talkative, capsys):
    orchestrator = talkative(generator=RecordingGenerator("Beep."))

    assert orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    # The line lands nine seconds after the request.
    store.clock = 19.0
    store.apply_pending_patches()

    assert orchestrator.update(21.0) == []
    assert store.is_in_dialogue(ROBOT_ID)
    orchestrator.update(25.0)
    assert not store.is_in_dialogue(ROBOT_ID)
    assert "[!]" not in capsys.readouterr().out


@pytest.mark.asyncio
async def test_prune_forgets_dead_partners(store, talkative):
    orchestrator = talkative(generator=RecordingGenerator())
    orchestrator.check_initiation(ROBOT_ID, 10.0, dict(store.positions))
    await orchestrator.drain()
    store.apply_pending_patches()
    store.remove_critter("Critter-A")

    orchestrator.prune(store.living_entity_ids())

    assert orchestrator._pair_last == {}
    assert ROBOT_ID in orchestrator._releases
