"""Meadow simulation: the default robot and critters living through a few days.

By default the example runs without any LLM calls; dialogue and thoughts come
from small canned generators so the whole run is deterministic for a seed:

    uv run python examples/meadow/run.py --seconds 600

To let a provider write dialogue and thoughts, pass `--llm`:

    uv run python examples/meadow/run.py --llm --seconds 300

Environment variables expected when `--llm` is used:
- `LLM_PROVIDER` (`openai`, `anthropic` or `ollama`)
- `LLM_MODEL` (optional, provider default otherwise)
- Provider-specific API key (e.g., `OPENAI_API_KEY`), not needed for ollama

Pass `--save` to keep the world in `SAVE_PATH` between runs.
"""

from __future__ import annotations

import argparse
import asyncio
import random
from collections import Counter

from critterworld import (
    CritterWorldRules,
    DialogueOrchestrator,
    EnvironmentCycle,
    JsonPersistence,
    Simulation,
    ThinkingLoop,
    TickResult,
    WorldStateStore,
    load_store,
)
from critterworld.config import Config
from critterworld.schemas import ActivityKind, EntityKind, ThoughtResult
from critterworld.scoring import score_store


CANNED_LINES = [
    "Nice day for a walk.",
    "Have you seen the berries by the rocks?",
    "I'm getting sleepy.",
    "Stay close, the weather looks odd.",
]


def canned_dialogue(rng: random.Random):
    async def generator(provider, api_key, prompt, system_prompt, history, model):
        return rng.choice(CANNED_LINES)

    return generator


def canned_thoughts(rng: random.Random):
    async def generator(provider, api_key, situation, kind, model):
        if kind == EntityKind.ROBOT:
            action = rng.choice([ActivityKind.PATROL, ActivityKind.EXPLORE, ActivityKind.SEEK_RESOURCE])
        else:
            action = rng.choice([ActivityKind.FORAGE, ActivityKind.REST, ActivityKind.SOCIALIZE])
        return ThoughtResult(thought=f"Maybe I should {action.value.replace('_', ' ')}.", action=action)

    return generator


class TickReporter:
    """Prints births, deaths, completed buildings and achievements as they happen."""

    def __init__(self) -> None:
        self.totals: Counter = Counter()

    def report(self, result: TickResult, store: WorldStateStore) -> None:
        self.totals["dialogues"] += len(result.dialogues_started) + len(result.replies_started)
        self.totals["thoughts"] += len(result.thoughts_started)
        for child in result.births:
            print(f"  day {store.environment.day} {store.game_time()}: {child} was born")
        for dead in result.deaths:
            print(f"  day {store.environment.day} {store.game_time()}: {dead} died")
        for achievement in result.achievements:
            print(f"  achievement unlocked: {achievement.name}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Meadow simulation")
    parser.add_argument("--llm", action="store_true", help="Generate dialogue and thoughts with an LLM provider")
    parser.add_argument("--seconds", type=float, default=300.0, help="Simulated seconds to run")
    parser.add_argument("--step", type=float, default=0.1, help="Seconds per tick")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a reproducible run")
    parser.add_argument("--save", action="store_true", help="Load from and save to SAVE_PATH")
    parser.add_argument("--realtime", action="store_true", help="Sleep between ticks like a frame loop")
    return parser.parse_args()


async def run_simulation(
    seconds: float,
    *,
    use_llm: bool = False,
    seed: int | None = None,
    step: float = 0.1,
    save: bool = False,
    realtime: bool = False,
) -> WorldStateStore:
    rng = random.Random(seed)
    persistence = JsonPersistence() if save else None

    store = None
    if persistence is not None:
        await persistence.initialize()
        store = await load_store(persistence)
    if store is None:
        store = WorldStateStore.with_default_population(rng=rng)

    if use_llm:
        Config.validate()
        store.update_settings(provider=Config.LLM_PROVIDER, model=Config.LLM_MODEL)
        dialogue = DialogueOrchestrator(store, rng=rng)
        thinking = ThinkingLoop(store)
    else:
        dialogue = DialogueOrchestrator(store, generator=canned_dialogue(rng), rng=rng)
        thinking = ThinkingLoop(store, generator=canned_thoughts(rng))

    reporter = TickReporter()
    simulation = Simulation(
        store,
        rules=CritterWorldRules(rng=rng),
        cycle=EnvironmentCycle(store, rng=rng),
        dialogue=dialogue,
        thinking=thinking,
        persistence=persistence,
        rng=rng,
        tick_listeners=[reporter.report],
    )

    await simulation.run(seconds, step=step, realtime=realtime)

    print(f"Conversations: {reporter.totals['dialogues']}, thoughts: {reporter.totals['thoughts']}")
    return store


async def main(args: argparse.Namespace) -> None:
    try:
        store = await run_simulation(
            args.seconds,
            use_llm=args.llm,
            seed=args.seed,
            step=args.step,
            save=args.save,
            realtime=args.realtime,
        )
    except ValueError as exc:
        print(f"[warning] {exc}. Falling back to canned dialogue.")
        store = await run_simulation(args.seconds, use_llm=False, seed=args.seed, step=args.step, save=args.save)

    score = score_store(store)
    print(f"Day {store.environment.day}, {store.environment.season.value}, {store.environment.weather.value}")
    print(f"Critters alive: {store.alive_count()}  Score: {score.current.total:.0f} (rank {score.rank.current})")


if __name__ == "__main__":
    asyncio.run(main(parse_args()))
