"""
Scoring: a running score, its rank, and one-shot achievements.

The score is recomputed from world state on demand rather than accumulated,
so it can never drift from what the store actually holds. Four categories are
summed and a death penalty subtracted:

- survival: days x 10, living critters x 50, +500 while the robot works
- development: robot knowledge x 20, finished buildings x 150,
  average generation x 100
- combat: wins x 30, catastrophes survived x 500
- knowledge: robot knowledge x 20, high-importance robot memories x 50

"Knowledge" is the number of robot memories of type observation or event.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from .schemas import Achievement, Building, CombatStats, EntityKind, Memory, MemoryType, RegistryEntry
from .store import ROBOT_ID, WorldStateStore
from .survival import is_functional


RANK_THRESHOLDS: List[Tuple[str, float]] = [
    ("D", 1000),
    ("C", 3000),
    ("B", 6000),
    ("A", 10000),
    ("S", 15000),
]
TOP_RANK = "SS"
RECENT_CHANGES_CAP = 10
HIGH_IMPORTANCE = 0.7

ScoreCategory = Literal["survival", "development", "combat", "knowledge"]


class ScoreBreakdown(BaseModel):
    survival: float = 0.0
    development: float = 0.0
    combat: float = 0.0
    knowledge: float = 0.0
    total: float = 0.0


class RankInfo(BaseModel):
    current: str = "D"
    next_rank: Optional[str] = "C"
    points_to_next: float = 0.0
    progress: float = Field(0.0, ge=0.0, le=100.0)


class ScoreStats(BaseModel):
    current_day: int = 1
    population: int = 0
    knowledge_count: int = 0
    structure_count: int = 0
    death_count: int = 0
    combat_wins: int = 0
    catastrophes_survived: int = 0
    robot_functional: bool = True


class ScoreChange(BaseModel):
    type: Literal["gain", "loss"]
    amount: float
    reason: str
    category: ScoreCategory
    timestamp: float = 0.0


class RealtimeScore(BaseModel):
    current: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    rank: RankInfo = Field(default_factory=RankInfo)
    stats: ScoreStats = Field(default_factory=ScoreStats)
    recent_changes: List[ScoreChange] = Field(default_factory=list)


# (name, description, rarity)
ACHIEVEMENTS: Dict[str, Tuple[str, str, str]] = {
    "first_day": ("First Day", "Survived the first day", "common"),
    "week_survivor": ("One Week", "Survived 7 days", "common"),
    "month_survivor": ("One Month", "Survived 30 days", "uncommon"),
    "hundred_days": ("Hundred Days", "Survived 100 days", "rare"),
    "first_shelter": ("First Home", "Finished the first building", "common"),
    "architect": ("Architect", "Finished 10 buildings", "uncommon"),
    "metropolis": ("Metropolis", "Finished 20 buildings", "epic"),
    "knowledge_seeker": ("Knowledge Seeker", "Discovered 50 pieces of knowledge", "uncommon"),
    "omniscient": ("Omniscient", "Discovered 100 pieces of knowledge", "legendary"),
    "population_boom": ("Population Boom", "Reached a population of 15", "uncommon"),
    "survivor": ("Survivor", "Survived the first catastrophe", "common"),
    "disaster_master": ("Disaster Master", "Survived 5 catastrophes", "rare"),
    "perfect_score": ("Perfect", "Reached rank SS", "legendary"),
    "no_deaths": ("Undying", "30 days without a single death", "epic"),
}


def rank_for(total: float) -> RankInfo:
    for index, (rank, threshold) in enumerate(RANK_THRESHOLDS):
        if total < threshold:
            next_rank = RANK_THRESHOLDS[index + 1][0] if index + 1 < len(RANK_THRESHOLDS) else TOP_RANK
            return RankInfo(
                current=rank,
                next_rank=next_rank,
                points_to_next=threshold - total,
                progress=min(100.0, total / threshold * 100.0),
            )
    return RankInfo(current=TOP_RANK, next_rank=None, points_to_next=0.0, progress=100.0)


def knowledge_count(robot_memories: Sequence[Memory]) -> int:
    return sum(1 for memory in robot_memories if memory.type in (MemoryType.OBSERVATION, MemoryType.EVENT))


def calculate_realtime_score(
    day: int,
    registry: Sequence[RegistryEntry],
    robot_memories: Sequence[Memory],
    buildings: Sequence[Building],
    robot_functional: bool,
    combat_stats: CombatStats,
) -> RealtimeScore:
    """Compute the score from critter registry entries and robot state.

    Only critter entries count toward population, deaths and generations.
    """

    critters = [entry for entry in registry if entry.kind == EntityKind.CRITTER]
    alive = sum(1 for entry in critters if entry.is_alive)
    deaths = len(critters) - alive
    knowledge = knowledge_count(robot_memories)
    built = sum(1 for building in buildings if building.built)
    avg_generation = sum(entry.generation for entry in critters) / len(critters) if critters else 0.0
    high_importance = sum(1 for memory in robot_memories if memory.importance > HIGH_IMPORTANCE)

    survival = day * 10 + alive * 50 + (500 if robot_functional else 0)
    development = knowledge * 20 + built * 150 + int(avg_generation * 100)
    combat = combat_stats.wins * 30 + combat_stats.catastrophes_survived * 500
    knowledge_score = knowledge * 20 + high_importance * 50
    total = max(0, survival + development + combat + knowledge_score - deaths * 50)

    return RealtimeScore(
        current=ScoreBreakdown(
            survival=survival,
            development=development,
            combat=combat,
            knowledge=knowledge_score,
            total=total,
        ),
        rank=rank_for(total),
        stats=ScoreStats(
            current_day=day,
            population=alive,
            knowledge_count=knowledge,
            structure_count=built,
            death_count=deaths,
            combat_wins=combat_stats.wins,
            catastrophes_survived=combat_stats.catastrophes_survived,
            robot_functional=robot_functional,
        ),
    )


def add_score_change(score: RealtimeScore, change: ScoreChange) -> RealtimeScore:
    changes = (score.recent_changes + [change])[-RECENT_CHANGES_CAP:]
    return score.model_copy(update={"recent_changes": changes})


def _achievement(achievement_id: str, now: float) -> Achievement:
    name, description, rarity = ACHIEVEMENTS[achievement_id]
    return Achievement(id=achievement_id, name=name, description=description, rarity=rarity, unlocked_at=now)


def check_achievements(
    score: RealtimeScore,
    current: Sequence[Achievement],
    now: float = 0.0,
) -> List[Achievement]:
    """Return the achievements newly earned by ``score`` (already-held ones excluded)."""

    stats = score.stats
    earned = {
        "first_day": stats.current_day >= 1,
        "week_survivor": stats.current_day >= 7,
        "month_survivor": stats.current_day >= 30,
        "hundred_days": stats.current_day >= 100,
        "first_shelter": stats.structure_count >= 1,
        "architect": stats.structure_count >= 10,
        "metropolis": stats.structure_count >= 20,
        "knowledge_seeker": stats.knowledge_count >= 50,
        "omniscient": stats.knowledge_count >= 100,
        "population_boom": stats.population >= 15,
        "survivor": stats.catastrophes_survived >= 1,
        "disaster_master": stats.catastrophes_survived >= 5,
        "perfect_score": score.rank.current == TOP_RANK,
        "no_deaths": stats.current_day >= 30 and stats.death_count == 0,
    }
    held = {achievement.id for achievement in current}
    return [_achievement(aid, now) for aid, ok in earned.items() if ok and aid not in held]


def score_store(store: WorldStateStore) -> RealtimeScore:
    return calculate_realtime_score(
        day=store.environment.day,
        registry=list(store.registry.values()),
        robot_memories=store.memories.get(ROBOT_ID),
        buildings=store.buildings,
        robot_functional=store.is_alive(ROBOT_ID) and is_functional(store.robot_status),
        combat_stats=store.combat_stats,
    )


def update_achievements(store: WorldStateStore, now: float) -> List[Achievement]:
    """Score the store, unlock anything new, and add a milestone timeline entry for each."""

    unlocked: List[Achievement] = []
    for achievement in check_achievements(score_store(store), store.achievements, now):
        if store.unlock_achievement(achievement):
            store.record_timeline("milestone", f"Achievement unlocked: {achievement.name}", importance=0.7)
            unlocked.append(achievement)
    return unlocked


__all__ = [
    "ACHIEVEMENTS",
    "RealtimeScore",
    "ScoreBreakdown",
    "ScoreChange",
    "RankInfo",
    "ScoreStats",
    "rank_for",
    "knowledge_count",
    "calculate_realtime_score",
    "add_score_change",
    "check_achievements",
    "score_store",
    "update_achievements",
]
