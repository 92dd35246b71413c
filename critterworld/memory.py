"""
Per-entity memory: bounded retention and relevance-ranked recall.

Memories feed prompt construction for dialogue and thinking. Each entity keeps
at most ``MAX_MEMORIES`` entries, using an eviction policy that is NOT FIFO:

- The newest ``RECENT_KEEP`` memories always survive, whatever their importance
- The remaining slots go to the most important older memories
- Survivors stay in chronological order

Recall scores every memory with a convex combination of importance, recency
(linear over one day) and entity relevance, then returns the top K.
"""

from __future__ import annotations

import time
from typing import Dict, Iterable, List, Optional, Sequence

from .schemas import Memory, MemoryType


MAX_MEMORIES = 50
RECENT_KEEP = 5
RECENCY_WINDOW_SECONDS = 24 * 60 * 60

DEFAULT_IMPORTANCE: Dict[MemoryType, float] = {
    MemoryType.QUARREL: 0.8,
    MemoryType.EVENT: 0.7,
    MemoryType.DIALOGUE: 0.3,
    MemoryType.OBSERVATION: 0.2,
}

IMPORTANCE_WEIGHT = 0.4
RECENCY_WEIGHT = 0.3
RELEVANCE_WEIGHT = 0.3


def create_memory(
    content: str,
    memory_type: MemoryType = MemoryType.OBSERVATION,
    entities: Optional[Iterable[str]] = None,
    *,
    importance: Optional[float] = None,
    emotional_weight: float = 0.1,
    timestamp: Optional[float] = None,
) -> Memory:
    """Build a memory with type-based default importance."""

    resolved = DEFAULT_IMPORTANCE[memory_type] if importance is None else importance
    return Memory(
        content=content,
        timestamp=time.time() if timestamp is None else timestamp,
        importance=max(0.0, min(1.0, resolved)),
        emotional_weight=emotional_weight,
        entities=list(entities or []),
        type=memory_type,
    )


def prune_memories(memories: Sequence[Memory], max_count: int = MAX_MEMORIES) -> List[Memory]:
    """Apply the recency-guaranteed, importance-ranked eviction policy.

    ``memories`` must be in chronological order (oldest first); the result is
    too. Ties in importance favour the more recent memory.
    """

    if len(memories) <= max_count:
        return list(memories)

    keep_recent = min(RECENT_KEEP, max_count)
    recent = list(memories[-keep_recent:]) if keep_recent else []
    older = list(enumerate(memories[: len(memories) - keep_recent]))

    slots = max_count - keep_recent
    ranked = sorted(older, key=lambda item: (item[1].importance, item[0]), reverse=True)
    survivors = sorted(ranked[:slots], key=lambda item: item[0])
    return [memory for _, memory in survivors] + recent


def score_memory(memory: Memory, now: float, related_ids: Sequence[str]) -> float:
    age = max(0.0, now - memory.timestamp)
    recency = max(0.0, 1.0 - age / RECENCY_WINDOW_SECONDS)
    relevance = 1.0 if related_ids and any(eid in memory.entities for eid in related_ids) else 0.2
    return (
        memory.importance * IMPORTANCE_WEIGHT
        + recency * RECENCY_WEIGHT
        + relevance * RELEVANCE_WEIGHT
    )


def select_relevant_memories(
    memories: Sequence[Memory],
    now: float,
    related_ids: Sequence[str] = (),
    k: int = 5,
) -> List[Memory]:
    if k <= 0 or not memories:
        return []
    scored = sorted(memories, key=lambda m: score_memory(m, now, related_ids), reverse=True)
    return scored[:k]


def format_memories_for_prompt(memories: Sequence[Memory]) -> str:
    return "\n".join(f"- {memory.content}" for memory in memories)


class MemoryStore:
    """Sharded per-entity memory container.

    The world store owns one instance; entity ids map to chronological lists.
    Every write prunes immediately so the bound holds at all times.
    """

    def __init__(self, max_per_entity: int = MAX_MEMORIES) -> None:
        self.max_per_entity = max_per_entity
        self._memories: Dict[str, List[Memory]] = {}

    def add(self, entity_id: str, memory: Memory) -> None:
        bucket = self._memories.setdefault(entity_id, [])
        bucket.append(memory)
        if len(bucket) > self.max_per_entity:
            self._memories[entity_id] = prune_memories(bucket, self.max_per_entity)

    def get(self, entity_id: str) -> List[Memory]:
        return list(self._memories.get(entity_id, []))

    def recent(self, entity_id: str, limit: int = 10) -> List[Memory]:
        return self.get(entity_id)[-limit:]

    def relevant(
        self,
        entity_id: str,
        now: float,
        related_ids: Sequence[str] = (),
        k: int = 5,
    ) -> List[Memory]:
        return select_relevant_memories(self._memories.get(entity_id, []), now, related_ids, k)

    def clear(self, entity_id: str) -> None:
        self._memories.pop(entity_id, None)

    def entity_ids(self) -> List[str]:
        return list(self._memories)

    def to_dict(self) -> Dict[str, List[Memory]]:
        return {eid: list(items) for eid, items in self._memories.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, List[Memory]], max_per_entity: int = MAX_MEMORIES) -> "MemoryStore":
        store = cls(max_per_entity=max_per_entity)
        for entity_id, items in data.items():
            store._memories[entity_id] = prune_memories(list(items), max_per_entity)
        return store

    def __len__(self) -> int:
        return sum(len(items) for items in self._memories.values())


__all__ = [
    "MAX_MEMORIES",
    "RECENT_KEEP",
    "DEFAULT_IMPORTANCE",
    "create_memory",
    "prune_memories",
    "score_memory",
    "select_relevant_memories",
    "format_memories_for_prompt",
    "MemoryStore",
]
