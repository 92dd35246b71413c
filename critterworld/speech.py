"""
Speech queue: the control side of text-to-speech.

Audio synthesis and playback are out of scope. This module decides *what*
gets spoken and *in which order*. Lines are queued per provider and played
one at a time by a backend; a backend is anything implementing
``SpeechBackend.play``.

``speak`` is fire-and-forget: it enqueues and, when an event loop is running,
makes sure a worker task is draining that provider's queue. ``stop_all``
flushes every queue and cancels in-flight playback.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from .logging_utils import log_error


ROBOT_VOICE = "robot"
CRITTER_VOICE = "critter"


class SpeechBackend(ABC):
    """Plays one utterance. Implementations wrap a concrete TTS service."""

    name = "backend"

    @abstractmethod
    async def play(self, text: str, voice: str) -> None:
        """Speak ``text`` with ``voice`` and return when playback finishes."""

    def cancel(self) -> None:
        """Abort any playback in progress. Default: nothing to abort."""


class NullSpeechBackend(SpeechBackend):
    """Silent backend; remembers what it was asked to say."""

    name = "null"

    def __init__(self) -> None:
        self.spoken: List[Tuple[str, str]] = []

    async def play(self, text: str, voice: str) -> None:
        self.spoken.append((voice, text))


class SpeechQueue:
    """Per-provider FIFO of utterances with one worker per provider."""

    def __init__(
        self,
        backends: Optional[Dict[str, SpeechBackend]] = None,
        default_provider: Optional[str] = None,
    ) -> None:
        self.backends: Dict[str, SpeechBackend] = backends or {"null": NullSpeechBackend()}
        self.default_provider = default_provider or next(iter(self.backends))
        if self.default_provider not in self.backends:
            raise ValueError(f"Unknown speech provider '{self.default_provider}'")
        self._queues: Dict[str, Deque[Tuple[str, str]]] = {}
        self._workers: Dict[str, asyncio.Task] = {}

    def speak(self, text: str, is_robot_voice: bool = False, provider: Optional[str] = None) -> bool:
        """Queue ``text``; returns ``False`` for blank text or an unknown provider."""

        text = (text or "").strip()
        provider = provider or self.default_provider
        if not text or provider not in self.backends:
            return False

        voice = ROBOT_VOICE if is_robot_voice else CRITTER_VOICE
        self._queues.setdefault(provider, deque()).append((text, voice))
        self._ensure_worker(provider)
        return True

    def pending(self, provider: Optional[str] = None) -> int:
        if provider is not None:
            return len(self._queues.get(provider, ()))
        return sum(len(queue) for queue in self._queues.values())

    def _ensure_worker(self, provider: str) -> None:
        worker = self._workers.get(provider)
        if worker is not None and not worker.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: lines wait until the next speak() inside one.
            return
        self._workers[provider] = loop.create_task(self._drain(provider))

    async def _drain(self, provider: str) -> None:
        backend = self.backends[provider]
        queue = self._queues.setdefault(provider, deque())
        while queue:
            text, voice = queue.popleft()
            try:
                await backend.play(text, voice)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log_error(f"[Speech] {backend.name} failed to play line: {exc}")

    async def wait_idle(self) -> None:
        """Wait until every worker has emptied its queue."""
        workers = [task for task in self._workers.values() if not task.done()]
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    def stop_all(self) -> None:
        for queue in self._queues.values():
            queue.clear()
        for worker in self._workers.values():
            if not worker.done():
                worker.cancel()
        self._workers.clear()
        for backend in self.backends.values():
            backend.cancel()


__all__ = [
    "ROBOT_VOICE",
    "CRITTER_VOICE",
    "SpeechBackend",
    "NullSpeechBackend",
    "SpeechQueue",
]
