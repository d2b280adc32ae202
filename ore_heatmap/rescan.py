"""Cooperative, tick-batched re-population of a slot's cache around a point."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from .density_cache import SlotCache
from .scanner import ScanBudget, scan_chunk
from .tracked import TrackedSet
from .world import ChunkKey, WorldView

_LOGGER = logging.getLogger("OreHeatmap.Rescan")

DEFAULT_MAX_ATTEMPTS = 20


def chunks_in_radius(center: ChunkKey, radius: int) -> List[ChunkKey]:
    """Chunk keys inside the disc ``dx*dx + dz*dz <= radius*radius``, nearest first."""

    radius = max(0, int(radius))
    limit = radius * radius
    keys = [
        ChunkKey(center.x + dx, center.z + dz)
        for dx in range(-radius, radius + 1)
        for dz in range(-radius, radius + 1)
        if dx * dx + dz * dz <= limit
    ]
    keys.sort(key=lambda key: ((key.x - center.x) ** 2 + (key.z - center.z) ** 2, key.x, key.z))
    return keys


@dataclass
class RescanJob:
    slot: int
    dimension: str
    center: ChunkKey
    radius: int
    queue: Deque[ChunkKey] = field(default_factory=deque)
    attempts: Dict[ChunkKey, int] = field(default_factory=dict)
    dropped: Set[ChunkKey] = field(default_factory=set)
    scanned_count: int = 0
    active: bool = True

    @property
    def pending(self) -> frozenset:
        return frozenset(self.queue)


@dataclass
class BatchResult:
    scanned: int = 0
    deferred: int = 0
    dropped: int = 0
    completed: bool = False
    cancelled: bool = False


class RescanScheduler:
    """Holds at most one :class:`RescanJob` per slot and advances it in batches."""

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self._jobs: Dict[int, RescanJob] = {}
        self.max_attempts = max(1, int(max_attempts))

    def job(self, slot: int) -> Optional[RescanJob]:
        return self._jobs.get(slot)

    def has_job(self, slot: int) -> bool:
        return slot in self._jobs

    def seed(
        self,
        slot: int,
        dimension: str,
        center: ChunkKey,
        radius: int,
        skip: Iterable[ChunkKey] = (),
    ) -> RescanJob:
        """Create the slot's job, replacing any job already running for it."""

        skipped = set(skip)
        job = RescanJob(slot=slot, dimension=dimension, center=center, radius=radius)
        job.queue.extend(key for key in chunks_in_radius(center, radius) if key not in skipped)
        if slot in self._jobs:
            _LOGGER.debug("Replacing rescan job for slot %d", slot)
        self._jobs[slot] = job
        _LOGGER.info(
            "Rescan seeded for slot %d in %s: center=%s radius=%d pending=%d",
            slot,
            dimension,
            center,
            radius,
            len(job.queue),
        )
        return job

    def cancel(self, slot: int) -> None:
        job = self._jobs.pop(slot, None)
        if job is not None:
            job.active = False
            _LOGGER.debug("Rescan for slot %d cancelled with %d chunks pending", slot, len(job.queue))

    def cancel_all(self) -> None:
        for slot in list(self._jobs):
            self.cancel(slot)

    def run_batch(
        self,
        slot: int,
        world: Optional[WorldView],
        cache: SlotCache,
        tracked: TrackedSet,
        budget: ScanBudget,
        batch_size: int,
        is_active: Callable[[], bool],
    ) -> BatchResult:
        result = BatchResult()
        job = self._jobs.get(slot)
        if job is None:
            return result
        if not is_active() or tracked.is_empty:
            self.cancel(slot)
            result.cancelled = True
            return result
        if world is None:
            return result

        deferred_now: Set[ChunkKey] = set()
        for _ in range(max(1, int(batch_size))):
            # A chunk re-queued in this batch only gets another attempt next tick.
            if not job.queue or job.queue[0] in deferred_now:
                break
            if not budget.try_acquire():
                break
            key = job.queue.popleft()
            count = scan_chunk(world, key, tracked)
            if not job.active or not is_active():
                # Cancelled while the chunk was read; the count may belong to another world.
                _LOGGER.debug("Rescan for slot %d cancelled mid-batch; discarding %s", slot, key)
                result.cancelled = True
                return result
            if count is None:
                attempts = job.attempts.get(key, 0) + 1
                if attempts >= self.max_attempts:
                    job.attempts.pop(key, None)
                    job.dropped.add(key)
                    result.dropped += 1
                    _LOGGER.debug("Dropping chunk %s from slot %d rescan after %d attempts", key, slot, attempts)
                else:
                    job.attempts[key] = attempts
                    job.queue.append(key)
                    deferred_now.add(key)
                    result.deferred += 1
                continue
            job.attempts.pop(key, None)
            cache.record(job.dimension, key, count)
            job.scanned_count += 1
            result.scanned += 1

        if not job.queue:
            job.active = False
            self._jobs.pop(slot, None)
            result.completed = True
            _LOGGER.info(
                "Rescan for slot %d complete: scanned=%d dropped=%d",
                slot,
                job.scanned_count,
                len(job.dropped),
            )
        return result
