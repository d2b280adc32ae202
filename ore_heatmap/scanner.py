"""Per-chunk ore counting and the per-tick scan allowance."""
from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional

from .tracked import TrackedSet
from .world import CHUNK_SIZE, ChunkKey, WorldView

_LOGGER = logging.getLogger("OreHeatmap.Scanner")


def scan_chunk(world: WorldView, key: ChunkKey, tracked: TrackedSet) -> Optional[int]:
    """Count positions in ``key`` whose block matches ``tracked``.

    Returns ``None`` when the chunk is not resident; callers must treat that as
    "not yet available" and never as a zero count.
    """

    counts = scan_chunk_slots(world, key, {0: tracked})
    if counts is None:
        return None
    return counts[0]


def scan_chunk_slots(
    world: WorldView,
    key: ChunkKey,
    tracked_by_slot: Mapping[int, TrackedSet],
) -> Optional[Dict[int, int]]:
    """Count matches for several slots in a single traversal of the chunk."""

    if not world.is_chunk_loaded(key.x, key.z):
        return None
    active = {slot: tracked for slot, tracked in tracked_by_slot.items() if not tracked.is_empty}
    counts: Dict[int, int] = {slot: 0 for slot in tracked_by_slot}
    if not active:
        return counts

    # Block ids repeat heavily inside a chunk; resolve each id's matches once.
    matched_slots: Dict[str, tuple] = {}
    min_y = int(world.min_build_height)
    max_y = int(world.max_build_height)
    base_x = key.min_block_x
    base_z = key.min_block_z
    for dx in range(CHUNK_SIZE):
        x = base_x + dx
        for dz in range(CHUNK_SIZE):
            z = base_z + dz
            for y in range(min_y, max_y):
                block_id = world.block_at(x, y, z)
                hits = matched_slots.get(block_id)
                if hits is None:
                    hits = tuple(
                        slot for slot, tracked in active.items() if tracked.matches(block_id, world.block_has_tag)
                    )
                    matched_slots[block_id] = hits
                for slot in hits:
                    counts[slot] += 1
    _LOGGER.debug("Scanned chunk %s: %s", key, counts)
    return counts


class ScanBudget:
    """Caps how many chunk traversals may run per tick across the whole system."""

    def __init__(self, limit: int) -> None:
        self._lock = threading.Lock()
        self._limit = max(1, int(limit))
        self._used = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, self._limit - self._used)

    def set_limit(self, limit: int) -> None:
        with self._lock:
            self._limit = max(1, int(limit))

    def reset(self) -> None:
        with self._lock:
            self._used = 0

    def try_acquire(self) -> bool:
        with self._lock:
            if self._used >= self._limit:
                return False
            self._used += 1
            return True
