"""In-memory ore density cache with per-world JSON persistence."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .world import SLOT_COUNT, ChunkKey, is_valid_slot

_LOGGER = logging.getLogger("OreHeatmap.Cache")

CACHE_DIR_NAME = "ore_heatmap_cache"
DEFAULT_SAVE_INTERVAL_TICKS = 600


def cache_file_path(cache_dir: Path, world_identity: str, slot: int) -> Path:
    return Path(cache_dir) / world_identity / f"slot{slot}.json"


def parse_cache_payload(raw: Any) -> Optional[Dict[str, Dict[ChunkKey, int]]]:
    """Convert a decoded cache document into typed maps.

    Returns ``None`` when the document shape is wrong. Individual entries with
    a bad key or count are skipped.
    """

    if not isinstance(raw, dict):
        return None
    parsed: Dict[str, Dict[ChunkKey, int]] = {}
    for dimension, chunks in raw.items():
        if not isinstance(chunks, dict):
            continue
        entries: Dict[ChunkKey, int] = {}
        for raw_key, raw_count in chunks.items():
            if isinstance(raw_count, bool) or not isinstance(raw_count, int) or raw_count < 0:
                continue
            try:
                key = ChunkKey.parse(raw_key)
            except ValueError:
                continue
            entries[key] = raw_count
        parsed[str(dimension)] = entries
    return parsed


class SlotCache:
    """Density counts for one slot: ``dimension -> chunk -> count``."""

    def __init__(self, slot: int) -> None:
        self.slot = slot
        self._lock = threading.RLock()
        self._dimensions: Dict[str, Dict[ChunkKey, int]] = {}
        self._running_max = 1
        self._dirty = False

    @property
    def running_max(self) -> int:
        with self._lock:
            return self._running_max

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def mark_dirty(self) -> None:
        with self._lock:
            self._dirty = True

    def record(self, dimension: str, key: ChunkKey, count: int) -> None:
        count = max(0, int(count))
        with self._lock:
            self._dimensions.setdefault(dimension, {})[key] = count
            if count > self._running_max:
                self._running_max = count
            self._dirty = True

    def get(self, dimension: str, key: ChunkKey) -> Optional[int]:
        with self._lock:
            return self._dimensions.get(dimension, {}).get(key)

    def contains(self, dimension: str, key: ChunkKey) -> bool:
        with self._lock:
            return key in self._dimensions.get(dimension, {})

    def snapshot(self, dimension: Optional[str]) -> Dict[ChunkKey, int]:
        if dimension is None:
            return {}
        with self._lock:
            return dict(self._dimensions.get(dimension, {}))

    def keys(self, dimension: str) -> frozenset:
        with self._lock:
            return frozenset(self._dimensions.get(dimension, {}))

    def dimensions(self) -> list:
        with self._lock:
            return list(self._dimensions)

    def is_empty(self) -> bool:
        with self._lock:
            return not any(self._dimensions.values())

    def recompute_max(self) -> int:
        with self._lock:
            highest = 1
            for chunks in self._dimensions.values():
                for count in chunks.values():
                    if count > highest:
                        highest = count
            self._running_max = highest
            return highest

    def replace_all(self, dimensions: Mapping[str, Mapping[ChunkKey, int]]) -> None:
        with self._lock:
            self._dimensions = {dim: dict(chunks) for dim, chunks in dimensions.items()}
            self._dirty = False
            self.recompute_max()

    def clear(self) -> None:
        with self._lock:
            self._dimensions = {}
            self._running_max = 1
            self._dirty = False

    def to_payload(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {
                dim: {str(key): count for key, count in chunks.items()}
                for dim, chunks in self._dimensions.items()
                if chunks
            }

    def take_payload(self) -> Dict[str, Dict[str, int]]:
        """Serialise the cache and clear the dirty flag in one step."""

        with self._lock:
            payload = self.to_payload()
            self._dirty = False
            return payload


class DensityCacheStore:
    """Owns the five slot caches and their files for the current world."""

    def __init__(self, cache_dir: Path) -> None:
        self._cache_dir = Path(cache_dir)
        self._slots: Dict[int, SlotCache] = {slot: SlotCache(slot) for slot in range(1, SLOT_COUNT + 1)}
        self._world_identity: Optional[str] = None
        self._load_failed: Dict[int, bool] = {}

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def world_identity(self) -> Optional[str]:
        return self._world_identity

    def slot(self, slot: int) -> SlotCache:
        if not is_valid_slot(slot):
            raise ValueError(f"slot must be between 1 and {SLOT_COUNT}, got {slot!r}")
        return self._slots[slot]

    def load_failed(self, slot: int) -> bool:
        return self._load_failed.get(slot, False)

    def path_for(self, slot: int) -> Optional[Path]:
        if self._world_identity is None:
            return None
        return cache_file_path(self._cache_dir, self._world_identity, slot)

    # World lifecycle ------------------------------------------------------

    def switch_world(self, identity: Optional[str]) -> bool:
        """Adopt ``identity``, flushing and dropping the previous world's data.

        Returns ``True`` when the identity changed.
        """

        if identity == self._world_identity:
            return False
        previous = self._world_identity
        if previous is not None:
            self.save_all()
        self.reset_memory()
        self._world_identity = identity
        if identity is not None:
            self.load_all()
        _LOGGER.info("World changed: %s -> %s", previous, identity)
        return True

    def reset_memory(self) -> None:
        for cache in self._slots.values():
            cache.clear()
        self._load_failed.clear()

    # Persistence ----------------------------------------------------------

    def load_all(self) -> None:
        for slot in self._slots:
            self.load_slot(slot)

    def load_slot(self, slot: int) -> bool:
        """Load one slot from disk. Never raises; returns ``False`` on failure."""

        cache = self.slot(slot)
        path = self.path_for(slot)
        if path is None:
            return False
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            _LOGGER.debug("No cache file for world %s slot %d", self._world_identity, slot)
            cache.clear()
            return True
        except (OSError, ValueError) as exc:
            self._mark_load_failed(slot, f"Failed to load ore cache {path}: {exc}")
            cache.clear()
            return False
        parsed = parse_cache_payload(raw)
        if parsed is None:
            self._mark_load_failed(slot, f"Ore cache {path} is not a JSON object; starting empty")
            cache.clear()
            return False
        cache.replace_all(parsed)
        _LOGGER.info(
            "Loaded ore cache for world %s slot %d (%d dimensions)",
            self._world_identity,
            slot,
            len(parsed),
        )
        return True

    def _mark_load_failed(self, slot: int, message: str) -> None:
        if self._load_failed.get(slot):
            return
        self._load_failed[slot] = True
        _LOGGER.error(message)

    def save_all(self, force: bool = False) -> None:
        for slot in self._slots:
            self.save_slot(slot, force=force)

    def save_slot(self, slot: int, force: bool = False) -> bool:
        """Write one slot's cache. Empty caches are never written."""

        cache = self.slot(slot)
        path = self.path_for(slot)
        if path is None or cache.is_empty():
            return False
        if not force and not cache.dirty:
            return False
        payload = cache.take_payload()
        if self._write_payload(path, payload):
            _LOGGER.debug("Saved ore cache for world %s slot %d", self._world_identity, slot)
            return True
        cache.mark_dirty()
        return False

    def _write_payload(self, path: Path, payload: Mapping[str, Any]) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
            tmp_path.replace(path)
            return True
        except (OSError, TypeError, ValueError) as exc:
            _LOGGER.error("Failed to write ore cache %s: %s", path, exc)
            return False

    def reset_slot(self, slot: int) -> None:
        """Drop a slot's data from memory and delete its cache file."""

        self.slot(slot).clear()
        self._load_failed.pop(slot, None)
        path = self.path_for(slot)
        if path is None:
            return
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            _LOGGER.error("Failed to delete ore cache %s: %s", path, exc)


def should_save(update_count: int, update_interval_ticks: int, save_interval_ticks: int = DEFAULT_SAVE_INTERVAL_TICKS) -> bool:
    """Return ``True`` on every update tick that should also persist the cache."""

    every = max(1, int(save_interval_ticks) // max(1, int(update_interval_ticks)))
    return update_count > 0 and update_count % every == 0
