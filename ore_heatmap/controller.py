"""Slot state machine and the tick / chunk-load entry points of the heatmap."""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Iterable, Optional, Set, Tuple

from .density_cache import DensityCacheStore, SlotCache, should_save
from .overlays import OverlayReconciler, OverlayRenderer
from .preferences import Preferences
from .rescan import RescanScheduler
from .scanner import ScanBudget, scan_chunk_slots
from .tracked import SlotRegistry, TrackedSet
from .world import ChunkKey, HostEnvironment, WorldView

_LOGGER = logging.getLogger("OreHeatmap.Controller")

OFF = 0


class HeatmapController:
    """Owns the active slot and drives scanning, persistence and rendering.

    ``on_tick`` is called from the game loop. ``on_chunk_loaded`` may be called
    from another thread. Both run under the world lock, so a world switch never
    lands in the middle of another thread's scan.
    """

    def __init__(
        self,
        preferences: Preferences,
        store: DensityCacheStore,
        renderer: OverlayRenderer,
        host: HostEnvironment,
    ) -> None:
        self._prefs = preferences
        self._store = store
        self._host = host
        self._registry = SlotRegistry()
        self._registry.reload(preferences.tracked_slots)
        self._reconciler = OverlayReconciler(renderer)
        self._scheduler = RescanScheduler(preferences.rescan_max_attempts)
        self._budget = ScanBudget(preferences.max_scans_per_tick)
        self._world_lock = threading.RLock()
        self._deferred_lock = threading.Lock()
        self._deferred: Deque[Tuple[str, ChunkKey]] = deque()
        self._deferred_keys: Set[Tuple[str, ChunkKey]] = set()
        self._dimension: Optional[str] = None
        self._tick_counter = 0
        self._update_count = 0
        self._overlays_visible = False
        initial = int(preferences.active_slot or OFF)
        self._active_slot = initial if self._registry.is_configured(initial) else OFF

    # State ----------------------------------------------------------------

    @property
    def active_slot(self) -> int:
        return self._active_slot

    @property
    def state(self) -> str:
        return "OFF" if self._active_slot == OFF else f"SLOT{self._active_slot}"

    @property
    def enabled(self) -> bool:
        return bool(self._prefs.enabled)

    @property
    def is_active(self) -> bool:
        return self.enabled and self._active_slot != OFF

    @property
    def dimension(self) -> Optional[str]:
        return self._dimension

    @property
    def registry(self) -> SlotRegistry:
        return self._registry

    @property
    def scheduler(self) -> RescanScheduler:
        return self._scheduler

    @property
    def reconciler(self) -> OverlayReconciler:
        return self._reconciler

    @property
    def store(self) -> DensityCacheStore:
        return self._store

    @property
    def budget(self) -> ScanBudget:
        return self._budget

    def pending_chunk_scans(self) -> int:
        with self._deferred_lock:
            return len(self._deferred)

    # Commands -------------------------------------------------------------

    def cycle_slot(self) -> int:
        """Advance OFF -> 1 -> ... -> 5 -> OFF, skipping unconfigured slots."""

        following = [slot for slot in self._registry.configured_slots() if slot > self._active_slot]
        target = following[0] if following else OFF
        self._set_active_slot(target)
        return target

    def toggle_enabled(self) -> bool:
        enabled = not self.enabled
        self._prefs.enabled = enabled
        self._save_preferences()
        if not enabled:
            self._suspend()
            _LOGGER.info("Ore heatmap disabled")
            return enabled
        _LOGGER.info("Ore heatmap enabled (%s)", self.state)
        if self._active_slot != OFF:
            self._enter_slot(self._active_slot)
        return enabled

    def reset_active_slot(self) -> bool:
        """Forget the active slot's data and rescan the area around the player."""

        slot = self._active_slot
        if slot == OFF:
            _LOGGER.info("Reset ignored: no heatmap slot is active")
            return False
        self._sync_world()
        self._scheduler.cancel(slot)
        self._store.reset_slot(slot)
        self._reconciler.clear()
        self._overlays_visible = False
        dimension = self._dimension or self._host.dimension()
        center = self._host.player_chunk()
        if self._store.world_identity is None or dimension is None or center is None:
            _LOGGER.info("Slot %d cache cleared; no world active so no rescan was seeded", slot)
            return False
        self._scheduler.seed(slot, dimension, center, self._rescan_radius())
        _LOGGER.info("Slot %d cache reset", slot)
        return True

    def update_slot_configuration(self, slot: int, entries: Iterable[str]) -> TrackedSet:
        """Validate, persist and apply a slot's tracked entries.

        Raises ``ValueError`` when the slot number or any entry is invalid.
        Changing the entries discards the slot's cached counts; the active slot
        is rescanned straight away.
        """

        previous = self._prefs.slot_entries(slot)
        cleaned = self._prefs.set_slot_entries(slot, entries)
        self._save_preferences()
        tracked = self._registry.update(slot, cleaned)
        if cleaned == previous:
            return tracked
        with self._world_lock:
            self._scheduler.cancel(slot)
            self._store.reset_slot(slot)
            _LOGGER.info("Slot %d now tracks %s; cached counts discarded", slot, cleaned or "nothing")
            if slot != self._active_slot:
                return tracked
            if tracked.is_empty:
                _LOGGER.info("Slot %d no longer tracks anything; switching heatmap off", slot)
                self._set_active_slot(OFF)
            elif self.is_active:
                self._reconciler.clear()
                self._overlays_visible = False
                self._enter_slot(slot)
        return tracked

    def reload_configuration(self) -> None:
        """Rebuild every tracked set after the preferences were edited elsewhere."""

        self._registry.reload(self._prefs.tracked_slots)
        self._budget.set_limit(self._prefs.max_scans_per_tick)
        self._scheduler.max_attempts = max(1, int(self._prefs.rescan_max_attempts))
        if self._active_slot != OFF and not self._registry.is_configured(self._active_slot):
            self._set_active_slot(OFF)

    # Host events ----------------------------------------------------------

    def on_chunk_loaded(self, dimension: str, key: ChunkKey, world: Optional[WorldView] = None) -> None:
        try:
            if not self.is_active:
                return
            with self._world_lock:
                self._sync_world()
                if self._store.world_identity is None:
                    return
                view = world if world is not None else self._host.world_view()
                if view is None:
                    return
                self._scan_loaded_chunk(dimension, key, view)
        except Exception as exc:
            _LOGGER.error("Chunk scan for %s in %s failed: %s", key, dimension, exc, exc_info=exc)

    def on_tick(self) -> None:
        try:
            with self._world_lock:
                self._tick()
        except Exception as exc:
            _LOGGER.error("Ore heatmap tick failed: %s", exc, exc_info=exc)

    def on_logout(self) -> None:
        with self._world_lock:
            self._store.switch_world(None)
            self._reset_session()

    def shutdown(self) -> None:
        self._store.save_all()

    # Tick internals -------------------------------------------------------

    def _tick(self) -> None:
        self._budget.set_limit(self._prefs.max_scans_per_tick)
        self._budget.reset()
        self._sync_world()
        if self._store.world_identity is None:
            return
        dimension = self._host.dimension()
        if dimension is None:
            return
        if dimension != self._dimension:
            previous = self._dimension
            self._dimension = dimension
            _LOGGER.debug("Dimension changed: %s -> %s", previous, dimension)
            if self.is_active:
                self._enter_slot(self._active_slot)

        active = self.is_active
        if active:
            self._drain_deferred(dimension)
            self._advance_rescan()

        self._tick_counter += 1
        if self._tick_counter < max(1, int(self._prefs.update_interval_ticks)):
            return
        self._tick_counter = 0
        self._update_count += 1
        if should_save(self._update_count, self._prefs.update_interval_ticks, self._prefs.save_interval_ticks):
            self._store.save_all()
        if active:
            self._refresh_overlays()
        elif self._overlays_visible:
            self._reconciler.clear()
            self._overlays_visible = False

    def _sync_world(self) -> bool:
        identity = self._host.world_identity()
        with self._world_lock:
            if identity == self._store.world_identity:
                return False
            self._store.switch_world(identity)
            self._reset_session()
            return True

    def _reset_session(self) -> None:
        self._reconciler.clear()
        self._overlays_visible = False
        self._scheduler.cancel_all()
        self._clear_deferred()
        self._dimension = None
        self._tick_counter = 0
        self._update_count = 0

    def _suspend(self) -> None:
        self._scheduler.cancel_all()
        self._clear_deferred()
        self._reconciler.clear()
        self._overlays_visible = False

    def _set_active_slot(self, slot: int) -> None:
        previous = self._active_slot
        if previous != OFF and previous != slot:
            self._scheduler.cancel(previous)
        self._active_slot = slot
        self._prefs.active_slot = slot
        self._save_preferences()
        if slot == OFF:
            self._suspend()
            _LOGGER.info("Ore heatmap slot cycling reached OFF")
            return
        _LOGGER.info("Ore heatmap switched to slot %d", slot)
        if self.enabled:
            self._enter_slot(slot)

    def _enter_slot(self, slot: int) -> None:
        cache = self._store.slot(slot)
        cache.recompute_max()
        self._refresh_overlays()
        self._seed_fill(slot, cache)

    def _seed_fill(self, slot: int, cache: SlotCache) -> None:
        dimension = self._dimension
        center = self._host.player_chunk()
        if self._store.world_identity is None or dimension is None or center is None:
            return
        job = self._scheduler.job(slot)
        if job is not None and job.dimension == dimension:
            return
        known = cache.keys(dimension)
        job = self._scheduler.seed(slot, dimension, center, self._rescan_radius(), skip=known)
        if not job.queue:
            self._scheduler.cancel(slot)

    def _rescan_radius(self) -> int:
        view = int(self._host.view_distance() or 0)
        if view <= 0:
            view = int(self._prefs.scan_radius)
        return view + max(0, int(self._prefs.rescan_margin))

    def _advance_rescan(self) -> None:
        slot = self._active_slot
        if not self._scheduler.has_job(slot):
            return
        result = self._scheduler.run_batch(
            slot,
            self._host.world_view(),
            self._store.slot(slot),
            self._registry.get(slot),
            self._budget,
            self._prefs.rescan_batch_size,
            lambda: self._job_is_current(slot),
        )
        if result.completed:
            self._refresh_overlays()
            self._store.save_slot(slot, force=True)

    def _job_is_current(self, slot: int) -> bool:
        job = self._scheduler.job(slot)
        return (
            self.is_active
            and self._active_slot == slot
            and job is not None
            and job.dimension == self._dimension
        )

    def _refresh_overlays(self) -> None:
        if not self.is_active or self._dimension is None:
            return
        cache = self._store.slot(self._active_slot)
        self._reconciler.reconcile(
            self._dimension,
            cache.snapshot(self._dimension),
            cache.running_max,
            self._prefs.overlay_opacity,
        )
        self._overlays_visible = True

    # Chunk-load scanning --------------------------------------------------

    def _scan_loaded_chunk(self, dimension: str, key: ChunkKey, world: WorldView) -> bool:
        wanted = {
            slot: self._registry.get(slot)
            for slot in self._registry.configured_slots()
            if not self._store.slot(slot).contains(dimension, key)
        }
        if not wanted:
            return True
        if not self._budget.try_acquire():
            self._defer(dimension, key)
            return False
        identity = self._store.world_identity
        counts = scan_chunk_slots(world, key, wanted)
        if counts is None:
            return False
        if identity != self._store.world_identity:
            _LOGGER.debug("World changed while scanning %s; discarding counts", key)
            return False
        for slot, count in counts.items():
            self._store.slot(slot).record(dimension, key, count)
        return True

    def _defer(self, dimension: str, key: ChunkKey) -> None:
        entry = (dimension, key)
        with self._deferred_lock:
            if entry in self._deferred_keys:
                return
            self._deferred_keys.add(entry)
            self._deferred.append(entry)

    def _clear_deferred(self) -> None:
        with self._deferred_lock:
            self._deferred.clear()
            self._deferred_keys.clear()

    def _drain_deferred(self, dimension: str) -> None:
        world = self._host.world_view()
        if world is None:
            return
        while self._budget.remaining > 0:
            with self._deferred_lock:
                if not self._deferred:
                    return
                entry = self._deferred.popleft()
                self._deferred_keys.discard(entry)
            entry_dimension, key = entry
            if entry_dimension != dimension:
                continue
            self._scan_loaded_chunk(entry_dimension, key, world)

    def _save_preferences(self) -> None:
        try:
            self._prefs.save()
        except OSError as exc:
            _LOGGER.warning("Failed to save ore heatmap preferences: %s", exc)
