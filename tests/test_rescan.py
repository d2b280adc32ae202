from __future__ import annotations

from ore_heatmap.density_cache import SlotCache
from ore_heatmap.rescan import RescanScheduler, chunks_in_radius
from ore_heatmap.scanner import ScanBudget
from ore_heatmap.tracked import build_tracked_set
from ore_heatmap.world import ChunkKey

OVERWORLD = "minecraft:overworld"
DIAMONDS = build_tracked_set(["minecraft:diamond_ore"])


def _always() -> bool:
    return True


def _load_all(world, keys):
    for key in keys:
        world.load(key.x, key.z)


def test_chunks_in_radius_is_a_disc():
    keys = chunks_in_radius(ChunkKey(10, -4), 2)

    assert len(keys) == 13
    assert ChunkKey(12, -4) in keys
    assert ChunkKey(12, -2) not in keys
    assert all((key.x - 10) ** 2 + (key.z + 4) ** 2 <= 4 for key in keys)


def test_chunks_in_radius_nearest_first():
    keys = chunks_in_radius(ChunkKey(0, 0), 3)
    distances = [key.x * key.x + key.z * key.z for key in keys]

    assert keys[0] == ChunkKey(0, 0)
    assert distances == sorted(distances)


def test_zero_radius_is_only_the_center():
    assert chunks_in_radius(ChunkKey(3, 3), 0) == [ChunkKey(3, 3)]


def test_seed_skips_known_chunks():
    scheduler = RescanScheduler()
    job = scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1, skip=[ChunkKey(0, 0)])

    assert job.pending == frozenset(chunks_in_radius(ChunkKey(0, 0), 1)) - {ChunkKey(0, 0)}


def test_seed_replaces_existing_job():
    scheduler = RescanScheduler()
    first = scheduler.seed(2, OVERWORLD, ChunkKey(0, 0), 1)
    second = scheduler.seed(2, OVERWORLD, ChunkKey(5, 5), 1)

    assert scheduler.job(2) is second
    assert first is not second


def test_run_batch_scans_loaded_chunks_and_completes(world):
    scheduler = RescanScheduler()
    cache = SlotCache(1)
    keys = chunks_in_radius(ChunkKey(0, 0), 1)
    _load_all(world, keys)
    world.fill_chunk(ChunkKey(0, 0), "minecraft:diamond_ore", 3)
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1)

    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 64, _always)

    assert result.scanned == len(keys)
    assert result.completed
    assert not scheduler.has_job(1)
    assert cache.get(OVERWORLD, ChunkKey(0, 0)) == 3
    assert cache.get(OVERWORLD, ChunkKey(1, 0)) == 0


def test_run_batch_respects_batch_size_and_budget(world):
    scheduler = RescanScheduler()
    cache = SlotCache(1)
    _load_all(world, chunks_in_radius(ChunkKey(0, 0), 2))
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 2)

    first = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 4, _always)
    budget = ScanBudget(2)
    second = scheduler.run_batch(1, world, cache, DIAMONDS, budget, 4, _always)

    assert first.scanned == 4
    assert second.scanned == 2
    assert budget.remaining == 0
    assert len(scheduler.job(1).queue) == 13 - 6


def test_non_resident_chunk_waits_for_next_batch(world):
    scheduler = RescanScheduler(max_attempts=5)
    cache = SlotCache(1)
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 0)

    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 8, _always)

    assert result.deferred == 1
    assert result.scanned == 0
    assert scheduler.job(1).attempts[ChunkKey(0, 0)] == 1

    world.load(0, 0)
    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 8, _always)

    assert result.completed
    assert cache.get(OVERWORLD, ChunkKey(0, 0)) == 0


def test_non_resident_chunk_goes_to_back_of_queue(world):
    scheduler = RescanScheduler()
    cache = SlotCache(1)
    keys = chunks_in_radius(ChunkKey(0, 0), 1)
    _load_all(world, keys[1:])
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1)

    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 64, _always)

    assert result.scanned == len(keys) - 1
    assert list(scheduler.job(1).queue) == [ChunkKey(0, 0)]


def test_chunk_is_dropped_after_max_attempts(world, heatmap_logs):
    scheduler = RescanScheduler(max_attempts=3)
    cache = SlotCache(1)
    scheduler.seed(1, OVERWORLD, ChunkKey(7, 7), 0)

    results = [scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 8, _always) for _ in range(3)]

    assert [r.deferred for r in results] == [1, 1, 0]
    assert results[-1].dropped == 1
    assert results[-1].completed
    assert not cache.contains(OVERWORLD, ChunkKey(7, 7))
    assert any("Dropping chunk 7,7" in record.getMessage() for record in heatmap_logs)


def test_run_batch_cancels_inactive_job(world):
    scheduler = RescanScheduler()
    cache = SlotCache(1)
    world.load(0, 0)
    job = scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 0)

    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 8, lambda: False)

    assert result.cancelled
    assert not job.active
    assert not scheduler.has_job(1)
    assert cache.is_empty()


def test_run_batch_cancels_when_slot_tracks_nothing(world):
    scheduler = RescanScheduler()
    world.load(0, 0)
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 0)

    result = scheduler.run_batch(1, world, SlotCache(1), build_tracked_set([]), ScanBudget(64), 8, _always)

    assert result.cancelled


def test_run_batch_without_world_waits(world):
    scheduler = RescanScheduler()
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1)

    result = scheduler.run_batch(1, None, SlotCache(1), DIAMONDS, ScanBudget(64), 8, _always)

    assert result.scanned == 0
    assert scheduler.has_job(1)
    assert len(scheduler.job(1).queue) == 5


def test_cancel_all():
    scheduler = RescanScheduler()
    scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1)
    scheduler.seed(4, OVERWORLD, ChunkKey(0, 0), 1)

    scheduler.cancel_all()

    assert not scheduler.has_job(1)
    assert not scheduler.has_job(4)


def test_run_batch_discards_count_when_cancelled_mid_scan(world):
    scheduler = RescanScheduler()
    cache = SlotCache(1)
    world.load(0, 0)
    world.fill_chunk(ChunkKey(0, 0), "minecraft:diamond_ore", 2)
    job = scheduler.seed(1, OVERWORLD, ChunkKey(0, 0), 1)
    read_block = world.block_at

    def cancelling_read(x, y, z):
        scheduler.cancel(1)
        return read_block(x, y, z)

    world.block_at = cancelling_read

    result = scheduler.run_batch(1, world, cache, DIAMONDS, ScanBudget(64), 8, _always)

    assert result.cancelled
    assert result.scanned == 0
    assert not job.active
    assert cache.is_empty()
