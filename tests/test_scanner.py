from __future__ import annotations

import threading

from ore_heatmap.scanner import ScanBudget, scan_chunk, scan_chunk_slots
from ore_heatmap.tracked import build_tracked_set
from ore_heatmap.world import ChunkKey


def test_scan_counts_exact_matches(world):
    key = ChunkKey(0, 0)
    world.load(0, 0).fill_chunk(key, "minecraft:diamond_ore", 7)

    assert scan_chunk(world, key, build_tracked_set(["minecraft:diamond_ore"])) == 7


def test_scan_is_idempotent(world):
    key = ChunkKey(2, -3)
    world.load(2, -3).fill_chunk(key, "minecraft:iron_ore", 11)
    tracked = build_tracked_set(["minecraft:iron_ore"])

    assert scan_chunk(world, key, tracked) == scan_chunk(world, key, tracked) == 11


def test_scan_refuses_unloaded_chunk(world):
    key = ChunkKey(5, 5)
    world.fill_chunk(key, "minecraft:diamond_ore", 3)

    assert scan_chunk(world, key, build_tracked_set(["minecraft:diamond_ore"])) is None
    assert world.block_reads == 0


def test_scan_without_matches_is_zero(world):
    world.load(0, 0)
    assert scan_chunk(world, ChunkKey(0, 0), build_tracked_set(["minecraft:emerald_ore"])) == 0


def test_scan_only_reads_the_addressed_chunk(world):
    key = ChunkKey(-1, 0)
    world.load(-1, 0).load(0, 0)
    world.fill_chunk(ChunkKey(0, 0), "minecraft:gold_ore", 9)
    world.place(-16, 0, 0, "minecraft:gold_ore")

    assert scan_chunk(world, key, build_tracked_set(["minecraft:gold_ore"])) == 1
    assert world.block_reads == 16 * 16 * (world.max_build_height - world.min_build_height)


def test_scan_covers_negative_build_heights(make_world):
    world = make_world(min_build_height=-2, max_build_height=1).load(0, 0)
    world.place(3, -2, 4, "minecraft:deepslate_diamond_ore")
    world.place(3, 0, 4, "minecraft:deepslate_diamond_ore")
    world.place(3, 1, 4, "minecraft:deepslate_diamond_ore")  # above the build range

    assert scan_chunk(world, ChunkKey(0, 0), build_tracked_set(["minecraft:deepslate_diamond_ore"])) == 2


def test_position_matching_exact_and_tag_counts_once(world):
    key = ChunkKey(0, 0)
    world.load(0, 0).fill_chunk(key, "minecraft:diamond_ore", 4)
    world.tags["c:ores"] = {"minecraft:diamond_ore"}

    assert scan_chunk(world, key, build_tracked_set(["minecraft:diamond_ore", "#c:ores"])) == 4


def test_tag_matches(world):
    key = ChunkKey(1, 1)
    world.load(1, 1)
    world.place(16, 0, 16, "minecraft:iron_ore")
    world.place(17, 0, 16, "minecraft:deepslate_iron_ore")
    world.place(18, 0, 16, "minecraft:coal_ore")
    world.tags["c:ores/iron"] = {"minecraft:iron_ore", "minecraft:deepslate_iron_ore"}

    assert scan_chunk(world, key, build_tracked_set(["#c:ores/iron"])) == 2


def test_scan_chunk_slots_counts_every_slot_in_one_pass(world):
    key = ChunkKey(0, 0)
    world.load(0, 0)
    world.place(0, 0, 0, "minecraft:coal_ore")
    world.place(1, 0, 0, "minecraft:coal_ore")
    world.place(2, 0, 0, "minecraft:iron_ore")

    counts = scan_chunk_slots(
        world,
        key,
        {
            1: build_tracked_set(["minecraft:coal_ore"]),
            2: build_tracked_set(["minecraft:iron_ore"]),
            3: build_tracked_set(["minecraft:coal_ore", "minecraft:iron_ore"]),
        },
    )

    assert counts == {1: 2, 2: 1, 3: 3}
    assert world.block_reads == 16 * 16 * 4


def test_scan_chunk_slots_with_empty_sets_skips_traversal(world):
    world.load(0, 0)
    assert scan_chunk_slots(world, ChunkKey(0, 0), {4: build_tracked_set([])}) == {4: 0}
    assert world.block_reads == 0


def test_scan_budget_limits_and_resets():
    budget = ScanBudget(2)

    assert budget.try_acquire()
    assert budget.try_acquire()
    assert not budget.try_acquire()
    assert budget.remaining == 0

    budget.reset()
    assert budget.remaining == 2

    budget.set_limit(0)
    assert budget.limit == 1


def test_scan_budget_is_shared_safely_between_threads():
    budget = ScanBudget(50)
    granted = []
    lock = threading.Lock()

    def worker():
        for _ in range(40):
            if budget.try_acquire():
                with lock:
                    granted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(granted) == 50
