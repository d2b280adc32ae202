from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

import pytest

from ore_heatmap.world import ChunkKey

OVERWORLD = "minecraft:overworld"
NETHER = "minecraft:the_nether"


class FakeWorld:
    """Tiny world: four blocks tall, stone everywhere unless placed otherwise."""

    def __init__(self, min_build_height: int = 0, max_build_height: int = 4) -> None:
        self.min_build_height = min_build_height
        self.max_build_height = max_build_height
        self.blocks: Dict[Tuple[int, int, int], str] = {}
        self.loaded: Set[Tuple[int, int]] = set()
        self.tags: Dict[str, Set[str]] = {}
        self.block_reads = 0

    def load(self, chunk_x: int, chunk_z: int) -> "FakeWorld":
        self.loaded.add((chunk_x, chunk_z))
        return self

    def unload(self, chunk_x: int, chunk_z: int) -> None:
        self.loaded.discard((chunk_x, chunk_z))

    def place(self, x: int, y: int, z: int, block_id: str) -> None:
        self.blocks[(x, y, z)] = block_id

    def fill_chunk(self, key: ChunkKey, block_id: str, count: int) -> None:
        """Place ``count`` copies of ``block_id`` at distinct positions in ``key``."""

        placed = 0
        for y in range(self.min_build_height, self.max_build_height):
            for dx in range(16):
                for dz in range(16):
                    if placed >= count:
                        return
                    self.place(key.min_block_x + dx, y, key.min_block_z + dz, block_id)
                    placed += 1

    def is_chunk_loaded(self, chunk_x: int, chunk_z: int) -> bool:
        return (chunk_x, chunk_z) in self.loaded

    def block_at(self, x: int, y: int, z: int) -> str:
        self.block_reads += 1
        return self.blocks.get((x, y, z), "minecraft:stone")

    def block_has_tag(self, block_id: str, tag: str) -> bool:
        return block_id in self.tags.get(tag, set())


class FakeHost:
    def __init__(self, world: Optional[FakeWorld] = None) -> None:
        self.identity: Optional[str] = "local_Test_World"
        self.current_dimension: Optional[str] = OVERWORLD
        self.chunk: Optional[ChunkKey] = ChunkKey(0, 0)
        self.distance = 1
        self.world = world

    def world_identity(self) -> Optional[str]:
        return self.identity

    def dimension(self) -> Optional[str]:
        return self.current_dimension

    def player_chunk(self) -> Optional[ChunkKey]:
        return self.chunk

    def view_distance(self) -> int:
        return self.distance

    def world_view(self) -> Optional[FakeWorld]:
        return self.world


class FakeRenderer:
    def __init__(self) -> None:
        self.visible: Dict[str, Tuple[dict, dict]] = {}
        self.shown: List[str] = []
        self.removed: List[str] = []

    def show(self, overlay_id: str, shape, style) -> None:
        self.visible[overlay_id] = (dict(shape), dict(style))
        self.shown.append(overlay_id)

    def remove(self, overlay_id: str) -> None:
        self.visible.pop(overlay_id, None)
        self.removed.append(overlay_id)


@pytest.fixture
def world() -> FakeWorld:
    return FakeWorld()


@pytest.fixture
def host(world: FakeWorld) -> FakeHost:
    return FakeHost(world)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def make_world():
    return FakeWorld


class _RecordingHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.DEBUG)
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def heatmap_logs():
    """Records everything logged under ``OreHeatmap`` (load.py stops propagation to root)."""

    logger = logging.getLogger("OreHeatmap")
    handler = _RecordingHandler()
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        yield handler.records
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
