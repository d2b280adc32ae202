"""Chunk coordinates and the host-facing interfaces the heatmap core relies on."""
from __future__ import annotations

import re
from typing import NamedTuple, Optional, Protocol

CHUNK_SIZE = 16
SLOT_COUNT = 5

_UNSAFE_IDENTITY_CHARS = re.compile(r"[^a-zA-Z0-9]")


class ChunkKey(NamedTuple):
    """Horizontal chunk coordinate; the chunk spans the full build height."""

    x: int
    z: int

    def __str__(self) -> str:
        return f"{self.x},{self.z}"

    @classmethod
    def parse(cls, raw: str) -> "ChunkKey":
        """Parse the ``"x,z"`` form used inside cache files.

        Raises ``ValueError`` for anything that is not two comma separated ints.
        """

        parts = str(raw).split(",")
        if len(parts) != 2:
            raise ValueError(f"invalid chunk key: {raw!r}")
        return cls(int(parts[0].strip()), int(parts[1].strip()))

    @classmethod
    def from_block(cls, block_x: int, block_z: int) -> "ChunkKey":
        return cls(int(block_x) >> 4, int(block_z) >> 4)

    @property
    def min_block_x(self) -> int:
        return self.x * CHUNK_SIZE

    @property
    def min_block_z(self) -> int:
        return self.z * CHUNK_SIZE


class WorldView(Protocol):
    """Read-only access to the blocks of one loaded level."""

    min_build_height: int
    max_build_height: int

    def is_chunk_loaded(self, chunk_x: int, chunk_z: int) -> bool: ...
    def block_at(self, x: int, y: int, z: int) -> str: ...
    def block_has_tag(self, block_id: str, tag: str) -> bool: ...


class HostEnvironment(Protocol):
    """What the controller reads from the running game on every tick."""

    def world_identity(self) -> Optional[str]: ...
    def dimension(self) -> Optional[str]: ...
    def player_chunk(self) -> Optional[ChunkKey]: ...
    def view_distance(self) -> int: ...
    def world_view(self) -> Optional[WorldView]: ...


def derive_world_identity(level_name: Optional[str] = None, server_address: Optional[str] = None) -> Optional[str]:
    """Return the cache namespace for the current world.

    Single-player worlds are keyed by save folder name, multiplayer sessions by
    server address. ``None`` means no world is active.
    """

    if level_name:
        return "local_" + _UNSAFE_IDENTITY_CHARS.sub("_", level_name)
    if server_address:
        return "server_" + _UNSAFE_IDENTITY_CHARS.sub("_", server_address)
    return None


def is_valid_slot(slot: object) -> bool:
    return isinstance(slot, int) and not isinstance(slot, bool) and 1 <= slot <= SLOT_COUNT
