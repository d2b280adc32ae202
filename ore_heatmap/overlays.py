"""Diff the active slot's counts against the overlays already handed to the renderer."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Protocol, Tuple

from . import colors
from .world import CHUNK_SIZE, ChunkKey

_LOGGER = logging.getLogger("OreHeatmap.Overlay")

OVERLAY_ID_PREFIX = "ore_heatmap"
STROKE_WIDTH = 1.0

Point = Tuple[int, int]


class OverlayRenderer(Protocol):
    def show(self, overlay_id: str, shape: Mapping[str, Any], style: Mapping[str, Any]) -> None: ...
    def remove(self, overlay_id: str) -> None: ...


@dataclass(frozen=True)
class OverlayRecord:
    overlay_id: str
    polygon: Tuple[Point, ...]
    fill_color: str
    fill_opacity: float
    stroke_color: str
    stroke_opacity: float
    label: str
    stroke_width: float = STROKE_WIDTH


def overlay_id_for(key: ChunkKey) -> str:
    return f"{OVERLAY_ID_PREFIX}:{key.x},{key.z}"


def chunk_polygon(key: ChunkKey) -> Tuple[Point, ...]:
    """Footprint corners in block coordinates (x, z), wound like the map expects."""

    min_x = key.min_block_x
    min_z = key.min_block_z
    max_x = min_x + CHUNK_SIZE
    max_z = min_z + CHUNK_SIZE
    return ((min_x, max_z), (max_x, max_z), (max_x, min_z), (min_x, min_z))


def overlay_label(count: int) -> str:
    return f"Ores: {count} blocks"


def build_record(key: ChunkKey, count: int, running_max: int, max_opacity: float) -> OverlayRecord:
    color = colors.to_hex(colors.heat_color(count, running_max))
    fill = colors.fill_opacity(count, running_max, max_opacity)
    return OverlayRecord(
        overlay_id=overlay_id_for(key),
        polygon=chunk_polygon(key),
        fill_color=color,
        fill_opacity=fill,
        stroke_color=color,
        stroke_opacity=colors.stroke_opacity(fill),
        label=overlay_label(count),
    )


class OverlayReconciler:
    """Issues show/remove calls so the renderer mirrors the current snapshot."""

    def __init__(self, renderer: OverlayRenderer) -> None:
        self._renderer = renderer
        self._lock = threading.Lock()
        self._records: Dict[ChunkKey, OverlayRecord] = {}

    @property
    def records(self) -> Dict[ChunkKey, OverlayRecord]:
        with self._lock:
            return dict(self._records)

    def reconcile(
        self,
        dimension: str,
        counts: Mapping[ChunkKey, int],
        running_max: int,
        max_opacity: float,
    ) -> None:
        snapshot = dict(counts)
        running_max = max(1, int(running_max))
        with self._lock:
            for key, count in snapshot.items():
                if count <= 0:
                    self._retract(key)
                    continue
                record = build_record(key, count, running_max, max_opacity)
                if self._show(dimension, record):
                    self._records[key] = record
            stale: List[ChunkKey] = [key for key in self._records if key not in snapshot]
            for key in stale:
                self._retract(key)

    def clear(self) -> None:
        with self._lock:
            for key in list(self._records):
                self._retract(key)
            self._records.clear()

    def _show(self, dimension: str, record: OverlayRecord) -> bool:
        shape = {
            "dimension": dimension,
            "polygon": [list(point) for point in record.polygon],
        }
        style = {
            "fill_color": record.fill_color,
            "fill_opacity": record.fill_opacity,
            "stroke_color": record.stroke_color,
            "stroke_opacity": record.stroke_opacity,
            "stroke_width": record.stroke_width,
            "label": record.label,
        }
        try:
            self._renderer.show(record.overlay_id, shape, style)
        except Exception as exc:
            _LOGGER.error("Failed to show overlay %s: %s", record.overlay_id, exc)
            return False
        return True

    def _retract(self, key: ChunkKey) -> None:
        record = self._records.pop(key, None)
        if record is None:
            return
        try:
            self._renderer.remove(record.overlay_id)
        except Exception as exc:
            _LOGGER.debug("Failed to remove overlay %s: %s", record.overlay_id, exc)
