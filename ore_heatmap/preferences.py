"""JSON-backed configuration for the ore heatmap."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .tracked import invalid_entries
from .world import SLOT_COUNT, is_valid_slot

PREFERENCES_FILE = "ore_heatmap_settings.json"

DEFAULT_TRACKED_SLOTS: List[List[str]] = [
    ["#c:ores/coal"],
    ["#c:ores/copper"],
    ["#c:ores/iron"],
    ["#c:ores/gold"],
    ["#c:ores/diamond"],
]


def _default_slots() -> List[List[str]]:
    return [list(entries) for entries in DEFAULT_TRACKED_SLOTS]


def _coerce_bool(raw: Any, default: bool) -> bool:
    return raw if isinstance(raw, bool) else default


def _coerce_int(raw: Any, default: int, low: int, high: int) -> int:
    if isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(low, min(value, high))


def _coerce_float(raw: Any, default: float, low: float, high: float) -> float:
    if isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return max(low, min(value, high))


def _coerce_slots(raw: Any) -> List[List[str]]:
    slots = _default_slots()
    if not isinstance(raw, list):
        return slots
    for index, entries in enumerate(raw[:SLOT_COUNT]):
        if isinstance(entries, list):
            slots[index] = [str(entry) for entry in entries if isinstance(entry, str)]
        elif isinstance(entries, str):
            slots[index] = [entries]
    return slots


@dataclass
class Preferences:
    """Simple JSON-backed preferences store."""

    plugin_dir: Path
    enabled: bool = False
    scan_radius: int = 3
    update_interval_ticks: int = 40
    overlay_opacity: float = 0.6
    rescan_batch_size: int = 4
    max_scans_per_tick: int = 8
    save_interval_ticks: int = 600
    rescan_margin: int = 2
    rescan_max_attempts: int = 20
    active_slot: int = 0
    tracked_slots: List[List[str]] = field(default_factory=_default_slots)

    def __post_init__(self) -> None:
        self.plugin_dir = Path(self.plugin_dir)
        self._path = self.plugin_dir / PREFERENCES_FILE
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    # Persistence ---------------------------------------------------------

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError):
            return
        if not isinstance(data, dict):
            return
        self.enabled = _coerce_bool(data.get("enabled"), False)
        self.scan_radius = _coerce_int(data.get("scan_radius"), 3, 1, 8)
        self.update_interval_ticks = _coerce_int(data.get("update_interval_ticks"), 40, 20, 200)
        self.overlay_opacity = _coerce_float(data.get("overlay_opacity"), 0.6, 0.1, 1.0)
        self.rescan_batch_size = _coerce_int(data.get("rescan_batch_size"), 4, 1, 64)
        self.max_scans_per_tick = _coerce_int(data.get("max_scans_per_tick"), 8, 1, 64)
        self.save_interval_ticks = _coerce_int(
            data.get("save_interval_ticks"), 600, self.update_interval_ticks, 72_000
        )
        self.rescan_margin = _coerce_int(data.get("rescan_margin"), 2, 0, 8)
        self.rescan_max_attempts = _coerce_int(data.get("rescan_max_attempts"), 20, 1, 1000)
        self.tracked_slots = _coerce_slots(data.get("tracked_slots"))
        active = _coerce_int(data.get("active_slot"), 0, 0, SLOT_COUNT)
        self.active_slot = active

    def save(self) -> None:
        payload: Dict[str, Any] = {
            "enabled": bool(self.enabled),
            "scan_radius": int(self.scan_radius),
            "update_interval_ticks": int(self.update_interval_ticks),
            "overlay_opacity": float(self.overlay_opacity),
            "rescan_batch_size": int(self.rescan_batch_size),
            "max_scans_per_tick": int(self.max_scans_per_tick),
            "save_interval_ticks": int(self.save_interval_ticks),
            "rescan_margin": int(self.rescan_margin),
            "rescan_max_attempts": int(self.rescan_max_attempts),
            "active_slot": int(self.active_slot),
            "tracked_slots": [list(entries) for entries in self.tracked_slots],
        }
        self.plugin_dir.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    # Slot configuration --------------------------------------------------

    def slot_entries(self, slot: int) -> List[str]:
        if not is_valid_slot(slot):
            return []
        return list(self.tracked_slots[slot - 1])

    def set_slot_entries(self, slot: int, entries: Iterable[str]) -> List[str]:
        """Validate and store a slot's entries; raises ``ValueError`` if any is invalid."""

        if not is_valid_slot(slot):
            raise ValueError(f"slot must be between 1 and {SLOT_COUNT}, got {slot!r}")
        entries = list(entries)
        cleaned = [entry.strip() for entry in entries if isinstance(entry, str) and entry.strip()]
        bad = invalid_entries(entries)
        if bad:
            raise ValueError("invalid tracked entries: " + ", ".join(bad))
        self.tracked_slots[slot - 1] = cleaned
        return cleaned
