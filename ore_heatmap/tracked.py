"""Parse per-slot tracked-resource strings into match sets."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .world import SLOT_COUNT, is_valid_slot

_LOGGER = logging.getLogger("OreHeatmap.Registry")

_IDENTIFIER_RE = re.compile(r"^[a-z0-9_.-]+:[a-z0-9_./-]+$")
TAG_PREFIX = "#"


def validate_entry(entry: object) -> bool:
    """Return ``True`` for ``namespace:path`` or ``#namespace:path`` strings."""

    if not isinstance(entry, str):
        return False
    text = entry.strip()
    if text.startswith(TAG_PREFIX):
        text = text[1:]
    return bool(_IDENTIFIER_RE.match(text))


def split_entries(text: str) -> List[str]:
    """Split comma separated UI text into stripped, non-empty entries."""

    return [part.strip() for part in (text or "").split(",") if part.strip()]


def invalid_entries(entries: Iterable[object]) -> List[str]:
    bad: List[str] = []
    for entry in entries:
        if isinstance(entry, str) and not entry.strip():
            continue
        if not validate_entry(entry):
            bad.append(str(entry))
    return bad


@dataclass(frozen=True)
class TrackedSet:
    """Exact block identifiers and tags one slot scans for."""

    exact_ids: frozenset = frozenset()
    tags: frozenset = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.exact_ids and not self.tags

    def matches(self, block_id: str, has_tag: Callable[[str, str], bool]) -> bool:
        if block_id in self.exact_ids:
            return True
        for tag in self.tags:
            if has_tag(block_id, tag):
                return True
        return False


EMPTY_TRACKED_SET = TrackedSet()


def build_tracked_set(entries: Iterable[object], slot: Optional[int] = None) -> TrackedSet:
    """Build a :class:`TrackedSet`, dropping invalid entries with a warning."""

    exact: set = set()
    tags: set = set()
    for entry in entries or ():
        if isinstance(entry, str) and not entry.strip():
            continue
        if not validate_entry(entry):
            _LOGGER.warning("Ignoring invalid tracked entry %r for slot %s", entry, slot)
            continue
        text = entry.strip()
        if text.startswith(TAG_PREFIX):
            tags.add(text[1:])
        else:
            exact.add(text)
    tracked = TrackedSet(frozenset(exact), frozenset(tags))
    _LOGGER.debug("Slot %s tracks %d blocks and %d tags", slot, len(exact), len(tags))
    return tracked


class SlotRegistry:
    """The five tracked sets, indexed by slot number (1-based)."""

    def __init__(self) -> None:
        self._sets: Dict[int, TrackedSet] = {slot: EMPTY_TRACKED_SET for slot in range(1, SLOT_COUNT + 1)}

    def reload(self, slot_entries: Iterable[Iterable[object]]) -> None:
        for index, entries in enumerate(slot_entries, start=1):
            if index > SLOT_COUNT:
                break
            self._sets[index] = build_tracked_set(entries, slot=index)

    def update(self, slot: int, entries: Iterable[object]) -> TrackedSet:
        if not is_valid_slot(slot):
            raise ValueError(f"slot must be between 1 and {SLOT_COUNT}, got {slot!r}")
        tracked = build_tracked_set(entries, slot=slot)
        self._sets[slot] = tracked
        return tracked

    def get(self, slot: int) -> TrackedSet:
        return self._sets.get(slot, EMPTY_TRACKED_SET)

    def is_configured(self, slot: int) -> bool:
        return not self.get(slot).is_empty

    def configured_slots(self) -> List[int]:
        return [slot for slot in range(1, SLOT_COUNT + 1) if self.is_configured(slot)]
