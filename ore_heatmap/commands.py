"""Helpers for responding to in-game chat commands.

Keybinds and the slot screen live in the host mod; this module gives them (and
plain chat) one small command surface: ``!heatmap`` toggles the overlay,
``!heatmap next`` cycles slots, ``!heatmap reset`` rescans the active slot and
``!heatmap slot <n> <entries>`` replaces a slot's tracked entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List

from .tracked import split_entries

_LOGGER = logging.getLogger("OreHeatmap.Commands")


@dataclass
class HeatmapCommandContext:
    """Lightweight indirection that exposes just the callbacks we need."""

    send_message: Callable[[str], None]
    toggle_enabled: Callable[[], bool]
    cycle_slot: Callable[[], int]
    reset_active_slot: Callable[[], bool]
    update_slot_configuration: Callable[[int, Iterable[str]], object]


class HeatmapCommandHelper:
    """Parse ``!heatmap`` chat messages and dispatch them to the controller."""

    _HELP_TEXT = (
        "Heatmap commands: !heatmap (toggle), !heatmap next (cycle slot), "
        "!heatmap reset (rescan active slot), !heatmap slot <1-5> <ids or #tags>, !heatmap help"
    )

    def __init__(self, context: HeatmapCommandContext) -> None:
        self._ctx = context

    # Public API ---------------------------------------------------------

    def handle_message(self, raw_message: object) -> bool:
        """Return ``True`` when the message was a supported heatmap command."""

        if not isinstance(raw_message, str):
            return False
        message = raw_message.strip()
        if not message.startswith("!"):
            return False
        tokens = message[1:].split()
        if not tokens or tokens[0].lower() != "heatmap":
            return False
        handled = self._handle_heatmap_command(tokens[1:])
        if handled:
            _LOGGER.debug("Handled heatmap command: %s", message)
        return handled

    # Implementation details --------------------------------------------

    def _handle_heatmap_command(self, args: List[str]) -> bool:
        action = args[0].lower() if args else "toggle"
        if action == "toggle":
            enabled = self._ctx.toggle_enabled()
            self._emit("Ore heatmap enabled" if enabled else "Ore heatmap disabled")
            return True
        if action in {"next", "cycle"}:
            slot = self._ctx.cycle_slot()
            self._emit(f"Ore heatmap slot {slot}" if slot else "Ore heatmap slot OFF")
            return True
        if action == "reset":
            if self._ctx.reset_active_slot():
                self._emit("Ore heatmap slot reset; rescanning")
            else:
                self._emit("Ore heatmap reset skipped (no active slot or world)")
            return True
        if action == "slot":
            return self._handle_slot(args[1:])
        if action not in {"help", "?"}:
            _LOGGER.debug("Unknown heatmap command %r; showing help", action)
        self._emit(self._HELP_TEXT)
        return True

    def _handle_slot(self, args: List[str]) -> bool:
        if not args:
            self._emit("Usage: !heatmap slot <1-5> <ids or #tags>")
            return True
        try:
            slot = int(args[0])
        except ValueError:
            self._emit(f"Unknown slot {args[0]!r}")
            return True
        entries = split_entries(",".join(args[1:]))
        try:
            self._ctx.update_slot_configuration(slot, entries)
        except ValueError as exc:
            self._emit(f"Slot {slot} not updated: {exc}")
            return True
        if entries:
            self._emit(f"Slot {slot} now tracks {', '.join(entries)}")
        else:
            self._emit(f"Slot {slot} cleared")
        return True

    def _emit(self, text: str) -> None:
        try:
            self._ctx.send_message(text)
        except Exception as exc:
            _LOGGER.warning("Failed to send heatmap command feedback: %s", exc)
