"""Primary entry point the host mod loader calls into."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from ore_heatmap import __version__ as ORE_HEATMAP_VERSION
from ore_heatmap.commands import HeatmapCommandContext, HeatmapCommandHelper
from ore_heatmap.controller import HeatmapController
from ore_heatmap.density_cache import CACHE_DIR_NAME, DensityCacheStore
from ore_heatmap.logging_utils import build_rotating_file_handler, resolve_logs_dir
from ore_heatmap.overlay_api import ChannelOverlayRenderer, OverlayChannel, Publisher
from ore_heatmap.preferences import Preferences
from ore_heatmap.world import ChunkKey, HostEnvironment, WorldView

PLUGIN_NAME = "OreHeatmap"
PLUGIN_VERSION = ORE_HEATMAP_VERSION
LOGGER_NAME = "OreHeatmap"
LOG_TAG = "OreHeatmap"
LOG_FILENAME = "ore_heatmap.log"
LOG_LEVEL_ENV = "ORE_HEATMAP_LOG_LEVEL"

DEFAULT_LOG_LEVEL = logging.INFO
_LEVEL_NAME_MAP = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}

_host_logger: Optional[logging.Logger] = None


def _coerce_level(raw: Any) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        token = raw.strip().upper()
        if token.isdigit():
            return int(token)
        return _LEVEL_NAME_MAP.get(token)
    return None


def _resolve_log_level() -> int:
    candidates: list[Optional[int]] = [_coerce_level(os.environ.get(LOG_LEVEL_ENV))]
    if _host_logger is not None:
        candidates.append(_host_logger.getEffectiveLevel())
    candidates.append(logging.getLogger().getEffectiveLevel())
    for level in candidates:
        if isinstance(level, int) and level != logging.NOTSET:
            return level
    return DEFAULT_LOG_LEVEL


class _HostLogHandler(logging.Handler):
    """Forwards plugin records to the host's logger, or the root logger without one."""

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        target = _host_logger if _host_logger is not None else logging.getLogger()
        try:
            if target.isEnabledFor(record.levelno):
                target.log(record.levelno, message)
        except Exception:
            self.handleError(record)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_resolve_log_level())
    if not any(getattr(handler, "_host_handler", False) for handler in logger.handlers):
        handler = _HostLogHandler()
        handler._host_handler = True  # type: ignore[attr-defined]
        formatter = logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(message)s", "%H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def _attach_file_handler(logger: logging.Logger, base_dir: Path) -> Optional[logging.Handler]:
    if any(getattr(handler, "_file_handler", False) for handler in logger.handlers):
        return None
    try:
        handler = build_rotating_file_handler(
            resolve_logs_dir(base_dir),
            LOG_FILENAME,
            formatter=logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"),
        )
    except OSError as exc:
        logger.warning("Heatmap file logging unavailable: %s", exc)
        return None
    handler._file_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return handler


LOGGER = _configure_logger()


class _PluginRuntime:
    """Wires the heatmap core to the host; keeps module globals tidy."""

    def __init__(
        self,
        plugin_dir: Path,
        game_dir: Path,
        host: HostEnvironment,
        preferences: Preferences,
        send_message: Callable[[str], None],
    ) -> None:
        self.plugin_dir = plugin_dir
        self.channel = OverlayChannel()
        self.store = DensityCacheStore(game_dir / "journeymap" / CACHE_DIR_NAME)
        self.controller = HeatmapController(
            preferences,
            self.store,
            ChannelOverlayRenderer(self.channel),
            host,
        )
        self.commands = HeatmapCommandHelper(
            HeatmapCommandContext(
                send_message=send_message,
                toggle_enabled=self.controller.toggle_enabled,
                cycle_slot=self.controller.cycle_slot,
                reset_active_slot=self.controller.reset_active_slot,
                update_slot_configuration=self.controller.update_slot_configuration,
            )
        )
        self._lock = threading.Lock()
        self._running = False

    def start(self, publisher: Optional[Publisher]) -> str:
        with self._lock:
            if self._running:
                return PLUGIN_NAME
            self._running = True
        if publisher is not None:
            self.channel.attach(publisher)
        else:
            LOGGER.warning("No overlay publisher supplied; heatmap overlays will not be drawn")
        LOGGER.info("Plugin started (version %s, state %s)", PLUGIN_VERSION, self.controller.state)
        return PLUGIN_NAME

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
        LOGGER.info("Plugin stopping")
        self.controller.shutdown()
        self.channel.detach()

    @property
    def running(self) -> bool:
        return self._running


_plugin: Optional[_PluginRuntime] = None


def plugin_start(
    plugin_dir: str,
    host: HostEnvironment,
    publisher: Optional[Publisher] = None,
    *,
    game_dir: Optional[str] = None,
    host_logger: Optional[logging.Logger] = None,
    send_message: Optional[Callable[[str], None]] = None,
    log_to_file: bool = True,
) -> str:
    global _plugin, _host_logger
    if _plugin is not None:
        return _plugin.start(publisher)
    _host_logger = host_logger
    _configure_logger()
    root = Path(plugin_dir)
    base = Path(game_dir) if game_dir else root
    if log_to_file:
        _attach_file_handler(LOGGER, base)
    preferences = Preferences(root)
    _plugin = _PluginRuntime(root, base, host, preferences, send_message or LOGGER.info)
    return _plugin.start(publisher)


def plugin_stop() -> None:
    global _plugin
    if _plugin is None:
        return
    _plugin.stop()
    _plugin = None


def client_tick() -> None:
    if _plugin:
        _plugin.controller.on_tick()


def chunk_loaded(dimension: str, chunk_x: int, chunk_z: int, world: Optional[WorldView] = None) -> None:
    if _plugin:
        _plugin.controller.on_chunk_loaded(dimension, ChunkKey(chunk_x, chunk_z), world)


def chat_message(message: str) -> bool:
    if _plugin is None:
        return False
    return _plugin.commands.handle_message(message)


def player_logout() -> None:
    if _plugin:
        _plugin.controller.on_logout()


def preferences_saved() -> None:
    if _plugin is None:
        return
    try:
        _plugin.controller.reload_configuration()
    except Exception as exc:
        LOGGER.exception("Failed to apply heatmap preferences: %s", exc)


# Metadata expected by some plugin loaders
name = PLUGIN_NAME
version = PLUGIN_VERSION
