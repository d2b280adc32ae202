"""Message channel used to hand heatmap overlays to the map renderer."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, MutableMapping, Optional

_LOGGER = logging.getLogger("OreHeatmap.API")
_MAX_MESSAGE_BYTES = 16_384

SHAPE_EVENT = "OreHeatmapShape"
CLEAR_EVENT = "OreHeatmapClear"

Publisher = Callable[[Mapping[str, Any]], bool]


class OverlayChannel:
    """Validates payloads and forwards them to whatever delivers them to the map.

    The publisher is injected by the host glue; until one is attached every
    send is refused with a warning.
    """

    def __init__(self, publisher: Optional[Publisher] = None) -> None:
        self._publisher = publisher

    @property
    def connected(self) -> bool:
        return self._publisher is not None

    def attach(self, publisher: Publisher) -> None:
        self._publisher = publisher

    def detach(self) -> None:
        self._publisher = None

    def send(self, message: Mapping[str, Any]) -> bool:
        """Publish ``message``; returns ``True`` if the publisher accepted it."""

        publisher = self._publisher
        if publisher is None:
            _LOGGER.warning("Overlay publisher unavailable (renderer not attached?)")
            return False

        payload = _normalise_message(message)
        if payload is None:
            return False

        try:
            serialised = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            _LOGGER.warning("Overlay message is not JSON serialisable: %s", exc)
            return False

        payload_size = len(serialised.encode("utf-8"))
        if payload_size > _MAX_MESSAGE_BYTES:
            _LOGGER.warning(
                "Overlay message exceeds size limit (%d > %d bytes)",
                payload_size,
                _MAX_MESSAGE_BYTES,
            )
            return False

        try:
            return bool(publisher(payload))
        except Exception as exc:
            _LOGGER.warning("Overlay publisher raised error: %s", exc)
            return False


def _normalise_message(message: Mapping[str, Any]) -> Optional[MutableMapping[str, Any]]:
    if not isinstance(message, Mapping):
        _LOGGER.warning("Overlay message must be a mapping/dict")
        return None
    if not message:
        _LOGGER.warning("Overlay message is empty")
        return None

    payload: MutableMapping[str, Any] = dict(message)
    event = payload.get("event")
    if not isinstance(event, str) or not event:
        _LOGGER.warning("Overlay message requires a non-empty 'event' string")
        return None

    if "timestamp" not in payload:
        payload["timestamp"] = datetime.now(timezone.utc).isoformat()

    return payload


class ChannelOverlayRenderer:
    """Renderer adapter that turns show/remove calls into channel messages.

    While no publisher is attached the calls are skipped without error; the
    reconciler re-sends every visible overlay on its next refresh.
    """

    def __init__(self, channel: OverlayChannel) -> None:
        self._channel = channel
        self._reported_offline = False

    def _online(self) -> bool:
        if self._channel.connected:
            self._reported_offline = False
            return True
        if not self._reported_offline:
            _LOGGER.debug("No overlay publisher attached; skipping overlay updates")
            self._reported_offline = True
        return False

    def show(self, overlay_id: str, shape: Mapping[str, Any], style: Mapping[str, Any]) -> None:
        if not self._online():
            return
        payload = {
            "event": SHAPE_EVENT,
            "id": overlay_id,
            "shape": "polygon",
            "dimension": shape.get("dimension"),
            "vector": [{"x": x, "z": z} for x, z in shape.get("polygon", ())],
            "fill": style.get("fill_color"),
            "fill_opacity": style.get("fill_opacity"),
            "color": style.get("stroke_color"),
            "stroke_opacity": style.get("stroke_opacity"),
            "stroke_width": style.get("stroke_width"),
            "label": style.get("label"),
        }
        if not self._channel.send(payload):
            raise RuntimeError(f"overlay {overlay_id} was not delivered")

    def remove(self, overlay_id: str) -> None:
        if not self._online():
            return
        if not self._channel.send({"event": CLEAR_EVENT, "id": overlay_id, "ttl": 0}):
            raise RuntimeError(f"overlay {overlay_id} removal was not delivered")
