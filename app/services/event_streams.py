"""
In-process registry of vendor event stream listeners (YoLink MQTT, Piko WebSocket).

The registry tracks whether a connector's listener should be running and when
its last event arrived. Ingestion reports into it; the toggle endpoints read and
change it. A listener counts as connected once it is enabled and an event has
arrived since.
"""
import threading
from datetime import datetime
from typing import Any, Dict

from app.utils.logger import get_logger

logger = get_logger(__name__)

STREAM_KINDS = ("mqtt", "websocket")


class EventStreamRegistry:
    """Thread-safe store of listener state per (kind, connector)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._states: Dict[tuple, Dict[str, Any]] = {}

    def _default_state(self, connector_id: str) -> Dict[str, Any]:
        return {
            "connectorId": connector_id,
            "connected": False,
            "disabled": True,
            "lastEventAt": None,
            "updatedAt": None,
        }

    def get_state(self, kind: str, connector_id: str) -> Dict[str, Any]:
        with self._lock:
            state = self._states.get((kind, connector_id))
            return dict(state) if state else self._default_state(connector_id)

    def set_enabled(self, kind: str, connector_id: str, enabled: bool) -> Dict[str, Any]:
        """
        Mark a listener as wanted or not.

        Disabling also drops the connected flag; the next event received after
        re-enabling sets it again.
        """
        if kind not in STREAM_KINDS:
            raise ValueError(f"Unknown event stream kind '{kind}'")
        with self._lock:
            state = self._states.setdefault((kind, connector_id), self._default_state(connector_id))
            state["disabled"] = not enabled
            if not enabled:
                state["connected"] = False
            state["updatedAt"] = datetime.utcnow().isoformat()
            logger.info(f"[{kind}] Listener for connector {connector_id} {'enabled' if enabled else 'disabled'}")
            return dict(state)

    def mark_event(self, kind: str, connector_id: str):
        with self._lock:
            state = self._states.setdefault((kind, connector_id), self._default_state(connector_id))
            state["lastEventAt"] = datetime.utcnow().isoformat()
            state["connected"] = not state["disabled"]

    def forget(self, connector_id: str):
        """Drop all state of a deleted connector."""
        with self._lock:
            for key in [k for k in self._states if k[1] == connector_id]:
                del self._states[key]

    def reset(self):
        with self._lock:
            self._states.clear()


# Global event stream registry instance
event_stream_registry = EventStreamRegistry()
