"""
WebSocket connection manager for the AlgoViz backend.

Clients subscribe to ``session:{id}`` channels and receive every playback
frame, status change and run announcement of that session.

Envelope (JSON):
    {"type": ..., "channel": ..., "data": {...}, "timestamp": ...}
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from api.shared.logger import get_logger

logger = get_logger(__name__)

SYSTEM_CHANNEL = "system"


class MessageType(str, Enum):
    """Types of WebSocket messages."""

    # Playback messages (server -> client)
    PLAYBACK_FRAME = "playback_frame"
    PLAYBACK_STATUS = "playback_status"
    PLAYBACK_CANCELLED = "playback_cancelled"
    PLAYBACK_FAILED = "playback_failed"
    RUN_CREATED = "run_created"

    # System messages
    PING = "ping"
    PONG = "pong"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


def session_channel(session_id: str) -> str:
    return f"session:{session_id}"


@dataclass
class WebSocketMessage:
    """One envelope, in either direction."""

    type: MessageType
    channel: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()

    def to_json(self) -> str:
        return json.dumps({
            "type": self.type.value,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("message must be a JSON object")
        return cls(
            type=MessageType(data.get("type", "error")),
            channel=data.get("channel", ""),
            data=data.get("data") or {},
            timestamp=data.get("timestamp"),
        )


def _system(message_type: MessageType, **data: Any) -> WebSocketMessage:
    return WebSocketMessage(type=message_type, channel=SYSTEM_CHANNEL, data=data)


def _error(text: str) -> WebSocketMessage:
    return _system(MessageType.ERROR, error=text)


@dataclass
class _Connection:
    client_id: Optional[str]
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())
    channels: Set[str] = field(default_factory=set)


class WebSocketManager:
    """
    Tracks open sockets and the session channels they follow.

    Runs on the event loop only. The asyncio lock guards the bookkeeping;
    sends happen outside it so a slow client never blocks subscriptions.
    """

    def __init__(self):
        self._connections: Dict[WebSocket, _Connection] = {}
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    # ============= Connections =============

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = _Connection(client_id)

        logger.debug("WebSocket client %s connected", client_id)
        await self.send_to_connection(
            websocket,
            _system(MessageType.CONNECTED, client_id=client_id, message="Connected to AlgoViz WebSocket server"),
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            connection = self._connections.pop(websocket, None)
            if connection is None:
                return
            for channel in connection.channels:
                self._leave(websocket, channel)
        logger.debug("WebSocket client %s disconnected", connection.client_id)

    def _leave(self, websocket: WebSocket, channel: str) -> None:
        sockets = self._channels.get(channel)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._channels[channel]

    # ============= Channels =============

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)
            connection = self._connections.get(websocket)
            if connection is not None:
                connection.channels.add(channel)

        await self.send_to_connection(
            websocket, WebSocketMessage(type=MessageType.SUBSCRIBED, channel=channel, data={"channel": channel})
        )

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._leave(websocket, channel)
            connection = self._connections.get(websocket)
            if connection is not None:
                connection.channels.discard(channel)

        await self.send_to_connection(
            websocket, WebSocketMessage(type=MessageType.UNSUBSCRIBED, channel=channel, data={"channel": channel})
        )

    # ============= Sending =============

    async def send_to_connection(self, websocket: WebSocket, message: WebSocketMessage) -> bool:
        """Send to one socket; a failed send drops the connection."""
        try:
            await websocket.send_text(message.to_json())
            return True
        except Exception as e:
            logger.warning("Error sending WebSocket message: %s", e)
            await self.disconnect(websocket)
            return False

    async def broadcast_to_channel(self, channel: str, message: WebSocketMessage) -> int:
        """
        Send a message to every subscriber of ``channel``.

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            subscribers = list(self._channels.get(channel, ()))
        return await self._send_all(subscribers, message.to_json())

    async def _send_all(self, sockets: Iterable[WebSocket], payload: str) -> int:
        delivered = 0
        dead: List[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_text(payload)
                delivered += 1
            except Exception:
                dead.append(websocket)

        for websocket in dead:
            await self.disconnect(websocket)
        return delivered

    # ============= Introspection =============

    def get_channel_subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def get_connection_count(self) -> int:
        return len(self._connections)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": self.get_connection_count(),
            "channels": {name: len(sockets) for name, sockets in self._channels.items()},
        }

    # ============= Client messages =============

    async def handle_message(self, websocket: WebSocket, message_text: str) -> Optional[WebSocketMessage]:
        """
        Handle one client message.

        ``ping`` is answered with ``pong``; ``subscribe`` and ``unsubscribe``
        take the channel from ``data.channel`` or the envelope and are
        acknowledged directly on the socket, so they return None.
        """
        try:
            message = WebSocketMessage.from_json(message_text)
        except (json.JSONDecodeError, ValueError) as e:
            return _error(f"Invalid message format: {e}")

        if message.type == MessageType.PING:
            return _system(MessageType.PONG, timestamp=datetime.now().isoformat())

        if message.type not in (MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE):
            return _error(f"Unsupported message type '{message.type.value}'")

        channel = message.data.get("channel") or message.channel
        if not channel:
            return _error("Missing channel")
        if message.type == MessageType.SUBSCRIBE:
            await self.subscribe(websocket, channel)
        else:
            await self.unsubscribe(websocket, channel)
        return None


# Global WebSocket manager instance
ws_manager = WebSocketManager()


# ============= Playback notifications =============


async def _broadcast(session_id: str, message_type: MessageType, data: Dict[str, Any]) -> int:
    channel = session_channel(session_id)
    payload = {"session_id": session_id, **data}
    return await ws_manager.broadcast_to_channel(channel, WebSocketMessage(message_type, channel, payload))


async def notify_playback_frame(session_id: str, frame: Dict[str, Any]) -> int:
    """
    Send one frame ``{run_id, index, step, snapshot, status}``.

    Args:
        session_id: Session identifier
        frame: Serialized Frame
    """
    return await _broadcast(session_id, MessageType.PLAYBACK_FRAME, frame)


async def notify_playback_status(session_id: str, playback: Dict[str, Any]) -> int:
    return await _broadcast(session_id, MessageType.PLAYBACK_STATUS, playback)


async def notify_playback_cancelled(session_id: str, run_id: Optional[str]) -> int:
    return await _broadcast(session_id, MessageType.PLAYBACK_CANCELLED, {"run_id": run_id})


async def notify_playback_failed(session_id: str, run_id: Optional[str], error: str) -> int:
    """
    Announce that a Run halted on a step its snapshot could not accept.

    Args:
        session_id: Session identifier
        run_id: The halted Run
        error: Reducer contract violation message
    """
    return await _broadcast(session_id, MessageType.PLAYBACK_FAILED, {"run_id": run_id, "error": error})


async def notify_run_created(session_id: str, run: Dict[str, Any]) -> int:
    return await _broadcast(session_id, MessageType.RUN_CREATED, run)
