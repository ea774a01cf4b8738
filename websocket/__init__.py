"""
WebSocket module for the AlgoViz backend.

Streams playback frames and status changes of visualization sessions to
subscribed clients.
"""

from .manager import (
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    notify_playback_cancelled,
    notify_playback_failed,
    notify_playback_frame,
    notify_playback_status,
    notify_run_created,
    session_channel,
    ws_manager,
)

__all__ = [
    "WebSocketManager",
    "WebSocketMessage",
    "MessageType",
    "ws_manager",
    "session_channel",
    "notify_playback_frame",
    "notify_playback_status",
    "notify_playback_cancelled",
    "notify_playback_failed",
    "notify_run_created",
]
