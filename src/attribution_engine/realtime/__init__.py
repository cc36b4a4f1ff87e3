"""Realtime update channel."""

from attribution_engine.realtime.channel import ChannelState, RealtimeUpdateChannel
from attribution_engine.realtime.messages import ChannelEvent, ChannelEventType
from attribution_engine.realtime.transport import PushTransport, WebSocketTransport

__all__ = [
    "ChannelEvent",
    "ChannelEventType",
    "ChannelState",
    "PushTransport",
    "RealtimeUpdateChannel",
    "WebSocketTransport",
]
