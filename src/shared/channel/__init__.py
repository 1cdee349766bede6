"""Event channel between services, with pluggable broker transports."""

from shared.channel.channel import ChannelSettings, EventChannel, Subscription
from shared.channel.port import ChannelTransport, Message, TransportError


def build_transport(settings: ChannelSettings) -> ChannelTransport:
    """Return the transport selected by ``settings.transport``.

    ``memory`` keeps messages in-process; ``redis`` uses Redis Streams.
    """
    if settings.transport == "memory":
        from shared.channel.memory_adapter import InMemoryTransport

        return InMemoryTransport(maxlen=settings.stream_maxlen)
    if settings.transport == "redis":
        from shared.channel.redis_adapter import RedisStreamTransport

        return RedisStreamTransport(settings.redis_url, maxlen=settings.stream_maxlen)
    raise ValueError(f"Unknown channel transport: {settings.transport}")


def build_channel(settings: ChannelSettings | None = None) -> EventChannel:
    settings = settings or ChannelSettings.from_env()
    return EventChannel(build_transport(settings), settings)


__all__ = [
    "ChannelSettings",
    "ChannelTransport",
    "EventChannel",
    "Message",
    "Subscription",
    "TransportError",
    "build_channel",
    "build_transport",
]
