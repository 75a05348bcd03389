from .manager import (
    Channel,
    ChannelFactory,
    ConnectionManager,
    ConnectionStatus,
)
from .websocket import AiohttpChannel, AiohttpChannelFactory

__all__ = [
    "AiohttpChannel",
    "AiohttpChannelFactory",
    "Channel",
    "ChannelFactory",
    "ConnectionManager",
    "ConnectionStatus",
]
