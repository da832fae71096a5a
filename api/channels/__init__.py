"""
Outbound messaging channels.
"""

from .base import ChannelMessage, ChannelProvider, ChannelResponse, InlineChannel, MessageSender
from .whatsapp import MetaCloudWhatsApp

__all__ = [
    "ChannelMessage",
    "ChannelProvider",
    "ChannelResponse",
    "InlineChannel",
    "MessageSender",
    "MetaCloudWhatsApp",
]
