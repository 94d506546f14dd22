"""TURN/STUN building blocks: STUN and ChannelData codecs, allocations, permissions and channel bindings."""

__version__ = "0.1.0"