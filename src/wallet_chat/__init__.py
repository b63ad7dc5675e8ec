"""Peer-to-peer message synchronization for wallet chat."""

from .client import ChatClient

__version__ = "0.1.0"

__all__ = ["ChatClient", "__version__"]
