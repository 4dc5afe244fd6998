"""
Chat module - message store and send pipeline.
"""

from .session import ChatSession
from .store import MessageStore

__all__ = ["ChatSession", "MessageStore"]
