"""
JSON-RPC transport layer.
"""

from .dispatcher import PatternDispatcher

__all__ = ["PatternDispatcher"]
