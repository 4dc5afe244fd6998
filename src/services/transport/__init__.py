"""
Transport module - HTTP client for the chat backend.
"""

from .api_client import APIClient, APIError

__all__ = ["APIClient", "APIError"]
