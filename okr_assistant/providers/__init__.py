"""LLM provider backends."""

from .base import ChatProvider, Provider, ProviderError, ProviderTimeoutError

__all__ = ["ChatProvider", "Provider", "ProviderError", "ProviderTimeoutError"]
