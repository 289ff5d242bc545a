"""OKR assistant: conversational AI orchestration for OKR management."""

__version__ = "1.0.0"
