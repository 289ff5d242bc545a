"""Conversation storage, memory, document and PDF services."""
