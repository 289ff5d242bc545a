"""Subagents, each owning one concern of a chat turn."""
