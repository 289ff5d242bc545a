"""Reusable, stateless skills used by the subagents."""
