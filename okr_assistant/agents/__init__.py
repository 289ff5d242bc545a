"""
Agents Package

- Skills: prompt building, intent catalog, JSON repair, workflow cues, error recovery
- Subagents: intent analysis and execution, workflow state, risk and document analysis
- Orchestrator: routes chat turns and coordinates the subagents
"""
