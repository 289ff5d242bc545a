"""
Risk Analysis Subagent

Runs the four-step OKR risk analysis (overview, key result risk, workload,
redistribution) against the primary provider with function calling and
assembles one report. A failing step contributes an error line and the run
continues with the next step.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
import logging

from okr_assistant.agents.skills.error_recovery import error_recovery_skill
from okr_assistant.models.message import Message
from okr_assistant.models.user_context import UserContext
from okr_assistant.providers.base import ChatProvider, ProviderError

logger = logging.getLogger(__name__)

RISK_ANALYSIS_TRIGGERS = ("analyze okrs risks", "okr risk analysis", "/analyze_okrs_risks")

SECTION_SEPARATOR = "\n\n" + "=" * 80 + "\n\n"

BASE_SYSTEM_MESSAGE = (
    "You are an expert OKR Risk Analyst for the Tensai OKR Management System. Your role is to perform systematic, "
    "step-by-step analysis of OKR data to identify risks, workload imbalances, and provide actionable recommendations.\n\n"
    "CORE PRINCIPLES:\n"
    "- Be precise and data-driven in your analysis\n"
    "- Use available functions to execute operations when needed\n"
    "- Follow the specific task instructions for each analysis step\n"
    "- Maintain consistency in format and terminology\n"
    "- Each function returns objects that should inform your analysis\n\n"
    "CRITICAL REQUIREMENTS:\n"
    "- Execute ONLY the specific task for the current step\n"
    "- Use the exact output format provided in the step instructions\n"
    "- Do NOT repeat information from previous steps\n"
    "- Do NOT ask questions - provide direct analysis\n"
    "- Be concise but comprehensive within your assigned scope\n\n"
)


class AnalysisStep(str, Enum):
    OVERVIEW = "Overview"
    ANALYZE_RISK = "AnalyzeRisk"
    ANALYZE_OVERLOAD = "AnalyzeOverload"
    REDISTRIBUTE_TASKS = "RedistributeTasks"


STEP_INSTRUCTIONS = {
    AnalysisStep.OVERVIEW: (
        "STEP 1\n"
        "Gather OKR data and provide a clean status summary.\n\n"
        "ACTIONS REQUIRED:\n"
        "- Use GetOngoingOKRTasks to retrieve all OKR tasks\n"
        "- Use GetTeamsWithCollaborators to get team information\n"
        "- Count and categorize items by status only\n\n"
        "STRICT OUTPUT FORMAT:\n"
        "# OKR Data Overview\n\n"
        "## Status Summary\n"
        "• Total Tasks: [count]\n"
        "• Not Started: [count] tasks\n"
        "• In Progress: [count] tasks\n"
        "• Completed: [count] tasks\n"
        "• Overdue: [count] tasks\n\n"
        "## Objectives Summary\n"
        "[List each objective with task count and basic status only]\n\n"
        "## Team Summary\n"
        "[List teams with total assigned tasks]\n\n"
        "✅ Data collection complete\n\n"
        "CRITICAL: Do NOT analyze risks, workload, or provide recommendations. Only collect and summarize raw data."
    ),
    AnalysisStep.ANALYZE_RISK: (
        "STEP 2 - KEY RESULTS RISK IDENTIFICATION ONLY\n"
        "You are a risk assessment specialist. Data has been collected. Now identify at-risk Key Results using "
        "mathematical criteria.\n\n"
        "KEY RESULTS RISK DETECTION:\n"
        "• Focus on Key Results (not individual tasks)\n"
        "• Key Result Progress is calculated as: (Completed Tasks / Total Tasks) * 100\n"
        "• Example: KR has 4 tasks, 3 completed → Progress = 75%\n\n"
        "RISK FORMULA FOR KEY RESULTS:\n"
        "• ElapsedPercent = (Today - StartDate) / (EndDate - StartDate)\n"
        "• At Risk IF: ElapsedPercent > (KeyResultProgress% / 100) + 0.20\n"
        "• High Risk IF: ElapsedPercent > (KeyResultProgress% / 100) + 0.35\n\n"
        "ACTIONS REQUIRED:\n"
        "• Apply risk formula to each Key Result\n\n"
        "STRICT OUTPUT FORMAT:\n"
        "# Key Results Risk Assessment\n\n"
        "## High Risk Key Results\n"
        "• KR: [Name] | Objective: [Parent Objective] | Progress: [%] | Elapsed: [%] | Risk Level: High\n"
        "  Tasks: [X] completed, [Y] in progress, [Z] not started\n\n"
        "## Medium Risk Key Results\n"
        "• KR: [Name] | Objective: [Parent Objective] | Progress: [%] | Elapsed: [%] | Risk Level: Medium\n"
        "  Tasks: [X] completed, [Y] in progress, [Z] not started\n\n"
        "## Risk Summary\n"
        "• Total Key Results at Risk: [count]\n"
        "• High Risk: [count] Key Results\n"
        "• Medium Risk: [count] Key Results\n"
        "• Risk Percentage: [percentage]% of total Key Results\n\n"
        "✅ Key Results risk assessment complete\n\n"
        "CRITICAL: Do NOT repeat data overview or analyze individual tasks. Focus only on Key Results-level risk "
        "identification using the progress formula."
    ),
    AnalysisStep.ANALYZE_OVERLOAD: (
        "STEP 3 - WORKLOAD ANALYSIS ONLY\n"
        "You are a workload distribution analyst. Risk analysis is complete. Now analyze team member workload patterns.\n\n"
        "WORKLOAD CRITERIA:\n"
        "• Overloaded: >4 active tasks OR >2 high-priority tasks\n"
        "• Underutilized: 0 active tasks\n"
        "• Count only: Not Started + In Progress (exclude Completed)\n"
        "• Consider task complexity and deadlines\n\n"
        "STRICT OUTPUT FORMAT:\n"
        "# Workload Distribution Analysis\n\n"
        "## Overloaded Members\n"
        "• [Name]: [X] active tasks | Team: [team] | Capacity: [over limit]\n\n"
        "## Underutilized Members\n"
        "• [Name]: [X] active tasks | Team: [team] | Available capacity: [estimate]\n\n"
        "## Distribution Metrics\n"
        "• Average active tasks per person: [number]\n"
        "• Workload variance: [High/Medium/Low]\n"
        "• Teams with imbalance: [list if any]\n\n"
        "✅ Workload analysis complete\n\n"
        "CRITICAL: Do NOT repeat risk analysis or data overview. Focus only on workload distribution patterns."
    ),
    AnalysisStep.REDISTRIBUTE_TASKS: (
        "STEP 4 - REDISTRIBUTION STRATEGY ONLY\n"
        "You are a task redistribution strategist. Previous analysis identified imbalances. Provide specific "
        "redistribution actions proposal.\n\n"
        "REDISTRIBUTION RULES:\n"
        "• Move tasks from overloaded to underutilized members\n"
        "• Prioritize moving 'Not Started' over 'In Progress' tasks\n"
        "• Consider team boundaries and skill compatibility\n"
        "• Preserve critical dependencies\n\n"
        "STRICT OUTPUT FORMAT:\n"
        "# Task Redistribution Strategy\n\n"
        "## Immediate Actions (Priority 1)\n"
        "→ Move '[Task Name]' FROM [Current Assignee] TO [Recommended Assignee]\n"
        "   Reason: [specific justification]\n\n"
        "## Secondary Actions (Priority 2)\n"
        "→ Move '[Task Name]' FROM [Current Assignee] TO [Recommended Assignee]\n"
        "   Reason: [specific justification]\n\n"
        "✅ Redistribution strategy complete\n\n"
        "CRITICAL: Do NOT repeat previous analysis. Focus only on specific, actionable task movement recommendations."
    ),
}

# Context carried forward after each completed step
STEP_SUMMARIES = {
    AnalysisStep.OVERVIEW: "Overview phase completed: OKR data has been collected and summarized.",
    AnalysisStep.ANALYZE_RISK: " Risk analysis completed: At-risk tasks have been identified using mathematical criteria.",
    AnalysisStep.ANALYZE_OVERLOAD: " Workload analysis completed: Team member workload patterns have been analyzed.",
}


def is_risk_analysis_request(text: Optional[str]) -> bool:
    """Case-insensitive match against the reserved trigger phrases"""
    if not text:
        return False
    normalized = text.strip().lower()
    return any(trigger in normalized for trigger in RISK_ANALYSIS_TRIGGERS)


class RiskAnalysisOrchestrator:
    """
    Subagent for the multi-step OKR risk report

    Responsibilities:
    - Run each analysis step with its own focused instructions
    - Carry a minimal summary of completed steps forward
    - Keep going when a step fails
    - Assemble the final report with header and separators
    """

    def __init__(self, provider: ChatProvider, clock=datetime.utcnow):
        self.provider = provider
        self.clock = clock

    async def run_analysis(
        self,
        conversation_id: str,
        user_message: str,
        user_context: Optional[UserContext] = None
    ) -> str:
        logger.info(f"Starting OKR risk analysis for conversation: {conversation_id}")

        step_results: List[str] = []
        accumulated = ""

        for step in AnalysisStep:
            if step == AnalysisStep.OVERVIEW:
                context = f"User request: {user_message}"
            else:
                context = f"Previous analysis completed. Continue with next step.\n\nPrevious context:\n{accumulated}"

            try:
                response = await self.provider.complete_chat(
                    BASE_SYSTEM_MESSAGE + STEP_INSTRUCTIONS[step],
                    [Message.user(context)],
                    functions_enabled=True,
                    user_context=user_context,
                    conversation_id=conversation_id
                )
                logger.info(f"Risk analysis step {step.value} completed ({len(response)} characters)")
                step_results.append(response)

                if step == AnalysisStep.OVERVIEW:
                    accumulated = STEP_SUMMARIES[step]
                elif step in STEP_SUMMARIES:
                    accumulated += STEP_SUMMARIES[step]
            except ProviderError as e:
                logger.error(f"Error executing risk analysis step {step.value}: {str(e)}", exc_info=True)
                step_results.append(error_recovery_skill.step_failure_message(step.value, e))

        logger.info(
            f"OKR risk analysis completed for conversation: {conversation_id}. Total steps: {len(step_results)}"
        )
        timestamp = self.clock().strftime("%Y-%m-%d %H:%M:%S UTC")
        return (
            "# Complete OKR Risk Analysis Report\n"
            f"**Generated:** {timestamp}\n"
            f"{SECTION_SEPARATOR.join(step_results)}\n\n"
            "**End of Analysis Report**"
        )
