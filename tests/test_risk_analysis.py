"""Tests for the multi-step OKR risk report."""
from datetime import datetime

import pytest

from okr_assistant.agents.subagents.risk_analysis import (
    SECTION_SEPARATOR,
    RiskAnalysisOrchestrator,
    is_risk_analysis_request,
)
from okr_assistant.providers.base import Provider
from tests.fakes import FakeProvider, failing


def _fixed_clock():
    return datetime(2024, 5, 1, 9, 30, 0)


@pytest.mark.parametrize("text", [
    "Analyze OKRs risks for my org",
    "please run an okr risk analysis",
    "/analyze_okrs_risks",
])
def test_trigger_phrases_are_case_insensitive(text):
    assert is_risk_analysis_request(text)


def test_ordinary_messages_do_not_trigger():
    assert not is_risk_analysis_request("What risks do OKRs have?")
    assert not is_risk_analysis_request("")
    assert not is_risk_analysis_request(None)


@pytest.mark.asyncio
async def test_report_joins_four_steps_in_order():
    provider = FakeProvider(Provider.AZURE_OPENAI, ["overview", "risks", "workload", "moves"], function_calling=True)
    orchestrator = RiskAnalysisOrchestrator(provider, clock=_fixed_clock)

    report = await orchestrator.run_analysis("c1", "okr risk analysis")

    assert report.startswith("# Complete OKR Risk Analysis Report\n**Generated:** 2024-05-01 09:30:00 UTC\n")
    assert SECTION_SEPARATOR.join(["overview", "risks", "workload", "moves"]) in report
    assert report.endswith("**End of Analysis Report**")
    assert [call["functions_enabled"] for call in provider.calls] == [True] * 4


@pytest.mark.asyncio
async def test_each_step_sees_only_a_summary_of_earlier_steps():
    provider = FakeProvider(Provider.AZURE_OPENAI, ["step"], function_calling=True)

    await RiskAnalysisOrchestrator(provider, clock=_fixed_clock).run_analysis("c1", "okr risk analysis")

    contexts = [call["history"][0].content for call in provider.calls]
    assert contexts[0] == "User request: okr risk analysis"
    assert "Overview phase completed" in contexts[1]
    assert "Risk analysis completed" in contexts[2]
    assert "Workload analysis completed" in contexts[3]
    assert "STEP 4 - REDISTRIBUTION STRATEGY ONLY" in provider.calls[3]["system_prompt"]


@pytest.mark.asyncio
async def test_failed_step_is_reported_and_analysis_continues():
    provider = FakeProvider(
        Provider.AZURE_OPENAI,
        ["overview", failing("rate limited"), "workload", "moves"],
        function_calling=True
    )

    report = await RiskAnalysisOrchestrator(provider, clock=_fixed_clock).run_analysis("c1", "okr risk analysis")

    assert "Error in AnalyzeRisk: fake: rate limited" in report
    assert "workload" in report and "moves" in report
    assert len(provider.calls) == 4
