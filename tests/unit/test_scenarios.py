"""Scenario table and phase semantics."""

import asyncio

import pytest

from lendflow.config import LendflowConfig
from lendflow.contracts import FlowSession
from lendflow.errors import StepFailed
from lendflow.events import ProgressEmitter
from lendflow.report import Report
from lendflow.scenarios import (
    SCENARIOS,
    SHARED_SETUP,
    Fallback,
    Parallel,
    Sequential,
    count_steps,
    get_scenario,
    run_phase,
)
from lendflow.steps.base import StepContext

from ..fixtures.fake_ledger import FakeLedger, FakeSigner

EXPECTED_STEPS = {
    "loan-creation": 12,
    "loan-payment": 13,
    "loan-default": 14,
    "early-repayment": 15,
    "full-lifecycle": 18,
    "signerlist-loan": 13,
}


@pytest.fixture
def ctx():
    return StepContext(
        ledger=FakeLedger(),
        signer=FakeSigner(),
        emitter=ProgressEmitter(FlowSession.new("loan-creation", "wss://test")),
        report=Report(),
        config=LendflowConfig(),
    )


def test_step_counts_match_scenarios():
    assert {sid: s.total_steps for sid, s in SCENARIOS.items()} == EXPECTED_STEPS
    assert sum(count_steps(phase) for phase in SHARED_SETUP) == 10


def test_unknown_scenario():
    with pytest.raises(ValueError, match="loan-creation"):
        get_scenario("nope")


@pytest.mark.asyncio
async def test_fallback_runs_alternates_in_order(ctx):
    calls = []

    async def primary(_):
        calls.append("primary")
        raise StepFailed("primary", "Batch payments failed: temDISABLED", "temDISABLED")

    def recorder(name):
        async def step(_):
            calls.append(name)

        return step

    await run_phase(ctx, Fallback(primary, (recorder("first"), recorder("second"))))

    assert calls == ["primary", "first", "second"]
    assert any("using sequential fallback" in line for line in ctx.report.lines)


@pytest.mark.asyncio
async def test_fallback_does_not_catch_other_errors(ctx):
    async def primary(_):
        raise RuntimeError("socket closed")

    async def never(_):
        raise AssertionError("fallback should not run")

    with pytest.raises(RuntimeError):
        await run_phase(ctx, Fallback(primary, (never,)))


@pytest.mark.asyncio
async def test_parallel_waits_for_all_members_before_failing(ctx):
    finished = []

    async def fails(_):
        raise StepFailed("fails", "TrustSet failed: tecNO_LINE")

    async def slow(_):
        await asyncio.sleep(0.01)
        finished.append("slow")

    with pytest.raises(StepFailed) as excinfo:
        await run_phase(ctx, Parallel((Sequential(slow), Sequential(fails))))

    assert finished == ["slow"]
    assert excinfo.value.step_id == "fails"


@pytest.mark.asyncio
async def test_parallel_raises_first_failure_in_declaration_order(ctx):
    async def first(_):
        await asyncio.sleep(0.01)
        raise StepFailed("first", "first failed")

    async def second(_):
        raise StepFailed("second", "second failed")

    with pytest.raises(StepFailed) as excinfo:
        await run_phase(ctx, Parallel((Sequential(first), Sequential(second))))

    assert excinfo.value.step_id == "first"
