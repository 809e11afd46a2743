"""Scenario run loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from .config import LendflowConfig, load_config
from .constants import NOT_AVAILABLE
from .contracts import FlowSession, FlowStatus, PartyRole, utc_now
from .events import Listener, ProgressEmitter
from .ledger import LedgerClient, TransactionSigner, XRPLSigner
from .report import Report
from .scenarios import Scenario, get_scenario, run_phase
from .steps.base import StepContext
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class FlowOrchestrator:
    """Runs one scenario at a time against a ledger client."""

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[LendflowConfig] = None,
        signer: Optional[TransactionSigner] = None,
        transports: Optional[Sequence[BaseTransport]] = None,
        listeners: Optional[Sequence[Listener]] = None,
    ) -> None:
        self._ledger = ledger
        self._config = config or load_config()
        self._signer = signer or XRPLSigner()
        self._transports = list(transports or [])
        self._listeners = list(listeners or [])
        self._lock = asyncio.Lock()
        self.session: FlowSession = FlowSession()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, scenario_id: Optional[str] = None) -> FlowSession:
        """Run ``scenario_id`` from a fresh session and return the final snapshot.

        Step failures never escape: they end the run in the ``error`` state
        with a ``flow_error`` event carrying the partial report.
        """
        scenario = get_scenario(scenario_id or self._config.default_scenario)
        if self._lock.locked():
            raise RuntimeError("A run is already in progress")

        async with self._lock:
            network = self._config.network.url
            emitter = ProgressEmitter(
                FlowSession.new(scenario.id, network),
                transports=self._transports,
                listeners=self._listeners,
            )
            report = Report()
            ctx = StepContext(
                ledger=self._ledger,
                signer=self._signer,
                emitter=emitter,
                report=report,
                config=self._config,
            )
            for transport in self._transports:
                await transport.connect()
            try:
                await self._execute(ctx, scenario)
            finally:
                self.session = emitter.session
                for transport in self._transports:
                    await transport.disconnect()
        return self.session

    async def _execute(self, ctx: StepContext, scenario: Scenario) -> None:
        network = self._config.network.url
        started = utc_now()
        ctx.report.section(
            f"XRPL LENDING PROTOCOL - {scenario.id.upper()} SCENARIO",
            f"Network:  {network}",
            f"Scenario: {scenario.id}",
            f"Started:  {started}",
        )
        await ctx.emitter.state(
            status=FlowStatus.RUNNING,
            scenario_id=scenario.id,
            total_steps=scenario.total_steps,
            network=network,
            started_at=started,
        )
        logger.info(f"Running scenario {scenario.id} ({scenario.total_steps} steps)")

        connected = False
        try:
            await self._ledger.connect()
            connected = True
            ctx.report.add(f"Connected to {network}", "")

            for phase in scenario.phases:
                await run_phase(ctx, phase)

            self._summary(ctx, scenario)
            await ctx.emitter.complete(ctx.report.text())
            logger.info(f"Scenario {scenario.id} completed")
        except Exception as e:
            logger.error(f"Scenario {scenario.id} failed: {e}")
            ctx.report.section(
                "FLOW FAILED",
                f"Error: {e}",
                f"Failed at: {utc_now()}",
            )
            await ctx.emitter.fail(str(e), ctx.report.text())
        finally:
            if connected:
                try:
                    await self._ledger.disconnect()
                except Exception as e:
                    logger.warning(f"Disconnect failed: {e}")

    def _summary(self, ctx: StepContext, scenario: Scenario) -> None:
        session = ctx.session
        lines = [f"Completed: {utc_now()}", "", "Summary:", f"- Scenario:   {scenario.id}"]
        for role in PartyRole:
            label = f"{role.value.capitalize()}:"
            lines.append(f"- {label:<11} {session.party(role).address}")
        lines.extend(
            [
                f"- Vault ID:   {session.vault_id or NOT_AVAILABLE}",
                f"- LoanBroker: {session.loan_broker_id or NOT_AVAILABLE}",
                f"- Loan ID:    {session.loan_id or NOT_AVAILABLE}",
            ]
        )
        ctx.report.section("FLOW COMPLETED SUCCESSFULLY", *lines)


async def run_lending_flow(
    ledger: LedgerClient,
    scenario_id: Optional[str] = None,
    config: Optional[LendflowConfig] = None,
    signer: Optional[TransactionSigner] = None,
    transports: Optional[Sequence[BaseTransport]] = None,
    listeners: Optional[Sequence[Listener]] = None,
) -> str:
    """Run a scenario and return the report text."""
    orchestrator = FlowOrchestrator(
        ledger, config=config, signer=signer, transports=transports, listeners=listeners
    )
    session = await orchestrator.run(scenario_id)
    return "\n".join(session.report)
