"""Command line interface for running lending scenarios."""

from __future__ import annotations

import asyncio
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import List, Optional

import typer

from .config import LendflowConfig, load_config
from .contracts import FlowSession, FlowStatus, StepStatus
from .events import FlowEvent, StepUpdateEvent
from .ledger import LedgerClient, TransactionSigner, XRPLSigner, get_ledger
from .orchestrator import FlowOrchestrator
from .scenarios import SCENARIOS
from .transports import BaseTransport, StreamTransport, get_transport

app = typer.Typer(help="CLI for XRPL lending protocol scenarios")

scenario_app = typer.Typer(help="Commands for inspecting scenarios")
app.add_typer(scenario_app, name="scenario")

STATUS_COLORS = {
    StepStatus.SUCCESS: typer.colors.GREEN,
    StepStatus.ERROR: typer.colors.RED,
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    """Lendflow CLI entry point."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


def build_ledger(config: LendflowConfig) -> LedgerClient:
    return get_ledger(config)


def build_signer() -> TransactionSigner:
    return XRPLSigner()


def print_step(event: FlowEvent, session: FlowSession) -> None:
    """Echo terminal step updates as they arrive."""
    if not isinstance(event, StepUpdateEvent):
        return
    record = event.data
    if record.status not in STATUS_COLORS:
        return
    done = sum(1 for step in session.steps if step.status in STATUS_COLORS)
    line = f"[{done}/{session.total_steps}] {record.title}: {record.description}"
    if record.error:
        line += f" ({record.error})"
    typer.secho(line, fg=STATUS_COLORS[record.status])


@scenario_app.command("list")
def scenario_list() -> None:
    """
    List the available scenarios.

    Example:
        lendflow scenario list
        # Output: loan-creation    Loan Creation    12 steps
    """
    for scenario in SCENARIOS.values():
        typer.echo(f"{scenario.id}\t{scenario.name}\t{scenario.total_steps} steps")


@app.command("run")
def run(
    scenario: Optional[str] = typer.Argument(None, help="Scenario id (default from config)"),
    network: Optional[str] = typer.Option(None, help="Websocket URL of the ledger"),
    faucet: Optional[str] = typer.Option(None, help="Faucet base URL"),
    report_file: Optional[Path] = typer.Option(None, help="Write the final report here"),
    events: Optional[Path] = typer.Option(None, help="Write server-sent event frames here"),
    redact: Optional[bool] = typer.Option(
        None, "--redact/--no-redact", help="Hide seeds in written events"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
) -> None:
    """
    Run a lending scenario against the configured network.

    Prints each step as it settles and exits with code 1 when the run ends in
    the error state.

    Example:
        lendflow run loan-payment --report-file report.txt
        lendflow run signerlist-loan --events events.txt --redact
    """
    config = load_config(str(config_path) if config_path else None)
    if network:
        config.network.url = network
    if faucet:
        config.network.faucet_url = faucet
    if redact is not None:
        config.transport.redact_seeds = redact

    scenario_id = scenario or config.default_scenario
    if scenario_id not in SCENARIOS:
        typer.secho(f"Unknown scenario: {scenario_id}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Running {scenario_id} on {config.network.url}")
    with ExitStack() as stack:
        transports: List[BaseTransport] = []
        if events:
            stream = stack.enter_context(events.open("w", encoding="utf-8"))
            transports.append(get_transport("stream", config=config, stream=stream))
        else:
            # a stream backend without --events writes frames to stdout
            transport = get_transport(config=config)
            if isinstance(transport, StreamTransport):
                transports.append(transport)
        orchestrator = FlowOrchestrator(
            build_ledger(config),
            config=config,
            signer=build_signer(),
            transports=transports,
            listeners=[print_step],
        )
        session = asyncio.run(orchestrator.run(scenario_id))

    report = "\n".join(session.report)
    if report_file:
        report_file.write_text(report, encoding="utf-8")
        typer.echo(f"Report written to {report_file}")

    if session.status != FlowStatus.COMPLETED:
        typer.secho(f"Run failed: {session.error_message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho("Run completed", fg=typer.colors.GREEN)
