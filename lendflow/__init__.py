"""Lendflow: scripted XRPL lending protocol scenarios."""

from .config import LendflowConfig, load_config
from .contracts import FlowSession, FlowStatus, Party, PartyRole, StepRecord, StepStatus
from .events import ProgressEmitter, apply_event
from .ledger import get_ledger
from .orchestrator import FlowOrchestrator, run_lending_flow
from .scenarios import SCENARIOS
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "FlowOrchestrator",
    "FlowSession",
    "FlowStatus",
    "LendflowConfig",
    "Party",
    "PartyRole",
    "ProgressEmitter",
    "SCENARIOS",
    "StepRecord",
    "StepStatus",
    "apply_event",
    "get_ledger",
    "get_transport",
    "load_config",
    "run_lending_flow",
]
