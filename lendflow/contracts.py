"""Core state contracts for lendflow runs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import SessionStateError


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PartyRole(str, Enum):
    ISSUER = "issuer"
    LENDER = "lender"
    BORROWER = "borrower"
    BROKER = "broker"


ROLE_LABELS: Dict[PartyRole, str] = {
    PartyRole.ISSUER: "USD Issuer",
    PartyRole.LENDER: "Lender",
    PartyRole.BORROWER: "Borrower",
    PartyRole.BROKER: "Broker",
}


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class FlowStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class Party(BaseModel):
    """One of the four identities taking part in a run."""

    model_config = ConfigDict(frozen=True)

    role: PartyRole
    label: str
    address: Optional[str] = None
    seed: Optional[str] = Field(default=None, repr=False)
    balance: Optional[str] = None
    usd_balance: Optional[str] = None


class PartyPatch(BaseModel):
    """Partial party update keyed by role."""

    role: PartyRole
    label: Optional[str] = None
    address: Optional[str] = None
    seed: Optional[str] = Field(default=None, repr=False)
    balance: Optional[str] = None
    usd_balance: Optional[str] = None


class LedgerObjectResult(BaseModel):
    """Snapshot of a ledger object looked up by id."""

    kind: Literal["ledger_object"] = "ledger_object"
    object_id: str
    found: bool
    entry_type: Optional[str] = None
    node: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class FieldsResult(BaseModel):
    """Plain string map produced by faucet and verification steps."""

    kind: Literal["fields"] = "fields"
    values: Dict[str, str] = Field(default_factory=dict)
    snapshots: List[LedgerObjectResult] = Field(default_factory=list)


class TransactionResult(BaseModel):
    """Metadata of a validated (or rejected) transaction.

    ``snapshots`` holds the ledger objects the step read before submitting.
    """

    kind: Literal["transaction"] = "transaction"
    hash: str
    transaction_type: str
    result_code: str
    tx_json: Dict[str, Any] = Field(default_factory=dict)
    snapshots: List[LedgerObjectResult] = Field(default_factory=list)


StepResult = Annotated[
    Union[FieldsResult, TransactionResult],
    Field(discriminator="kind"),
]


class StepRecord(BaseModel):
    """Progress record of a single step."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    status: StepStatus = StepStatus.PENDING
    transaction_hash: Optional[str] = None
    transaction_type: Optional[str] = None
    result: Optional[StepResult] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None
    details: Dict[str, str] = Field(default_factory=dict)


class StatePatch(BaseModel):
    """Partial update merged into a flow session."""

    status: Optional[FlowStatus] = None
    scenario_id: Optional[str] = None
    total_steps: Optional[int] = None
    network: Optional[str] = None
    vault_id: Optional[str] = None
    loan_broker_id: Optional[str] = None
    loan_id: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None


ONCE_ONLY_FIELDS = ("vault_id", "loan_broker_id", "loan_id")


def _initial_parties() -> Tuple[Party, ...]:
    return tuple(Party(role=role, label=label) for role, label in ROLE_LABELS.items())


class FlowSession(BaseModel):
    """Immutable snapshot of a run.

    Every transition returns a new session; the previous value is left
    untouched so subscribers can diff consecutive snapshots.
    """

    model_config = ConfigDict(frozen=True)

    status: FlowStatus = FlowStatus.IDLE
    scenario_id: Optional[str] = None
    total_steps: int = 0
    network: str = ""
    parties: Tuple[Party, ...] = Field(default_factory=_initial_parties)
    steps: Tuple[StepRecord, ...] = ()
    vault_id: Optional[str] = None
    loan_broker_id: Optional[str] = None
    loan_id: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    report: Tuple[str, ...] = ()
    error_message: Optional[str] = None

    @classmethod
    def new(cls, scenario_id: str, network: str) -> "FlowSession":
        return cls(scenario_id=scenario_id, network=network)

    @property
    def is_terminal(self) -> bool:
        return self.status in (FlowStatus.COMPLETED, FlowStatus.ERROR)

    def party(self, role: PartyRole) -> Party:
        for party in self.parties:
            if party.role == role:
                return party
        raise SessionStateError(f"No party with role {role.value}")

    def step(self, step_id: str) -> Optional[StepRecord]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def upsert_step(self, record: StepRecord) -> "FlowSession":
        """Replace the step with the same id, or append it."""
        steps = list(self.steps)
        for index, existing in enumerate(steps):
            if existing.id == record.id:
                steps[index] = record
                break
        else:
            steps.append(record)
        return self.model_copy(update={"steps": tuple(steps)})

    def merge_party(self, patch: PartyPatch) -> "FlowSession":
        changes = patch.model_dump(exclude_unset=True, exclude={"role"})
        parties = tuple(
            party.model_copy(update=changes) if party.role == patch.role else party
            for party in self.parties
        )
        return self.model_copy(update={"parties": parties})

    def merge_state(self, patch: StatePatch) -> "FlowSession":
        changes = patch.model_dump(exclude_unset=True)
        for name in ONCE_ONLY_FIELDS:
            if name not in changes:
                continue
            current = getattr(self, name)
            if current and changes[name] != current:
                raise SessionStateError(
                    f"{name} already assigned ({current}); refusing {changes[name]}"
                )
        return self.model_copy(update=changes)
