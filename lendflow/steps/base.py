"""Shared machinery for transaction steps."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Sequence

from xrpl.wallet import Wallet

from ..config import LendflowConfig
from ..constants import NOT_AVAILABLE
from ..contracts import (
    FlowSession,
    LedgerObjectResult,
    PartyPatch,
    PartyRole,
    StepRecord,
    StepResult,
    StepStatus,
    TransactionResult,
    utc_now,
)
from ..errors import LedgerQueryError, LendflowError, SessionStateError, StepFailed
from ..events import ProgressEmitter
from ..ledger import LedgerClient, SubmissionResult, TransactionSigner
from ..report import Report

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """Everything a step needs to talk to the ledger and report progress."""

    ledger: LedgerClient
    signer: TransactionSigner
    emitter: ProgressEmitter
    report: Report
    config: LendflowConfig
    wallets: Dict[PartyRole, Wallet] = field(default_factory=dict)

    @property
    def session(self) -> FlowSession:
        return self.emitter.session

    @property
    def currency(self) -> str:
        return self.config.assets.currency

    def wallet(self, role: PartyRole) -> Wallet:
        try:
            return self.wallets[role]
        except KeyError:
            raise SessionStateError(f"Wallet for {role.value} not provisioned") from None

    def address(self, role: PartyRole) -> str:
        return self.wallet(role).address

    def require(self, name: str) -> str:
        """Return a previously created object id (vault_id, loan_broker_id, loan_id)."""
        value = getattr(self.session, name)
        if not value:
            raise SessionStateError(f"{name} has not been created yet")
        return value

    async def update_party(self, role: PartyRole, **changes: Any) -> None:
        await self.emitter.party(PartyPatch(role=role, **changes))


@dataclass(frozen=True)
class StepSpec:
    """Static identity of a step as shown to the progress consumer."""

    id: str
    title: str
    description: str
    transaction_type: str


class StepScope:
    """Tracks the single running and single terminal event of one step."""

    def __init__(self, ctx: StepContext, spec: StepSpec) -> None:
        self.ctx = ctx
        self.spec = spec
        self.finished = False

    def _record(self, **fields: Any) -> StepRecord:
        values: Dict[str, Any] = {
            "id": self.spec.id,
            "title": self.spec.title,
            "description": self.spec.description,
            "transaction_type": self.spec.transaction_type,
            "timestamp": utc_now(),
        }
        values.update(fields)
        return StepRecord(**values)

    async def start(self) -> None:
        await self.ctx.emitter.step(self._record(status=StepStatus.RUNNING))

    async def succeed(
        self,
        description: str,
        details: Optional[Dict[str, str]] = None,
        result: Optional[StepResult] = None,
        transaction_hash: Optional[str] = None,
    ) -> None:
        self.finished = True
        await self.ctx.emitter.step(
            self._record(
                status=StepStatus.SUCCESS,
                description=description,
                details=details or {},
                result=result,
                transaction_hash=transaction_hash,
            )
        )

    async def fail(
        self,
        error: str,
        description: str = "Failed",
        details: Optional[Dict[str, str]] = None,
        result: Optional[StepResult] = None,
        transaction_hash: Optional[str] = None,
    ) -> None:
        self.finished = True
        await self.ctx.emitter.step(
            self._record(
                status=StepStatus.ERROR,
                description=description,
                error=error,
                details=details or {},
                result=result,
                transaction_hash=transaction_hash,
            )
        )

    async def finish(
        self,
        outcome: SubmissionResult,
        description: str,
        details: Optional[Dict[str, str]] = None,
        failure: Optional[str] = None,
        snapshots: Sequence[LedgerObjectResult] = (),
    ) -> None:
        """Emit the terminal event for ``outcome``; raise if it did not succeed."""
        details = {"Result": outcome.result_code, **(details or {})}
        result = TransactionResult(
            hash=outcome.hash,
            transaction_type=outcome.tx_json.get(
                "TransactionType", self.spec.transaction_type
            ),
            result_code=outcome.result_code,
            tx_json=outcome.tx_json,
            snapshots=list(snapshots),
        )
        if outcome.succeeded:
            await self.succeed(description, details, result, outcome.hash)
            return

        prefix = failure or f"{self.spec.transaction_type} failed"
        message = f"{prefix}: {outcome.result_code}"
        await self.fail(message, description, details, result, outcome.hash)
        raise StepFailed(self.spec.id, message, outcome.result_code)


@asynccontextmanager
async def step_scope(ctx: StepContext, spec: StepSpec) -> AsyncIterator[StepScope]:
    """Run a step body between its running and terminal events.

    Exceptions escaping the body produce an error event (unless the body
    already emitted one) and propagate as :class:`StepFailed`. Ledger request
    errors count as a rejected step; other lendflow errors keep their own type.
    """
    scope = StepScope(ctx, spec)
    await scope.start()
    logger.info(f"Step {spec.id} started")
    try:
        yield scope
    except Exception as e:
        logger.error(f"Step {spec.id} failed: {e}")
        if not scope.finished:
            await scope.fail(str(e))
        if isinstance(e, LedgerQueryError):
            raise StepFailed(spec.id, str(e), e.error) from e
        if isinstance(e, LendflowError):
            raise
        raise StepFailed(spec.id, str(e)) from e
    if not scope.finished:
        await scope.succeed(spec.description)
    logger.info(f"Step {spec.id} finished")


async def submit(
    ctx: StepContext, tx: Dict[str, Any], role: PartyRole
) -> SubmissionResult:
    """Autofill, single-sign as ``role`` and submit ``tx``."""
    prepared = await ctx.ledger.autofill(tx)
    signed = ctx.signer.sign(ctx.wallet(role), prepared)
    return await ctx.ledger.submit_and_wait(signed)


async def lookup(ctx: StepContext, object_id: Optional[str]) -> LedgerObjectResult:
    """Fetch a ledger object for diagnostics.

    Lookup failures never abort a step; they come back as a result with
    ``found`` unset and the reason in ``error``.
    """
    if not object_id:
        return LedgerObjectResult(object_id="", found=False, error="no object id")
    try:
        node = await ctx.ledger.ledger_entry(object_id)
    except Exception as e:
        logger.warning(f"ledger_entry {object_id} unavailable: {e}")
        return LedgerObjectResult(object_id=object_id, found=False, error=str(e))
    return LedgerObjectResult(
        object_id=object_id,
        found=True,
        entry_type=node.get("LedgerEntryType"),
        node=node,
    )


def created_or_na(value: Optional[str]) -> str:
    return value or NOT_AVAILABLE
