"""Read-only verification of balances and ledger objects at the end of a run."""

from __future__ import annotations

import json
import logging
from typing import Dict, List

from xrpl.utils import drops_to_xrp

from ..constants import NOT_FOUND
from ..contracts import FieldsResult, LedgerObjectResult
from .base import StepContext, StepSpec, lookup, step_scope
from .setup import PROVISIONING_ORDER

logger = logging.getLogger(__name__)

ERROR_FETCHING = "Error fetching"

VERIFY_STATES = StepSpec(
    "verify-states",
    "Verify Final States",
    "Querying account balances and ledger objects to verify the flow",
    "Verification",
)

OBJECTS = (
    ("Vault Object", "vault_id"),
    ("LoanBroker Object", "loan_broker_id"),
    ("Loan Object", "loan_id"),
)


async def _balances(ctx: StepContext, details: Dict[str, str]) -> None:
    for role in PROVISIONING_ORDER:
        label = role.value.capitalize()
        address = ctx.address(role)
        try:
            account = await ctx.ledger.account_info(address)
            details[f"{label} XRP Balance"] = str(drops_to_xrp(str(account["Balance"])))
        except Exception as e:
            logger.warning(f"account_info {address} unavailable: {e}")
            details[f"{label} XRP Balance"] = ERROR_FETCHING

        try:
            lines = await ctx.ledger.account_lines(address)
        except Exception as e:
            logger.warning(f"account_lines {address} unavailable: {e}")
            continue
        for line in lines:
            if line.get("currency") == ctx.currency:
                details[f"{label} {ctx.currency} Balance"] = str(line.get("balance"))
                break


async def _objects(
    ctx: StepContext, details: Dict[str, str]
) -> List[LedgerObjectResult]:
    snapshots = []
    for label, name in OBJECTS:
        object_id = getattr(ctx.session, name)
        if not object_id:
            continue
        snapshot = await lookup(ctx, object_id)
        snapshots.append(snapshot)
        if snapshot.found:
            details[label] = json.dumps(snapshot.node, indent=2, default=str)
        else:
            details[label] = NOT_FOUND
    return snapshots


async def verify_states(ctx: StepContext) -> None:
    """Snapshot every party and created object.

    Query failures become placeholders in the details map; only a failure
    outside the queries themselves fails the step.
    """
    async with step_scope(ctx, VERIFY_STATES) as scope:
        details: Dict[str, str] = {}
        await _balances(ctx, details)
        snapshots = await _objects(ctx, details)

        ctx.report.section(
            "FINAL STATE VERIFICATION",
            "",
            *(f"{key}: {value}" for key, value in details.items()),
        )
        await scope.succeed(
            "All account balances and ledger objects verified",
            details=details,
            result=FieldsResult(values=details, snapshots=snapshots),
        )
