"""Steps that unwind the broker and vault once loans are settled."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Tuple

from ..contracts import LedgerObjectResult, PartyRole
from ..utils.formatting import amount_value, issued_amount, plain_amount
from .base import StepContext, StepSpec, lookup, step_scope, submit

logger = logging.getLogger(__name__)


async def _available(
    ctx: StepContext, object_id: str, field: str, fallback: Decimal
) -> Tuple[str, LedgerObjectResult]:
    """Amount still held by an object, or ``fallback`` when it cannot be read."""
    snapshot = await lookup(ctx, object_id)
    node = snapshot.node or {}
    value: Optional[str] = None
    if node.get(field):
        value = amount_value(node[field])
    if not value:
        logger.info(f"{field} unavailable on {object_id}; using {fallback}")
        return plain_amount(fallback), snapshot
    return value, snapshot


BROKER_COVER_WITHDRAW = StepSpec(
    "broker-cover-withdraw",
    "Broker Withdraws First-Loss Capital",
    "Broker withdraws remaining first-loss capital (LoanBrokerCoverWithdraw)",
    "LoanBrokerCoverWithdraw",
)


async def broker_cover_withdraw(ctx: StepContext) -> None:
    async with step_scope(ctx, BROKER_COVER_WITHDRAW) as scope:
        broker_id = ctx.require("loan_broker_id")
        amount, snapshot = await _available(
            ctx, broker_id, "CoverAvailable", ctx.config.assets.cover_deposit
        )
        ctx.report.add(f"CoverAvailable: {amount}", "")
        tx = {
            "TransactionType": "LoanBrokerCoverWithdraw",
            "Account": ctx.address(PartyRole.BROKER),
            "LoanBrokerID": broker_id,
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        display = f"{amount} {ctx.currency}"
        ctx.report.section(
            "BROKER WITHDRAWS FIRST-LOSS CAPITAL (LoanBrokerCoverWithdraw)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Amount:   {display}",
        )
        await scope.finish(
            outcome,
            f"{display} withdrawn: {outcome.result_code}",
            details={"Amount": display, "LoanBroker ID": broker_id},
            snapshots=[snapshot],
        )


LOAN_BROKER_DELETE = StepSpec(
    "loan-broker-delete",
    "Delete LoanBroker",
    "Deleting the LoanBroker object after all loans are cleared (LoanBrokerDelete)",
    "LoanBrokerDelete",
)


async def loan_broker_delete(ctx: StepContext) -> None:
    async with step_scope(ctx, LOAN_BROKER_DELETE) as scope:
        broker_id = ctx.require("loan_broker_id")
        tx = {
            "TransactionType": "LoanBrokerDelete",
            "Account": ctx.address(PartyRole.BROKER),
            "LoanBrokerID": broker_id,
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        ctx.report.section(
            "DELETE LOANBROKER (LoanBrokerDelete)",
            f"TX Hash:        {outcome.hash}",
            f"Result:         {outcome.result_code}",
            f"LoanBroker ID:  {broker_id}",
        )
        await scope.finish(
            outcome,
            f"LoanBroker deleted: {outcome.result_code}",
            details={"LoanBroker ID": broker_id},
        )


VAULT_WITHDRAW = StepSpec(
    "vault-withdraw",
    "Lender Withdraws from Vault",
    "Lender withdraws their deposited funds from the Vault (VaultWithdraw)",
    "VaultWithdraw",
)


async def vault_withdraw(ctx: StepContext) -> None:
    async with step_scope(ctx, VAULT_WITHDRAW) as scope:
        vault_id = ctx.require("vault_id")
        amount, snapshot = await _available(
            ctx, vault_id, "AssetsAvailable", ctx.config.assets.pool_deposit
        )
        ctx.report.add(f"Vault AssetsAvailable: {amount}", "")
        tx = {
            "TransactionType": "VaultWithdraw",
            "Account": ctx.address(PartyRole.LENDER),
            "VaultID": vault_id,
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.LENDER)
        display = f"{amount} {ctx.currency}"
        ctx.report.section(
            "LENDER WITHDRAWS FROM VAULT (VaultWithdraw)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Amount:   {display}",
            f"Vault ID: {vault_id}",
        )
        await scope.finish(
            outcome,
            f"{display} withdrawn: {outcome.result_code}",
            details={"Amount": display, "Vault ID": vault_id},
            snapshots=[snapshot],
        )


VAULT_DELETE = StepSpec(
    "vault-delete",
    "Delete Vault",
    "Deleting the Vault object after all funds withdrawn (VaultDelete)",
    "VaultDelete",
)


async def vault_delete(ctx: StepContext) -> None:
    async with step_scope(ctx, VAULT_DELETE) as scope:
        vault_id = ctx.require("vault_id")
        tx = {
            "TransactionType": "VaultDelete",
            "Account": ctx.address(PartyRole.BROKER),
            "VaultID": vault_id,
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        ctx.report.section(
            "DELETE VAULT (VaultDelete)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Vault ID: {vault_id}",
        )
        await scope.finish(
            outcome,
            f"Vault deleted: {outcome.result_code}",
            details={"Vault ID": vault_id},
        )
