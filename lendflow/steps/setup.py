"""Steps shared by every scenario: identities, trust lines, funding and the vault."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Dict

from ..constants import (
    ASF_DEFAULT_RIPPLE,
    LOAN_BROKER_ENTRY,
    STARTING_BALANCE_DISPLAY,
    TF_ALL_OR_NOTHING,
    TF_INNER_BATCH_TXN,
    VAULT_ENTRY,
)
from ..contracts import ROLE_LABELS, FieldsResult, PartyRole
from ..errors import ProvisioningError
from ..utils.formatting import format_amount, issued_amount, short_id, to_hex
from .base import StepContext, StepSpec, created_or_na, step_scope, submit

logger = logging.getLogger(__name__)

PROVISIONING_ORDER = (
    PartyRole.ISSUER,
    PartyRole.LENDER,
    PartyRole.BORROWER,
    PartyRole.BROKER,
)

FUND_WALLETS = StepSpec(
    "fund-wallets",
    "Fund All Wallets",
    "Creating and funding 4 wallets via faucet",
    "Faucet",
)


async def fund_wallets(ctx: StepContext) -> None:
    """Provision the four identities concurrently; any faucet failure is fatal."""
    async with step_scope(ctx, FUND_WALLETS) as scope:
        try:
            funded = await asyncio.gather(
                *(ctx.ledger.fund_wallet() for _ in PROVISIONING_ORDER)
            )
        except ProvisioningError:
            raise
        except Exception as e:
            raise ProvisioningError(f"Faucet unavailable: {e}") from e

        lines = []
        for role, identity in zip(PROVISIONING_ORDER, funded):
            if not identity.address:
                raise ProvisioningError(f"Faucet returned no address for {role.value}")
            ctx.wallets[role] = identity.wallet
            balance = (
                f"{format_amount(identity.balance)} XRP"
                if identity.balance
                else STARTING_BALANCE_DISPLAY
            )
            await ctx.update_party(
                role,
                label=ROLE_LABELS[role],
                address=identity.address,
                seed=identity.seed,
                balance=balance,
            )
            name = f"{ROLE_LABELS[role].split()[-1]}:"
            lines.append(f"{name:<10}{identity.address} (seed: {identity.seed})")

        ctx.report.section("FUND WALLETS", *lines)
        addresses = {
            ROLE_LABELS[role].split()[-1]: ctx.address(role) for role in PROVISIONING_ORDER
        }
        await scope.succeed(
            "All 4 wallets funded successfully",
            details=addresses,
            result=FieldsResult(values=addresses),
        )


ISSUER_SETUP = StepSpec(
    "issuer-setup",
    "Enable Issuer Settings",
    "Setting DefaultRipple on Issuer account for IOU issuance",
    "AccountSet",
)


async def issuer_setup(ctx: StepContext) -> None:
    async with step_scope(ctx, ISSUER_SETUP) as scope:
        tx = {
            "TransactionType": "AccountSet",
            "Account": ctx.address(PartyRole.ISSUER),
            "SetFlag": ASF_DEFAULT_RIPPLE,
        }
        outcome = await submit(ctx, tx, PartyRole.ISSUER)
        ctx.report.section(
            "ISSUER ACCOUNT SETUP (DefaultRipple)",
            f"TX Hash: {outcome.hash}",
            f"Result:  {outcome.result_code}",
        )
        await scope.finish(
            outcome,
            "DefaultRipple enabled on Issuer account",
            details={"Flag": "asfDefaultRipple"},
        )


TRUSTLINE_STEPS: Dict[PartyRole, StepSpec] = {
    PartyRole.LENDER: StepSpec(
        "lender-trustline",
        "Lender Creates USD Trustline",
        "Lender creates a trustline to the Issuer for USD",
        "TrustSet",
    ),
    PartyRole.BROKER: StepSpec(
        "broker-trustline",
        "Broker Creates USD Trustline",
        "Broker creates a trustline to the Issuer for USD",
        "TrustSet",
    ),
    PartyRole.BORROWER: StepSpec(
        "borrower-trustline",
        "Borrower Creates USD Trustline",
        "Borrower creates a trustline to Issuer for USD so they can receive the loan",
        "TrustSet",
    ),
}


async def _trustline(ctx: StepContext, role: PartyRole) -> None:
    spec = TRUSTLINE_STEPS[role]
    async with step_scope(ctx, spec) as scope:
        limit = ctx.config.assets.trust_limit
        tx = {
            "TransactionType": "TrustSet",
            "Account": ctx.address(role),
            "LimitAmount": issued_amount(
                ctx.currency, ctx.address(PartyRole.ISSUER), limit
            ),
        }
        outcome = await submit(ctx, tx, role)
        ctx.report.section(
            spec.title.upper(),
            f"TX Hash: {outcome.hash}",
            f"Result:  {outcome.result_code}",
        )
        await scope.finish(
            outcome,
            f"{ROLE_LABELS[role]} can now hold {ctx.currency} issued by the Issuer",
            details={"Currency": ctx.currency, "Limit": format_amount(limit)},
            failure="TrustSet failed",
        )


async def lender_trustline(ctx: StepContext) -> None:
    await _trustline(ctx, PartyRole.LENDER)


async def broker_trustline(ctx: StepContext) -> None:
    await _trustline(ctx, PartyRole.BROKER)


async def borrower_trustline(ctx: StepContext) -> None:
    await _trustline(ctx, PartyRole.BORROWER)


ISSUER_PAYMENT_STEPS: Dict[PartyRole, StepSpec] = {
    PartyRole.LENDER: StepSpec(
        "issuer-sends-usd-lender",
        "Issuer Sends USD to Lender",
        "Issuer sends USD to the Lender's wallet",
        "Payment",
    ),
    PartyRole.BROKER: StepSpec(
        "issuer-sends-usd-broker",
        "Issuer Sends USD to Broker",
        "Issuer sends USD to Broker for first-loss capital",
        "Payment",
    ),
}


def _issuance(ctx: StepContext, role: PartyRole) -> Decimal:
    if role == PartyRole.LENDER:
        return ctx.config.assets.lender_issuance
    return ctx.config.assets.broker_issuance


async def _issuer_payment(ctx: StepContext, role: PartyRole) -> None:
    spec = ISSUER_PAYMENT_STEPS[role]
    amount = _issuance(ctx, role)
    display = f"{format_amount(amount)} {ctx.currency}"
    async with step_scope(ctx, spec) as scope:
        tx = {
            "TransactionType": "Payment",
            "Account": ctx.address(PartyRole.ISSUER),
            "Destination": ctx.address(role),
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.ISSUER)
        ctx.report.section(
            spec.title.upper(),
            f"TX Hash: {outcome.hash}",
            f"Result:  {outcome.result_code}",
            f"Amount:  {display}",
        )
        if outcome.succeeded:
            await ctx.update_party(role, usd_balance=display)
        await scope.finish(
            outcome,
            f"{display} sent to {ROLE_LABELS[role]}",
            details={"Amount": display},
            failure="Payment failed",
        )


async def issuer_sends_usd_lender(ctx: StepContext) -> None:
    await _issuer_payment(ctx, PartyRole.LENDER)


async def issuer_sends_usd_broker(ctx: StepContext) -> None:
    await _issuer_payment(ctx, PartyRole.BROKER)


BATCH_ISSUER_PAYMENTS = StepSpec(
    "batch-issuer-payments",
    "Batch: Issuer USD Payments",
    "Sending USD to Lender and Broker in a single Batch transaction (XLS-56)",
    "Batch (2 Payment)",
)


async def batch_issuer_payments(ctx: StepContext) -> None:
    """Both issuer payments as one all-or-nothing batch signed once by the issuer."""
    async with step_scope(ctx, BATCH_ISSUER_PAYMENTS) as scope:
        issuer = ctx.address(PartyRole.ISSUER)
        inner = []
        for role in (PartyRole.LENDER, PartyRole.BROKER):
            inner.append(
                {
                    "RawTransaction": {
                        "TransactionType": "Payment",
                        "Account": issuer,
                        "Destination": ctx.address(role),
                        "Amount": issued_amount(ctx.currency, issuer, _issuance(ctx, role)),
                        "Fee": "0",
                        "SigningPubKey": "",
                        "Flags": TF_INNER_BATCH_TXN,
                    }
                }
            )
        tx = {
            "TransactionType": "Batch",
            "Account": issuer,
            "Flags": TF_ALL_OR_NOTHING,
            "RawTransactions": inner,
        }
        outcome = await submit(ctx, tx, PartyRole.ISSUER)

        lender_display = f"{format_amount(_issuance(ctx, PartyRole.LENDER))} {ctx.currency}"
        broker_display = f"{format_amount(_issuance(ctx, PartyRole.BROKER))} {ctx.currency}"
        ctx.report.section(
            "BATCH ISSUER PAYMENTS (XLS-56 Batch, 2 Payment)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            "Mode:     ALLORNOTHING",
            f"Inner 1:  Payment {lender_display} to Lender",
            f"Inner 2:  Payment {broker_display} to Broker (for first-loss capital)",
        )
        if outcome.succeeded:
            await ctx.update_party(PartyRole.LENDER, usd_balance=lender_display)
            await ctx.update_party(PartyRole.BROKER, usd_balance=broker_display)
        await scope.finish(
            outcome,
            f"Both payments sent atomically: {outcome.result_code}",
            details={
                "Mode": "ALLORNOTHING",
                "Payment 1": f"{lender_display} to Lender",
                "Payment 2": f"{broker_display} to Broker",
            },
            failure="Batch payments failed",
        )


CREATE_VAULT = StepSpec(
    "create-vault",
    "Broker Creates USD Vault",
    "Broker creates a Single Asset Vault (XLS-65) for USD",
    "VaultCreate",
)


async def create_vault(ctx: StepContext) -> None:
    async with step_scope(ctx, CREATE_VAULT) as scope:
        assets = ctx.config.assets
        tx = {
            "TransactionType": "VaultCreate",
            "Account": ctx.address(PartyRole.BROKER),
            "Asset": {"currency": ctx.currency, "issuer": ctx.address(PartyRole.ISSUER)},
            "AssetsMaximum": str(int(assets.vault_maximum)),
            "Data": to_hex(assets.vault_label),
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        vault_id = outcome.created_object_id(VAULT_ENTRY) if outcome.succeeded else None
        if vault_id:
            await ctx.emitter.state(vault_id=vault_id)

        ctx.report.section(
            "BROKER CREATES USD VAULT (XLS-65 VaultCreate)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Vault ID: {created_or_na(vault_id)}",
        )
        await scope.finish(
            outcome,
            f"Vault created: {short_id(vault_id)}" if vault_id else "Vault creation submitted",
            details={
                "Vault ID": created_or_na(vault_id),
                "Asset": ctx.currency,
                "Max Capacity": format_amount(assets.vault_maximum),
            },
        )


CREATE_LOAN_BROKER = StepSpec(
    "create-loan-broker",
    "Broker Creates LoanBroker",
    "Broker creates the LoanBroker entry (XLS-66 LoanBrokerSet)",
    "LoanBrokerSet",
)


async def create_loan_broker(ctx: StepContext) -> None:
    async with step_scope(ctx, CREATE_LOAN_BROKER) as scope:
        vault_id = ctx.require("vault_id")
        tx = {
            "TransactionType": "LoanBrokerSet",
            "Account": ctx.address(PartyRole.BROKER),
            "VaultID": vault_id,
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        broker_id = (
            outcome.created_object_id(LOAN_BROKER_ENTRY) if outcome.succeeded else None
        )
        if broker_id:
            await ctx.emitter.state(loan_broker_id=broker_id)

        ctx.report.section(
            "BROKER CREATES LOANBROKER (XLS-66 LoanBrokerSet)",
            f"TX Hash:        {outcome.hash}",
            f"Result:         {outcome.result_code}",
            f"LoanBroker ID:  {created_or_na(broker_id)}",
            f"Vault ID:       {vault_id}",
        )
        await scope.finish(
            outcome,
            f"LoanBroker: {short_id(broker_id)}" if broker_id else "LoanBrokerSet submitted",
            details={"LoanBroker ID": created_or_na(broker_id), "Vault ID": vault_id},
        )


LENDER_DEPOSITS = StepSpec(
    "lender-deposits",
    "Lender Deposits USD in Vault",
    "Lender deposits USD into the Vault (XLS-65 VaultDeposit)",
    "VaultDeposit",
)


async def lender_deposits(ctx: StepContext) -> None:
    async with step_scope(ctx, LENDER_DEPOSITS) as scope:
        vault_id = ctx.require("vault_id")
        assets = ctx.config.assets
        amount = assets.pool_deposit
        display = f"{format_amount(amount)} {ctx.currency}"
        tx = {
            "TransactionType": "VaultDeposit",
            "Account": ctx.address(PartyRole.LENDER),
            "VaultID": vault_id,
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.LENDER)
        if outcome.succeeded:
            remaining = format_amount(assets.lender_issuance - amount)
            await ctx.update_party(
                PartyRole.LENDER,
                usd_balance=f"{remaining} {ctx.currency} ({format_amount(amount)} in Vault)",
            )
        ctx.report.section(
            "LENDER DEPOSITS USD INTO VAULT (XLS-65 VaultDeposit)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Amount:   {display}",
            f"Vault ID: {vault_id}",
        )
        await scope.finish(
            outcome,
            f"{display} deposited into the Vault",
            details={"Amount": display, "Vault ID": vault_id},
        )


BROKER_COVER_DEPOSIT = StepSpec(
    "broker-cover-deposit",
    "Broker Deposits First-Loss Capital",
    "Broker deposits first-loss capital to enable loan issuance (LoanBrokerCoverDeposit)",
    "LoanBrokerCoverDeposit",
)


async def broker_cover_deposit(ctx: StepContext) -> None:
    async with step_scope(ctx, BROKER_COVER_DEPOSIT) as scope:
        broker_id = ctx.require("loan_broker_id")
        amount = ctx.config.assets.cover_deposit
        display = f"{format_amount(amount)} {ctx.currency}"
        tx = {
            "TransactionType": "LoanBrokerCoverDeposit",
            "Account": ctx.address(PartyRole.BROKER),
            "LoanBrokerID": broker_id,
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        ctx.report.section(
            "BROKER DEPOSITS FIRST-LOSS CAPITAL (LoanBrokerCoverDeposit)",
            f"TX Hash:       {outcome.hash}",
            f"Result:        {outcome.result_code}",
            f"Cover Amount:  {display}",
        )
        await scope.finish(
            outcome,
            f"{display} deposited as first-loss capital",
            details={"Cover Amount": display, "LoanBroker ID": broker_id},
        )
