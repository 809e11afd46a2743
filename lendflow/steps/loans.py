"""Loan issuance and servicing steps (XLS-66)."""

from __future__ import annotations

import logging
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, List, Optional

from ..auth import (
    AuthorizationStrategy,
    CounterpartyAuthorization,
    DelegatedMultiSigAuthorization,
)
from ..constants import LOAN_ENTRY, TF_LOAN_DEFAULT
from ..contracts import ROLE_LABELS, LedgerObjectResult, PartyRole
from ..utils.formatting import (
    amount_value,
    format_amount,
    issued_amount,
    plain_amount,
    short_id,
)
from .base import StepContext, StepSpec, created_or_na, lookup, step_scope, submit

logger = logging.getLogger(__name__)

COUNTERPARTY_AUTH = CounterpartyAuthorization(
    account=PartyRole.BROKER, counterparty=PartyRole.BORROWER
)
DELEGATED_AUTH = DelegatedMultiSigAuthorization(
    account=PartyRole.BROKER,
    counterparty=PartyRole.BORROWER,
    delegates=[PartyRole.LENDER],
)


SIGNER_LIST_SET = StepSpec(
    "signerlist-set",
    "Set Up SignerList on Broker",
    "Broker configures SignerListSet adding Lender as delegate signer (quorum=1) "
    "for multi-sig authorization",
    "SignerListSet",
)


async def signer_list_set(
    ctx: StepContext, strategy: DelegatedMultiSigAuthorization = DELEGATED_AUTH
) -> None:
    async with step_scope(ctx, SIGNER_LIST_SET) as scope:
        account = strategy.account
        tx = {
            "TransactionType": "SignerListSet",
            "Account": ctx.address(account),
            "SignerQuorum": strategy.quorum,
            "SignerEntries": strategy.signer_entries(ctx.wallets),
        }
        outcome = await submit(ctx, tx, account)
        delegates = ", ".join(
            f"{ctx.address(role)} ({ROLE_LABELS[role]}, weight: 1)"
            for role in strategy.delegates
        )
        ctx.report.section(
            "SIGNERLIST SET (Multi-Sig Setup)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Account:  {ctx.address(account)}",
            f"Quorum:   {strategy.quorum}",
            f"Delegate: {delegates}",
            "",
            "An account cannot appear in its own SignerList; the delegate",
            "authorizes broker transactions through the Signers array.",
        )
        await scope.finish(
            outcome,
            f"SignerList configured: {outcome.result_code}",
            details={
                "Quorum": str(strategy.quorum),
                "Delegate Signer": delegates,
                "Purpose": "Enable Lender to authorize broker transactions via multi-sig",
            },
        )


LOAN_SET_COUNTERSIGN = StepSpec(
    "loan-set-countersign",
    "Create Loan with CounterpartySignature",
    "Broker creates LoanSet; Borrower co-signs via CounterpartySignature field",
    "LoanSet",
)

LOAN_SET_MULTISIG = StepSpec(
    "loan-set-multisig",
    "Create Loan with Multi-Sig + CounterpartySignature",
    "Lender signs via multi-sig (as broker delegate) + Borrower provides "
    "CounterpartySignature",
    "LoanSet",
)


async def _preflight(
    ctx: StepContext, label: str, object_id: Optional[str]
) -> LedgerObjectResult:
    snapshot = await lookup(ctx, object_id)
    if snapshot.found:
        ctx.report.dump(f"Pre-flight {label} State:", snapshot.node)
    else:
        ctx.report.add(f"{label} query failed: {snapshot.error}", "")
    return snapshot


async def loan_set(
    ctx: StepContext,
    strategy: AuthorizationStrategy = COUNTERPARTY_AUTH,
    spec: StepSpec = LOAN_SET_COUNTERSIGN,
) -> None:
    """Issue the loan, authorized by ``strategy``."""
    async with step_scope(ctx, spec) as scope:
        terms = ctx.config.loan
        broker_id = ctx.require("loan_broker_id")
        ctx.report.section(f"CREATE LOAN ({strategy.method}, XLS-66 LoanSet)")
        snapshots = [
            await _preflight(ctx, "Vault", ctx.session.vault_id),
            await _preflight(ctx, "LoanBroker", broker_id),
        ]

        tx = strategy.prepare(
            {
                "TransactionType": "LoanSet",
                "Account": ctx.address(strategy.account),
                "LoanBrokerID": broker_id,
                "PrincipalRequested": plain_amount(terms.principal),
                "Counterparty": ctx.address(strategy.counterparty),
                "InterestRate": terms.interest_rate,
                "PaymentInterval": terms.payment_interval,
                "PaymentTotal": terms.payment_total,
            }
        )
        prepared = strategy.adjust(await ctx.ledger.autofill(tx))
        ctx.report.dump("LoanSet Transaction (autofilled):", prepared)

        signed = strategy.compose(ctx.signer, ctx.wallets, prepared, ctx.report)
        outcome = await ctx.ledger.submit_and_wait(signed)
        loan_id = outcome.created_object_id(LOAN_ENTRY) if outcome.succeeded else None
        if loan_id:
            await ctx.emitter.state(loan_id=loan_id)

        principal = f"{format_amount(terms.principal)} {ctx.currency}"
        ctx.report.add(
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Loan ID:  {created_or_na(loan_id)}",
            "",
        )
        if outcome.succeeded:
            await ctx.update_party(strategy.counterparty, usd_balance=f"{principal} (loan)")

        details = {
            "Loan ID": created_or_na(loan_id),
            "Principal Requested": principal,
            "Interest Rate": f"{terms.interest_rate} basis points",
            "Payment Interval": f"{terms.payment_interval}s",
            "Payment Total": f"{terms.payment_total} payments",
            **strategy.details(ctx.wallets),
        }
        await scope.finish(
            outcome,
            f"Loan created: {short_id(loan_id)} | "
            f"{ROLE_LABELS[strategy.counterparty]} receives {principal}"
            if loan_id
            else f"LoanSet submitted: {outcome.result_code}",
            details=details,
            failure="LoanSet failed",
            snapshots=snapshots,
        )


async def loan_set_countersign(ctx: StepContext) -> None:
    await loan_set(ctx, COUNTERPARTY_AUTH, LOAN_SET_COUNTERSIGN)


async def loan_set_multisig(ctx: StepContext) -> None:
    await loan_set(ctx, DELEGATED_AUTH, LOAN_SET_MULTISIG)


FUND_BORROWER_REPAYMENT = StepSpec(
    "fund-borrower-repayment",
    "Fund Borrower for Repayment",
    "Issuer sends additional USD to Borrower so they can repay principal + interest",
    "Payment",
)


async def fund_borrower_for_repayment(ctx: StepContext) -> None:
    async with step_scope(ctx, FUND_BORROWER_REPAYMENT) as scope:
        amount = ctx.config.assets.borrower_top_up
        display = f"{format_amount(amount)} {ctx.currency}"
        issuer = ctx.address(PartyRole.ISSUER)
        tx = {
            "TransactionType": "Payment",
            "Account": issuer,
            "Destination": ctx.address(PartyRole.BORROWER),
            "Amount": issued_amount(ctx.currency, issuer, amount),
        }
        outcome = await submit(ctx, tx, PartyRole.ISSUER)
        ctx.report.section(
            "FUND BORROWER FOR REPAYMENT",
            f"TX Hash: {outcome.hash}",
            f"Result:  {outcome.result_code}",
            f"Amount:  {display} (to cover interest on repayment)",
        )
        await scope.finish(
            outcome,
            f"{display} sent to Borrower for interest coverage",
            details={"Amount": display, "Purpose": "Cover interest on loan repayment"},
            failure="Borrower funding failed",
        )


def early_repayment_amount(
    outstanding: Any, factor: Decimal, fallback: Decimal
) -> Decimal:
    """Amount that closes the loan early: outstanding principal plus closing interest.

    Rounds up to a whole unit so the result never falls below ``outstanding``.
    Unreadable values yield ``fallback``.
    """
    if outstanding in (None, ""):
        return fallback
    try:
        principal = Decimal(amount_value(outstanding))
    except (InvalidOperation, ValueError):
        return fallback
    if principal <= 0:
        return fallback
    amount = (principal * factor).to_integral_value(rounding=ROUND_CEILING)
    return max(amount, principal.to_integral_value(rounding=ROUND_CEILING))


LOAN_PAY = StepSpec(
    "loan-pay",
    "Borrower Makes Loan Payment",
    "Borrower makes a scheduled payment on the loan via LoanPay",
    "LoanPay",
)

LOAN_PAY_EARLY = StepSpec(
    "loan-pay-early",
    "Borrower Repays Loan Early (Full)",
    "Borrower repays the full outstanding balance early via LoanPay",
    "LoanPay",
)


async def _loan_pay(ctx: StepContext, early: bool) -> None:
    spec = LOAN_PAY_EARLY if early else LOAN_PAY
    async with step_scope(ctx, spec) as scope:
        terms = ctx.config.loan
        loan_id = ctx.require("loan_id")
        amount = terms.scheduled_payment
        snapshots: List[LedgerObjectResult] = []
        if early:
            snapshot = await lookup(ctx, loan_id)
            snapshots.append(snapshot)
            outstanding = (snapshot.node or {}).get("OutstandingPrincipal")
            amount = early_repayment_amount(
                outstanding, terms.early_repayment_factor, terms.early_repayment_fallback
            )
            if not snapshot.found:
                ctx.report.add(
                    f"Could not query loan state: {snapshot.error}. "
                    f"Using estimated amount: {plain_amount(amount)}",
                    "",
                )
            elif outstanding is None:
                ctx.report.add(
                    f"Loan has no OutstandingPrincipal. "
                    f"Using estimated amount: {plain_amount(amount)}",
                    "",
                )
            else:
                ctx.report.add(
                    f"Outstanding principal: {amount_value(outstanding)}",
                    f"Paying: {plain_amount(amount)} (includes closing interest)",
                    "",
                )

        display = f"{plain_amount(amount)} {ctx.currency}"
        tx = {
            "TransactionType": "LoanPay",
            "Account": ctx.address(PartyRole.BORROWER),
            "LoanID": loan_id,
            "Amount": issued_amount(ctx.currency, ctx.address(PartyRole.ISSUER), amount),
        }
        outcome = await submit(ctx, tx, PartyRole.BORROWER)
        ctx.report.section(
            f"BORROWER {'REPAYS LOAN EARLY' if early else 'MAKES LOAN PAYMENT'} (LoanPay)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Amount:   {display}",
            f"Loan ID:  {loan_id}",
        )
        status = "succeeded" if outcome.succeeded else "failed"
        await scope.finish(
            outcome,
            f"{display} payment {status}",
            details={
                "Amount": display,
                "Loan ID": loan_id,
                "Type": "Early Full Repayment" if early else "Scheduled Payment",
            },
            snapshots=snapshots,
        )


async def loan_pay(ctx: StepContext) -> None:
    await _loan_pay(ctx, early=False)


async def loan_pay_early(ctx: StepContext) -> None:
    await _loan_pay(ctx, early=True)


LOAN_MANAGE_DEFAULT = StepSpec(
    "loan-manage-default",
    "Broker Defaults the Loan",
    "Broker marks the loan as defaulted via LoanManage (borrower failed to pay)",
    "LoanManage",
)


async def loan_manage_default(ctx: StepContext) -> None:
    async with step_scope(ctx, LOAN_MANAGE_DEFAULT) as scope:
        loan_id = ctx.require("loan_id")
        tx = {
            "TransactionType": "LoanManage",
            "Account": ctx.address(PartyRole.BROKER),
            "LoanID": loan_id,
            "Flags": TF_LOAN_DEFAULT,
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        ctx.report.section(
            "BROKER DEFAULTS THE LOAN (LoanManage)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Loan ID:  {loan_id}",
            "First-loss capital may be liquidated to protect vault depositors.",
        )
        await scope.finish(
            outcome,
            f"Loan defaulted: {outcome.result_code}",
            details={
                "Loan ID": loan_id,
                "Action": f"Default (Flags: {TF_LOAN_DEFAULT})",
                "Impact": "First-loss capital may be liquidated to cover losses",
            },
        )


LOAN_DELETE = StepSpec(
    "loan-delete",
    "Delete Loan",
    "Deleting the matured/defaulted loan object from the ledger (LoanDelete)",
    "LoanDelete",
)


async def loan_delete(ctx: StepContext) -> None:
    async with step_scope(ctx, LOAN_DELETE) as scope:
        loan_id = ctx.require("loan_id")
        tx = {
            "TransactionType": "LoanDelete",
            "Account": ctx.address(PartyRole.BROKER),
            "LoanID": loan_id,
        }
        outcome = await submit(ctx, tx, PartyRole.BROKER)
        ctx.report.section(
            "DELETE LOAN (LoanDelete)",
            f"TX Hash:  {outcome.hash}",
            f"Result:   {outcome.result_code}",
            f"Loan ID:  {loan_id}",
        )
        await scope.finish(
            outcome, f"Loan deleted: {outcome.result_code}", details={"Loan ID": loan_id}
        )


