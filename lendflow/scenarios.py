"""Scenario table: shared setup phases plus a tail per scenario."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Tuple, Union

from .errors import StepFailed
from .steps import loans, setup, teardown, verify
from .steps.base import StepContext

logger = logging.getLogger(__name__)

StepFn = Callable[[StepContext], Awaitable[None]]


@dataclass(frozen=True)
class Sequential:
    """A single step awaited on its own."""

    step: StepFn


@dataclass(frozen=True)
class Parallel:
    """Members launched together; the phase ends when every member has settled."""

    members: Tuple["Phase", ...]


@dataclass(frozen=True)
class Fallback:
    """Run ``primary``; if it fails, note it and run ``fallback`` in order."""

    primary: StepFn
    fallback: Tuple[StepFn, ...]


Phase = Union[Sequential, Parallel, Fallback]


def count_steps(phase: Phase) -> int:
    """Number of progress rows a phase contributes.

    A fallback counts once: the fallback path replaces the primary row budget.
    """
    if isinstance(phase, Parallel):
        return sum(count_steps(member) for member in phase.members)
    return 1


async def run_phase(ctx: StepContext, phase: Phase) -> None:
    if isinstance(phase, Sequential):
        await phase.step(ctx)
        return

    if isinstance(phase, Fallback):
        try:
            await phase.primary(ctx)
        except StepFailed as e:
            logger.warning(f"{e.step_id} unavailable ({e}); using sequential fallback")
            ctx.report.add(f"{e.step_id} unavailable ({e}), using sequential fallback...", "")
            for step in phase.fallback:
                await step(ctx)
        return

    results = await asyncio.gather(
        *(run_phase(ctx, member) for member in phase.members), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result


def _seq(*steps: StepFn) -> Tuple[Phase, ...]:
    return tuple(Sequential(step) for step in steps)


SHARED_SETUP: Tuple[Phase, ...] = (
    Sequential(setup.fund_wallets),
    Sequential(setup.issuer_setup),
    Parallel(_seq(setup.lender_trustline, setup.broker_trustline, setup.borrower_trustline)),
    Parallel(
        (
            Fallback(
                setup.batch_issuer_payments,
                (setup.issuer_sends_usd_lender, setup.issuer_sends_usd_broker),
            ),
            Sequential(setup.create_vault),
        )
    ),
    Parallel(_seq(setup.create_loan_broker, setup.lender_deposits)),
    Sequential(setup.broker_cover_deposit),
)


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    description: str
    tail: Tuple[Phase, ...]

    @property
    def phases(self) -> Tuple[Phase, ...]:
        return SHARED_SETUP + self.tail

    @property
    def total_steps(self) -> int:
        return sum(count_steps(phase) for phase in self.phases)


SCENARIOS: Dict[str, Scenario] = {
    scenario.id: scenario
    for scenario in (
        Scenario(
            "loan-creation",
            "Loan Creation",
            "Create a co-signed loan against the vault and verify the ledger state",
            _seq(loans.loan_set_countersign, verify.verify_states),
        ),
        Scenario(
            "loan-payment",
            "Loan Payment",
            "Create a loan, make one scheduled payment and verify",
            _seq(loans.loan_set_countersign, loans.loan_pay, verify.verify_states),
        ),
        Scenario(
            "loan-default",
            "Loan Default",
            "Create a loan, have the broker default it, delete it and verify",
            _seq(
                loans.loan_set_countersign,
                loans.loan_manage_default,
                loans.loan_delete,
                verify.verify_states,
            ),
        ),
        Scenario(
            "early-repayment",
            "Early Repayment",
            "Create a loan, top up the borrower, repay it in full early and delete it",
            _seq(
                loans.loan_set_countersign,
                loans.fund_borrower_for_repayment,
                loans.loan_pay_early,
                loans.loan_delete,
                verify.verify_states,
            ),
        ),
        Scenario(
            "full-lifecycle",
            "Full Lifecycle",
            "Create, pay, default and delete a loan, then unwind the broker and the vault",
            _seq(
                loans.loan_set_countersign,
                loans.loan_pay,
                loans.loan_manage_default,
                loans.loan_delete,
                teardown.broker_cover_withdraw,
                teardown.loan_broker_delete,
                teardown.vault_withdraw,
                teardown.vault_delete,
            ),
        ),
        Scenario(
            "signerlist-loan",
            "SignerList Multi-Sig Loan",
            "Delegate broker signing to the lender and issue the loan with "
            "multi-sig plus counterparty signature",
            _seq(loans.signer_list_set, loans.loan_set_multisig, verify.verify_states),
        ),
    )
}


def get_scenario(scenario_id: str) -> Scenario:
    try:
        return SCENARIOS[scenario_id]
    except KeyError:
        known = ", ".join(SCENARIOS)
        raise ValueError(f"Unknown scenario '{scenario_id}'. Known scenarios: {known}") from None
