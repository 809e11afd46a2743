"""Authorization strategies for transactions that need more than one party."""

from __future__ import annotations

import abc
import copy
import logging
from typing import Any, Dict, List, Mapping, Sequence

from xrpl.wallet import Wallet

from ..contracts import ROLE_LABELS, PartyRole
from ..errors import AuthorizationError
from ..ledger import SignedTransaction, TransactionSigner
from ..report import Report

logger = logging.getLogger(__name__)


class AuthorizationStrategy(metaclass=abc.ABCMeta):
    """How the Account and the Counterparty of a transaction authorize it."""

    method: str = ""

    def __init__(self, account: PartyRole, counterparty: PartyRole) -> None:
        self.account = account
        self.counterparty = counterparty

    def prepare(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        """Adjust the unsigned transaction before autofill."""
        return tx

    def adjust(self, prepared: Dict[str, Any]) -> Dict[str, Any]:
        """Adjust the autofilled transaction before signing."""
        return prepared

    @abc.abstractmethod
    def account_signature(
        self,
        signer: TransactionSigner,
        wallets: Mapping[PartyRole, Wallet],
        prepared: Dict[str, Any],
        report: Report,
    ) -> SignedTransaction:
        """Produce the transaction authorized for its Account."""
        raise NotImplementedError

    def details(self, wallets: Mapping[PartyRole, Wallet]) -> Dict[str, str]:
        return {}

    def _check_distinct(self, wallets: Mapping[PartyRole, Wallet], roles: Sequence[PartyRole]) -> None:
        account = wallets[self.account].address
        for role in roles:
            if wallets[role].address == account:
                raise AuthorizationError(
                    f"{ROLE_LABELS[role]} cannot authorize on behalf of its own account"
                )

    def compose(
        self,
        signer: TransactionSigner,
        wallets: Mapping[PartyRole, Wallet],
        prepared: Dict[str, Any],
        report: Report,
    ) -> SignedTransaction:
        """Authorize ``prepared`` for the Account, then add the counterparty signature."""
        self._check_distinct(wallets, [self.counterparty])
        try:
            signed = self.account_signature(signer, wallets, prepared, report)
            return self.cosign(signer, wallets, signed, report)
        except AuthorizationError:
            raise
        except Exception as e:
            raise AuthorizationError(f"{self.method} composition failed: {e}") from e

    def cosign(
        self,
        signer: TransactionSigner,
        wallets: Mapping[PartyRole, Wallet],
        signed: SignedTransaction,
        report: Report,
    ) -> SignedTransaction:
        """Layer the counterparty signature over an already-authorized payload.

        Payloads that already carry a counterparty signature come back as they
        are.
        """
        if "CounterpartySignature" in signed.tx_json:
            logger.info(f"{signed.hash} already countersigned; leaving it unchanged")
            return signed
        countersigned = signer.counterparty_sign(wallets[self.counterparty], signed)
        report.add(
            f"CounterpartySignature added by {ROLE_LABELS[self.counterparty]}",
            f"Counterparty signed TX hash: {countersigned.hash}",
            "",
        )
        return countersigned


class CounterpartyAuthorization(AuthorizationStrategy):
    """Account single-signs; the counterparty signs the signed payload."""

    method = "signLoanSetByCounterparty"

    def account_signature(self, signer, wallets, prepared, report):
        signed = signer.sign(wallets[self.account], prepared)
        report.add(f"{ROLE_LABELS[self.account]} signed TX hash: {signed.hash}", "")
        return signed

    def details(self, wallets):
        return {
            "Co-Sign Method": self.method,
            "Counterparty": wallets[self.counterparty].address,
        }


class DelegatedMultiSigAuthorization(AuthorizationStrategy):
    """Delegates from the Account's signer list multi-sign, then the counterparty co-signs."""

    method = "SignerList multi-sig + CounterpartySignature"

    def __init__(
        self,
        account: PartyRole,
        counterparty: PartyRole,
        delegates: Sequence[PartyRole],
        quorum: int = 1,
    ) -> None:
        super().__init__(account, counterparty)
        if not delegates:
            raise AuthorizationError("At least one delegate signer is required")
        self.delegates: List[PartyRole] = list(delegates)
        self.quorum = quorum

    def prepare(self, tx):
        tx = copy.deepcopy(tx)
        tx["SigningPubKey"] = ""
        return tx

    def adjust(self, prepared):
        prepared = copy.deepcopy(prepared)
        base_fee = int(prepared.get("Fee") or "12")
        prepared["Fee"] = str(base_fee * (len(self.delegates) + 1))
        return prepared

    def account_signature(self, signer, wallets, prepared, report):
        self._check_distinct(wallets, self.delegates)
        signatures = []
        for role in self.delegates:
            report.add(
                f"{ROLE_LABELS[role]} signs via multi-sig "
                f"(delegate signer for {ROLE_LABELS[self.account]})...",
                "",
            )
            signatures.append(signer.multisign_signature(wallets[role], prepared))
        assembled = signer.assemble_multisig(prepared, signatures)
        report.add(
            f"Multi-sig transaction assembled from {len(signatures)} signature(s)", ""
        )
        return assembled

    def signer_entries(self, wallets: Mapping[PartyRole, Wallet]) -> List[Dict[str, Any]]:
        return [
            {"SignerEntry": {"Account": wallets[role].address, "SignerWeight": 1}}
            for role in self.delegates
        ]

    def details(self, wallets):
        delegates = ", ".join(wallets[role].address for role in self.delegates)
        return {
            "Account Auth": f"Multi-sig ({', '.join(ROLE_LABELS[r] for r in self.delegates)} "
            f"as {ROLE_LABELS[self.account]} delegate)",
            "Counterparty Auth": f"CounterpartySignature ({ROLE_LABELS[self.counterparty]})",
            "Delegate Signer": delegates,
        }
