"""Ledger client contract used by every step."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from xrpl.wallet import Wallet

from ..constants import SUCCESS_CODE


@dataclass(frozen=True)
class FundedWallet:
    """Identity returned by the faucet."""

    wallet: Wallet
    balance: Decimal

    @property
    def address(self) -> str:
        return self.wallet.address

    @property
    def seed(self) -> str:
        return self.wallet.seed


@dataclass(frozen=True)
class SignedTransaction:
    """Transaction JSON together with its encoded blob and id."""

    tx_json: Dict[str, Any]
    blob: str
    hash: str

    @property
    def transaction_type(self) -> str:
        return self.tx_json.get("TransactionType", "")


@dataclass
class SubmissionResult:
    """Final outcome of a submitted transaction."""

    hash: str
    result_code: str
    validated: bool
    meta: Dict[str, Any] = field(default_factory=dict)
    tx_json: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result_code == SUCCESS_CODE

    @property
    def affected_nodes(self) -> List[Dict[str, Any]]:
        return list(self.meta.get("AffectedNodes") or [])

    def created_object_id(self, entry_type: str) -> Optional[str]:
        """Index of the first created node of ``entry_type``.

        A transaction that creates several entries of the same type yields
        only the first one in metadata order.
        """
        for node in self.affected_nodes:
            created = node.get("CreatedNode")
            if created and created.get("LedgerEntryType") == entry_type:
                return created.get("LedgerIndex")
        return None


class LedgerClient(Protocol):
    """Protocol for the external ledger collaborator."""

    async def connect(self) -> None:
        """Open the shared connection."""

    async def disconnect(self) -> None:
        """Close the shared connection."""

    async def fund_wallet(self) -> FundedWallet:
        """Create and fund a fresh identity through the faucet."""

    async def autofill(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        """Return ``tx`` with Sequence, Fee and LastLedgerSequence filled in."""

    async def submit_and_wait(self, signed: SignedTransaction) -> SubmissionResult:
        """Submit ``signed`` and block until a final outcome is known."""

    async def ledger_entry(self, object_id: str) -> Dict[str, Any]:
        """Return the validated ledger object stored under ``object_id``."""

    async def account_info(self, address: str) -> Dict[str, Any]:
        """Return the validated account root of ``address``."""

    async def account_lines(self, address: str) -> List[Dict[str, Any]]:
        """Return the trust lines held by ``address``."""
