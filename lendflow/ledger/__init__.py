"""Ledger collaborators: client contract, xrpl-py client and signing."""

from __future__ import annotations

from typing import Optional

from ..config import LendflowConfig, load_config
from .base import FundedWallet, LedgerClient, SignedTransaction, SubmissionResult
from .signing import TransactionSigner, XRPLSigner, transaction_id


def get_ledger(config: Optional[LendflowConfig] = None) -> LedgerClient:
    """Factory for the network ledger client."""
    from .xrpl_client import XRPLClient

    config = config or load_config()
    return XRPLClient(config.network)


__all__ = [
    "FundedWallet",
    "LedgerClient",
    "SignedTransaction",
    "SubmissionResult",
    "TransactionSigner",
    "XRPLSigner",
    "get_ledger",
    "transaction_id",
]
