"""Transaction signing over JSON payloads.

Signing, multi-sign assembly and counterparty signatures all go through
xrpl-py's transaction helpers. Steps keep working with plain XRPL JSON; this
module converts to and from the xrpl-py models at the edges.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, Protocol

from xrpl.core.binarycodec import decode, encode
from xrpl.models.transactions import Transaction
from xrpl.transaction import (
    compute_signature,
    multisign,
    sign as sign_transaction,
    sign_loan_set_by_counterparty,
)
from xrpl.wallet import Wallet

from .base import SignedTransaction

logger = logging.getLogger(__name__)


def transaction_id(blob: str) -> str:
    """Hash of a signed transaction blob as reported by the network."""
    return Transaction.from_blob(blob).get_hash()


def _signed(model: Transaction) -> SignedTransaction:
    tx_json = model.to_xrpl()
    return SignedTransaction(tx_json=tx_json, blob=encode(tx_json), hash=model.get_hash())


class TransactionSigner(Protocol):
    """Signing operations the steps rely on."""

    def sign(self, wallet: Wallet, tx: Dict[str, Any]) -> SignedTransaction:
        """Single-sign ``tx`` as its own Account."""

    def multisign_signature(
        self, wallet: Wallet, tx: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Return a ``Signer`` entry produced by ``wallet`` for ``tx``."""

    def assemble_multisig(
        self, tx: Dict[str, Any], signers: Iterable[Dict[str, Any]]
    ) -> SignedTransaction:
        """Embed ``signers`` into ``tx`` as its ``Signers`` array."""

    def counterparty_sign(
        self, wallet: Wallet, signed: SignedTransaction
    ) -> SignedTransaction:
        """Add a ``CounterpartySignature`` by ``wallet`` over ``signed``."""

    def decode(self, blob: str) -> Dict[str, Any]:
        """Decode a blob back into transaction JSON."""


class XRPLSigner:
    """Default signer backed by xrpl-py."""

    def sign(self, wallet: Wallet, tx: Dict[str, Any]) -> SignedTransaction:
        return _signed(sign_transaction(Transaction.from_xrpl(tx), wallet))

    def multisign_signature(
        self, wallet: Wallet, tx: Dict[str, Any]
    ) -> Dict[str, Any]:
        if tx.get("SigningPubKey"):
            raise ValueError("Multi-signed transactions need an empty SigningPubKey")
        partial = sign_transaction(Transaction.from_xrpl(tx), wallet, multisign=True)
        return partial.to_xrpl()["Signers"][0]

    def assemble_multisig(
        self, tx: Dict[str, Any], signers: Iterable[Dict[str, Any]]
    ) -> SignedTransaction:
        partials = [Transaction.from_xrpl({**tx, "Signers": [entry]}) for entry in signers]
        return _signed(multisign(Transaction.from_xrpl(tx), partials))

    def counterparty_sign(
        self, wallet: Wallet, signed: SignedTransaction
    ) -> SignedTransaction:
        if "CounterpartySignature" in signed.tx_json:
            logger.info(
                f"Transaction {signed.hash} already carries a CounterpartySignature"
            )
            return signed
        if signed.tx_json.get("TxnSignature"):
            result = sign_loan_set_by_counterparty(wallet, signed.blob)
            return SignedTransaction(
                tx_json=result.tx.to_xrpl(), blob=result.tx_blob, hash=result.hash
            )

        # multi-signed by the account: sign the same counterparty payload directly
        tx = copy.deepcopy(signed.tx_json)
        tx["CounterpartySignature"] = {
            "SigningPubKey": wallet.public_key,
            "TxnSignature": compute_signature(tx, wallet.private_key),
        }
        return _signed(Transaction.from_xrpl(tx))

    def decode(self, blob: str) -> Dict[str, Any]:
        return decode(blob)
