"""Ledger client over xrpl-py's websocket client and transaction helpers."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from xrpl.asyncio.account import get_balance
from xrpl.asyncio.clients import AsyncWebsocketClient, XRPLRequestFailureException
from xrpl.asyncio.transaction import (
    XRPLReliableSubmissionException,
    autofill as autofill_transaction,
    submit_and_wait as submit_transaction_and_wait,
)
from xrpl.asyncio.wallet import generate_faucet_wallet
from xrpl.constants import XRPLException
from xrpl.models.requests import AccountInfo, AccountLines, LedgerEntry, Request
from xrpl.models.transactions import Transaction
from xrpl.utils import drops_to_xrp

from ..config import NetworkConfig
from ..constants import EXPIRED_RESULT, UNKNOWN_RESULT
from ..errors import LedgerQueryError, ProvisioningError
from .base import FundedWallet, SignedTransaction, SubmissionResult

logger = logging.getLogger(__name__)

RESULT_CODE = re.compile(r"\b(te[cfmlr][A-Z_]+|tes[A-Z_]+)\b")


def failure_result_code(message: str) -> str:
    """Result code named by an xrpl-py reliable submission failure.

    Expired transactions report their preliminary code when that code was
    already a rejection, ``tefMAX_LEDGER`` otherwise.
    """
    if "LastLedgerSequence" in message:
        _, _, prelim = message.rpartition("Prelim result:")
        prelim = prelim.strip()
        if prelim and not prelim.startswith(("tes", "ter")):
            return prelim
        return EXPIRED_RESULT
    match = RESULT_CODE.search(message)
    return match.group(1) if match else UNKNOWN_RESULT


class XRPLClient:
    """Shared connection used by all steps of a run."""

    def __init__(self, network: NetworkConfig) -> None:
        self.network = network
        self._client: Optional[AsyncWebsocketClient] = None

    @property
    def client(self) -> AsyncWebsocketClient:
        if self._client is None:
            raise RuntimeError("XRPLClient is not connected")
        return self._client

    async def connect(self) -> None:
        self._client = AsyncWebsocketClient(self.network.url)
        await self._client.open()
        logger.info(f"Connected to {self.network.url}")

    async def disconnect(self) -> None:
        if self._client is not None and self._client.is_open():
            await self._client.close()
        self._client = None

    async def request(self, req: Request) -> Dict[str, Any]:
        response = await self.client.request(req)
        if not response.is_successful():
            error = response.result.get("error_message") or response.result.get(
                "error", "unknown error"
            )
            raise LedgerQueryError(req.method.value, str(error))
        return response.result

    # ------------------------------------------------------------------
    async def fund_wallet(self) -> FundedWallet:
        faucet = self.network.faucet_url
        try:
            wallet = await generate_faucet_wallet(
                self.client,
                faucet_host=faucet,
                usage_context=self.network.faucet_usage_context,
            )
            drops = await get_balance(wallet.address, self.client)
        except (XRPLException, httpx.HTTPError) as e:
            raise ProvisioningError(f"Faucet funding via {faucet} failed: {e}") from e

        balance = drops_to_xrp(str(drops))
        logger.info(f"Funded {wallet.address} with {balance} XRP")
        return FundedWallet(wallet=wallet, balance=balance)

    # ------------------------------------------------------------------
    async def autofill(self, tx: Dict[str, Any]) -> Dict[str, Any]:
        try:
            filled = await autofill_transaction(Transaction.from_xrpl(tx), self.client)
        except XRPLRequestFailureException as e:
            raise LedgerQueryError("autofill", str(e.error)) from e
        return filled.to_xrpl()

    async def submit_and_wait(self, signed: SignedTransaction) -> SubmissionResult:
        try:
            response = await submit_transaction_and_wait(
                signed.blob, self.client, autofill=False, check_fee=False
            )
        except XRPLReliableSubmissionException as e:
            code = failure_result_code(str(e))
            logger.debug(f"{signed.transaction_type} {signed.hash} -> {code}")
            return SubmissionResult(
                hash=signed.hash,
                result_code=code,
                validated=code.startswith("tec"),
                tx_json=signed.tx_json,
            )
        except XRPLRequestFailureException as e:
            raise LedgerQueryError("submit", str(e.error)) from e

        result = response.result
        meta = result.get("meta") or {}
        return SubmissionResult(
            hash=result.get("hash", signed.hash),
            result_code=meta.get("TransactionResult", UNKNOWN_RESULT),
            validated=bool(result.get("validated")),
            meta=meta,
            tx_json=signed.tx_json,
        )

    # ------------------------------------------------------------------
    async def ledger_entry(self, object_id: str) -> Dict[str, Any]:
        result = await self.request(LedgerEntry(index=object_id, ledger_index="validated"))
        return result.get("node") or result

    async def account_info(self, address: str) -> Dict[str, Any]:
        result = await self.request(AccountInfo(account=address, ledger_index="validated"))
        return result["account_data"]

    async def account_lines(self, address: str) -> List[Dict[str, Any]]:
        result = await self.request(AccountLines(account=address, ledger_index="validated"))
        return list(result.get("lines", []))
