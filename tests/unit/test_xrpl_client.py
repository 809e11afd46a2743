"""XRPLClient behaviour against a scripted xrpl-py connection."""

import httpx
import pytest
from xrpl.asyncio.transaction import reliable_submission
from xrpl.asyncio.wallet import XRPLFaucetException
from xrpl.models.response import Response, ResponseStatus
from xrpl.wallet import Wallet

from lendflow.config import NetworkConfig
from lendflow.constants import EXPIRED_RESULT, TF_ALL_OR_NOTHING, TF_INNER_BATCH_TXN
from lendflow.errors import LedgerQueryError, ProvisioningError
from lendflow.ledger import XRPLSigner
from lendflow.ledger import xrpl_client
from lendflow.ledger.xrpl_client import XRPLClient, failure_result_code

ACCOUNT = Wallet.create()
OTHER = Wallet.create()

DEFAULT_ANSWERS = {
    "server_info": {"info": {"network_id": 2, "build_version": "2.5.0"}},
    "account_info": {"account_data": {"Sequence": 7, "Balance": "100000000"}},
    "fee": {"drops": {"open_ledger_fee": "10", "base_fee": "10", "minimum_fee": "10"}},
    "ledger": {"ledger_index": 50},
    "server_state": {"state": {"validated_ledger": {"reserve_inc": 200000}}},
}


class ScriptedConnection:
    """Stands in for the websocket client; answers requests per method."""

    def __init__(self, **answers):
        self.network_id = None
        self.build_version = None
        self.answers = {**DEFAULT_ANSWERS, **answers}
        self.calls = []

    async def _request_impl(self, request, *, timeout=None):
        method = request.method.value
        self.calls.append(method)
        answer = self.answers[method]
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        status = ResponseStatus.ERROR if "error" in answer else ResponseStatus.SUCCESS
        return Response(status=status, result=answer)

    request = _request_impl

    def is_open(self):
        return True


@pytest.fixture
def connect(monkeypatch):
    monkeypatch.setattr(reliable_submission, "_LEDGER_CLOSE_TIME", 0)

    def build(**answers):
        client = XRPLClient(NetworkConfig())
        client._client = ScriptedConnection(**answers)
        return client

    return build


def _payment_blob():
    tx = {
        "TransactionType": "Payment",
        "Account": ACCOUNT.address,
        "Destination": OTHER.address,
        "Amount": "1000000",
        "Fee": "10",
        "Sequence": 7,
        "Flags": 0,
        "LastLedgerSequence": 60,
    }
    return XRPLSigner().sign(ACCOUNT, tx)


@pytest.mark.asyncio
async def test_autofill_sets_sequence_fee_and_horizon(connect):
    client = connect()

    tx = await client.autofill({"TransactionType": "AccountSet", "Account": ACCOUNT.address})

    assert tx["Sequence"] == 7
    assert tx["Fee"] == "10"
    assert tx["LastLedgerSequence"] == 70


@pytest.mark.asyncio
async def test_autofill_vault_create_pays_owner_reserve(connect):
    client = connect()

    tx = await client.autofill(
        {
            "TransactionType": "VaultCreate",
            "Account": ACCOUNT.address,
            "Asset": {"currency": "USD", "issuer": OTHER.address},
        }
    )

    assert tx["Fee"] == "200000"
    assert "server_state" in client.client.calls


@pytest.mark.asyncio
async def test_autofill_loan_set_adds_counterparty_signature_cost(connect):
    client = connect()

    tx = await client.autofill(
        {
            "TransactionType": "LoanSet",
            "Account": ACCOUNT.address,
            "LoanBrokerID": "AB" * 32,
            "PrincipalRequested": "1000",
            "Counterparty": OTHER.address,
        }
    )

    assert tx["Fee"] == "20"


@pytest.mark.asyncio
async def test_autofill_loan_set_scales_with_counterparty_signer_list(connect):
    entries = [{"SignerEntry": {"Account": OTHER.address, "SignerWeight": 1}}] * 3
    client = connect(
        account_info={
            "account_data": {"Sequence": 7, "Balance": "100000000"},
            "signer_lists": [{"SignerEntries": entries}],
        }
    )

    tx = await client.autofill(
        {
            "TransactionType": "LoanSet",
            "Account": ACCOUNT.address,
            "LoanBrokerID": "AB" * 32,
            "PrincipalRequested": "1000",
            "Counterparty": OTHER.address,
        }
    )

    assert tx["Fee"] == "40"


@pytest.mark.asyncio
async def test_autofill_batch_fee_and_inner_sequences(connect):
    client = connect()
    inner = [
        {
            "RawTransaction": {
                "TransactionType": "Payment",
                "Account": ACCOUNT.address,
                "Destination": OTHER.address,
                "Amount": "1000",
                "Fee": "0",
                "SigningPubKey": "",
                "Flags": TF_INNER_BATCH_TXN,
            }
        }
        for _ in range(2)
    ]

    tx = await client.autofill(
        {
            "TransactionType": "Batch",
            "Account": ACCOUNT.address,
            "Flags": TF_ALL_OR_NOTHING,
            "RawTransactions": inner,
        }
    )

    assert tx["Fee"] == "40"
    assert [w["RawTransaction"]["Sequence"] for w in tx["RawTransactions"]] == [8, 9]
    assert "Sequence" not in inner[0]["RawTransaction"]


@pytest.mark.asyncio
async def test_autofill_request_failure_is_ledger_query_error(connect):
    client = connect(fee={"error": "noNetwork"})

    with pytest.raises(LedgerQueryError) as exc:
        await client.autofill({"TransactionType": "AccountSet", "Account": ACCOUNT.address})

    assert exc.value.error == "noNetwork"


@pytest.mark.asyncio
async def test_submit_and_wait_polls_until_validated(connect):
    signed = _payment_blob()
    client = connect(
        submit={"engine_result": "terQUEUED"},
        tx=[
            {"error": "txnNotFound"},
            {
                "validated": True,
                "hash": signed.hash,
                "meta": {"TransactionResult": "tesSUCCESS", "AffectedNodes": []},
            },
        ],
    )

    result = await client.submit_and_wait(signed)

    assert result.succeeded
    assert result.validated
    assert result.hash == signed.hash
    assert client.client.calls.count("tx") == 2


@pytest.mark.asyncio
async def test_submit_and_wait_reports_validated_failure_code(connect):
    client = connect(
        submit={"engine_result": "tesSUCCESS"},
        tx={"validated": True, "meta": {"TransactionResult": "tecNO_PERMISSION"}},
    )

    result = await client.submit_and_wait(_payment_blob())

    assert result.result_code == "tecNO_PERMISSION"
    assert result.validated
    assert not result.succeeded


@pytest.mark.asyncio
async def test_submit_and_wait_returns_malformed_codes_immediately(connect):
    client = connect(
        submit={"engine_result": "temDISABLED", "engine_result_message": "disabled"}
    )

    result = await client.submit_and_wait(_payment_blob())

    assert result.result_code == "temDISABLED"
    assert not result.validated
    assert client.client.calls == ["submit"]


@pytest.mark.asyncio
async def test_submit_and_wait_expires_past_last_ledger(connect):
    client = connect(
        submit={"engine_result": "tesSUCCESS"},
        ledger={"ledger_index": 61},
    )

    result = await client.submit_and_wait(_payment_blob())

    assert result.result_code == EXPIRED_RESULT
    assert not result.validated


@pytest.mark.asyncio
async def test_submit_and_wait_rpc_error_is_ledger_query_error(connect):
    client = connect(
        submit={"engine_result": "tesSUCCESS"},
        tx={"error": "noNetwork"},
    )

    with pytest.raises(LedgerQueryError) as exc:
        await client.submit_and_wait(_payment_blob())

    assert exc.value.command == "submit"
    assert exc.value.error == "noNetwork"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Transaction failed: tecNO_ENTRY", "tecNO_ENTRY"),
        ("temBAD_FEE: invalid fee", "temBAD_FEE"),
        (
            "The latest validated ledger sequence 61 is greater than LastLedgerSequence"
            " 60 in the transaction. Prelim result: terQUEUED",
            EXPIRED_RESULT,
        ),
        (
            "The latest validated ledger sequence 61 is greater than LastLedgerSequence"
            " 60 in the transaction. Prelim result: tefPAST_SEQ",
            "tefPAST_SEQ",
        ),
        ("something else", "unknown"),
    ],
)
def test_failure_result_code(message, expected):
    assert failure_result_code(message) == expected


@pytest.mark.asyncio
async def test_fund_wallet_reads_balance_after_faucet(connect, monkeypatch):
    client = connect()
    seen = {}

    async def faucet(conn, faucet_host=None, usage_context=None):
        seen.update(host=faucet_host, context=usage_context)
        return ACCOUNT

    monkeypatch.setattr(xrpl_client, "generate_faucet_wallet", faucet)

    funded = await client.fund_wallet()

    assert funded.address == ACCOUNT.address
    assert funded.balance == 100
    assert seen == {"host": client.network.faucet_url, "context": "lendflow"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        XRPLFaucetException("Unable to fund address with faucet after waiting 40 seconds"),
        httpx.HTTPStatusError(
            "503",
            request=httpx.Request("POST", "https://faucet.example/accounts"),
            response=httpx.Response(503),
        ),
    ],
)
async def test_fund_wallet_failure_is_provisioning_error(connect, monkeypatch, error):
    client = connect()

    async def faucet(*args, **kwargs):
        raise error

    monkeypatch.setattr(xrpl_client, "generate_faucet_wallet", faucet)

    with pytest.raises(ProvisioningError, match="Faucet funding"):
        await client.fund_wallet()
