"""Co-signature composition tests."""

import pytest
from xrpl.wallet import Wallet

from lendflow.auth import CounterpartyAuthorization, DelegatedMultiSigAuthorization
from lendflow.contracts import PartyRole
from lendflow.errors import AuthorizationError
from lendflow.report import Report

from ..fixtures.fake_ledger import FakeSigner


@pytest.fixture
def wallets():
    return {role: Wallet.create() for role in PartyRole}


def _loan_set(wallets, **extra):
    tx = {
        "TransactionType": "LoanSet",
        "Account": wallets[PartyRole.BROKER].address,
        "Counterparty": wallets[PartyRole.BORROWER].address,
        "LoanBrokerID": "AB" * 32,
        "PrincipalRequested": "1000",
        "Fee": "12",
        "Sequence": 7,
    }
    tx.update(extra)
    return tx


def test_counterparty_signature_over_signed_payload(wallets):
    strategy = CounterpartyAuthorization(PartyRole.BROKER, PartyRole.BORROWER)
    report = Report()

    signed = strategy.compose(FakeSigner(), wallets, _loan_set(wallets), report)

    broker = wallets[PartyRole.BROKER]
    borrower = wallets[PartyRole.BORROWER]
    assert signed.tx_json["TxnSignature"] == f"sig:{broker.address}"
    assert signed.tx_json["SigningPubKey"] == broker.public_key
    assert signed.tx_json["CounterpartySignature"] == {
        "SigningPubKey": borrower.public_key,
        "TxnSignature": f"csig:{borrower.address}",
    }
    assert any("CounterpartySignature added by Borrower" in line for line in report.lines)


def test_cosign_is_idempotent(wallets):
    strategy = CounterpartyAuthorization(PartyRole.BROKER, PartyRole.BORROWER)
    signer = FakeSigner()
    signed = strategy.compose(signer, wallets, _loan_set(wallets), Report())

    again = strategy.cosign(signer, wallets, signed, Report())

    assert again is signed
    assert again.hash == signed.hash


def test_counterparty_must_differ_from_account(wallets):
    wallets[PartyRole.BORROWER] = wallets[PartyRole.BROKER]
    strategy = CounterpartyAuthorization(PartyRole.BROKER, PartyRole.BORROWER)

    with pytest.raises(AuthorizationError):
        strategy.compose(FakeSigner(), wallets, _loan_set(wallets), Report())


def test_delegate_must_differ_from_account(wallets):
    wallets[PartyRole.LENDER] = wallets[PartyRole.BROKER]
    strategy = DelegatedMultiSigAuthorization(
        PartyRole.BROKER, PartyRole.BORROWER, delegates=[PartyRole.LENDER]
    )
    prepared = strategy.adjust(strategy.prepare(_loan_set(wallets)))

    with pytest.raises(AuthorizationError):
        strategy.compose(FakeSigner(), wallets, prepared, Report())


def test_delegated_multisig_layers_countersignature(wallets):
    strategy = DelegatedMultiSigAuthorization(
        PartyRole.BROKER, PartyRole.BORROWER, delegates=[PartyRole.LENDER]
    )
    prepared = strategy.adjust(strategy.prepare(_loan_set(wallets)))

    assert prepared["SigningPubKey"] == ""
    assert prepared["Fee"] == "24"

    signed = strategy.compose(FakeSigner(), wallets, prepared, Report())

    lender = wallets[PartyRole.LENDER].address
    borrower = wallets[PartyRole.BORROWER].address
    assert "TxnSignature" not in signed.tx_json
    assert [s["Signer"]["Account"] for s in signed.tx_json["Signers"]] == [lender]
    assert signed.tx_json["CounterpartySignature"]["TxnSignature"] == f"csig:{borrower}"


def test_fee_scales_with_signer_count(wallets):
    strategy = DelegatedMultiSigAuthorization(
        PartyRole.BROKER,
        PartyRole.BORROWER,
        delegates=[PartyRole.LENDER, PartyRole.ISSUER],
    )
    prepared = strategy.adjust(strategy.prepare(_loan_set(wallets, Fee="10")))
    assert prepared["Fee"] == "30"

    signed = strategy.compose(FakeSigner(), wallets, prepared, Report())
    accounts = [s["Signer"]["Account"] for s in signed.tx_json["Signers"]]
    assert accounts == sorted(accounts)
    assert len(accounts) == 2


def test_signer_entries_list_delegates(wallets):
    strategy = DelegatedMultiSigAuthorization(
        PartyRole.BROKER, PartyRole.BORROWER, delegates=[PartyRole.LENDER]
    )
    assert strategy.signer_entries(wallets) == [
        {"SignerEntry": {"Account": wallets[PartyRole.LENDER].address, "SignerWeight": 1}}
    ]


def test_delegates_are_required():
    with pytest.raises(AuthorizationError):
        DelegatedMultiSigAuthorization(PartyRole.BROKER, PartyRole.BORROWER, delegates=[])


def test_signer_errors_become_authorization_errors(wallets):
    class BrokenSigner(FakeSigner):
        def counterparty_sign(self, wallet, signed):
            raise ValueError("codec rejected CounterpartySignature")

    strategy = CounterpartyAuthorization(PartyRole.BROKER, PartyRole.BORROWER)
    with pytest.raises(AuthorizationError, match="codec rejected"):
        strategy.compose(BrokenSigner(), wallets, _loan_set(wallets), Report())
