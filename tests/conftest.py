import pytest

from lendflow.config import LendflowConfig
from lendflow.transports import InMemoryTransport

from .fixtures.fake_ledger import FakeLedger, FakeSigner


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for name in ("LENDFLOW_CONFIG", "LENDFLOW_NETWORK", "LENDFLOW_FAUCET_URL", "LENDFLOW_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config() -> LendflowConfig:
    return LendflowConfig()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()
