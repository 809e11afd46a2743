from __future__ import annotations

import os
from decimal import Decimal
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEVNET_FAUCET_URL, DEVNET_URL


class NetworkConfig(BaseModel):
    """Ledger endpoint and faucet settings."""

    url: str = DEVNET_URL
    faucet_url: str = DEVNET_FAUCET_URL
    faucet_usage_context: Optional[str] = "lendflow"


class AssetConfig(BaseModel):
    """Issued currency and the fixed amounts moved by the setup phases."""

    currency: str = "USD"
    trust_limit: Decimal = Decimal("100000")
    lender_issuance: Decimal = Decimal("10000")
    broker_issuance: Decimal = Decimal("1000")
    vault_maximum: Decimal = Decimal("100000")
    vault_label: str = "USD Lending Vault"
    pool_deposit: Decimal = Decimal("5000")
    cover_deposit: Decimal = Decimal("500")
    borrower_top_up: Decimal = Decimal("500")


class LoanTerms(BaseModel):
    """Terms of the loan issued by every scenario."""

    principal: Decimal = Decimal("1000")
    interest_rate: int = 500
    payment_interval: int = 3600
    payment_total: int = 12
    scheduled_payment: Decimal = Decimal("100")
    early_repayment_factor: Decimal = Decimal("1.1")
    early_repayment_fallback: Decimal = Decimal("1100")


class TransportConfig(BaseModel):
    """Progress event transport settings."""

    backend: Literal["inmemory", "stream"] = "inmemory"
    redact_seeds: bool = False


class LendflowConfig(BaseModel):
    """Top-level configuration model."""

    network: NetworkConfig = Field(default_factory=NetworkConfig)
    assets: AssetConfig = Field(default_factory=AssetConfig)
    loan: LoanTerms = Field(default_factory=LoanTerms)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    default_scenario: str = "loan-creation"


def load_config(path: Optional[str] = None) -> LendflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to LENDFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("LENDFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = LendflowConfig(**data)
    else:
        config = LendflowConfig()

    env_network = os.getenv("LENDFLOW_NETWORK")
    if env_network:
        config.network.url = env_network
    env_faucet = os.getenv("LENDFLOW_FAUCET_URL")
    if env_faucet:
        config.network.faucet_url = env_faucet
    return config
