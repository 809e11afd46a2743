"""Ledger constants shared across lendflow."""

DEVNET_URL = "wss://s.devnet.rippletest.net:51233"
DEVNET_FAUCET_URL = "https://faucet.devnet.rippletest.net"

SUCCESS_CODE = "tesSUCCESS"
UNKNOWN_RESULT = "unknown"
EXPIRED_RESULT = "tefMAX_LEDGER"

REPORT_RULE = "=" * 70

# AccountSet
ASF_DEFAULT_RIPPLE = 8

# Batch (XLS-56)
TF_ALL_OR_NOTHING = 0x00010000
TF_INNER_BATCH_TXN = 0x40000000

# LoanManage (XLS-66)
TF_LOAN_DEFAULT = 1

# Created ledger entry types
VAULT_ENTRY = "Vault"
LOAN_BROKER_ENTRY = "LoanBroker"
LOAN_ENTRY = "Loan"

STARTING_BALANCE_DISPLAY = "100 XRP"
NOT_AVAILABLE = "N/A"
NOT_FOUND = "Deleted or not found"
