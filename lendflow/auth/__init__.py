"""Multi-party authorization of ledger transactions."""

from .cosign import (
    AuthorizationStrategy,
    CounterpartyAuthorization,
    DelegatedMultiSigAuthorization,
)

__all__ = [
    "AuthorizationStrategy",
    "CounterpartyAuthorization",
    "DelegatedMultiSigAuthorization",
]
