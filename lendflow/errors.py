"""Exception hierarchy for lendflow runs."""

from __future__ import annotations

from typing import Optional


class LendflowError(Exception):
    """Base class for all lendflow errors."""


class ProvisioningError(LendflowError):
    """The faucet could not provide a funded identity."""


class LedgerQueryError(LendflowError):
    """A ledger request returned an error response."""

    def __init__(self, command: str, error: str) -> None:
        super().__init__(f"{command} failed: {error}")
        self.command = command
        self.error = error


class AuthorizationError(LendflowError):
    """A co-signature or multi-signature could not be composed."""


class SessionStateError(LendflowError):
    """A flow session invariant was violated."""


class StepFailed(LendflowError):
    """A step did not reach a successful terminal state."""

    def __init__(
        self, step_id: str, message: str, result_code: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.step_id = step_id
        self.result_code = result_code
