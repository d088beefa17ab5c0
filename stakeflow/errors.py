"""Error taxonomy for ledger reads and staking writes.

Every error carries a ``kind`` (stable identifier shown to the user) and
the underlying diagnostic message, verbatim, when one is available.
"""

from __future__ import annotations


class StakingError(Exception):
    """Base class for all staking client errors."""

    kind = "StakingError"

    def __init__(self, message: str = "", *, handle: str | None = None) -> None:
        self.message = message
        self.handle = handle
        super().__init__(message)

    def __str__(self) -> str:
        if self.message:
            return f"{self.kind}: {self.message}"
        return self.kind


# --- Pre-write guards --------------------------------------------------------


class WalletNotConnected(StakingError):
    kind = "WalletNotConnected"


class WrongNetwork(StakingError):
    kind = "WrongNetwork"


class BelowMinimumStake(StakingError):
    kind = "BelowMinimumStake"


class OperationInProgress(StakingError):
    """A write is already in flight on this orchestrator."""

    kind = "OperationInProgress"


# --- Write path (terminal, never retried) ------------------------------------


class WriteRejected(StakingError):
    """Raised by a gateway when the signer or node refuses a write."""

    kind = "WriteRejected"


class ApprovalRejected(StakingError):
    kind = "ApprovalRejected"


class ApprovalReverted(StakingError):
    kind = "ApprovalReverted"


class SubmissionRejected(StakingError):
    kind = "SubmissionRejected"


class SubmissionReverted(StakingError):
    kind = "SubmissionReverted"


class ConfirmationTimeout(StakingError):
    """No terminal receipt within the timeout; the broadcast may still land."""

    kind = "ConfirmationTimeout"


# --- Read path (transient, retried by the registry) --------------------------


class ReadFailure(StakingError):
    kind = "ReadFailure"


class StaleSnapshot(ReadFailure):
    """Read succeeded but predates a confirmed write it should reflect."""

    kind = "StaleSnapshot"
