"""Operation states and the per-write transaction record."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from stakeflow.data.contracts import NetworkConfig
from stakeflow.errors import StakingError


class OperationState(str, Enum):
    INPUT = "Input"
    APPROVING = "Approving"
    AWAITING_APPROVAL_CONFIRMATION = "AwaitingApprovalConfirmation"
    READY_TO_SUBMIT = "ReadyToSubmit"
    SUBMITTING = "Submitting"
    AWAITING_CONFIRMATION = "AwaitingConfirmation"
    SUCCESS = "Success"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.SUCCESS, OperationState.FAILED)

    @property
    def is_in_flight(self) -> bool:
        """A write has been issued and its outcome is not yet known."""
        return self in _IN_FLIGHT


_IN_FLIGHT = frozenset({
    OperationState.APPROVING,
    OperationState.AWAITING_APPROVAL_CONFIRMATION,
    OperationState.SUBMITTING,
    OperationState.AWAITING_CONFIRMATION,
})


class OperationKind(str, Enum):
    APPROVE = "approve"
    STAKE = "stake"
    UNSTAKE = "unstake"
    EMERGENCY_UNSTAKE = "emergencyUnstake"
    CLAIM = "claim"


@dataclass
class TransactionRecord:
    """One write issued by an orchestrator.

    ``handle`` is set once the write is broadcast and cleared again if the
    write fails; a failure keeps the handle (when there was one) on
    ``error.handle`` so the user can still look it up.
    """

    kind: OperationKind
    related_pool_id: int
    state: OperationState = OperationState.INPUT
    amount: int | None = None
    handle: str | None = None
    block_number: int | None = None
    error: StakingError | None = None
    history: list[OperationState] = field(default_factory=list)

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    @property
    def succeeded(self) -> bool:
        return self.state is OperationState.SUCCESS

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error

    def explorer_url(self, network: NetworkConfig) -> str | None:
        handle = self.handle or (self.error.handle if self.error is not None else None)
        if not handle or not network.block_explorer:
            return None
        return network.tx_url(handle)
