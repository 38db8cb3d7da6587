from __future__ import annotations

from dataclasses import dataclass, field
import logging

from submission_commit.domain.errors import DomainInvariantError
from submission_commit.domain.models import CommitState

logger = logging.getLogger("commit")

TERMINAL_STATES: frozenset[CommitState] = frozenset(
    {
        CommitState.METADATA_WRITTEN,
        CommitState.ROLLED_BACK,
        CommitState.FAILED,
    }
)

ALLOWED_TRANSITIONS: dict[CommitState, set[CommitState]] = {
    CommitState.START: {CommitState.RECORD_CREATED, CommitState.FAILED},
    CommitState.RECORD_CREATED: {CommitState.VERIFIED, CommitState.ROLLING_BACK},
    CommitState.VERIFIED: {CommitState.VALIDATED, CommitState.ROLLING_BACK},
    CommitState.VALIDATED: {CommitState.UPLOADING, CommitState.ROLLING_BACK},
    CommitState.UPLOADING: {CommitState.METADATA_WRITTEN, CommitState.ROLLING_BACK},
    CommitState.ROLLING_BACK: {CommitState.ROLLED_BACK},
    CommitState.METADATA_WRITTEN: set(),
    CommitState.ROLLED_BACK: set(),
    CommitState.FAILED: set(),
}


def ensure_transition(*, from_state: CommitState, to_state: CommitState) -> None:
    if to_state not in ALLOWED_TRANSITIONS[from_state]:
        raise DomainInvariantError(f"illegal commit transition: {from_state} -> {to_state}")


@dataclass
class CommitStateTracker:
    """Guards one commit attempt's transitions and keeps its history."""

    submission_id: str | None = None
    state: CommitState = CommitState.START
    history: list[CommitState] = field(default_factory=lambda: [CommitState.START])

    def advance(self, to_state: CommitState) -> None:
        ensure_transition(from_state=self.state, to_state=to_state)
        self.state = to_state
        self.history.append(to_state)
        logger.info(
            "commit state changed",
            extra={"submission_id": self.submission_id, "state": str(to_state)},
        )

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def record_written(self) -> bool:
        return CommitState.RECORD_CREATED in self.history
