"""
distlock - Lock Types

Enums and result types shared by the lock core and the backends.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional


class AcquireMode(str, Enum):
    """How an acquire call waits for a held lock."""
    BLOCKING = "blocking"
    NON_BLOCKING = "non_blocking"
    TIMED_WAIT = "timed_wait"


class StopCondition(str, Enum):
    """When the acquisition engine gives up after a failed attempt."""
    NEVER = "never"
    ALWAYS = "always"
    ELAPSED = "elapsed"  # Elapsed time reached the wait budget


class EngineState(str, Enum):
    """States of the acquisition engine."""
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SetResult(str, Enum):
    """Result of a backend conditional set."""
    STORED = "stored"
    ALREADY_EXISTS = "already_exists"
    ERROR = "error"


class DeleteResult(str, Enum):
    """Result of a backend compare-and-delete."""
    DELETED = "deleted"
    NOT_MATCHED = "not_matched"
    ERROR = "error"


class AttemptOutcome(str, Enum):
    """Outcome of a single acquisition attempt."""
    ACQUIRED = "acquired"
    CONTENDED = "contended"
    BACKEND_UNAVAILABLE = "backend_unavailable"

    @classmethod
    def from_set_result(cls, result: SetResult) -> "AttemptOutcome":
        if result == SetResult.STORED:
            return cls.ACQUIRED
        if result == SetResult.ALREADY_EXISTS:
            return cls.CONTENDED
        return cls.BACKEND_UNAVAILABLE


def stop_condition_for(mode: AcquireMode) -> StopCondition:
    """Map an acquire mode to the engine's stop condition."""
    if mode == AcquireMode.BLOCKING:
        return StopCondition.NEVER
    if mode == AcquireMode.NON_BLOCKING:
        return StopCondition.ALWAYS
    return StopCondition.ELAPSED


@dataclass
class AcquireResult:
    """Diagnostics for one acquire call."""
    mode: AcquireMode
    state: EngineState
    attempts: int = 0
    contention_failures: int = 0
    backend_failures: int = 0
    elapsed_ms: float = 0.0
    last_outcome: Optional[AttemptOutcome] = None

    @property
    def acquired(self) -> bool:
        return self.state == EngineState.SUCCEEDED

    @property
    def failure_reason(self) -> Optional[AttemptOutcome]:
        """Outcome of the last attempt when the call failed, else None."""
        if self.acquired:
            return None
        return self.last_outcome

    def to_dict(self) -> dict:
        data = asdict(self)
        data["acquired"] = self.acquired
        return data
