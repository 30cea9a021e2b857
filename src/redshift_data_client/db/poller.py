from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional
import threading
import time

from redshift_data_client.db.responses import StatementDescription, StatementStatus
from redshift_data_client.exceptions.errors import (
    AbortedError,
    ExecutionError,
    RedshiftDataError,
    StatementCancelledError,
    StatementTimeoutError,
)
from redshift_data_client.logging.logger import get_logger

log = get_logger("db.poller")

Describe = Callable[[str], Dict[str, Any]]


class PollState(str, Enum):
    FINISHED = "finished"
    FAILED = "failed"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollOutcome:
    """Result of waiting on a statement: exactly one terminal variant.

    ``description`` is the last DescribeStatement observation (None only when
    polling was cancelled or timed out before the first response).
    """

    state: PollState
    statement_id: str
    description: Optional[StatementDescription]
    polls: int
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.state is PollState.FINISHED

    @property
    def error(self) -> Optional[RedshiftDataError]:
        sid = self.statement_id
        detail = self.description.error if self.description and self.description.error else ""
        suffix = f": {detail}" if detail else ""
        if self.state is PollState.FINISHED:
            return None
        if self.state is PollState.FAILED:
            return ExecutionError(f"Statement execution failed{suffix}", statement_id=sid)
        if self.state is PollState.ABORTED:
            return AbortedError(f"Statement execution aborted{suffix}", statement_id=sid)
        if self.state is PollState.TIMED_OUT:
            return StatementTimeoutError(
                f"Statement execution timed out after {self.elapsed:.1f}s ({self.polls} polls)", statement_id=sid
            )
        return StatementCancelledError(f"Polling cancelled for statement {sid}", statement_id=sid)

    def unwrap(self) -> StatementDescription:
        err = self.error
        if err is not None:
            raise err
        assert self.description is not None
        return self.description


_TERMINAL_STATES = {
    StatementStatus.FINISHED: PollState.FINISHED,
    StatementStatus.FAILED: PollState.FAILED,
    StatementStatus.ABORTED: PollState.ABORTED,
}


def poll_statement(
    describe: Describe,
    statement_id: str,
    timeout: float,
    poll_interval: float,
    stop_event: Optional[threading.Event] = None,
    clock: Callable[[], float] = time.monotonic,
) -> PollOutcome:
    """Describe ``statement_id`` until it reaches a terminal status.

    Blocking; run it on a worker thread. The wait between polls is
    ``stop_event.wait`` so setting the event cancels promptly. Provider errors
    raised by ``describe`` propagate to the caller unchanged.
    """
    if timeout <= 0:
        raise ValueError("timeout must be positive")
    if poll_interval <= 0:
        raise ValueError("poll_interval must be positive")

    stop = stop_event or threading.Event()
    start = clock()
    polls = 0
    last: Optional[StatementDescription] = None

    def _outcome(state: PollState) -> PollOutcome:
        return PollOutcome(state, statement_id, last, polls, clock() - start)

    while clock() - start < timeout:
        if stop.is_set():
            return _outcome(PollState.CANCELLED)

        last = StatementDescription.from_response(describe(statement_id))
        polls += 1

        terminal = _TERMINAL_STATES.get(last.status)
        if terminal is not None:
            log.debug(
                "Statement reached terminal status",
                extra={"statement_id": statement_id, "status": last.status.value, "polls": polls},
            )
            return _outcome(terminal)

        remaining = timeout - (clock() - start)
        if remaining <= 0:
            break
        if stop.wait(min(poll_interval, remaining)):
            log.info("Statement polling cancelled", extra={"statement_id": statement_id, "polls": polls})
            return _outcome(PollState.CANCELLED)

    log.warning(
        "Statement polling timed out",
        extra={"statement_id": statement_id, "timeout": timeout, "polls": polls,
               "status": last.status.value if last else None},
    )
    return _outcome(PollState.TIMED_OUT)
