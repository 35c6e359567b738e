# multiping/brain/rules.py
from enum import Enum
from typing import Iterable, Optional


class RecordState(Enum):
    """
    Ordered by precedence: an earlier member overrides every later one.
    ERROR beats everything, SUCCESS is beaten by everything.
    """
    ERROR = 0
    NO_PATH = 1
    LOCAL_AS = 2
    SUCCESS = 3


class AttemptState(Enum):
    SUCCESS = "SUCCESS"
    TIMEOUT = "TIMEOUT"
    ERROR_SEND = "ERROR_SEND"
    ERROR_PROTOCOL = "ERROR_PROTOCOL"


def faster(candidate, incumbent) -> bool:
    """
    Should candidate replace incumbent as the fastest reply?
    A timeout only wins against nothing or another timeout sent earlier;
    equal times fall back to the sequence id so the result never depends on arrival order.
    """
    if candidate is None:
        return False
    if incumbent is None:
        return True
    if candidate.timed_out != incumbent.timed_out:
        return incumbent.timed_out
    if candidate.timed_out:
        return candidate.seq_id < incumbent.seq_id
    if candidate.nanos != incumbent.nanos:
        return candidate.nanos < incumbent.nanos
    return candidate.seq_id < incumbent.seq_id


def fastest(replies: Iterable) -> Optional[object]:
    best = None
    for r in replies:
        if faster(r, best):
            best = r
    return best


def record_state(forced: Optional[RecordState], attempts: list, expected: int) -> RecordState:
    states = [forced or RecordState.SUCCESS]
    if len(attempts) < expected:
        states.append(RecordState.ERROR)
    if any(a.state is not AttemptState.SUCCESS for a in attempts):
        states.append(RecordState.ERROR)
    return min(states, key=lambda s: s.value)


def remaining_delay(started: float, now: float, spacing: float) -> float:
    """Sleep needed so rounds start `spacing` apart; slow rounds eat into it."""
    return max(0.0, spacing - (now - started))
