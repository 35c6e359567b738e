# multiping/brain/record.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from multiping.brain.rules import AttemptState, RecordState, record_state
from multiping.isdas import format_ia, parse_ia
from multiping.prober.base import hop_count
from multiping.schemas import Path, ProbeKind, ProbeReply


@dataclass(frozen=True)
class Attempt:
    state: AttemptState
    ping_ms: float = 0.0

    @classmethod
    def from_reply(cls, reply: ProbeReply) -> "Attempt":
        if reply.timed_out:
            return cls(AttemptState.TIMEOUT)
        return cls(AttemptState.SUCCESS, reply.millis)

    @property
    def is_success(self) -> bool:
        return self.state is AttemptState.SUCCESS

    def as_field(self) -> str:
        return f"{round(self.ping_ms, 2)}" if self.is_success else self.state.name

    def __str__(self):
        return f"  time={round(self.ping_ms, 2)}ms" if self.is_success else f"  {self.state.name}"


@dataclass
class Record:
    """
    One (destination, path) measurement session. The terminal state is derived
    from the attempts each time it's asked for.
    """
    isd_as: int
    path: Optional[Path] = None
    expected_attempts: int = 0
    kind: ProbeKind = "traceroute_last"
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: list = field(default_factory=list)
    remote_ip: Optional[str] = None
    forced: Optional[RecordState] = None
    icmp: Optional[str] = None

    @classmethod
    def start(cls, path: Path, expected_attempts: int, kind: ProbeKind = "traceroute_last") -> "Record":
        rec = cls(path.remote_isd_as, path, expected_attempts, kind)
        if path.is_local:
            # nothing to time inside the local AS
            rec.forced = RecordState.LOCAL_AS
            rec.expected_attempts = 0
        return rec

    @classmethod
    def no_path(cls, isd_as: int) -> "Record":
        return cls(isd_as, forced=RecordState.NO_PATH)

    @classmethod
    def error(cls, isd_as: int) -> "Record":
        return cls(isd_as, forced=RecordState.ERROR)

    @property
    def is_local(self) -> bool:
        return self.forced is RecordState.LOCAL_AS

    @property
    def is_full(self) -> bool:
        return len(self.attempts) >= self.expected_attempts

    def _append(self, attempt: Attempt) -> Attempt:
        if self.is_full:
            raise ValueError(f"{format_ia(self.isd_as)}: already has {len(self.attempts)} attempts")
        self.attempts.append(attempt)
        return attempt

    def register_attempt(self, reply: ProbeReply) -> Attempt:
        if self.remote_ip is None:
            self.remote_ip = reply.path.remote_address
        return self._append(Attempt.from_reply(reply))

    def register_failure(self, state: AttemptState) -> Attempt:
        return self._append(Attempt(state))

    @property
    def state(self) -> RecordState:
        return record_state(self.forced, self.attempts, self.expected_attempts)

    @property
    def hop_count(self) -> int:
        return 0 if self.path is None else hop_count(self.path.raw)

    def best_attempt(self) -> Optional[Attempt]:
        ok = [a for a in self.attempts if a.is_success]
        return min(ok, key=lambda a: a.ping_ms) if ok else None

    def to_row(self) -> list[str]:
        """isd_as, remote ip, time, kind, state, hops, path, then one field per attempt."""
        row = [
            format_ia(self.isd_as),
            self.remote_ip or "",
            self.time.isoformat(),
            self.kind,
            self.state.name,
            str(self.hop_count),
            "[]" if self.path is None else str(self.path),
        ]
        row.extend(a.as_field() for a in self.attempts)
        return row

    def __str__(self):
        out = f"{format_ia(self.isd_as)}   {'' if self.path is None else self.path}  {self.remote_ip}"
        out += "".join(str(a) for a in self.attempts)
        return out + f"  ICMP={self.icmp}"


@dataclass
class ParsedRecord:
    isd_as: int
    remote_ip: Optional[str]
    time: datetime
    kind: str
    state: RecordState
    hop_count: int
    path: str
    attempts: list


def parse_row(row: list[str]) -> ParsedRecord:
    """Inverse of Record.to_row(); attempt fields become Attempt objects again."""
    if len(row) < 7:
        raise ValueError(f"short record row: {row!r}")
    attempts = []
    for f in row[7:]:
        if f in AttemptState.__members__:
            attempts.append(Attempt(AttemptState[f]))
        else:
            attempts.append(Attempt(AttemptState.SUCCESS, float(f)))
    return ParsedRecord(
        isd_as=parse_ia(row[0]),
        remote_ip=row[1] or None,
        time=datetime.fromisoformat(row[2]),
        kind=row[3],
        state=RecordState[row[4]],
        hop_count=int(row[5]),
        path=row[6],
        attempts=attempts,
    )
