# multiping/schemas.py
from dataclasses import dataclass
from typing import Literal, Optional

from multiping.isdas import format_ia

ProbeKind = Literal["echo", "traceroute", "traceroute_last"]

# (isd_as, interface id) per crossed interface, near to far
RawHop = tuple[int, int]


@dataclass(frozen=True)
class Path:
    remote_isd_as: int
    remote_address: str
    raw: tuple[RawHop, ...] = ()
    description: str = ""

    @property
    def is_local(self) -> bool:
        # the local AS has no hops to traverse
        return len(self.raw) == 0

    def __str__(self) -> str:
        return self.description or describe(self.raw)


@dataclass(frozen=True)
class ProbeRequest:
    seq_id: int
    path: Path
    kind: ProbeKind
    sent_at: float


@dataclass(frozen=True)
class ProbeReply:
    seq_id: int
    path: Path
    kind: ProbeKind
    timed_out: bool = False
    nanos: int = 0
    isd_as: int = 0                 # domain of the replying hop
    hops: tuple[int, ...] = ()      # domains seen on the way (full traceroute only)

    @property
    def millis(self) -> float:
        return self.nanos / 1_000_000


@dataclass(frozen=True)
class ErrorReply:
    seq_id: Optional[int]
    code: int
    message: str = ""


@dataclass(frozen=True)
class HostEntry:
    isd_as: int
    name: str
    ip: Optional[str] = None


@dataclass
class Selection:
    """Outcome of probing a candidate set: best path plus the reply that won."""
    best_path: Optional[Path] = None
    message: Optional[ProbeReply] = None
    local: bool = False
    error: bool = False


def describe(raw: tuple[RawHop, ...]) -> str:
    """'[1-ff00:0:110 2>1 1-ff00:0:111]' style, like `scion showpaths`."""
    if not raw:
        return "[]"
    out = [format_ia(raw[0][0])]
    for i in range(0, len(raw) - 1, 2):
        in_ia, in_if = raw[i + 1]
        out.append(f"{raw[i][1]}>{in_if}")
        out.append(format_ia(in_ia))
    return "[" + " ".join(out) + "]"
