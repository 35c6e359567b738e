# multiping/brain/summary.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from multiping.isdas import format_ia
from multiping.prober.base import hop_count
from multiping.schemas import HostEntry, Path, ProbeReply

NONE = -1


class ResultState(Enum):
    NOT_DONE = "NOT_DONE"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"
    NO_PATH = "NO_PATH"
    TIMEOUT = "TIMEOUT"
    LOCAL_AS = "LOCAL_AS"


@dataclass
class Result:
    """Best outcome for one destination."""
    isd_as: int
    name: str
    state: ResultState = ResultState.NOT_DONE
    hop_count: int = 0
    path_count: int = 0
    ping_ms: float = 0.0
    path: Optional[Path] = None
    remote_ip: Optional[str] = None
    icmp: Optional[str] = None

    @classmethod
    def from_state(cls, entry: HostEntry, state: ResultState) -> "Result":
        return cls(entry.isd_as, entry.name, state)

    @classmethod
    def from_message(cls, entry: HostEntry, msg: ProbeReply, path: Path, n_paths: int) -> "Result":
        r = cls(entry.isd_as, entry.name, path_count=n_paths, path=path)
        r.hop_count = hop_count(path.raw)
        r.remote_ip = path.remote_address
        if msg.timed_out:
            r.state = ResultState.TIMEOUT
        else:
            r.state = ResultState.SUCCESS
            r.ping_ms = msg.millis
        return r

    @property
    def is_success(self) -> bool:
        return self.state is ResultState.SUCCESS

    def __str__(self):
        out = f"{format_ia(self.isd_as)} {self.name}"
        if self.path is not None:
            out += f"   {self.path}"
        out += f"  {self.remote_ip}  nPaths={self.path_count}  nHops={self.hop_count}"
        return out + f"  time={round(self.ping_ms, 2)}ms  ICMP={self.icmp}"


@dataclass
class Counters:
    tried: int = 0
    success: int = 0
    timeout: int = 0
    error: int = 0
    no_path: int = 0


@dataclass
class Maximum:
    value: float = 0
    isd_as: int = 0

    def offer(self, value: float, isd_as: int) -> None:
        # strictly greater: the first domain to reach a value keeps it
        if value > self.value:
            self.value = value
            self.isd_as = isd_as


@dataclass
class ResultSummary:
    """
    Per-run statistics. Mutated only by the orchestrating thread; the
    reducers below are read-only.
    """
    results: list = field(default_factory=list)
    as_stats: Counters = field(default_factory=Counters)
    path_stats: Counters = field(default_factory=Counters)
    icmp_stats: Counters = field(default_factory=Counters)
    seen: set = field(default_factory=set)
    listed: set = field(default_factory=set)
    total_max_hops: Maximum = field(default_factory=Maximum)
    total_max_ping: Maximum = field(default_factory=Maximum)
    total_max_paths: Maximum = field(default_factory=Maximum)

    # --- destination level ---
    def inc_as_tried(self):
        self.as_stats.tried += 1

    def inc_as_success(self):
        self.as_stats.success += 1

    def inc_as_error(self):
        self.as_stats.error += 1

    def inc_as_timeout(self):
        self.as_stats.timeout += 1

    def inc_as_no_path(self):
        self.as_stats.no_path += 1

    # --- path (probe) level ---
    def inc_path_tried(self):
        self.path_stats.tried += 1

    def inc_path_success(self):
        self.path_stats.success += 1

    def inc_path_timeout(self):
        self.path_stats.timeout += 1

    def inc_path_error(self):
        self.path_stats.error += 1

    def add(self, result: Result) -> None:
        self.results.append(result)

    def see(self, *isd_as: int) -> None:
        self.seen.update(ia for ia in isd_as if ia)

    def list_as(self, isd_as: int) -> None:
        self.listed.add(isd_as)

    @property
    def seen_but_not_listed(self) -> int:
        return len(self.seen - self.listed)

    def check_total_max_paths(self, isd_as: int, n_paths: int) -> None:
        self.total_max_paths.offer(n_paths, isd_as)

    def check_total_max(self, isd_as: int, msg: ProbeReply, path: Optional[Path] = None) -> None:
        """path is the probed one; defaults to the path the reply carries."""
        self.total_max_hops.offer(hop_count((path or msg.path).raw), isd_as)
        if not msg.timed_out:
            self.total_max_ping.offer(msg.millis, isd_as)

    # --- reducers ---
    def _eligible(self, keep: Callable[[Result], bool]) -> list:
        return [r for r in self.results if keep(r)]

    def _max(self, keep, key) -> Optional[Result]:
        rs = self._eligible(keep)
        return max(rs, key=key) if rs else None

    def _avg(self, keep, key) -> float:
        values = [key(r) for r in self._eligible(keep)]
        return sum(values) / len(values) if values else NONE

    def _median(self, keep, key) -> float:
        values = sorted(key(r) for r in self._eligible(keep))
        if not values:
            return NONE
        return values[len(values) // 2]

    def max_ping(self) -> Optional[Result]:
        return self._max(_succeeded, _ping)

    def max_hops(self) -> Optional[Result]:
        return self._max(_has_hops, _hops)

    def max_paths(self) -> Optional[Result]:
        return self._max(_has_paths, _paths)

    def avg_ping(self) -> float:
        return self._avg(_succeeded, _ping)

    def avg_hops(self) -> float:
        return self._avg(_has_hops, _hops)

    def avg_paths(self) -> float:
        return self._avg(_has_paths, _paths)

    def median_ping(self) -> float:
        return self._median(_succeeded, _ping)

    def median_hops(self) -> float:
        return self._median(_has_hops, _hops)

    def median_paths(self) -> float:
        return self._median(_has_paths, _paths)

    def report_lines(self, show_icmp: bool = False) -> list[str]:
        max_hops, max_ping, max_paths = self.max_hops(), self.max_ping(), self.max_paths()
        lines = [
            "",
            f"Max hops            =\t {max_hops.hop_count if max_hops else NONE}\t : {max_hops}",
            f"Max ping [ms]       =\t {round(max_ping.ping_ms, 2) if max_ping else NONE}\t : {max_ping}",
            f"Max paths           =\t {max_paths.path_count if max_paths else NONE}\t : {max_paths}",
            f"Total max hops      =\t {self.total_max_hops.value}\t : {format_ia(self.total_max_hops.isd_as)}",
            f"Total max ping [ms] =\t {round(self.total_max_ping.value, 2)}\t : "
            f"{format_ia(self.total_max_ping.isd_as)}",
            f"Total max paths     =\t {self.total_max_paths.value}\t : {format_ia(self.total_max_paths.isd_as)}",
            f"Median hops         =\t {int(self.median_hops())}",
            f"Median ping [ms]    =\t {round(self.median_ping(), 2)}",
            f"Median paths        =\t {int(self.median_paths())}",
            f"Avg hops            =\t {round(self.avg_hops(), 1)}",
            f"Avg ping [ms]       =\t {round(self.avg_ping(), 2)}",
            f"Avg paths           =\t {round(self.avg_paths())}",
            "",
            "AS Stats:",
            f" all        =\t {self.as_stats.tried}",
            f" success    =\t {self.as_stats.success}",
            f" no path    =\t {self.as_stats.no_path}",
            f" timeout    =\t {self.as_stats.timeout}",
            f" error      =\t {self.as_stats.error}",
            f" not listed =\t {self.seen_but_not_listed}",
            "Path Stats:",
            f" all        =\t {self.path_stats.tried}",
            f" success    =\t {self.path_stats.success}",
            f" timeout    =\t {self.path_stats.timeout}",
            f" error      =\t {self.path_stats.error}",
        ]
        if show_icmp:
            lines += [
                "ICMP Stats:",
                f" all        =\t {self.icmp_stats.tried}",
                f" success    =\t {self.icmp_stats.success}",
                f" timeout    =\t {self.icmp_stats.timeout}",
                f" error      =\t {self.icmp_stats.error}",
            ]
        return lines


def _succeeded(r: Result) -> bool:
    return r.is_success


def _has_hops(r: Result) -> bool:
    return r.hop_count > 0


def _has_paths(r: Result) -> bool:
    return r.path_count > 0


def _ping(r: Result) -> float:
    return r.ping_ms


def _hops(r: Result) -> int:
    return r.hop_count


def _paths(r: Result) -> int:
    return r.path_count
