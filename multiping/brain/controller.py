# multiping/brain/controller.py

import logging
import time
from typing import Callable, Optional

from multiping.brain.rules import fastest, remaining_delay
from multiping.brain.selector import PathSelector, Policy, make_selector
from multiping.brain.summary import Result, ResultState, ResultSummary
from multiping.config import Settings
from multiping.errors import PathServiceError, ProbeIOError
from multiping.icmp import IcmpPinger
from multiping.isdas import format_ia
from multiping.prober.base import Provider, hop_count
from multiping.schemas import HostEntry, Path

log = logging.getLogger(__name__)


def _quiet(*_args, **_kwargs):
    pass


class MeasurementController:
    """
    Walks the destination list (optionally several rounds) and hands each
    destination with at least one path to measure(). Per-destination failures
    are recorded and the loop moves on; BatchIncomplete is left to propagate.
    """

    def __init__(self, provider: Provider, settings: Settings,
                 summary: Optional[ResultSummary] = None,
                 icmp: Optional[IcmpPinger] = None,
                 out: Optional[Callable[..., None]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.provider = provider
        self.s = settings
        self.summary = summary if summary is not None else ResultSummary()
        self.icmp = icmp or IcmpPinger(settings.try_icmp, self.summary.icmp_stats, settings.icmp_timeout_s)
        if out is None:
            out = print if settings.console_output else _quiet
        self.out = out
        self.sleep = sleep
        self.clock = clock

    def run(self, entries: list[HostEntry], rounds: int = 1, round_delay_s: float = 0.0) -> ResultSummary:
        local = self.provider.paths.local_isd_as()
        entries = [e for e in entries if e.isd_as != local]
        self.summary.list_as(local)
        for i in range(rounds):
            started = self.clock()
            for e in entries:
                self.out(f"{format_ia(e.isd_as)}\t \"{e.name}\"")
                self.run_destination(e)
                self.summary.list_as(e.isd_as)
            if i + 1 < rounds:
                self.sleep(remaining_delay(started, self.clock(), round_delay_s))
        return self.summary

    def lookup(self, entry: HostEntry) -> Optional[list[Path]]:
        """Paths to entry, or None after recording NO_PATH / ERROR for it."""
        try:
            paths = self.provider.paths.get_paths(entry.isd_as, entry.ip)
        except PathServiceError as e:
            self.out(f"ERROR: {e}")
            log.error("path lookup for %s failed: %s", format_ia(entry.isd_as), e)
            self.summary.inc_as_error()
            self.summary.add(Result.from_state(entry, ResultState.ERROR))
            self.on_error(entry)
            return None
        if not paths:
            src = format_ia(self.provider.paths.local_isd_as())
            self.out(f"WARNING: No path found from {src} to {format_ia(entry.isd_as)}")
            self.summary.inc_as_no_path()
            self.summary.add(Result.from_state(entry, ResultState.NO_PATH))
            self.on_no_path(entry)
            return None
        self.summary.check_total_max_paths(entry.isd_as, len(paths))
        return paths

    def run_destination(self, entry: HostEntry) -> None:
        self.summary.inc_as_tried()
        paths = self.lookup(entry)
        if paths is not None:
            self.measure(entry, paths)

    def measure(self, entry: HostEntry, paths: list[Path]) -> None:
        raise NotImplementedError

    def on_error(self, entry: HostEntry) -> None:
        pass

    def on_no_path(self, entry: HostEntry) -> None:
        pass


class PingAllController(MeasurementController):
    """One selection per destination, then a few more probes on the winner."""

    def __init__(self, provider, settings, policy: Policy = Policy.FASTEST_ASYNC,
                 selector: Optional[PathSelector] = None, **kwargs):
        super().__init__(provider, settings, **kwargs)
        self.policy = policy
        self.selector = selector or make_selector(policy, provider, self.summary, settings)

    def measure(self, entry, paths):
        sel = self.selector.select(paths, entry.isd_as)
        if sel.local:
            self.out(" -> local AS, no timing available")
            self.summary.add(Result.from_state(entry, ResultState.LOCAL_AS))
            return
        if sel.error or sel.message is None:
            self.out("ERROR: no usable reply")
            self.summary.add(Result.from_state(entry, ResultState.ERROR))
            return

        msgs = [sel.message]
        if not sel.message.timed_out:
            msgs += self._repeat_best(sel.best_path, sel.message.kind)
        best = fastest(msgs)
        result = Result.from_message(entry, best, sel.best_path, len(paths))
        self.summary.add(result)
        if best.timed_out:
            self.summary.inc_as_timeout()
        else:
            self.summary.inc_as_success()

        result.icmp = self.icmp.ping_series(sel.best_path.remote_address, self.s.best_path_repeat)
        times = " ".join("TIMEOUT" if m.timed_out else f"{round(m.millis, 2)}ms" for m in msgs)
        line = (f"{result.remote_ip}\t  nPaths={len(paths)}\t  nHops={hop_count(sel.best_path.raw)}"
                f"\t  time={times}")
        if self.s.try_icmp:
            line += f"  ICMP= {result.icmp}"
        self.out(line)

    def _repeat_best(self, path: Path, kind: str = "traceroute") -> list:
        out = []
        if self.s.best_path_repeat <= 1:
            return out
        try:
            with self.provider.get_sync() as sender:
                for _ in range(self.s.best_path_repeat - 1):
                    if kind == "echo":
                        out.append(sender.send_echo_request(path))
                        continue
                    hops = sender.send_traceroute_request(path)
                    if hops:
                        out.append(hops[-1])
        except ProbeIOError as e:
            log.warning("repeat probes on best path stopped: %s", e)
        return out
