# multiping/brain/selector.py
"""
Path selection policies. Each policy is its own class with a single
``select(paths, isd_as)`` entry point; ``make_selector`` maps a Policy to one.

Shortest: report on the path with the fewest hops. Hop counts are known
locally, so only one probe goes out.

Fastest: probe every path and report the one with the lowest latency,
either one after the other (sync) or all at once (async).
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum

from multiping.brain.dispatcher import AsyncDispatcher, QueueHandler, SyncDispatcher
from multiping.brain.rules import faster
from multiping.brain.summary import ResultSummary
from multiping.config import Settings
from multiping.errors import ProbeIOError
from multiping.isdas import format_ia
from multiping.prober.base import Provider, hop_count
from multiping.schemas import Path, ProbeKind, Selection

log = logging.getLogger(__name__)


class Policy(Enum):
    SHORTEST = "shortest"
    SHORTEST_ECHO = "shortest_echo"
    FASTEST_SYNC = "fastest_sync"
    FASTEST_ASYNC = "fastest_async"
    FASTEST_ASYNC_LAST_HOP_ONLY = "fastest_async_last_hop"


class PathSelector(ABC):
    def __init__(self, provider: Provider, summary: ResultSummary, settings: Settings):
        self.provider = provider
        self.summary = summary
        self.settings = settings

    @abstractmethod
    def select(self, paths: list[Path], isd_as: int) -> Selection:
        """paths must not be empty; the caller reports NO_PATH itself."""
        raise NotImplementedError

    def _failed(self, isd_as: int, e: Exception) -> Selection:
        log.error("%s: %s", format_ia(isd_as), e)
        self.summary.inc_as_error()
        return Selection(error=True)


def _local(paths: list[Path]) -> bool:
    return any(p.is_local for p in paths)


class ShortestSelector(PathSelector):
    def __init__(self, provider, summary, settings, kind: ProbeKind = "traceroute"):
        super().__init__(provider, summary, settings)
        self.kind = kind
        self.dispatcher = SyncDispatcher(summary)

    def select(self, paths, isd_as):
        # min() keeps the first of several equally short paths
        path = min(paths, key=lambda p: hop_count(p.raw))
        if path.is_local:
            return Selection(best_path=path, local=True)
        try:
            with self.provider.get_sync() as sender:
                msg = self.dispatcher.probe(sender, path, self.kind)
        except ProbeIOError as e:
            return self._failed(isd_as, e)
        return Selection(best_path=path, message=msg)


class FastestSyncSelector(PathSelector):
    def __init__(self, provider, summary, settings):
        super().__init__(provider, summary, settings)
        self.dispatcher = SyncDispatcher(summary)

    def select(self, paths, isd_as):
        if _local(paths):
            return Selection(best_path=paths[0], local=True)
        best = Selection()
        try:
            with self.provider.get_sync() as sender:
                for path in paths:
                    msg = self.dispatcher.probe(sender, path, "traceroute")
                    if faster(msg, best.message):
                        best = Selection(best_path=path, message=msg)
        except ProbeIOError as e:
            # a broken sender can't be trusted for the remaining paths
            return self._failed(isd_as, e)
        return best


class FastestAsyncSelector(PathSelector):
    def __init__(self, provider, summary, settings, last_hop_only: bool = False):
        super().__init__(provider, summary, settings)
        self.kind: ProbeKind = "traceroute_last" if last_hop_only else "traceroute"
        self.dispatcher = AsyncDispatcher(summary, settings.batch_wait_ms)

    def select(self, paths, isd_as):
        if _local(paths):
            return Selection(best_path=paths[0], local=True)
        handler = QueueHandler()
        try:
            with self.provider.get_async(handler) as sender:
                batch = self.dispatcher.dispatch(sender, paths, self.kind)
                # wait before the sender goes away; BatchIncomplete is not ours to handle
                self.dispatcher.collect(handler, batch)
        except ProbeIOError as e:
            return self._failed(isd_as, e)

        for _ in batch.failed:
            # one destination error per probe that never left
            self.summary.inc_as_error()
        best = self.dispatcher.fold(batch)
        if best is None:
            if batch.errors and not batch.failed:
                self.summary.inc_as_error()
            return Selection(error=True)
        req, reply = best
        return Selection(best_path=req.path, message=reply)


def make_selector(policy: Policy, provider: Provider, summary: ResultSummary,
                  settings: Settings) -> PathSelector:
    if policy is Policy.SHORTEST:
        return ShortestSelector(provider, summary, settings)
    if policy is Policy.SHORTEST_ECHO:
        return ShortestSelector(provider, summary, settings, kind="echo")
    if policy is Policy.FASTEST_SYNC:
        return FastestSyncSelector(provider, summary, settings)
    if policy is Policy.FASTEST_ASYNC:
        return FastestAsyncSelector(provider, summary, settings)
    if policy is Policy.FASTEST_ASYNC_LAST_HOP_ONLY:
        return FastestAsyncSelector(provider, summary, settings, last_hop_only=True)
    raise ValueError(f"unknown policy: {policy}")
