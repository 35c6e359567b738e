# multiping/prober/fake.py
import itertools
import threading
from collections import deque
from dataclasses import dataclass

from multiping.errors import PathServiceError
from multiping.prober.base import AsyncProber, PathService, Provider, SyncProber
from multiping.schemas import ErrorReply, Path, ProbeReply

# script markers
TIMEOUT = "timeout"
DROP = "drop"            # async only: never call back
SEQ_FAIL = "seq_fail"    # async only: send returns -1


@dataclass(frozen=True)
class Fail:
    code: int = 1
    message: str = "fake error"


def _ns(ms: float) -> int:
    return int(ms * 1_000_000)


def _hops(path: Path) -> list[int]:
    # ingress AS of every interface pair, i.e. each AS after the local one
    return [path.raw[i][0] for i in range(1, len(path.raw), 2)] or [path.remote_isd_as]


class FakePathService(PathService):
    """
    paths: dict[isd_as] -> list[Path]; unknown ASes have no route.
    failing: ASes for which get_paths raises PathServiceError.
    """
    def __init__(self, paths=None, local=0, failing=()):
        self.paths = dict(paths or {})
        self.local = local
        self.failing = set(failing)
        self.calls = 0

    def get_paths(self, isd_as, destination=None):
        self.calls += 1
        if isd_as in self.failing:
            raise PathServiceError(f"no answer from control service for {isd_as}")
        return list(self.paths.get(isd_as, []))

    def local_isd_as(self):
        return self.local


class FakeSyncProber(SyncProber):
    """
    script: dict[Path] -> list of entries, consumed one per probe.
    Entry is a latency in ms, TIMEOUT, or an exception instance to raise.
    Unscripted probes time out.
    """
    def __init__(self, script=None):
        self.script = {k: deque(v) for k, v in (script or {}).items()}
        self.sent = 0
        self.closed = False
        self._seq = itertools.count()

    def _next(self, path):
        self.sent += 1
        dq = self.script.get(path)
        entry = dq.popleft() if dq else TIMEOUT
        if isinstance(entry, Exception):
            raise entry
        return entry

    def _reply(self, path, kind, entry, isd_as):
        if entry == TIMEOUT:
            return ProbeReply(next(self._seq), path, kind, timed_out=True,
                              nanos=_ns(1000), isd_as=isd_as)
        return ProbeReply(next(self._seq), path, kind, nanos=_ns(entry), isd_as=isd_as)

    def send_echo_request(self, path, payload=b""):
        return self._reply(path, "echo", self._next(path), path.remote_isd_as)

    def send_traceroute_request(self, path):
        entry = self._next(path)
        hops = _hops(path)
        out = []
        for i, ia in enumerate(hops[:-1]):
            out.append(ProbeReply(next(self._seq), path, "traceroute", nanos=_ns(i + 1), isd_as=ia))
        out.append(self._reply(path, "traceroute", entry, hops[-1]))
        return out

    def close(self):
        self.closed = True


class FakeAsyncProber(AsyncProber):
    """
    Same script format as FakeSyncProber plus DROP, SEQ_FAIL and Fail(code).
    Callbacks run on their own threads after delay_s.
    """
    def __init__(self, handler, script=None, delay_s=0.0, first_seq=0):
        super().__init__(handler)
        self.script = {k: deque(v) for k, v in (script or {}).items()}
        self.delay_s = delay_s
        self.sent = 0
        self.closed = False
        self._seq = itertools.count(first_seq)
        self._threads = []

    def _send(self, path, kind):
        self.sent += 1
        dq = self.script.get(path)
        entry = dq.popleft() if dq else TIMEOUT
        if isinstance(entry, Exception):
            raise entry
        if entry == SEQ_FAIL:
            return -1
        seq_id = next(self._seq)
        if entry != DROP:
            t = threading.Timer(self.delay_s, self._deliver, args=(seq_id, path, kind, entry))
            t.daemon = True
            self._threads.append(t)
            t.start()
        return seq_id

    def _deliver(self, seq_id, path, kind, entry):
        hops = tuple(_hops(path)) if kind == "traceroute" else ()
        if isinstance(entry, Fail):
            self.handler.on_error(ErrorReply(seq_id, entry.code, entry.message))
        elif entry == TIMEOUT:
            self.handler.on_timeout(ProbeReply(seq_id, path, kind, timed_out=True, nanos=_ns(1000),
                                               isd_as=path.remote_isd_as, hops=hops))
        else:
            self.handler.on_response(ProbeReply(seq_id, path, kind, nanos=_ns(entry),
                                                isd_as=path.remote_isd_as, hops=hops))

    def send_traceroute_last(self, path):
        return self._send(path, "traceroute_last")

    def send_traceroute(self, path):
        return self._send(path, "traceroute")

    def send_echo(self, path, payload=b""):
        return self._send(path, "echo")

    def join(self, timeout=2.0):
        for t in self._threads:
            t.join(timeout)

    def close(self):
        self.closed = True


def fake_provider(paths=None, local=0, failing=(), sync_script=None, async_script=None,
                  delay_s=0.0):
    """Wire fakes together; the created probers are kept on the provider for asserts."""
    service = FakePathService(paths, local=local, failing=failing)
    provider = Provider(service, lambda: None, lambda h: None)
    provider.sync_probers = []
    provider.async_probers = []
    # one script per network: every prober instance consumes the same deques
    shared_sync = {k: deque(v) for k, v in (sync_script or {}).items()}
    shared_async = {k: deque(v) for k, v in (async_script or {}).items()}
    seq_base = itertools.count(0, 10_000)

    def make_sync():
        p = FakeSyncProber()
        p.script = shared_sync
        provider.sync_probers.append(p)
        return p

    def make_async(handler):
        p = FakeAsyncProber(handler, delay_s=delay_s, first_seq=next(seq_base))
        p.script = shared_async
        provider.async_probers.append(p)
        return p

    provider.sync_factory = make_sync
    provider.async_factory = make_async
    return provider
