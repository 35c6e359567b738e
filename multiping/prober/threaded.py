# multiping/prober/threaded.py
import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional

from multiping.errors import ProbeIOError
from multiping.prober.base import AsyncProber, ResponseHandler, SyncProber
from multiping.schemas import ErrorReply, Path, ProbeKind, ProbeReply

log = logging.getLogger(__name__)

ERR_TRANSPORT = 1
ERR_INTERNAL = 2


class ThreadedAsyncProber(AsyncProber):
    """
    Fire-and-forget on top of a blocking prober: each probe runs on a pool
    thread and reports through the handler from there.

    With timeout_s set, every probe gets its own deadline. A probe still
    running when it passes is reported as timed out and whatever it returns
    later is dropped. Each sequence id gets exactly one callback.
    """

    def __init__(self, handler: ResponseHandler, prober: SyncProber, max_workers: int = 20,
                 timeout_s: Optional[float] = None):
        super().__init__(handler)
        self.prober = prober
        self.timeout_s = timeout_s
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers),
                                        thread_name_prefix="probe")
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._closed = False
        self._done = set()
        self._timers = {}

    def _submit(self, path: Path, kind: ProbeKind, payload: bytes = b"") -> int:
        with self._lock:
            if self._closed:
                raise ProbeIOError("prober is closed")
            seq_id = next(self._seq)
            if self.timeout_s is not None:
                timer = threading.Timer(self.timeout_s, self._expire, args=(seq_id, path, kind))
                timer.daemon = True
                self._timers[seq_id] = timer
                timer.start()
        self._pool.submit(self._run, seq_id, path, kind, payload)
        return seq_id

    def _finish(self, seq_id: int) -> bool:
        """True for the first outcome of seq_id only."""
        with self._lock:
            if seq_id in self._done:
                return False
            self._done.add(seq_id)
            timer = self._timers.pop(seq_id, None)
        if timer is not None:
            timer.cancel()
        return True

    def _expire(self, seq_id: int, path: Path, kind: ProbeKind) -> None:
        if not self._finish(seq_id):
            return
        log.debug("probe %d on %s hit its %.3fs deadline", seq_id, path, self.timeout_s)
        self.handler.on_timeout(ProbeReply(seq_id, path, kind, timed_out=True,
                                           nanos=int(self.timeout_s * 1e9),
                                           isd_as=path.remote_isd_as))

    def _run(self, seq_id: int, path: Path, kind: ProbeKind, payload: bytes) -> None:
        try:
            if kind == "echo":
                reply = self.prober.send_echo_request(path, payload)
                hops = ()
            else:
                replies = self.prober.send_traceroute_request(path)
                if not replies:
                    raise ProbeIOError(f"empty traceroute answer on {path}")
                reply = replies[-1]
                hops = tuple(r.isd_as for r in replies) if kind == "traceroute" else ()
        except (ProbeIOError, ValueError) as e:
            self._fail(seq_id, ERR_TRANSPORT, str(e))
            return
        except Exception as e:
            # the future is never read
            log.exception("probe %d on %s crashed", seq_id, path)
            self._fail(seq_id, ERR_INTERNAL, f"{type(e).__name__}: {e}")
            return
        if not self._finish(seq_id):
            log.debug("dropping late answer for probe %d", seq_id)
            return
        reply = replace(reply, seq_id=seq_id, kind=kind, hops=hops)
        if reply.timed_out:
            self.handler.on_timeout(reply)
        else:
            self.handler.on_response(reply)

    def _fail(self, seq_id: int, code: int, message: str) -> None:
        if self._finish(seq_id):
            self.handler.on_error(ErrorReply(seq_id, code, message))

    def send_traceroute_last(self, path: Path) -> int:
        return self._submit(path, "traceroute_last")

    def send_traceroute(self, path: Path) -> int:
        return self._submit(path, "traceroute")

    def send_echo(self, path: Path, payload: bytes = b"") -> int:
        return self._submit(path, "echo", payload)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        # probes already running finish in the background; their replies get dropped
        self._pool.shutdown(wait=False, cancel_futures=True)
        self.prober.close()
