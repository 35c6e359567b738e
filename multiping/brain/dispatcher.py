# multiping/brain/dispatcher.py
import logging
import queue
import time
from typing import Any, Optional

from multiping.brain.rules import fastest
from multiping.brain.state import Batch
from multiping.brain.summary import ResultSummary
from multiping.errors import BatchIncomplete, ProbeIOError, SendError
from multiping.prober.base import AsyncProber, ResponseHandler, SyncProber
from multiping.schemas import ErrorReply, Path, ProbeKind, ProbeReply, ProbeRequest

log = logging.getLogger(__name__)

DEFAULT_BATCH_WAIT_MS = 1100


class QueueHandler(ResponseHandler):
    """
    Callbacks only enqueue. The dispatching thread is the single consumer,
    so nothing else needs a lock.
    """

    def __init__(self, maxsize: int = 0):
        self.queue = queue.Queue(maxsize)

    def on_response(self, reply: ProbeReply) -> None:
        self.queue.put(reply)

    def on_timeout(self, reply: ProbeReply) -> None:
        self.queue.put(reply)

    def on_error(self, error: ErrorReply) -> None:
        self.queue.put(error)


class SyncDispatcher:
    """One probe at a time on an already open sender."""

    def __init__(self, summary: ResultSummary):
        self.summary = summary

    def probe(self, sender: SyncProber, path: Path, kind: ProbeKind = "traceroute") -> ProbeReply:
        """Raises ProbeIOError; the caller decides what that means for the destination."""
        self.summary.inc_path_tried()
        if kind == "echo":
            msg = sender.send_echo_request(path, b"")
            self.summary.see(msg.isd_as)
        else:
            hops = sender.send_traceroute_request(path)
            if not hops:
                raise ProbeIOError(f"empty traceroute answer on {path}")
            for h in hops:
                self.summary.see(h.isd_as)
            msg = hops[-1]
        self.summary.check_total_max(msg.isd_as, msg, path)
        if msg.timed_out:
            self.summary.inc_path_timeout()
        else:
            self.summary.inc_path_success()
        return msg


class AsyncDispatcher:
    """
    Fire one probe per path, then block once until every probe has an
    outcome or the batch budget runs out.
    """

    def __init__(self, summary: ResultSummary, batch_wait_ms: int = DEFAULT_BATCH_WAIT_MS,
                 clock=time.monotonic):
        self.summary = summary
        self.batch_wait_s = batch_wait_ms / 1000.0
        self.clock = clock

    def send(self, sender: AsyncProber, path: Path, kind: ProbeKind) -> int:
        if kind == "echo":
            seq_id = sender.send_echo(path, b"")
        elif kind == "traceroute":
            seq_id = sender.send_traceroute(path)
        else:
            seq_id = sender.send_traceroute_last(path)
        if seq_id is None or seq_id < 0:
            raise SendError(f"no sequence id for probe on {path}")
        return seq_id

    def dispatch_one(self, sender: AsyncProber, batch: Batch, path: Path, kind: ProbeKind,
                     owner: Any = None) -> Optional[int]:
        """Send one probe into batch. Returns None when it never went out."""
        self.summary.inc_path_tried()
        try:
            seq_id = self.send(sender, path, kind)
        except ProbeIOError as e:
            log.error("send failed on %s: %s", path, e)
            self.summary.inc_path_error()
            batch.fail(path)
            return None
        batch.add(ProbeRequest(seq_id, path, kind, self.clock()), owner)
        return seq_id

    def dispatch(self, sender: AsyncProber, paths: list, kind: ProbeKind) -> Batch:
        batch = Batch()
        for path in paths:
            self.dispatch_one(sender, batch, path, kind)
        return batch

    def collect(self, handler: QueueHandler, batch: Batch) -> Batch:
        """
        Drain the handler queue into batch until nothing is pending.
        Items that belong to no outstanding probe (late replies of an earlier
        batch, duplicates) are dropped and don't count.
        """
        deadline = self.clock() + self.batch_wait_s
        while batch.pending > 0:
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise BatchIncomplete(batch.pending, batch.total + len(batch.failed))
            try:
                item = handler.queue.get(timeout=remaining)
            except queue.Empty:
                continue
            if isinstance(item, ErrorReply):
                if not batch.match_error(item):
                    log.warning("dropping error for unknown sequence id %s", item.seq_id)
                continue
            if batch.match_reply(item) is None:
                log.warning("dropping reply with unknown sequence id %s", item.seq_id)
        return batch

    def fold(self, batch: Batch) -> Optional[tuple]:
        """
        Count every reply and remember every domain seen. Returns the
        (request, reply) pair of the fastest reply, or None.
        """
        for req, reply in batch.replies:
            self.summary.check_total_max(reply.isd_as, reply, req.path)
            self.summary.see(reply.isd_as, *reply.hops)
            if reply.timed_out:
                self.summary.inc_path_timeout()
            else:
                self.summary.inc_path_success()
        for _ in batch.errors:
            self.summary.inc_path_error()
        best = fastest(reply for _, reply in batch.replies)
        if best is None:
            return None
        return next(rr for rr in batch.replies if rr[1] is best)
