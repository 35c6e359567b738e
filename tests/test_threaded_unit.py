# tests/test_threaded_unit.py
import threading
import time

import pytest

from multiping.brain.dispatcher import QueueHandler
from multiping.errors import ProbeIOError
from multiping.prober.fake import TIMEOUT, FakeSyncProber
from multiping.prober.threaded import ERR_INTERNAL, ERR_TRANSPORT, ThreadedAsyncProber
from multiping.schemas import ErrorReply

from conftest import DST_A, LOCAL, make_path

P = make_path(DST_A, n_as=3)


def test_reply_carries_the_returned_sequence_id():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, FakeSyncProber({P: [12.0]})) as sender:
        seq_id = sender.send_traceroute_last(P)
        reply = handler.queue.get(timeout=2)
    assert reply.seq_id == seq_id
    assert reply.kind == "traceroute_last"
    assert reply.millis == 12.0
    assert reply.hops == ()


def test_full_traceroute_reports_hops():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, FakeSyncProber({P: [TIMEOUT]})) as sender:
        sender.send_traceroute(P)
        reply = handler.queue.get(timeout=2)
    assert reply.timed_out
    assert reply.hops == (LOCAL + 100, DST_A)


def test_sequence_ids_are_unique():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, FakeSyncProber(), max_workers=4) as sender:
        ids = [sender.send_echo(P) for _ in range(5)]
        replies = [handler.queue.get(timeout=2) for _ in ids]
    assert len(set(ids)) == 5
    assert sorted(r.seq_id for r in replies) == sorted(ids)


def test_transport_failure_becomes_error_callback():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, FakeSyncProber({P: [ProbeIOError("down")]})) as sender:
        seq_id = sender.send_echo(P)
        err = handler.queue.get(timeout=2)
    assert isinstance(err, ErrorReply)
    assert (err.seq_id, err.code) == (seq_id, ERR_TRANSPORT)


def test_send_after_close():
    inner = FakeSyncProber()
    sender = ThreadedAsyncProber(QueueHandler(), inner)
    sender.close()
    assert inner.closed
    with pytest.raises(ProbeIOError):
        sender.send_echo(P)


class BlockingProber(FakeSyncProber):
    """Answers only once released."""

    def __init__(self, script=None):
        super().__init__(script)
        self.release = threading.Event()

    def send_echo_request(self, path, payload=b""):
        self.release.wait(2.0)
        return super().send_echo_request(path, payload)


def test_deadline_reports_timeout_and_drops_late_answer():
    """One callback per probe: the deadline's timeout, never the late success."""
    handler = QueueHandler()
    inner = BlockingProber({P: [3.0]})
    sender = ThreadedAsyncProber(handler, inner, timeout_s=0.05)
    try:
        seq_id = sender.send_echo(P)
        reply = handler.queue.get(timeout=2)
        assert reply.seq_id == seq_id
        assert reply.timed_out
        assert reply.nanos == 50_000_000
        assert reply.isd_as == DST_A
    finally:
        inner.release.set()
    time.sleep(0.2)
    assert handler.queue.empty()
    sender.close()


def test_answer_before_deadline_wins():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, FakeSyncProber({P: [3.0]}), timeout_s=0.5) as sender:
        sender.send_echo(P)
        reply = handler.queue.get(timeout=2)
        time.sleep(0.7)
        assert handler.queue.empty()
    assert not reply.timed_out


class CrashingProber(FakeSyncProber):
    def send_traceroute_request(self, path):
        raise RuntimeError("bug in transport")


def test_unexpected_exception_becomes_error_callback():
    handler = QueueHandler()
    with ThreadedAsyncProber(handler, CrashingProber()) as sender:
        seq_id = sender.send_traceroute_last(P)
        err = handler.queue.get(timeout=2)
    assert isinstance(err, ErrorReply)
    assert (err.seq_id, err.code) == (seq_id, ERR_INTERNAL)
    assert "RuntimeError" in err.message
