# tests/test_dispatcher_unit.py
import pytest

from multiping.brain.dispatcher import AsyncDispatcher, QueueHandler, SyncDispatcher
from multiping.brain.state import Batch
from multiping.brain.summary import ResultSummary
from multiping.errors import BatchIncomplete, ProbeIOError, SendError
from multiping.prober.fake import DROP, SEQ_FAIL, TIMEOUT, Fail, FakeAsyncProber, FakeSyncProber
from multiping.schemas import ErrorReply, ProbeReply, ProbeRequest

from conftest import DST_A, LOCAL, make_path

P1 = make_path(DST_A, variant=1)
P2 = make_path(DST_A, n_as=3, variant=3)


def test_sync_probe_counts_and_sees_hops():
    s = ResultSummary()
    prober = FakeSyncProber({P2: [15.0]})
    msg = SyncDispatcher(s).probe(prober, P2, "traceroute")
    assert msg.millis == 15.0
    assert not msg.timed_out
    assert s.path_stats.tried == 1
    assert s.path_stats.success == 1
    assert s.seen == {LOCAL + 100, DST_A}


def test_sync_probe_timeout():
    s = ResultSummary()
    msg = SyncDispatcher(s).probe(FakeSyncProber({P1: [TIMEOUT]}), P1, "echo")
    assert msg.timed_out
    assert s.path_stats.timeout == 1
    assert s.total_max_ping.value == 0


def test_sync_probe_propagates_transport_failure():
    s = ResultSummary()
    with pytest.raises(ProbeIOError):
        SyncDispatcher(s).probe(FakeSyncProber({P1: [ProbeIOError("down")]}), P1)
    assert s.path_stats.tried == 1


def test_async_batch_collects_every_outcome():
    s = ResultSummary()
    handler = QueueHandler()
    d = AsyncDispatcher(s)
    sender = FakeAsyncProber(handler, {P1: [20.0], P2: [Fail(3, "bad")]})
    batch = d.collect(handler, d.dispatch(sender, [P1, P2], "traceroute_last"))
    assert batch.pending == 0
    assert len(batch.replies) == 1
    assert batch.errors[0][1].code == 3
    req, best = d.fold(batch)
    assert req.path == P1
    assert best.millis == 20.0
    assert (s.path_stats.tried, s.path_stats.success, s.path_stats.error) == (2, 1, 1)


def test_failed_sends_are_not_waited_for():
    """A probe that never went out is not pending; SEQ_FAIL shows up as SendError."""
    s = ResultSummary()
    handler = QueueHandler()
    d = AsyncDispatcher(s)
    sender = FakeAsyncProber(handler, {P1: [SEQ_FAIL], P2: [ProbeIOError("no socket")]})
    with pytest.raises(SendError):
        d.send(sender, P1, "echo")
    sender = FakeAsyncProber(handler, {P1: [SEQ_FAIL], P2: [ProbeIOError("no socket")]})
    batch = d.collect(handler, d.dispatch(sender, [P1, P2], "echo"))
    assert batch.failed == [P1, P2]
    assert batch.total == 0
    assert s.path_stats.tried == 2
    assert s.path_stats.error == 2


def test_missing_reply_raises_batch_incomplete():
    s = ResultSummary()
    handler = QueueHandler()
    d = AsyncDispatcher(s, batch_wait_ms=50)
    sender = FakeAsyncProber(handler, {P1: [DROP], P2: [5.0]})
    batch = d.dispatch(sender, [P1, P2], "traceroute_last")
    with pytest.raises(BatchIncomplete) as exc:
        d.collect(handler, batch)
    assert exc.value.missing == 1
    assert str(exc.value) == "Missing messages: 1/2"


def test_unknown_sequence_ids_are_dropped():
    """Stale replies and errors don't count toward completion."""
    handler = QueueHandler()
    d = AsyncDispatcher(ResultSummary(), batch_wait_ms=200)
    batch = Batch()
    batch.add(ProbeRequest(5, P1, "echo", 0.0))
    handler.queue.put(ProbeReply(99, P1, "echo", nanos=1))
    handler.queue.put(ErrorReply(98, 1))
    handler.queue.put(ProbeReply(5, P1, "echo", nanos=2))
    d.collect(handler, batch)
    assert [r.seq_id for _, r in batch.replies] == [5]
    assert batch.errors == []
    assert handler.queue.empty()


def test_duplicate_reply_is_dropped():
    handler = QueueHandler()
    d = AsyncDispatcher(ResultSummary(), batch_wait_ms=50)
    batch = Batch()
    batch.add(ProbeRequest(1, P1, "echo", 0.0))
    batch.add(ProbeRequest(2, P2, "echo", 0.0))
    handler.queue.put(ProbeReply(1, P1, "echo", nanos=1))
    handler.queue.put(ProbeReply(1, P1, "echo", nanos=1))
    with pytest.raises(BatchIncomplete):
        d.collect(handler, batch)
    assert len(batch.replies) == 1


def test_error_without_sequence_id_is_dropped():
    """An error that names no probe can't complete one; the probe stays outstanding."""
    handler = QueueHandler()
    d = AsyncDispatcher(ResultSummary(), batch_wait_ms=50)
    batch = Batch()
    batch.add(ProbeRequest(7, P1, "echo", 0.0))
    handler.queue.put(ErrorReply(None, 1))
    with pytest.raises(BatchIncomplete):
        d.collect(handler, batch)
    assert batch.errors == []
    assert list(batch.outstanding) == [7]


def test_fold_uses_the_request_path():
    """The reply may describe another address; the probed path is what counts."""
    from dataclasses import replace
    s = ResultSummary()
    batch = Batch()
    batch.add(ProbeRequest(3, P2, "traceroute_last", 0.0))
    answered_from = replace(P2, remote_address="192.0.2.9", raw=())
    batch.match_reply(ProbeReply(3, answered_from, "traceroute_last", nanos=4_000_000, isd_as=DST_A))
    req, reply = AsyncDispatcher(s).fold(batch)
    assert req.path == P2
    assert reply.seq_id == 3
    assert s.total_max_hops.value == 3
