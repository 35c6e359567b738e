# tests/test_repeat_unit.py
from multiping.brain.record import Record
from multiping.brain.repeat import RepeatController
from multiping.brain.rules import AttemptState, RecordState
from multiping.brain.summary import ResultState
from multiping.errors import ProbeIOError
from multiping.output import MemoryWriter
from multiping.prober.fake import TIMEOUT, Fail, fake_provider
from multiping.schemas import HostEntry, Path

from conftest import DST_A, DST_B, LOCAL, make_path, quiet

P1 = make_path(DST_A, variant=1)
P2 = make_path(DST_A, n_as=3, variant=3)
P3 = make_path(DST_A, n_as=4, variant=5)
ENTRY = HostEntry(DST_A, "AS-a")


def repeat(provider, settings, **kwargs):
    writer = MemoryWriter()
    ctrl = RepeatController(provider, settings, writer, out=quiet, sleep=lambda s: None, **kwargs)
    return ctrl, writer


def test_series_per_path(settings):
    """Only max_paths_per_destination paths are measured, each attempt_repeat_cnt times."""
    provider = fake_provider({DST_A: [P1, P2, P3]}, local=LOCAL,
                             async_script={P1: [10.0, 12.0, 11.0], P2: [TIMEOUT, 20.0, 21.0], P3: [1.0] * 3})
    ctrl, writer = repeat(provider, settings)
    summary = ctrl.run([ENTRY])

    assert [r.path for r in writer.records] == [P1, P2]
    first, second = writer.records
    assert [a.ping_ms for a in first.attempts] == [10.0, 12.0, 11.0]
    assert first.state is RecordState.SUCCESS
    assert second.attempts[0].state is AttemptState.TIMEOUT
    assert second.state is RecordState.ERROR
    assert summary.path_stats.tried == 6
    assert summary.path_stats.success == 5
    assert summary.path_stats.timeout == 1

    result = summary.results[0]
    assert result.state is ResultState.SUCCESS
    assert result.ping_ms == 10.0
    assert result.path == P1
    assert result.path_count == 3
    # one async sender for all rounds of a destination
    assert len(provider.async_probers) == 1


def test_send_failure_is_recorded(settings):
    provider = fake_provider({DST_A: [P1]}, local=LOCAL, async_script={P1: [ProbeIOError("x"), 5.0, 6.0]})
    ctrl, writer = repeat(provider, settings)
    summary = ctrl.run([ENTRY])
    rec = writer.records[0]
    assert [a.state for a in rec.attempts] == [AttemptState.ERROR_SEND, AttemptState.SUCCESS,
                                               AttemptState.SUCCESS]
    assert rec.state is RecordState.ERROR
    assert summary.path_stats.error == 1
    assert summary.results[0].ping_ms == 5.0


def test_callback_error_is_recorded(settings):
    provider = fake_provider({DST_A: [P1]}, local=LOCAL, async_script={P1: [7.0, Fail(4), 6.0]})
    ctrl, writer = repeat(provider, settings)
    ctrl.run([ENTRY])
    states = [a.state for a in writer.records[0].attempts]
    assert states == [AttemptState.SUCCESS, AttemptState.ERROR_PROTOCOL, AttemptState.SUCCESS]


def test_all_timeouts(settings):
    provider = fake_provider({DST_A: [P1]}, local=LOCAL, async_script={P1: [TIMEOUT] * 3})
    ctrl, writer = repeat(provider, settings)
    summary = ctrl.run([ENTRY])
    assert summary.results[0].state is ResultState.TIMEOUT
    assert summary.as_stats.timeout == 1
    assert writer.records[0].state is RecordState.ERROR


def test_no_path_and_lookup_error_write_records(settings, entries):
    provider = fake_provider({}, local=LOCAL, failing={DST_B})
    ctrl, writer = repeat(provider, settings)
    ctrl.run(entries)
    assert [(r.isd_as, r.state) for r in writer.records] == [(DST_A, RecordState.NO_PATH),
                                                            (DST_B, RecordState.ERROR)]
    assert provider.async_probers == []


def test_local_path_writes_one_record(settings):
    provider = fake_provider({DST_A: [Path(DST_A, "10.0.0.1"), P1]}, local=LOCAL)
    ctrl, writer = repeat(provider, settings)
    summary = ctrl.run([ENTRY])
    assert len(writer.records) == 1
    assert writer.records[0].state is RecordState.LOCAL_AS
    assert summary.results[0].state is ResultState.LOCAL_AS
    assert provider.async_probers == []


def test_every_round_writes_each_record_once(settings):
    settings.round_repeat_cnt = 2
    provider = fake_provider({DST_A: [P1]}, local=LOCAL, async_script={P1: [1.0] * 6})
    ctrl, writer = repeat(provider, settings)
    summary = ctrl.run([ENTRY])
    assert len(writer.records) == 2
    assert all(isinstance(r, Record) and r.is_full for r in writer.records)
    assert summary.as_stats.tried == 2


def test_echo_kind(settings):
    provider = fake_provider({DST_A: [P1]}, local=LOCAL, async_script={P1: [1.0] * 3})
    ctrl, writer = repeat(provider, settings, kind="echo")
    ctrl.run([ENTRY])
    assert writer.records[0].kind == "echo"
    assert writer.records[0].to_row()[3] == "echo"
