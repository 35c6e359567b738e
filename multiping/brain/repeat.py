# multiping/brain/repeat.py
import logging
from typing import Optional

from multiping.brain.controller import MeasurementController
from multiping.brain.dispatcher import AsyncDispatcher, QueueHandler
from multiping.brain.record import Record
from multiping.brain.rules import AttemptState, faster, remaining_delay
from multiping.brain.state import Batch
from multiping.brain.summary import Result, ResultState
from multiping.errors import ProbeIOError
from multiping.isdas import format_ia
from multiping.schemas import HostEntry, Path, ProbeKind

log = logging.getLogger(__name__)


class RepeatController(MeasurementController):
    """
    Builds a latency series per path: attempt_repeat_cnt rounds, each one
    probing up to max_paths_per_destination paths at once. Every Record goes
    to the writer exactly once, after the last round.
    """

    def __init__(self, provider, settings, writer, kind: ProbeKind = "traceroute_last", **kwargs):
        super().__init__(provider, settings, **kwargs)
        self.writer = writer
        self.kind = kind
        self.dispatcher = AsyncDispatcher(self.summary, settings.batch_wait_ms)

    def run(self, entries, rounds=None, round_delay_s=None):
        if rounds is None:
            rounds = self.s.round_repeat_cnt
        if round_delay_s is None:
            round_delay_s = self.s.round_delay_sec
        return super().run(entries, rounds, round_delay_s)

    def on_error(self, entry):
        self.writer.write(Record.error(entry.isd_as))

    def on_no_path(self, entry):
        self.writer.write(Record.no_path(entry.isd_as))

    def measure(self, entry: HostEntry, paths: list[Path]) -> None:
        selected = paths[:self.s.max_paths_per_destination]
        records = [Record.start(p, self.s.attempt_repeat_cnt, self.kind) for p in selected]
        local = next((r for r in records if r.is_local), None)
        if local is not None:
            self.out(" -> local AS, no timing available")
            self.writer.write(local)
            self.summary.add(Result.from_state(entry, ResultState.LOCAL_AS))
            return

        try:
            best = self.measure_latency(records)
        except ProbeIOError as e:
            log.error("%s: transport failed: %s", format_ia(entry.isd_as), e)
            self.out(f"ERROR: {e}")
            self.summary.inc_as_error()
            for rec in records:
                self.writer.write(rec)
            self.summary.add(Result.from_state(entry, ResultState.ERROR))
            return

        self._report(entry, best, len(paths))
        for rec in records:
            self.writer.write(rec)

    def measure_latency(self, records: list[Record]) -> Optional[tuple]:
        """
        Runs all rounds; returns (record, reply) of the fastest successful
        reply, else the first timeout seen, else None.
        """
        handler = QueueHandler()
        best = None
        with self.provider.get_async(handler) as sender:
            for _ in range(self.s.attempt_repeat_cnt):
                started = self.clock()
                batch = Batch()
                for rec in records:
                    seq_id = self.dispatcher.dispatch_one(sender, batch, rec.path, self.kind, owner=rec)
                    if seq_id is None:
                        rec.register_failure(AttemptState.ERROR_SEND)
                self.dispatcher.collect(handler, batch)
                best = self._fold(batch, best)
                self.sleep(remaining_delay(started, self.clock(), self.s.attempt_delay_ms / 1000.0))
        return best

    def _fold(self, batch: Batch, best):
        for req, reply in sorted(batch.replies, key=lambda rr: rr[0].seq_id):
            rec = batch.owner(req.seq_id)
            rec.register_attempt(reply)
            self.summary.see(reply.isd_as, *reply.hops)
            self.summary.check_total_max(reply.isd_as, reply, req.path)
            if reply.timed_out:
                self.summary.inc_path_timeout()
            else:
                self.summary.inc_path_success()
            if faster(reply, best[1] if best else None):
                best = (rec, reply)
        for req, _error in batch.errors:
            self.summary.inc_path_error()
            batch.owner(req.seq_id).register_failure(AttemptState.ERROR_PROTOCOL)
        return best

    def _report(self, entry, best, n_paths):
        if best is None:
            self.out("ERROR: no replies")
            self.summary.inc_as_error()
            self.summary.add(Result.from_state(entry, ResultState.ERROR))
            return
        rec, reply = best
        result = Result.from_message(entry, reply, rec.path, n_paths)
        if reply.timed_out:
            self.summary.inc_as_timeout()
        else:
            self.summary.inc_as_success()
        result.icmp = self.icmp.ping_once(rec.path.remote_address)
        rec.icmp = result.icmp
        self.summary.add(result)
        self.out(f"{rec.remote_ip}  nPaths={n_paths}  nHops={rec.hop_count}"
                 f"  time={round(result.ping_ms, 2)}ms  ICMP={result.icmp}  {rec.path}")
