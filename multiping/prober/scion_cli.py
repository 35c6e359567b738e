# multiping/prober/scion_cli.py
import json
import logging
import re
import shutil
import subprocess
from dataclasses import replace
from typing import Optional

from multiping.errors import PathServiceError, ProbeIOError
from multiping.isdas import format_ia, parse_ia
from multiping.prober.base import PathService, Provider, SyncProber
from multiping.schemas import Path, ProbeReply, describe

log = logging.getLogger(__name__)

DEFAULT_SCION_BIN = shutil.which("scion") or "/usr/bin/scion"
# SCMP traceroute goes to the AS itself, the host part is not used
DUMMY_HOST = "0.0.0.0"

_DURATION = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(ns|us|µs|ms|s)?\s*$")
_UNIT_MS = {"ns": 1e-6, "us": 1e-3, "µs": 1e-3, "ms": 1.0, "s": 1000.0, None: 1.0}


def to_ms(value) -> Optional[float]:
    """RTTs show up as numbers (ms) or Go durations like '1.234ms' / '850µs'."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = _DURATION.match(str(value))
    if not m:
        return None
    return float(m.group(1)) * _UNIT_MS[m.group(2)]


def sequence(path: Path) -> str:
    """Hop predicate sequence understood by `scion ... --sequence`."""
    return " ".join(f"{format_ia(ia)}#{ifid}" for ia, ifid in path.raw)


def _json_objects(out: str):
    # the tool prints one JSON document; tolerate log lines around it
    start = out.find("{")
    if start < 0:
        return None
    try:
        return json.loads(out[start:])
    except json.JSONDecodeError:
        return None


class ScionCli:
    """
    Thin wrapper around the `scion` binary. Every call is one subprocess with
    JSON output; failures to run it at all become ProbeIOError.
    """

    def __init__(self, scion_bin: str = DEFAULT_SCION_BIN, timeout_s: float = 1.0,
                 sciond: Optional[str] = None):
        self.scion = scion_bin
        self.timeout_s = timeout_s
        self.sciond = sciond

    def _build_cmd(self, *args: str) -> list[str]:
        cmd = [self.scion, *args]
        if self.sciond:
            cmd += ["--sciond", self.sciond]
        return cmd

    def run(self, *args: str) -> subprocess.CompletedProcess:
        cmd = self._build_cmd(*args)
        log.debug("running %s", cmd)
        try:
            return subprocess.run(cmd, check=False, capture_output=True, text=True,
                                  timeout=self.timeout_s + 2.5)
        except subprocess.TimeoutExpired as e:
            raise ProbeIOError(f"{args[0]} did not finish in time") from e
        except OSError as e:
            raise ProbeIOError(f"cannot run {self.scion}: {e}") from e


class ScionPathService(PathService):
    def __init__(self, cli: ScionCli, max_paths: int = 20):
        self.cli = cli
        self.max_paths = max_paths
        self._local: Optional[int] = None

    def local_isd_as(self) -> int:
        if self._local is None:
            try:
                proc = self.cli.run("address")
            except ProbeIOError as e:
                raise PathServiceError(str(e)) from e
            text = proc.stdout.strip()
            try:
                # "1-ff00:0:110,127.0.0.1"
                self._local = parse_ia(text.split(",")[0])
            except ValueError as e:
                raise PathServiceError(f"unexpected `scion address` output: {text!r}") from e
        return self._local

    def get_paths(self, isd_as: int, destination: Optional[str] = None) -> list[Path]:
        ia = format_ia(isd_as)
        try:
            proc = self.cli.run("showpaths", ia, "--format", "json", "--maxpaths", str(self.max_paths),
                                "--no-probe")
        except ProbeIOError as e:
            raise PathServiceError(str(e)) from e
        obj = _json_objects(proc.stdout)
        if obj is None:
            text = (proc.stdout + proc.stderr).lower()
            if "no path" in text:
                return []
            raise PathServiceError(f"showpaths {ia} failed: {(proc.stderr or proc.stdout)[:300]}")
        try:
            return parse_showpaths(obj, isd_as, destination or DUMMY_HOST)
        except (KeyError, TypeError, ValueError) as e:
            raise PathServiceError(f"bad showpaths answer for {ia}: {e}") from e


def parse_showpaths(obj: dict, isd_as: int, host: str) -> list[Path]:
    paths = []
    for p in obj.get("paths") or []:
        raw = tuple((parse_ia(h["isd_as"]), int(h.get("ifid", h.get("interface", 0))))
                    for h in p.get("hops") or [])
        paths.append(Path(isd_as, host, raw, describe(raw)))
    return paths


class ScionSyncProber(SyncProber):
    def __init__(self, cli: ScionCli):
        self.cli = cli
        self._seq = 0

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _target(self, path: Path) -> str:
        return f"{format_ia(path.remote_isd_as)},{path.remote_address}"

    def _path_args(self, path: Path) -> list[str]:
        return ["--sequence", sequence(path), "--timeout", f"{self.cli.timeout_s}s", "--format", "json"]

    def send_echo_request(self, path: Path, payload: bytes = b"") -> ProbeReply:
        args = ["ping", self._target(path), "-c", "1", *self._path_args(path)]
        if payload:
            args += ["--payload_size", str(len(payload))]
        proc = self.cli.run(*args)
        obj = _json_objects(proc.stdout)
        if obj is None:
            raise ProbeIOError(f"ping failed: {(proc.stderr or proc.stdout)[:300]}")
        return parse_ping(obj, path, self._next_seq(), self.cli.timeout_s)

    def send_traceroute_request(self, path: Path) -> list[ProbeReply]:
        proc = self.cli.run("traceroute", self._target(path), *self._path_args(path))
        obj = _json_objects(proc.stdout)
        if obj is None:
            raise ProbeIOError(f"traceroute failed: {(proc.stderr or proc.stdout)[:300]}")
        try:
            return parse_traceroute(obj, path, self._next_seq, self.cli.timeout_s)
        except (TypeError, ValueError) as e:
            raise ProbeIOError(f"bad traceroute answer: {e}") from e


def parse_ping(obj: dict, path: Path, seq_id: int, timeout_s: float) -> ProbeReply:
    replies = obj.get("replies") or []
    for r in replies:
        ms = to_ms(r.get("round_trip_time") or r.get("rtt"))
        if ms is not None:
            return ProbeReply(seq_id, path, "echo", nanos=int(ms * 1_000_000), isd_as=path.remote_isd_as)
    stats = obj.get("statistics") or {}
    if stats.get("received"):
        ms = to_ms(stats.get("avg_rtt"))
        if ms is not None:
            return ProbeReply(seq_id, path, "echo", nanos=int(ms * 1_000_000), isd_as=path.remote_isd_as)
    return ProbeReply(seq_id, path, "echo", timed_out=True, nanos=int(timeout_s * 1e9),
                      isd_as=path.remote_isd_as)


def parse_traceroute(obj: dict, path: Path, next_seq, timeout_s: float) -> list[ProbeReply]:
    out = []
    for hop in obj.get("hops") or []:
        ia = parse_ia(hop["isd_as"]) if hop.get("isd_as") else 0
        rtts = [to_ms(v) for v in hop.get("round_trip_times") or []]
        rtts = [v for v in rtts if v is not None]
        hop_path = replace(path, remote_address=hop.get("ip_address") or path.remote_address)
        if rtts:
            out.append(ProbeReply(next_seq(), hop_path, "traceroute", nanos=int(min(rtts) * 1_000_000),
                                  isd_as=ia))
        else:
            out.append(ProbeReply(next_seq(), hop_path, "traceroute", timed_out=True,
                                  nanos=int(timeout_s * 1e9), isd_as=ia))
    return out


# time left for the handler hand-off inside one batch wait
DEADLINE_MARGIN_S = 0.1


def probe_deadline_s(settings) -> float:
    """Per-probe deadline for the async adapter: the probe timeout, kept under the batch wait."""
    batch_wait_s = settings.batch_wait_ms / 1000.0
    return max(0.01, min(settings.probe_timeout_s, batch_wait_s - DEADLINE_MARGIN_S))


def scion_provider(settings) -> Provider:
    from multiping.prober.threaded import ThreadedAsyncProber

    cli = ScionCli(settings.scion_bin or DEFAULT_SCION_BIN, timeout_s=settings.probe_timeout_s)
    deadline_s = probe_deadline_s(settings)
    return Provider(
        paths=ScionPathService(cli, settings.max_paths_per_destination),
        sync_factory=lambda: ScionSyncProber(cli),
        async_factory=lambda handler: ThreadedAsyncProber(
            handler, ScionSyncProber(cli), max_workers=settings.max_paths_per_destination,
            timeout_s=deadline_s),
    )
