# tools/ping_all.py
# Usage examples:
#   python3 -m tools.ping_all
#   python3 -m tools.ping_all --shortest --port 30041
#   python3 -m tools.ping_all --fastest_sync --assignments isd-as-assignments.csv
#   python3 -m tools.ping_all fake
#
# One measurement per listed AS: pick a path by policy, report latency and hops,
# then print the summary statistics.

import argparse
import logging
import sys
import time

from multiping.assignments import read_assignments
from multiping.brain.controller import PingAllController
from multiping.brain.selector import Policy
from multiping.config import Settings
from multiping.errors import BatchIncomplete

POLICY_FLAGS = {
    "--fastest": Policy.FASTEST_ASYNC,
    "--fastest_last_hop": Policy.FASTEST_ASYNC_LAST_HOP_ONLY,
    "--fastest_sync": Policy.FASTEST_SYNC,
    "--shortest": Policy.SHORTEST,
    "--shortest_echo": Policy.SHORTEST_ECHO,
}


def fake_network():
    """Three ASes, one unreachable, so the tool can be tried without SCION."""
    from multiping.isdas import parse_ia
    from multiping.prober.fake import fake_provider
    from multiping.schemas import HostEntry, Path, describe

    local = parse_ia("1-ff00:0:110")
    a, b, c = parse_ia("1-ff00:0:111"), parse_ia("1-ff00:0:112"), parse_ia("2-ff00:0:210")
    direct = ((local, 1), (a, 2))
    via_a = ((local, 1), (a, 2), (a, 3), (b, 1))
    direct_b = ((local, 4), (b, 2))
    paths = {
        a: [Path(a, "10.0.1.1", direct, describe(direct))],
        b: [Path(b, "10.0.2.1", via_a, describe(via_a)), Path(b, "10.0.2.1", direct_b, describe(direct_b))],
    }
    script = {paths[a][0]: [12.5], paths[b][0]: [30.1], paths[b][1]: [18.7]}
    provider = fake_provider(paths, local=local, sync_script=script, async_script=script)
    entries = [HostEntry(a, "AS-a"), HostEntry(b, "AS-b"), HostEntry(c, "AS-c")]
    return provider, entries


def build_argparser():
    ap = argparse.ArgumentParser(description="Measure latency to all known SCION ASes")
    ap.add_argument("target", nargs="?", help="'fake' to run against a built-in fake network")
    group = ap.add_mutually_exclusive_group()
    for flag, policy in POLICY_FLAGS.items():
        group.add_argument(flag, dest="policy", action="store_const", const=policy,
                           help=f"Path policy {policy.value}")
    ap.set_defaults(policy=Policy.FASTEST_ASYNC)
    ap.add_argument("--port", type=int, default=None, help="Local port (default: config or 30041)")
    ap.add_argument("--config", default=None, help="JSON config file")
    ap.add_argument("--assignments", default=None, help="CSV with ISD-AS,name[,ip] lines")
    ap.add_argument("--icmp", action="store_true", help="Also ping the remote hosts with ICMP")
    ap.add_argument("--repeat", type=int, default=None, help="Probes on the best path")
    ap.add_argument("--batch-wait-ms", type=int, default=None, help="Wait budget for one async batch")
    ap.add_argument("--log-level", default="WARNING", help="Python logging level")
    return ap


def load_settings(args) -> Settings:
    s = Settings.read(args.config) if args.config else Settings()
    if args.port is not None:
        s.local_port = args.port
    if args.assignments:
        s.isd_as_input_file = args.assignments
    if args.icmp:
        s.try_icmp = True
    if args.repeat is not None:
        s.best_path_repeat = args.repeat
    if args.batch_wait_ms is not None:
        s.batch_wait_ms = args.batch_wait_ms
    s.policy = args.policy.value
    return s


def main(argv=None) -> int:
    args = build_argparser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    s = load_settings(args)

    print("Settings:")
    print(f"  Path policy = {args.policy.name}")
    print(f"  ICMP={s.try_icmp}")
    print(f"  Local port={s.local_port_or_default()}")

    if args.target == "fake":
        provider, entries = fake_network()
    else:
        from multiping.prober.scion_cli import scion_provider
        provider = scion_provider(s)
        entries = read_assignments(s.isd_as_input_file)

    t1 = time.monotonic()
    ctrl = PingAllController(provider, s, policy=args.policy)
    try:
        summary = ctrl.run(entries)
    except BatchIncomplete as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130
    for line in summary.report_lines(show_icmp=s.try_icmp):
        print(line)
    print(f"Total time: {round(time.monotonic() - t1, 2)}s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
