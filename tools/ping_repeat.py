# tools/ping_repeat.py
# Usage:
#   python3 -m tools.ping_repeat [--config ping-repeat-config.json]
#
# Repeatedly probes up to maxPathsPerDestination paths to every listed AS and
# appends one CSV line per (AS, path) to the configured output file.

import argparse
import logging
import sys

from multiping.assignments import read_assignments
from multiping.brain.repeat import RepeatController
from multiping.config import Settings
from multiping.errors import BatchIncomplete
from multiping.output import RecordWriter

FILE_CONFIG = "ping-repeat-config.json"


def build_argparser():
    ap = argparse.ArgumentParser(description="Repeated multi-path latency measurement")
    ap.add_argument("--config", default=FILE_CONFIG, help="JSON config file")
    ap.add_argument("--echo", action="store_true", help="Use SCMP echo instead of traceroute")
    ap.add_argument("--log-level", default="INFO", help="Python logging level")
    return ap


def main(argv=None) -> int:
    args = build_argparser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        s = Settings.read(args.config)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    from multiping.prober.scion_cli import scion_provider
    provider = scion_provider(s)
    entries = read_assignments(s.isd_as_input_file)
    logging.getLogger(__name__).info("%d destinations, %d rounds", len(entries), s.round_repeat_cnt)

    with RecordWriter(s.output_file) as writer:
        ctrl = RepeatController(provider, s, writer, kind="echo" if args.echo else "traceroute_last")
        try:
            summary = ctrl.run(entries)
        except BatchIncomplete as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
        except KeyboardInterrupt:
            return 130

    print("")
    for line in summary.report_lines(show_icmp=s.try_icmp)[14:]:
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
