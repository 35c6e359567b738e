# multiping/assignments.py
import logging
from typing import Iterable

from multiping.isdas import parse_ia
from multiping.schemas import HostEntry

log = logging.getLogger(__name__)


def parse_line(line: str):
    """'"1-ff00:0:110",ETH Zurich[,10.0.0.1]' -> HostEntry; None for blanks/comments."""
    s = line.strip()
    if not s or s.startswith("#"):
        return None
    parts = s.split(",")
    if len(parts) < 2:
        raise ValueError("expected at least ISD-AS and name")
    isd_as = parse_ia(parts[0].strip().strip('"'))
    ip = parts[2].strip() if len(parts) >= 3 and parts[2].strip() else None
    return HostEntry(isd_as, parts[1].strip(), ip)


def parse_lines(lines: Iterable[str], source: str = "<input>") -> list[HostEntry]:
    entries = []
    for n, line in enumerate(lines, 1):
        try:
            entry = parse_line(line)
        except ValueError as e:
            log.info("ERROR parsing %s:%d: error=%r line=%r", source, n, str(e), line.rstrip("\n"))
            continue
        if entry is not None:
            entries.append(entry)
    return entries


def read_assignments(path: str) -> list[HostEntry]:
    with open(path, encoding="utf-8") as f:
        return parse_lines(f, source=path)
