# tests/conftest.py
import pytest

from multiping.config import Settings
from multiping.isdas import parse_ia
from multiping.schemas import HostEntry, Path

LOCAL = parse_ia("1-ff00:0:110")
DST_A = parse_ia("1-ff00:0:111")
DST_B = parse_ia("1-ff00:0:112")
DST_C = parse_ia("2-ff00:0:210")


def make_path(dst, n_as=2, variant=1, address="10.0.0.1"):
    """Path from LOCAL to dst crossing n_as domains in total (n_as hops)."""
    chain = [LOCAL] + [LOCAL + 100 + i for i in range(n_as - 2)] + [dst]
    raw = []
    for a, b in zip(chain, chain[1:]):
        raw += [(a, variant), (b, variant + 1)]
    return Path(dst, address, tuple(raw))


def quiet(*_args, **_kwargs):
    pass


@pytest.fixture
def settings():
    return Settings(attempt_repeat_cnt=3, attempt_delay_ms=0, round_repeat_cnt=1, round_delay_sec=0,
                    max_paths_per_destination=2, best_path_repeat=1, console_output=False)


@pytest.fixture
def entries():
    return [HostEntry(DST_A, "AS-a"), HostEntry(DST_B, "AS-b")]
