# tests/test_config_unit.py
import json

import pytest

from multiping.config import DEFAULT_LOCAL_PORT, Settings


def test_defaults():
    s = Settings()
    assert s.attempt_repeat_cnt == 5
    assert s.batch_wait_ms == 1100
    assert s.max_paths_per_destination == 20
    assert not s.has_local_port()
    assert s.local_port_or_default() == DEFAULT_LOCAL_PORT


def test_camel_case_keys_are_accepted():
    """Keys as written in ping-repeat-config.json map onto the snake_case fields."""
    s = Settings.from_dict({
        "attemptRepeatCnt": 2,
        "roundDelaySec": 60,
        "tryICMP": True,
        "isdAsInputFile": "x.csv",
        "localPort": 4000,
        "somethingElse": 1,
    })
    assert s.attempt_repeat_cnt == 2
    assert s.round_delay_sec == 60
    assert s.try_icmp is True
    assert s.isd_as_input_file == "x.csv"
    assert s.local_port_or_default() == 4000


def test_written_config_reads_back(tmp_path):
    path = str(tmp_path / "cfg.json")
    Settings(attempt_delay_ms=250, output_file="out.csv").write(path)
    s = Settings.read(path)
    assert s.attempt_delay_ms == 250
    assert s.output_file == "out.csv"


def test_bad_config_files(tmp_path):
    with pytest.raises(ValueError):
        Settings.read(str(tmp_path / "missing.json"))
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ValueError):
        Settings.read(str(broken))
    listed = tmp_path / "list.json"
    listed.write_text(json.dumps([1, 2]))
    with pytest.raises(ValueError):
        Settings.read(str(listed))
