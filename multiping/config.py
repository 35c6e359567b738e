# multiping/config.py
import json
import logging
import re
from dataclasses import asdict, dataclass, fields

log = logging.getLogger(__name__)

PORT_NOT_SET = -1
DEFAULT_LOCAL_PORT = 30041


@dataclass
class Settings:
    # repeated-round measurement (ping-repeat)
    attempt_repeat_cnt: int = 5
    attempt_delay_ms: int = 100
    round_repeat_cnt: int = 144       # one day of rounds
    round_delay_sec: int = 10 * 60
    max_paths_per_destination: int = 20

    # how long to wait for a whole async batch; deliberately not derived from probe_timeout_s
    batch_wait_ms: int = 1100
    probe_timeout_s: float = 1.0

    # ping-all: extra probes on the winning path
    best_path_repeat: int = 3
    policy: str = "fastest_async"

    try_icmp: bool = False
    icmp_timeout_s: float = 1.0

    isd_as_input_file: str = "isd-as-assignments.csv"
    output_file: str = "ping-results.csv"
    local_port: int = PORT_NOT_SET
    console_output: bool = True
    scion_bin: str = "scion"

    def has_local_port(self) -> bool:
        return self.local_port != PORT_NOT_SET

    def local_port_or_default(self) -> int:
        return self.local_port if self.has_local_port() else DEFAULT_LOCAL_PORT

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _snake(key)
            if name not in known:
                log.warning("ignoring unknown config key %r", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def read(cls, path: str) -> "Settings":
        """Load a JSON config; camelCase keys (ping-repeat-config.json) are accepted."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"cannot read config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"config {path} must hold a JSON object")
        return cls.from_dict(data)

    def write(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)


_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    # isdAsInputFile -> isd_as_input_file, tryICMP -> try_icmp
    key = key.replace("ICMP", "Icmp")
    return _CAMEL.sub("_", key).lower()
