# multiping/icmp.py
import ipaddress
import logging

from icmplib import ping
from icmplib.exceptions import ICMPLibError

from multiping.brain.summary import Counters

log = logging.getLogger(__name__)

OFF = "OFF"
NOT_AVAILABLE = "N/A"
TIMEOUT = "TIMEOUT"
ERROR = "ERROR"


def unreachable_by_icmp(address: str) -> bool:
    """Private, loopback, link-local and ULA addresses can't be pinged from outside."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return True
    return ip.is_private or ip.is_loopback or ip.is_link_local


class IcmpPinger:
    """Plain ICMP echo to the same host, for comparison with the SCION numbers."""

    def __init__(self, enabled: bool, stats: Counters, timeout_s: float = 1.0):
        self.enabled = enabled
        self.stats = stats
        self.timeout_s = timeout_s

    def ping_once(self, address: str) -> str:
        if not self.enabled:
            return OFF
        if unreachable_by_icmp(address):
            return NOT_AVAILABLE
        self.stats.tried += 1
        try:
            host = ping(address, count=1, timeout=self.timeout_s, privileged=False)
        except ICMPLibError as e:
            log.warning("ICMP ping to %s failed: %s", address, e)
            self.stats.error += 1
            return ERROR
        if host.is_alive:
            self.stats.success += 1
            return f"{round(host.avg_rtt, 2)}ms"
        self.stats.timeout += 1
        return TIMEOUT

    def ping_series(self, address: str, count: int) -> str:
        """Up to count pings; stops at the first one that can't succeed."""
        out = []
        for _ in range(count):
            res = self.ping_once(address)
            out.append(res)
            if res in (OFF, NOT_AVAILABLE, TIMEOUT, ERROR):
                break
        return " ".join(out)
