# multiping/prober/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from multiping.schemas import ErrorReply, Path, ProbeReply, RawHop


def hop_count(raw: tuple[RawHop, ...]) -> int:
    """Number of ASes on the path. Interfaces come in (egress, ingress) pairs."""
    if not raw:
        return 0
    return len(raw) // 2 + 1


class PathService(ABC):
    @abstractmethod
    def get_paths(self, isd_as: int, destination: Optional[str] = None) -> list[Path]:
        """
        Return candidate paths to isd_as. An empty list means "no route".
        Raise PathServiceError if the lookup itself failed.
        """
        raise NotImplementedError

    @abstractmethod
    def local_isd_as(self) -> int:
        raise NotImplementedError


class SyncProber(ABC):
    """Blocking transport: one outstanding probe at a time."""

    @abstractmethod
    def send_echo_request(self, path: Path, payload: bytes = b"") -> ProbeReply:
        raise NotImplementedError

    @abstractmethod
    def send_traceroute_request(self, path: Path) -> list[ProbeReply]:
        """Replies ordered near to far; the last one is the destination's."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class ResponseHandler(ABC):
    """Callbacks may run on any thread."""

    @abstractmethod
    def on_response(self, reply: ProbeReply) -> None:
        raise NotImplementedError

    @abstractmethod
    def on_timeout(self, reply: ProbeReply) -> None:
        raise NotImplementedError

    @abstractmethod
    def on_error(self, error: ErrorReply) -> None:
        raise NotImplementedError


class AsyncProber(ABC):
    """
    Non-blocking transport. send_* return the sequence id of the probe, or a
    negative value / raise ProbeIOError when the probe could not go out.
    Sequence ids are unique for the lifetime of one prober instance.
    """

    def __init__(self, handler: ResponseHandler):
        self.handler = handler

    @abstractmethod
    def send_traceroute_last(self, path: Path) -> int:
        raise NotImplementedError

    def send_traceroute(self, path: Path) -> int:
        return self.send_traceroute_last(path)

    def send_echo(self, path: Path, payload: bytes = b"") -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


@dataclass
class Provider:
    """Everything the engine talks to, so tests can swap in fakes."""
    paths: PathService
    sync_factory: Callable[[], SyncProber]
    async_factory: Callable[[ResponseHandler], AsyncProber]

    def get_sync(self) -> SyncProber:
        return self.sync_factory()

    def get_async(self, handler: ResponseHandler) -> AsyncProber:
        return self.async_factory(handler)
