# multiping/brain/state.py
from dataclasses import dataclass, field
from typing import Any, Optional

from multiping.schemas import ErrorReply, Path, ProbeReply, ProbeRequest


@dataclass
class Batch:
    """
    One fire-and-wait round. Only the dispatching thread touches this;
    callbacks hand their results over through a queue.
    """
    total: int = 0
    outstanding: dict = field(default_factory=dict)   # seq_id -> ProbeRequest
    owners: dict = field(default_factory=dict)        # seq_id -> whoever asked (a Record, ...)
    replies: list = field(default_factory=list)       # (ProbeRequest, ProbeReply)
    errors: list = field(default_factory=list)        # (ProbeRequest, ErrorReply)
    failed: list = field(default_factory=list)        # paths whose send never went out

    def add(self, request: ProbeRequest, owner: Any = None) -> None:
        self.outstanding[request.seq_id] = request
        self.owners[request.seq_id] = owner
        self.total += 1

    def fail(self, path: Path) -> None:
        self.failed.append(path)

    @property
    def pending(self) -> int:
        return self.total - len(self.replies) - len(self.errors)

    def match_reply(self, reply: ProbeReply) -> Optional[ProbeRequest]:
        req = self.outstanding.pop(reply.seq_id, None)
        if req is not None:
            self.replies.append((req, reply))
        return req

    def match_error(self, error: ErrorReply) -> bool:
        if error.seq_id is None:
            # can't be matched to a probe of this batch
            return False
        req = self.outstanding.pop(error.seq_id, None)
        if req is None:
            return False
        self.errors.append((req, error))
        return True

    def owner(self, seq_id: int) -> Any:
        return self.owners.get(seq_id)
