# multiping/errors.py


class ProbeIOError(IOError):
    """The probe transport failed; it can't serve more probes for this destination."""


class PathServiceError(RuntimeError):
    """Path lookup failed (service down, bad answer). Not the same as 'no route'."""


class SendError(ProbeIOError):
    """A probe could not be dispatched at all (e.g. no sequence id)."""


class BatchIncomplete(RuntimeError):
    """
    Fewer outcomes than probes arrived inside the wait budget.
    The transport broke its callback contract, so the run stops.
    """

    def __init__(self, missing: int, total: int):
        super().__init__(f"Missing messages: {missing}/{total}")
        self.missing = missing
        self.total = total
