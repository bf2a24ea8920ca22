from __future__ import annotations


class ParseFailure(ValueError):
    """A citation could not be recognized.

    Raised only inside the parser; ``parse()`` turns it into ``None``.
    """


class SourceFailure(RuntimeError):
    """A single source errored or missed its deadline."""

    def __init__(self, source_id: str, reason: str):
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id
        self.reason = reason


class VerificationTimeout(TimeoutError):
    """The identity endpoint did not answer in time. Treated as unverified."""

    def __init__(self, identifier: str, timeout_s: float):
        super().__init__(f"verification of {identifier} exceeded {timeout_s}s")
        self.identifier = identifier
        self.timeout_s = timeout_s
