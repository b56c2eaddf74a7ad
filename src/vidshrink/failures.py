"""Failure categories shared by the walker, transcode jobs and the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class FailureKind(Enum):
    """Closed set of reasons a file was not shrunk."""

    # Per-entry (traversal)
    READ_DIR = "Failed to read directory"
    METADATA = "Failed to read metadata"
    ALREADY_PROCESSED = "Already processed"
    # Per-job
    ENCODE_FAILED = "Encoder reported failure"
    OPEN_OUTPUT = "Failed to open compressed file to read size"
    OVERRIDE = "Failed to override file"
    # Fatal
    CLOCK = "Unable to retrieve system time"
    ENCODER_LAUNCH = "Failed to run encoder"
    PERSIST = "Failed to save ledger"

    @property
    def category(self) -> str:
        return self.value

    @property
    def is_fatal(self) -> bool:
        return self in _FATAL_KINDS


_FATAL_KINDS = frozenset({
    FailureKind.CLOCK,
    FailureKind.ENCODER_LAUNCH,
    FailureKind.PERSIST,
})


@dataclass(frozen=True)
class Failure:
    """A categorised failure with the underlying system error text."""

    kind: FailureKind
    cause: str | None = None

    def __str__(self) -> str:
        if self.cause:
            return f"{self.kind.category}: {self.cause}"
        return self.kind.category


class FatalError(RuntimeError):
    """Raised for failures after which the run must stop."""

    def __init__(self, kind: FailureKind, cause: str | None = None) -> None:
        if not kind.is_fatal:
            raise ValueError(f"{kind.name} is a per-file failure, not a fatal one")
        self.failure = Failure(kind, cause)
        super().__init__(str(self.failure))

    @property
    def kind(self) -> FailureKind:
        return self.failure.kind
