"""Tagged outcomes for the analysis path.

Failures are returned as values, not raised, so retry and response mapping
can branch on them explicitly.
"""

from dataclasses import dataclass
from typing import ClassVar, Union


@dataclass(frozen=True)
class Success:
    """Remote call returned usable text."""

    text: str
    code: ClassVar[int] = 200
    message: ClassVar[str] = "analysis succeeded"


@dataclass(frozen=True)
class InvalidInput:
    """User-correctable input problem. Never retried."""

    message: str
    code: ClassVar[int] = 400


@dataclass(frozen=True)
class TransportFailure:
    """Connection error, timeout, or non-2xx status after all retries."""

    detail: str
    status_code: int | None = None
    code: ClassVar[int] = 500
    message: ClassVar[str] = "remote call failed"


@dataclass(frozen=True)
class ProtocolFailure:
    """2xx response without the expected text field. Not retried."""

    detail: str
    code: ClassVar[int] = 500
    message: ClassVar[str] = "malformed remote response"


@dataclass(frozen=True)
class RetryInterrupted:
    """Call cancelled or out of time budget while attempting or waiting."""

    detail: str = ""
    code: ClassVar[int] = 500
    message: ClassVar[str] = "retry interrupted"


@dataclass(frozen=True)
class InternalFailure:
    """Unexpected error inside the service itself."""

    detail: str
    code: ClassVar[int] = 500

    @property
    def message(self) -> str:
        return f"analysis failed: {self.detail}"


CompletionOutcome = Union[Success, TransportFailure, ProtocolFailure]
Outcome = Union[
    Success, InvalidInput, TransportFailure, ProtocolFailure, RetryInterrupted, InternalFailure
]
