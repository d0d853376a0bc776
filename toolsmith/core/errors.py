"""Error taxonomy and exit codes.

``ErrorKind`` classifies every failure the engine reports at the plugin
boundary. ``ErrorCode`` is the stable process exit status those kinds map to
(see ``toolsmith.output.errors``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, auto

__all__ = ["ErrorCode", "ErrorKind", "EngineError"]


class ErrorCode(IntEnum):
    """Exit codes for processes driving the engine.

    These values are used as process exit codes and should remain stable:
    - 0: Success
    - 1: User error (bad configuration, unknown plugin)
    - 2: Environment error (unsupported platform or architecture)
    - 3: Build error (a build hook failed or produced nothing usable)
    - 4: Network error (download failed, API unreachable)
    - 5: I/O error (file not found, permission denied)
    - 6: Integrity error (checksum mismatch, unsafe archive)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    INTEGRITY_ERROR = 6

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK


class ErrorKind(Enum):
    """Category of an engine failure."""

    CONFIGURATION = auto()  # fatal, raised before any I/O
    PLATFORM = auto()  # running OS/CPU not mapped by the plugin
    INTEGRITY = auto()  # checksum mismatch, path traversal, size cap
    TRANSIENT = auto()  # HTTP status, connection failure
    BUILD = auto()  # a build hook returned an error
    VALIDATION = auto()  # build succeeded but an expected artifact is missing
    IO = auto()  # local filesystem failure
    CANCELLED = auto()  # caller cancelled or deadline passed

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class EngineError:
    """Error surfaced at the plugin boundary.

    Attributes:
        kind: Failure category
        message: Stage-identifying description ("build failed", ...)
        cause: Lower-layer error preserved verbatim, if any
    """

    kind: ErrorKind
    message: str
    cause: object | None = None

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"

    @property
    def root_cause(self) -> object:
        """Innermost wrapped error (self when nothing is wrapped)."""
        current: object = self
        while isinstance(current, EngineError) and current.cause is not None:
            current = current.cause
        return current
