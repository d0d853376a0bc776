"""Error presentation utilities.

Every fatal engine error reaches the process boundary as one line plus an
exit code derived from its kind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorCode, ErrorKind

if TYPE_CHECKING:
    from toolsmith.output.console import ConsoleProtocol

__all__ = ["print_engine_error", "engine_error_exit_code"]


def engine_error_exit_code(error: EngineError) -> int:
    """Get exit code for an engine error."""
    match error.kind:
        case ErrorKind.CONFIGURATION:
            return int(ErrorCode.USER_ERROR)
        case ErrorKind.PLATFORM:
            return int(ErrorCode.ENV_ERROR)
        case ErrorKind.BUILD | ErrorKind.VALIDATION:
            return int(ErrorCode.BUILD_ERROR)
        case ErrorKind.TRANSIENT | ErrorKind.CANCELLED:
            return int(ErrorCode.NETWORK_ERROR)
        case ErrorKind.INTEGRITY:
            return int(ErrorCode.INTEGRITY_ERROR)
        case ErrorKind.IO:
            return int(ErrorCode.IO_ERROR)


def print_engine_error(error: EngineError, console: ConsoleProtocol) -> int:
    """Print an engine error as a single line and return its exit code."""
    console.error(str(error).replace("\n", " "))
    return engine_error_exit_code(error)
