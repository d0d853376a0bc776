"""Core types: results, errors, configuration and cancellation."""

from .config import ConfigError, EngineConfig, load_config
from .context import Context
from .errors import EngineError, ErrorCode, ErrorKind
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ConfigError",
    "EngineConfig",
    "load_config",
    # context
    "Context",
    # errors
    "EngineError",
    "ErrorCode",
    "ErrorKind",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
