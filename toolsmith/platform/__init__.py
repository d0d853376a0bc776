"""Platform abstraction layer."""

from .detection import (
    Arch,
    Platform,
    arch_name,
    detect_arch,
    detect_platform,
    normalize_arch,
    platform_name,
)
from .files import atomic_write_text, locked_file, rewrite_locked

__all__ = [
    # detection
    "Arch",
    "Platform",
    "arch_name",
    "detect_arch",
    "detect_platform",
    "normalize_arch",
    "platform_name",
    # files
    "atomic_write_text",
    "locked_file",
    "rewrite_locked",
]
