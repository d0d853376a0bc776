"""Operating system and CPU architecture detection.

Names follow the conventions used in release asset filenames
(``linux``/``darwin``, ``amd64``/``arm64``), which plugins then remap through
their own lookup tables.
"""

from __future__ import annotations

import platform as _platform
import sys as _sys
from enum import Enum
from functools import lru_cache

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result

__all__ = [
    "Platform",
    "Arch",
    "detect_platform",
    "detect_arch",
    "normalize_arch",
    "platform_name",
    "arch_name",
]


class Platform(Enum):
    """Operating system platform."""

    LINUX = "linux"
    DARWIN = "darwin"
    FREEBSD = "freebsd"
    WINDOWS = "windows"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @property
    def is_supported(self) -> bool:
        """Install layouts are only defined for Unix-like hosts."""
        return self in (Platform.LINUX, Platform.DARWIN, Platform.FREEBSD)


class Arch(Enum):
    """CPU architecture."""

    AMD64 = "amd64"
    I386 = "386"
    ARMV6L = "armv6l"
    ARM64 = "arm64"
    PPC64LE = "ppc64le"
    LOONG64 = "loong64"
    RISCV64 = "riscv64"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


_ARCH_ALIASES: dict[str, Arch] = {
    "amd64": Arch.AMD64,
    "x86_64": Arch.AMD64,
    "x64": Arch.AMD64,
    "386": Arch.I386,
    "i386": Arch.I386,
    "i686": Arch.I386,
    "x86": Arch.I386,
    "arm": Arch.ARMV6L,
    "armv6l": Arch.ARMV6L,
    "armv7l": Arch.ARMV6L,
    "arm64": Arch.ARM64,
    "aarch64": Arch.ARM64,
    "ppc64le": Arch.PPC64LE,
    "loong64": Arch.LOONG64,
    "loongarch64": Arch.LOONG64,
    "riscv64": Arch.RISCV64,
}


@lru_cache(maxsize=1)
def detect_platform() -> Platform:
    """Detect the current operating system (cached)."""
    system = _sys.platform.lower()
    if system.startswith("linux"):
        return Platform.LINUX
    if system.startswith("darwin"):
        return Platform.DARWIN
    if system.startswith("freebsd"):
        return Platform.FREEBSD
    if system.startswith(("win32", "cygwin", "msys")):
        return Platform.WINDOWS
    return Platform.UNKNOWN


def normalize_arch(machine: str) -> Arch:
    """Map a machine identifier (``uname -m`` style) to an Arch."""
    return _ARCH_ALIASES.get(machine.strip().lower(), Arch.UNKNOWN)


def detect_arch(override: str | None = None) -> Arch:
    """Detect the CPU architecture.

    Args:
        override: Forced architecture name (from ``ASDF_OVERWRITE_ARCH``),
            used for deterministic cross-arch testing

    Returns:
        Normalized Arch, UNKNOWN if unrecognized
    """
    if override:
        return normalize_arch(override)
    return normalize_arch(_platform.machine())


def platform_name(platform: Platform | None = None) -> Result[str, EngineError]:
    """Return the running platform's name, or a typed unsupported error."""
    current = platform or detect_platform()
    if not current.is_supported:
        return Err(EngineError(ErrorKind.PLATFORM, f"unsupported platform: {current}"))
    return Ok(current.value)


def arch_name(override: str | None = None) -> Result[str, EngineError]:
    """Return the running architecture's name, or a typed unsupported error."""
    arch = detect_arch(override)
    if arch == Arch.UNKNOWN:
        raw = override or _platform.machine()
        return Err(EngineError(ErrorKind.PLATFORM, f"unsupported architecture: {raw}"))
    return Ok(arch.value)
