"""Tests for toolsmith.platform.detection module."""

import pytest

from toolsmith.core.errors import ErrorKind
from toolsmith.core.result import Err, Ok
from toolsmith.platform.detection import (
    Arch,
    Platform,
    arch_name,
    detect_arch,
    detect_platform,
    normalize_arch,
    platform_name,
)


class TestPlatform:
    """Tests for Platform enum."""

    def test_str(self) -> None:
        assert str(Platform.LINUX) == "linux"
        assert str(Platform.DARWIN) == "darwin"

    def test_is_supported(self) -> None:
        assert Platform.LINUX.is_supported
        assert Platform.DARWIN.is_supported
        assert Platform.FREEBSD.is_supported
        assert not Platform.WINDOWS.is_supported
        assert not Platform.UNKNOWN.is_supported

    def test_detect_is_cached(self) -> None:
        assert detect_platform() is detect_platform()


class TestNormalizeArch:
    """Machine identifiers map to release-asset names."""

    @pytest.mark.parametrize(
        ("machine", "expected"),
        [
            ("x86_64", Arch.AMD64),
            ("AMD64", Arch.AMD64),
            ("aarch64", Arch.ARM64),
            ("arm64", Arch.ARM64),
            ("i686", Arch.I386),
            ("armv7l", Arch.ARMV6L),
            ("ppc64le", Arch.PPC64LE),
            ("loongarch64", Arch.LOONG64),
            ("riscv64", Arch.RISCV64),
            ("sparc", Arch.UNKNOWN),
        ],
    )
    def test_aliases(self, machine: str, expected: Arch) -> None:
        assert normalize_arch(machine) == expected

    def test_override_wins(self) -> None:
        """An override replaces the host machine."""
        assert detect_arch("arm64") == Arch.ARM64
        assert detect_arch("x86_64") == Arch.AMD64


class TestNames:
    """Result-returning name lookups."""

    def test_platform_name_supported(self) -> None:
        assert platform_name(Platform.DARWIN) == Ok("darwin")

    def test_platform_name_unsupported(self) -> None:
        result = platform_name(Platform.WINDOWS)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.PLATFORM
        assert result.error.message == "unsupported platform: windows"

    def test_arch_name_override(self) -> None:
        assert arch_name("aarch64") == Ok("arm64")

    def test_arch_name_unknown(self) -> None:
        result = arch_name("sparc64")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.PLATFORM
        assert "sparc64" in result.error.message
