"""Application services coordinating plugins, the ledger and pin files."""

from toolsmith.services.toolchains import (
    LATEST,
    RefreshOutcome,
    RefreshReport,
    ToolchainService,
)

__all__ = [
    "LATEST",
    "RefreshOutcome",
    "RefreshReport",
    "ToolchainService",
]
