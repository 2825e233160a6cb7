"""ServiceResult and ServiceError — the service-layer return contract.

INVARIANT: Service methods return ServiceResult instead of raising.
The CLI renders it for humans or as JSON and maps errors to exit codes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult.

    ``code`` is the name of the exit code (e.g. ``"MAC_MISMATCH"``);
    ``detail["exit_code"]`` carries its numeric value.
    """

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Return type for service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"decrypt"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing spans).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @property
    def exit_code(self) -> int:
        """Process exit status for this result (0 on success)."""
        if self.ok:
            return 0
        if self.error is None:
            return 1
        return int(self.error.detail.get("exit_code", 1))
