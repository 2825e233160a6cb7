"""BaseService — shared foundation for sealctl services.

Every service receives the resolved :class:`SealSettings` at construction
time. Domain and infrastructure code raise :class:`SealError` subclasses;
services catch them at the boundary and return a failed ServiceResult.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sealctl.services.result import ServiceError, ServiceResult

if TYPE_CHECKING:
    from sealctl.config.settings import SealSettings
    from sealctl.domain.errors import SealError

logger = logging.getLogger(__name__)


class BaseService:
    """Base for service-layer classes.

    Usage::

        class DecryptService(BaseService):
            def decrypt_file(self, path: str, ...) -> ServiceResult:
                try:
                    ...
                except SealError as exc:
                    return self._failure("decrypt", exc, path=path)
    """

    def __init__(self, settings: SealSettings) -> None:
        self._settings = settings

    @staticmethod
    def _failure(op: str, exc: SealError, **detail: Any) -> ServiceResult:
        """Convert *exc* into a failed result carrying its exit code."""
        logger.debug("%s failed: %s", op, exc, exc_info=True)
        return ServiceResult(
            ok=False,
            op=op,
            error=ServiceError(
                code=exc.exit_code.name,
                message=str(exc),
                detail={"exit_code": int(exc.exit_code), **detail},
            ),
        )
