"""Base service class for business logic."""

from __future__ import annotations

import logging

from dispatch_service.infra.logging import get_lazy_logger


class BaseService:
    """Base class for service classes.

    Loggers:
        - self.logger: Standard logger for INFO/WARNING/ERROR
        - self._lazy: Lazy logger for DEBUG (callables only run when DEBUG is enabled)

    Example:
        class DigestService(BaseService):
            def __init__(self, backend: NotificationBackend):
                super().__init__()
                self.backend = backend

            async def pending(self) -> list[Notification]:
                self.logger.info("Loading pending notifications")
                return await self.backend.get_all_pending_notifications()
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        """Initialize base service with loggers.

        Args:
            logger: Optional logger to use instead of one named after the class.
        """
        class_name = self.__class__.__name__
        self.logger = logger or logging.getLogger(class_name)
        self._lazy = get_lazy_logger(self.logger.name)
