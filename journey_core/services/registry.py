"""In-process service handlers."""

from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from journey_core.services.base import ServiceCaller, ServiceResult


logger = structlog.get_logger()


ServiceHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class LocalServiceRegistry(ServiceCaller):
    """
    Service caller backed by registered async handlers.

    A handler's return value becomes the success payload; any exception it
    raises is reported as a failed result. Unregistered names fall through
    to the optional fallback caller, or fail.
    """

    def __init__(self, fallback: Optional[ServiceCaller] = None):
        self._handlers: Dict[str, ServiceHandler] = {}
        self._fallback = fallback

    def register(self, name: str, handler: ServiceHandler) -> None:
        """Register a handler for an operation name."""
        self._handlers[name] = handler
        logger.debug("service_handler_registered", service=name)

    def unregister(self, name: str) -> bool:
        return self._handlers.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._handlers

    async def call_service(self, name: str, params: Dict[str, Any]) -> ServiceResult:
        handler = self._handlers.get(name)

        if handler is None:
            if self._fallback is not None:
                return await self._fallback.call_service(name, params)
            logger.warning("service_not_registered", service=name)
            return ServiceResult.failure(f"Service not registered: {name}")

        try:
            payload = await handler(params)
        except Exception as e:
            logger.error("service_handler_failed", service=name, error=str(e))
            return ServiceResult.failure(str(e))

        if isinstance(payload, ServiceResult):
            return payload
        return ServiceResult.success(payload)

    async def close(self) -> None:
        if self._fallback is not None:
            await self._fallback.close()
