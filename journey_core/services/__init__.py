"""External service-call boundary."""

from journey_core.services.base import ServiceCaller, ServiceResult
from journey_core.services.http import HttpServiceCaller
from journey_core.services.registry import LocalServiceRegistry, ServiceHandler

__all__ = [
    "HttpServiceCaller",
    "LocalServiceRegistry",
    "ServiceCaller",
    "ServiceHandler",
    "ServiceResult",
]
