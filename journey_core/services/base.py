"""
Service-call boundary.

The interpreter only needs to know whether an external operation
succeeded. The payload is opaque; it is stored in state only when an
action declares a response mapping.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ServiceResult:
    """Outcome of an external service call."""

    ok: bool
    payload: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, payload: Any = None) -> "ServiceResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, error: str, payload: Any = None) -> "ServiceResult":
        return cls(ok=False, payload=payload, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "payload": self.payload, "error": self.error}


class ServiceCaller(ABC):
    """Calls an opaque external operation by name."""

    @abstractmethod
    async def call_service(self, name: str, params: Dict[str, Any]) -> ServiceResult:
        """
        Call a service.

        Implementations must not raise for operational failures; they
        report them as ``ServiceResult(ok=False)``.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the caller."""
        pass
