"""Remote service calls over HTTP."""

from typing import Any, Dict, Optional

import httpx
import structlog

from journey_core.config import ServiceSettings
from journey_core.services.base import ServiceCaller, ServiceResult


logger = structlog.get_logger()


class HttpServiceCaller(ServiceCaller):
    """
    Posts service calls to ``{base_url}/services/{name}``.

    The request body is ``{"params": {...}}``. A 2xx response is a success
    and its JSON body (or its ``result`` field when present) is the payload.
    Transport errors and non-2xx responses are failures.
    """

    def __init__(
        self,
        settings: Optional[ServiceSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or ServiceSettings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
            if self.settings.api_key:
                headers["Authorization"] = f"Bearer {self.settings.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url or "",
                timeout=self.settings.timeout_seconds,
                headers=headers,
            )
        return self._client

    async def call_service(self, name: str, params: Dict[str, Any]) -> ServiceResult:
        client = self._get_client()

        try:
            response = await client.post(f"/services/{name}", json={"params": params})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "service_call_rejected",
                service=name,
                status_code=e.response.status_code,
            )
            return ServiceResult.failure(
                f"HTTP {e.response.status_code}",
                payload=_safe_json(e.response),
            )
        except httpx.HTTPError as e:
            logger.error("service_call_failed", service=name, error=str(e))
            return ServiceResult.failure(str(e))

        body = _safe_json(response)
        if isinstance(body, dict) and "result" in body:
            body = body["result"]
        return ServiceResult.success(body)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
