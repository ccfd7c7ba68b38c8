"""HTTP client for the external prediction oracle."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from shared.errors import UpstreamUnavailable
from shared.models.rain import OracleRequest

logger = structlog.get_logger(__name__)


class OracleClient:
    """Posts current intensity/duration to the oracle and returns its JSON.

    Every call is bounded by ``timeout_s``. There is no retry here;
    a failed call surfaces as :class:`UpstreamUnavailable`.
    """

    def __init__(
        self,
        url: str,
        timeout_s: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout_s
        self._transport = transport

    async def predict(self, request: OracleRequest) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=request.model_dump())
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            logger.error("oracle_timeout", url=self.url, timeout_s=self.timeout)
            raise UpstreamUnavailable(f"oracle timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error("oracle_bad_status", url=self.url, status=e.response.status_code)
            raise UpstreamUnavailable(f"oracle answered HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("oracle_unreachable", url=self.url, error=str(e))
            raise UpstreamUnavailable(f"oracle unreachable: {e}") from e
        except ValueError as e:
            logger.error("oracle_bad_json", url=self.url, error=str(e))
            raise UpstreamUnavailable("oracle returned invalid JSON") from e

        logger.debug("oracle_prediction", rain_intensity=request.rain_intensity, duration=request.duration)
        return data
