"""HTTP client for the external scholarship discovery service."""

from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from magpie.config import get_settings
from magpie.engines.discovery.base import DiscoveryBatch, DiscoveryInvoker, DiscoveryProfile
from magpie.engines.http_client import ManagedHttpClient
from magpie.errors import UpstreamUnavailable

settings = get_settings()
logger = structlog.get_logger()


class HttpDiscoveryInvoker(DiscoveryInvoker):
    """Posts a profile to the discovery service and parses its batch."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        secret: Optional[str] = None,
    ):
        self.url = url if url is not None else settings.discovery_service_url
        secret = secret if secret is not None else settings.pipeline_secret
        headers = {"Authorization": f"Bearer {secret}"} if secret else None
        self._http = ManagedHttpClient(
            timeout=timeout if timeout is not None else settings.discovery_timeout_seconds,
            json_accept=True,
            headers=headers,
        )

    @property
    def is_available(self) -> bool:
        return bool(self.url)

    async def discover(self, profile: DiscoveryProfile) -> DiscoveryBatch:
        if not self.is_available:
            raise UpstreamUnavailable("Discovery service URL is not configured")

        client = await self._http.get_client()
        payload = profile.model_dump(by_alias=True)

        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
            batch = DiscoveryBatch.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Discovery service returned an error",
                status=e.response.status_code,
                city=profile.city,
                state=profile.state,
            )
            raise UpstreamUnavailable(
                f"Discovery service responded with {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Discovery service unreachable", error=str(e))
            raise UpstreamUnavailable(f"Discovery service unreachable: {e}") from e
        except (ValueError, ValidationError) as e:
            logger.warning("Discovery service returned an unusable payload", error=str(e))
            raise UpstreamUnavailable("Discovery service returned an unusable payload") from e

        logger.info(
            "Discovery batch received",
            city=profile.city,
            state=profile.state,
            candidates=len(batch.candidates),
            upstream_errors=len(batch.errors),
        )
        return batch

    async def close(self) -> None:
        await self._http.close()
