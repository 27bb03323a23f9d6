"""Paid video-data provider (RapidAPI YouTube downloader).

Resolves direct media URLs for YouTube videos so audio and video can be
fetched without hitting YouTube's bot checks from this host.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from services.rate_limited_client import RateLimitedClient, SlidingWindowRateLimiter
from utils.retry import NetworkError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "youtube-video-fast-downloader-24-7.p.rapidapi.com"
URL_KEYS = ("url", "download_url", "file", "link")
MEDIA_DOWNLOAD_TIMEOUT = 300.0


class VideoDataProvider:
    """Thin wrapper over the rate-limited client for the provider's endpoints."""

    def __init__(
        self,
        api_key: str,
        host: str = DEFAULT_HOST,
        max_requests_per_minute: int = 13,
        min_request_interval: float = 2.0,
        client: Optional[RateLimitedClient] = None,
    ):
        self.api_key = api_key
        self.host = host
        self.client = client or RateLimitedClient(
            base_url=f"https://{host}",
            headers={"X-RapidAPI-Key": api_key, "X-RapidAPI-Host": host},
            limiter=SlidingWindowRateLimiter(
                max_requests=max_requests_per_minute,
                min_interval=min_request_interval,
            ),
        )

    @classmethod
    def from_config(cls, config: dict) -> "VideoDataProvider":
        return cls(
            api_key=config.get("rapidapi_key") or "",
            host=config.get("rapidapi_host") or DEFAULT_HOST,
            max_requests_per_minute=config.get("provider_max_requests_per_minute", 13),
            min_request_interval=config.get("provider_min_request_interval", 2.0),
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def get_audio_url(self, video_id: str) -> Optional[str]:
        """Resolve a direct audio download URL, or None if the provider has none."""
        data = await self.client.call(f"/download_audio/{video_id}")
        url = self._extract_url(data)
        if url:
            logger.info(f"Resolved provider audio URL for {video_id}")
        else:
            logger.warning(f"Provider returned no audio URL for {video_id}")
        return url

    async def get_video_url(
        self, video_id: str, quality: str = "720", is_short: bool = False
    ) -> Optional[str]:
        """Resolve a direct video download URL at the requested quality."""
        endpoint = f"/download_short/{video_id}" if is_short else f"/download_video/{video_id}"
        data = await self.client.call(endpoint, params={"quality": quality})
        return self._extract_url(data)

    async def download_media(self, url: str, output_path: Path) -> Path:
        """Stream a resolved media URL to disk.

        Media CDN downloads are not provider API calls and are not
        counted against the request quota.
        """
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with httpx.AsyncClient(
                timeout=MEDIA_DOWNLOAD_TIMEOUT, follow_redirects=True
            ) as http:
                async with http.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(output_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            output_path.unlink(missing_ok=True)
            raise NetworkError(f"Media download failed: {e}") from e

        if not output_path.exists() or output_path.stat().st_size == 0:
            output_path.unlink(missing_ok=True)
            raise NetworkError("Media download produced an empty file")
        return output_path

    @staticmethod
    def _extract_url(data: dict) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        for key in URL_KEYS:
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    async def aclose(self) -> None:
        await self.client.aclose()
