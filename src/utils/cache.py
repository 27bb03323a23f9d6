"""Disk cache for language-model scoring responses.

Scoring the same segments against the same candidates with the same model
returns the cached response, so re-running a job over identical transcripts
costs nothing and yields the same matches.
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from diskcache import Cache

logger = logging.getLogger(__name__)


class AIResponseCache:
    """Cache for AI API responses keyed by model + prompt hash.

    Example usage:
        cache = AIResponseCache(".cache/scores")

        cached = cache.get(prompt, "gemini-2.5-flash")
        if cached is None:
            cached = call_model(prompt)
            cache.set(prompt, "gemini-2.5-flash", cached)
    """

    def __init__(
        self,
        cache_dir: str = ".cache/scores",
        ttl_days: int = 30,
        max_size_gb: float = 0.5,
        enabled: bool = True,
    ):
        """Initialize AI response cache.

        Args:
            cache_dir: Directory for cache storage
            ttl_days: Time-to-live for cache entries in days
            max_size_gb: Maximum cache size in GB
            enabled: Whether caching is enabled
        """
        self.enabled = enabled
        self.cache_dir = Path(cache_dir)
        self.ttl_days = ttl_days
        self.max_size_gb = max_size_gb
        self.default_ttl = ttl_days * 24 * 60 * 60

        self.hits = 0
        self.misses = 0

        if not enabled:
            logger.info("AI response caching is DISABLED")
            self.cache = None
            return

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache = Cache(
            str(self.cache_dir),
            size_limit=int(max_size_gb * 1024 * 1024 * 1024),
            eviction_policy="least-recently-used",
        )
        logger.info(
            f"Initialized AI cache at {cache_dir} (TTL: {ttl_days} days, "
            f"Max size: {max_size_gb}GB)"
        )

    def get(self, prompt: str, model: str) -> Optional[str]:
        """Get cached AI response, or None on miss."""
        if self.cache is None:
            return None

        try:
            cached_value = self.cache.get(self._generate_key(prompt, model))
        except Exception as e:
            logger.warning(f"Cache read error: {e}")
            cached_value = None

        if cached_value is not None:
            self.hits += 1
            logger.debug(f"Cache HIT for {model} (hit rate: {self.hit_rate:.1%})")
        else:
            self.misses += 1
        return cached_value

    def set(self, prompt: str, model: str, response: str, ttl: Optional[int] = None) -> None:
        """Cache an AI response."""
        if self.cache is None:
            return

        ttl_seconds = ttl if ttl is not None else self.default_ttl
        try:
            self.cache.set(self._generate_key(prompt, model), response, expire=ttl_seconds)
        except Exception as e:
            logger.warning(f"Cache write error: {e}")

    def get_stats(self) -> dict:
        return {
            "enabled": self.cache is not None,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "entry_count": len(self.cache) if self.cache is not None else 0,
        }

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def _generate_key(self, prompt: str, model: str) -> str:
        # SHA-256 of model + prompt gives a fixed-length, filesystem-safe key
        return hashlib.sha256(f"{model}:{prompt}".encode("utf-8")).hexdigest()

    def close(self) -> None:
        """Close the cache and release resources."""
        if self.cache is not None:
            self.cache.close()


def load_cache_from_config(config: dict) -> AIResponseCache:
    """Build the scoring cache from configuration."""
    return AIResponseCache(
        cache_dir=config.get("score_cache_dir", ".cache/scores"),
        ttl_days=config.get("score_cache_ttl_days", 30),
        enabled=config.get("score_cache_enabled", True),
    )
