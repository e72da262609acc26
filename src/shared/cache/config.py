"""Cache policy.

The cache layer never reads the environment itself; callers derive a
``CacheConfig`` from their own settings and hand it in.
"""

from dataclasses import dataclass

MIN_CACHE_TTL = 120
MAX_CACHE_TTL = 300
TTL_JITTER_SECONDS = 30


def clamp_ttl(ttl: int) -> int:
    """Bound a configured TTL to the allowed [120, 300] second window."""
    return max(MIN_CACHE_TTL, min(MAX_CACHE_TTL, int(ttl)))


@dataclass(frozen=True)
class CacheConfig:
    ttl: int = MAX_CACHE_TTL
    key_prefix: str = "reviews"
    enabled: bool = True
    refresh_threshold: float = 0.8
    scan_batch_size: int = 500

    def __post_init__(self) -> None:
        object.__setattr__(self, "ttl", clamp_ttl(self.ttl))
