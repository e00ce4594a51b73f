"""
HTTP client connection pooling for OpenAI-compatible backends.

Caches OpenAI SDK client instances so repeated chat calls to the same
endpoint reuse HTTP connections instead of opening new ones.
"""

import hashlib
import threading
from typing import Dict, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from openai import OpenAI  # pragma: no cover


# Global cache keyed by (api key digest, base url, timeout)
_client_cache: Dict[Tuple[str, str, float], "OpenAI"] = {}
_cache_lock = threading.Lock()


def _key_digest(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def get_cached_client(api_key: str, base_url: str, timeout: float) -> "OpenAI":
    """
    Get or create a cached OpenAI client for one endpoint.

    Retries are disabled on the client: a failed call surfaces to the
    caller immediately.

    Args:
        api_key: API key for the endpoint
        base_url: Endpoint base URL, e.g. https://openrouter.ai/api/v1
        timeout: Request timeout in seconds

    Returns:
        Cached or newly created OpenAI client instance
    """
    cache_key = (_key_digest(api_key), base_url, float(timeout))

    with _cache_lock:
        client = _client_cache.get(cache_key)
        if client is None:
            from openai import OpenAI
            client = OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )
            _client_cache[cache_key] = client
    return client


def clear_client_cache() -> None:
    """Drop all cached clients (used by tests)."""
    with _cache_lock:
        _client_cache.clear()
