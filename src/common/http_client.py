"""Shared HTTP helpers for registry lookups.

Retries transient failures, caches successful responses for a short TTL and
never raises for network problems: callers receive status code 0 instead.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

# url/headers -> ((status, headers, text), stored_at)
_http_cache: Dict[str, Tuple[Tuple[int, Dict[str, str], str], float]] = {}


def _get_cache_key(url: str, headers: Optional[Dict[str, str]]) -> str:
    headers_str = str(sorted(headers.items())) if headers else ""
    return f"GET:{url}:{headers_str}"


def clear_cache() -> None:
    """Drop every cached response."""
    _http_cache.clear()


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], str]:
    """GET with timeout, retries and caching.

    Returns:
        Tuple of (status_code, headers_dict, body_text); status 0 when every attempt failed
    """
    cache_key = _get_cache_key(url, headers)
    safe_target = safe_url(url)

    cached = _http_cache.get(cache_key)
    if cached is not None and time.time() - cached[1] < Constants.HTTP_CACHE_TTL_SEC:
        if is_debug_enabled(logger):
            logger.debug("HTTP cache hit", extra=extra_context(
                event="cache_hit", component="http_client", action="GET", target=safe_target
            ))
        return cached[0]

    last_error = None
    for attempt in range(Constants.HTTP_RETRY_MAX):
        with Timer() as t:
            try:
                response = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, headers=headers, **kwargs)
            except requests.Timeout:
                last_error = "timeout"
                continue
            except requests.RequestException as exc:
                last_error = str(exc)
                continue

        if is_debug_enabled(logger):
            logger.debug("HTTP response", extra=extra_context(
                event="http_response", component="http_client", action="GET",
                status_code=response.status_code, duration_ms=t.duration_ms(),
                target=safe_target, attempt=attempt + 1,
            ))
        result = (response.status_code, dict(response.headers), response.text)
        if response.status_code < 500:
            _http_cache[cache_key] = (result, time.time())
            return result
        last_error = f"HTTP {response.status_code}"

    logger.warning("GET %s failed after %d attempts: %s", safe_target, Constants.HTTP_RETRY_MAX, last_error)
    return 0, {}, ""


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """GET and parse a JSON body.

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = robust_get(url, headers=headers, **kwargs)
    if status_code == 200 and text:
        try:
            return status_code, response_headers, json.loads(text)
        except json.JSONDecodeError:
            logger.debug("JSON decode error for %s", safe_url(url))
    return status_code, response_headers, None
