"""LLM client creation factory.

This module provides a centralized way to create the HTTP client used for the
Gemini REST API, to ensure consistent configuration of API keys, base URLs,
and timeouts.
"""

import os
from typing import Any, Optional

import httpx
from loguru import logger

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = 60.0


def mask_api_key(api_key: Optional[str]) -> str:
    """Return a log-safe representation of an API key."""
    if api_key and len(api_key) > 8:
        return f"{api_key[:4]}...{api_key[-4:]}"
    return "None" if not api_key else "***"


def create_gemini_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Create and configure an async HTTP client for the Gemini API.

    Args:
        api_key: The API key. If None, tries the GEMINI_API_KEY env var.
        base_url: The base URL. If None, tries GEMINI_BASE_URL, then the public endpoint.
        timeout: Request timeout in seconds (defaults to 60).
        **kwargs: Additional arguments to pass to the httpx.AsyncClient constructor
            (e.g. ``transport`` in tests).

    Returns:
        Configured httpx.AsyncClient. The API key is sent per request as the
        ``key`` query parameter.
    """
    final_api_key = api_key or os.getenv("GEMINI_API_KEY")
    final_base_url = base_url or os.getenv("GEMINI_BASE_URL") or DEFAULT_BASE_URL
    final_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT

    logger.debug(
        f"Creating Gemini client: base_url={final_base_url}, "
        f"api_key={mask_api_key(final_api_key)}, timeout={final_timeout}"
    )

    params = {"key": final_api_key} if final_api_key else None
    return httpx.AsyncClient(
        base_url=final_base_url,
        timeout=final_timeout,
        params=params,
        headers={"Content-Type": "application/json"},
        **kwargs,
    )
