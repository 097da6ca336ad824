"""Gemini generateContent transport with rate-limit aware retries.

Failure classification is a pure function (``classify_failure``) so the
daily-quota vs per-minute decision can be tested against literal error
payloads; ``GeminiTransport.send`` only drives the loop.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict

from src.extraction.errors import ErrorKind, ExtractionError
from src.utils.config import GeminiConfig
from src.utils.llm_client import create_gemini_client
from src.utils.throttle import RequestThrottler

RATE_LIMIT_STATUS = 429
RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"

_DAILY_TEXT_RE = re.compile(r"\bdaily\b|\bper[\s_-]?day\b|PerDay|requests?/day", re.IGNORECASE)
_DELAY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s?\s*$")


class FailureDecision(BaseModel):
    """Outcome of classifying a non-2xx response."""

    model_config = ConfigDict(frozen=True)

    retryable: bool
    kind: Optional[ErrorKind] = None
    wait_hint: Optional[float] = None
    message: str = ""

    @classmethod
    def fatal(cls, kind: ErrorKind, message: str) -> "FailureDecision":
        return cls(retryable=False, kind=kind, message=message)

    @classmethod
    def retry(cls, wait_hint: Optional[float], message: str) -> "FailureDecision":
        return cls(retryable=True, wait_hint=wait_hint, message=message)


def parse_retry_delay(value: Any) -> Optional[float]:
    """Parse a protobuf duration string such as ``"13s"`` into seconds."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if value >= 0 else None
    match = _DELAY_RE.match(str(value))
    if not match:
        return None
    return float(match.group(1))


def _load_error_envelope(error_body: str | Dict[str, Any] | None) -> Dict[str, Any]:
    if isinstance(error_body, dict):
        data: Any = error_body
    else:
        try:
            data = json.loads(error_body or "")
        except json.JSONDecodeError:
            return {"message": str(error_body or ""), "details": []}

    if not isinstance(data, dict):
        return {"message": str(error_body or ""), "details": []}

    error = data.get("error", data)
    if not isinstance(error, dict):
        return {"message": str(error), "details": []}

    details = error.get("details") or []
    if not isinstance(details, list):
        details = []
    return {
        "message": str(error.get("message") or ""),
        "details": [d for d in details if isinstance(d, dict)],
    }


def _quota_entries(details: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten quota violations; Gemini nests them under QuotaFailure.violations."""
    entries: List[Dict[str, Any]] = []
    for detail in details:
        if "quotaId" in detail or "quotaValue" in detail:
            entries.append(detail)
        for violation in detail.get("violations") or []:
            if isinstance(violation, dict) and (
                "quotaId" in violation or "quotaValue" in violation
            ):
                entries.append(violation)
    return entries


def _quota_window(entry: Dict[str, Any], ceiling: str) -> Optional[str]:
    """Return "day", "minute" or None for one quota entry.

    The quotaId names the window when present; the daily ceiling value is
    only consulted for entries whose quotaId does not.
    """
    quota_id = str(entry.get("quotaId", "")).lower()
    if "perday" in quota_id:
        return "day"
    if "perminute" in quota_id:
        return "minute"
    if str(entry.get("quotaValue", "")).strip() == ceiling:
        return "day"
    return None


def classify_failure(
    status_code: int,
    error_body: str | Dict[str, Any] | None,
    *,
    daily_quota_ceiling: int = 20,
) -> FailureDecision:
    """Decide whether a failed response is retryable.

    Only 429 responses can be retried, and only when they are per-minute
    limits. Structured quota identifiers win over message text; the text
    heuristics cover payloads without quota details.
    """
    envelope = _load_error_envelope(error_body)
    message = envelope["message"]

    if status_code != RATE_LIMIT_STATUS:
        return FailureDecision.fatal(
            ErrorKind.TRANSPORT_FAILURE,
            f"Gemini API failed: {status_code} - {message or error_body}",
        )

    details = envelope["details"]
    quota_entries = _quota_entries(details)
    ceiling = str(daily_quota_ceiling)

    windows = [_quota_window(entry, ceiling) for entry in quota_entries]
    daily_from_details = "day" in windows
    per_minute_from_details = "minute" in windows

    if daily_from_details:
        is_daily = True
    elif per_minute_from_details:
        is_daily = False
    else:
        is_daily = bool(_DAILY_TEXT_RE.search(message)) or bool(
            re.search(rf"\blimit:\s*{re.escape(ceiling)}\b", message)
        )

    if is_daily:
        return FailureDecision.fatal(
            ErrorKind.DAILY_QUOTA_EXCEEDED,
            f"Gemini API daily quota exceeded ({daily_quota_ceiling} requests/day). "
            "Retry after the quota resets or upgrade the plan.",
        )

    wait_hint = None
    for detail in details:
        if detail.get("@type") == RETRY_INFO_TYPE:
            wait_hint = parse_retry_delay(detail.get("retryDelay"))
            break

    return FailureDecision.retry(wait_hint, message or "Rate limit hit (429)")


class GeminiTransport:
    """Send prompts to Gemini generateContent with throttling and bounded retries."""

    def __init__(
        self,
        config: Optional[GeminiConfig] = None,
        throttler: Optional[RequestThrottler] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.config = config or GeminiConfig()
        self.throttler = throttler or RequestThrottler(self.config.min_interval_seconds)
        self._owns_client = client is None
        self.client = client or create_gemini_client(
            api_key=self.config.api_key or None,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
        )
        self._sleep = sleep_fn or asyncio.sleep
        self.endpoint = f"/models/{self.config.model}:generateContent"

        logger.info(
            "Initialized GeminiTransport",
            model=self.config.model,
            min_interval=self.throttler.min_interval,
            max_attempts=self.config.max_attempts,
        )

    @staticmethod
    def build_payload(prompt: str) -> Dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    async def send(self, prompt: str) -> str:
        """Send one prompt and return the raw response body.

        Raises:
            ExtractionError: On daily quota exhaustion, exhausted rate-limit
                retries, non-retryable HTTP errors, or network failure.
        """
        max_attempts = max(1, self.config.max_attempts)
        payload = self.build_payload(prompt)
        attempt = 0

        while True:
            await self.throttler.acquire()
            attempt += 1
            logger.info(
                f"Calling Gemini for extraction: {self.config.model}",
                attempt=attempt,
                max_attempts=max_attempts,
                prompt_chars=len(prompt),
            )

            try:
                response = await self.client.post(self.endpoint, json=payload)
            except httpx.TransportError as exc:
                logger.error("Gemini request failed before a response", error=str(exc))
                raise ExtractionError(
                    ErrorKind.NETWORK_FAILURE,
                    f"Network failure calling Gemini API: {exc}",
                ) from exc

            if response.is_success:
                self.throttler.touch()
                logger.info("Gemini API response received", status=response.status_code)
                return response.text

            body = response.text
            decision = classify_failure(
                response.status_code,
                body,
                daily_quota_ceiling=self.config.daily_quota_ceiling,
            )

            if not decision.retryable:
                # Message may contain raw JSON braces; keep it out of str.format.
                logger.bind(
                    status=response.status_code,
                    kind=decision.kind.value if decision.kind else None,
                ).error(decision.message)
                raise ExtractionError(
                    decision.kind or ErrorKind.TRANSPORT_FAILURE,
                    decision.message,
                    status_code=response.status_code,
                    body=body,
                )

            if attempt >= max_attempts:
                logger.error(
                    "Gemini API rate limit exceeded after retries",
                    status=response.status_code,
                    attempts=attempt,
                )
                raise ExtractionError(
                    ErrorKind.RATE_LIMIT_EXCEEDED_AFTER_RETRIES,
                    "Gemini API rate limit exceeded. Please wait a minute and try again. "
                    f"Status: {response.status_code}",
                    status_code=response.status_code,
                    body=body,
                    retry_after=decision.wait_hint,
                )

            wait = decision.wait_hint if decision.wait_hint is not None else float(2**attempt)
            logger.warning(
                f"Rate limit hit (429). Attempt {attempt}/{max_attempts}. "
                f"Waiting {wait:.1f}s before retry",
            )
            await self._sleep(wait)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
