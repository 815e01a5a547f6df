"""
Remote enhancement client.

Posts a prepared payload to ``POST /api/enhance``, retries transient
failures with exponential backoff and reports staged progress.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from luminascale.config import (
    ENHANCE_API_URL,
    ENHANCE_BACKOFF_FACTOR,
    ENHANCE_INITIAL_RETRY_DELAY,
    ENHANCE_MAX_ATTEMPTS,
    ENHANCE_TIMEOUT_SECONDS,
    HEALTH_TIMEOUT_SECONDS,
    MAX_REQUEST_BODY_BYTES,
    MAX_REQUEST_BODY_MB,
)
from luminascale.enhance.cancellation import CancellationToken, run_cancellable
from luminascale.enhance.models import (
    EnhancementRequest,
    EnhancementStyle,
    HealthStatus,
    ProgressStage,
    ProgressState,
)
from luminascale.errors import (
    AuthConfigurationError,
    DecodeError,
    FileTooLargeError,
    LuminaError,
    NetworkTimeout,
    OperationCancelled,
    QuotaExceeded,
    ServiceUnavailable,
    UnknownEnhancementError,
)
from luminascale.imaging.models import CompressedPayload, DeviceProfile, EncodedImage
from luminascale.imaging.resize import prepare_for_display

logger = logging.getLogger("luminascale.client")

ProgressCallback = Callable[[ProgressState], None]
SleepFunc = Callable[[float], Awaitable[Any]]


def classify_failure(status_code: int, body: Optional[dict[str, Any]] = None) -> LuminaError:
    """Map a non-success response to an error. Retryable classes are retried by the client."""
    body = body or {}
    detail = f"HTTP {status_code}: {body.get('error') or 'no error message'}"
    if status_code == 429:
        return QuotaExceeded(detail=detail)
    if status_code == 504:
        return NetworkTimeout(detail=detail)
    if status_code >= 500 or body.get("retryable"):
        return ServiceUnavailable(detail=detail)
    if status_code in (401, 403):
        return AuthConfigurationError(detail=detail)
    if status_code == 413:
        return FileTooLargeError(detail=detail)
    if status_code in (400, 415, 422):
        return DecodeError(detail=detail)
    return UnknownEnhancementError(detail=detail)


def upload_progress(attempt: int) -> float:
    """Starting percent of an attempt; creeps forward on retries, capped at 30."""
    return min(10 + (attempt - 1) * 5, 30)


class EnhancementClient:
    """Async client for the remote enhancement endpoint."""

    def __init__(
        self,
        base_url: str = ENHANCE_API_URL,
        *,
        timeout: float = ENHANCE_TIMEOUT_SECONDS,
        max_attempts: int = ENHANCE_MAX_ATTEMPTS,
        initial_delay: float = ENHANCE_INITIAL_RETRY_DELAY,
        backoff_factor: float = ENHANCE_BACKOFF_FACTOR,
        max_body_bytes: int = MAX_REQUEST_BODY_BYTES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_body_bytes = max_body_bytes
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        logger.info("Enhancement client initialized with base URL: %s", self.base_url)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def retry_delay(self, attempt: int) -> float:
        """Wait after a failed attempt (1-based): d, 1.5d, 2.25d, ..."""
        return self.initial_delay * self.backoff_factor ** (attempt - 1)

    async def enhance(
        self,
        payload: CompressedPayload,
        style: EnhancementStyle = EnhancementStyle.BALANCED,
        on_progress: Optional[ProgressCallback] = None,
        *,
        device_profile: Optional[DeviceProfile] = None,
        token: Optional[CancellationToken] = None,
    ) -> EncodedImage:
        """
        Enhance a payload, retrying transient failures.

        Returns the result after the display resize. Raises the last observed
        error (a LuminaError with a user-presentable message) once retries are
        exhausted or on the first terminal failure, and OperationCancelled if
        the token fires.
        """
        device_profile = device_profile or DeviceProfile.desktop()
        request = EnhancementRequest(payload=payload, style=EnhancementStyle(style))
        body = json.dumps(request.to_json()).encode("utf-8")
        if len(body) > self.max_body_bytes:
            raise FileTooLargeError(
                detail=f"Request body {len(body)} bytes exceeds {MAX_REQUEST_BODY_MB}MB"
            )

        highest = 0.0

        def report(stage: ProgressStage, percent: float) -> None:
            # never move the bar backwards across retries
            nonlocal highest
            highest = max(highest, percent)
            if on_progress is not None:
                on_progress(ProgressState(stage=stage, percent=highest))

        last_error: Optional[LuminaError] = None
        for attempt in range(1, self.max_attempts + 1):
            if token is not None:
                token.raise_if_cancelled()
            base = upload_progress(attempt)
            report(ProgressStage.UPLOADING, base)
            try:
                encoded = await self._attempt(body, token, lambda: report(ProgressStage.PROCESSING, base + 30))
            except OperationCancelled:
                logger.info("Enhancement cancelled during attempt %s", attempt)
                raise
            except LuminaError as e:
                last_error = e
                logger.warning(
                    "Attempt %s/%s failed: %s (%s)", attempt, self.max_attempts, e.error_code, e.detail,
                )
                if not e.retryable:
                    break
                if attempt < self.max_attempts:
                    delay = self.retry_delay(attempt)
                    logger.info("Waiting %.1fs before retry...", delay)
                    report(ProgressStage.PROCESSING, min(15 + attempt * 10, 50))
                    await run_cancellable(self._sleep(delay), token)
                continue

            report(ProgressStage.FINALIZING, 85)
            result = prepare_for_display(encoded, device_profile)
            report(ProgressStage.FINALIZING, 100)
            logger.info("Enhancement succeeded on attempt %s", attempt)
            return result

        raise last_error or UnknownEnhancementError(detail="No attempts were made")

    async def check_health(self) -> HealthStatus:
        """GET /api/health. Any failure reports a degraded, unreachable service."""
        try:
            response = await self._client.get("/api/health", timeout=HEALTH_TIMEOUT_SECONDS)
            if response.is_success:
                data = response.json()
                return HealthStatus(
                    status=data.get("status", "degraded"),
                    has_api_key=bool(data.get("hasApiKey")),
                    api_status=data.get("apiStatus", "unreachable"),
                    timestamp=data.get("timestamp"),
                )
            logger.warning("Enhancement service health check returned %s", response.status_code)
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Enhancement service health check failed: %s", e)
        return HealthStatus(
            status="degraded",
            has_api_key=False,
            api_status="unreachable",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "EnhancementClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        body: bytes,
        token: Optional[CancellationToken],
        on_response: Callable[[], None],
    ) -> EncodedImage:
        try:
            response = await run_cancellable(
                self._client.post(
                    "/api/enhance",
                    content=body,
                    headers={"Content-Type": "application/json"},
                ),
                token,
                self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise NetworkTimeout(detail=f"No response within {self.timeout:.0f}s") from e
        except httpx.TimeoutException as e:
            raise NetworkTimeout(detail=f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ServiceUnavailable(detail=f"Network failure: {e}") from e

        on_response()
        text = response.text
        if not text.strip():
            raise ServiceUnavailable(detail=f"Empty response (HTTP {response.status_code})")
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ServiceUnavailable(detail=f"Invalid response format (HTTP {response.status_code})") from e
        if not isinstance(data, dict):
            raise ServiceUnavailable(detail="Invalid response format")

        if not response.is_success:
            raise classify_failure(response.status_code, data)

        enhanced = data.get("enhancedImage")
        if not enhanced or not isinstance(enhanced, str):
            raise ServiceUnavailable(detail="No enhanced image in response")
        try:
            return EncodedImage.from_data_url(enhanced)
        except ValueError as e:
            raise ServiceUnavailable(detail=f"Malformed enhanced image: {e}") from e


# Singleton
_enhancement_client: Optional[EnhancementClient] = None


def get_enhancement_client() -> EnhancementClient:
    global _enhancement_client
    if _enhancement_client is None:
        _enhancement_client = EnhancementClient()
    return _enhancement_client
