"""Orchestration of a single virtual try-on run."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional
from urllib.parse import urlparse

from styleme.config import logger
from styleme.core.entitlements import EntitlementGate
from styleme.core.errors import EntitlementError, InvalidResultError, TryOnError
from styleme.core.image_encoding import ImageEncoder
from styleme.core.image_validation import ImageValidator
from styleme.core.job_poller import JobPoller
from styleme.core.job_submitter import JobSubmitter
from styleme.core.preferences_ops import TryOnPreferencesStore
from styleme.core.provider import PROVIDER_NAME
from styleme.core.user_history_ops import TryOnHistory
from styleme.models import TryOnRequest, TryOnResult

# fashn.ai does not score its output; these are integration constants
RESULT_CONFIDENCE = 0.95
ESTIMATED_PROCESSING_TIME_MS = 30_000


def _log(level: int, message: str, **context: Any) -> None:
    """Helper to emit structured logs with contextual metadata."""
    logger.log(level, "%s | context=%s", message, context)


class TryOnState(str, Enum):
    IDLE = "idle"
    GATING = "gating"
    VALIDATING = "validating"
    ENCODING = "encoding"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class TryOnRun:
    """Progress of one ``run`` call. States are only ever entered once."""

    state: TryOnState = TryOnState.IDLE
    visited: List[TryOnState] = field(default_factory=lambda: [TryOnState.IDLE])
    job_id: Optional[str] = None

    def enter(self, state: TryOnState) -> None:
        self.state = state
        self.visited.append(state)
        _log(logging.DEBUG, "tryon_state", state=state.value, job_id=self.job_id)


def is_absolute_http_url(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    candidate = value.strip()
    if any(ch.isspace() for ch in candidate):
        return False
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


class TryOnOrchestrator:
    """
    Gate, validate, encode, submit, poll, then account for usage.

    There is no retry above the submitter's own retries; a caller wanting to
    retry a failed try-on issues a new ``run`` call.
    """

    def __init__(
        self,
        gate: EntitlementGate,
        submitter: JobSubmitter,
        poller: JobPoller,
        *,
        validator: Optional[ImageValidator] = None,
        encoder: Optional[ImageEncoder] = None,
        history: Optional[TryOnHistory] = None,
        preferences: Optional[TryOnPreferencesStore] = None,
    ):
        self.gate = gate
        self.submitter = submitter
        self.poller = poller
        self.validator = validator or ImageValidator()
        self.encoder = encoder or ImageEncoder()
        self.history = history
        self.preferences = preferences
        self.last_run: Optional[TryOnRun] = None

    async def run(self, request: TryOnRequest) -> TryOnResult:
        """
        Run one try-on end to end.

        Returns:
            TryOnResult pointing at the generated image

        Raises:
            EntitlementError: The caller may not use try-on now
            ValidationError, EncodingError: The images are unusable
            AuthError, QuotaError, InputError, RateLimitError, TransientError:
                From job submission
            JobFailedError, JobTimeoutError, UnexpectedResponseError:
                From polling
            InvalidResultError: The provider output is not a valid URL
        """
        progress = TryOnRun()
        self.last_run = progress
        _log(
            logging.INFO,
            "tryon_started",
            garment_type=request.garment_type.value,
            preserve_background=request.preserve_background,
            enhance_quality=request.enhance_quality,
        )

        try:
            result = await self._run(request, progress)
        except TryOnError as exc:
            failed_in = progress.state.value
            progress.enter(TryOnState.FAILED)
            _log(
                logging.WARNING,
                "tryon_failed",
                stage=failed_in,
                kind=exc.kind,
                job_id=progress.job_id,
                error=exc.message,
            )
            raise

        progress.enter(TryOnState.SUCCEEDED)
        _log(logging.INFO, "tryon_completed", job_id=result.job_id, result_url=result.uri)
        return result

    async def _run(self, request: TryOnRequest, progress: TryOnRun) -> TryOnResult:
        progress.enter(TryOnState.GATING)
        access = await self.gate.check_try_on_usage()
        if not access.can_use:
            raise EntitlementError(
                access.reason or "Virtual try-on is not available",
                can_upgrade=access.requires_upgrade,
            )

        progress.enter(TryOnState.VALIDATING)
        self.validator.validate(request.user_image, "user image")
        self.validator.validate(request.garment_image, "garment image")

        progress.enter(TryOnState.ENCODING)
        user_encoded, garment_encoded = await asyncio.gather(
            self.encoder.encode(request.user_image, "user image"),
            self.encoder.encode(request.garment_image, "garment image"),
        )
        _log(
            logging.DEBUG,
            "images_encoded",
            user=repr(user_encoded),
            garment=repr(garment_encoded),
        )

        progress.enter(TryOnState.SUBMITTING)
        job = await self.submitter.submit(user_encoded, garment_encoded, seed=request.seed)
        progress.job_id = job.id

        progress.enter(TryOnState.POLLING)
        finished = await self.poller.wait_for_completion(job.id)

        output_url = finished.output[0] if finished.output else None
        if not is_absolute_http_url(output_url):
            raise InvalidResultError(
                f"Provider returned an invalid result URL for job {finished.id}"
            )

        result = TryOnResult(
            uri=output_url.strip(),
            confidence=RESULT_CONFIDENCE,
            processing_time_ms=ESTIMATED_PROCESSING_TIME_MS,
            provider=PROVIDER_NAME,
            model=self.submitter.model_name,
            job_id=finished.id,
        )

        await self._record_usage(result)
        await self._record_history(request, result)
        return result

    async def _record_usage(self, result: TryOnResult) -> None:
        try:
            count = await self.gate.record_try_on_usage()
            _log(logging.INFO, "usage_recorded", job_id=result.job_id, used=count)
        except Exception as exc:
            _log(logging.ERROR, "usage_record_failed", job_id=result.job_id, error=str(exc))

    async def _record_history(self, request: TryOnRequest, result: TryOnResult) -> None:
        if self.history is None:
            return
        try:
            if self.preferences is not None:
                prefs = await self.preferences.get()
                if not prefs.save_to_history:
                    return
            await self.history.add(
                result,
                user_image=request.user_image.uri,
                garment_image=request.garment_image.uri,
                garment_type=request.garment_type,
            )
        except Exception as exc:
            _log(logging.WARNING, "history_save_failed", job_id=result.job_id, error=str(exc))
