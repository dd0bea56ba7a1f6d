"""Polling of fashn.ai job status until the job reaches a terminal state."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

import httpx

from styleme.config import API_CONFIG, FASHN_API_KEY, FASHN_BASE_URL, logger
from styleme.core.errors import (
    JobFailedError,
    JobTimeoutError,
    RateLimitError,
    TransientError,
    TryOnError,
    UnexpectedResponseError,
)
from styleme.core.provider import Job, JobStatus, auth_headers, error_for_status, parse_json

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


class JobPoller:
    """
    Fetch ``GET /status/{id}`` until the job completes, fails or times out.

    Two budgets apply and the tighter one wins: ``max_attempts`` fetches and
    a wall-clock ceiling. Fetch-level network errors, 5xx and 429 responses
    are retried within those budgets.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str] = FASHN_API_KEY,
        base_url: str = FASHN_BASE_URL,
        fetch_timeout: float = API_CONFIG["STATUS_TIMEOUT_SECONDS"],
        ceiling_seconds: float = API_CONFIG["POLLING_CEILING_SECONDS"],
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.fetch_timeout = fetch_timeout
        self.ceiling_seconds = ceiling_seconds
        self._sleep = sleep
        self._clock = clock

    async def fetch_status(self, job_id: str) -> Job:
        """Fetch the current state of a job once."""
        try:
            response = await self.client.get(
                f"{self.base_url}/status/{job_id}",
                headers=auth_headers(self.api_key),
                timeout=self.fetch_timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransientError(f"Status request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransientError(f"Network error fetching job status: {exc}") from exc

        error = error_for_status(response)
        if error is not None:
            raise error

        return Job.from_status_payload(job_id, parse_json(response, "Status request"))

    async def wait_for_completion(
        self,
        job_id: str,
        poll_interval_ms: int = API_CONFIG["POLLING_INTERVAL_MS"],
        max_attempts: int = API_CONFIG["MAX_POLLING_ATTEMPTS"],
    ) -> Job:
        """
        Wait for a job to reach a terminal state.

        Args:
            job_id: Provider job id returned by the submitter
            poll_interval_ms: Delay between status fetches
            max_attempts: Maximum number of status fetches

        Returns:
            The completed Job, with a non-empty output list

        Raises:
            JobFailedError: The provider reported the job as failed
            JobTimeoutError: The provider reported a timeout, or a budget ran out
            UnexpectedResponseError: The job completed without any output
            TransientError, RateLimitError: The last fetch failed when the
                budget ran out
        """
        deadline = self._clock() + self.ceiling_seconds
        interval = max(0, poll_interval_ms) / 1000.0
        last_error: Optional[TryOnError] = None
        last_status: Optional[str] = None

        for attempt in range(1, max(1, max_attempts) + 1):
            try:
                job = await self.fetch_status(job_id)
                last_error = None
            except (TransientError, RateLimitError) as exc:
                last_error = exc
                logger.warning(
                    "Job status fetch failed",
                    extra={"job_id": job_id, "attempt": attempt, "error": exc.message},
                )
            else:
                last_status = job.raw_status
                terminal = self._resolve(job)
                if terminal is not None:
                    logger.info(
                        "Try-on job completed",
                        extra={"job_id": job_id, "attempt": attempt},
                    )
                    return terminal
                if job.status is JobStatus.UNKNOWN:
                    logger.warning(
                        "Unrecognized job status, continuing to poll",
                        extra={"job_id": job_id, "raw_status": job.raw_status},
                    )
                else:
                    logger.debug(
                        "Job still running",
                        extra={"job_id": job_id, "attempt": attempt, "status": job.status.value},
                    )

            if attempt >= max_attempts:
                break
            if self._clock() + interval >= deadline:
                logger.warning(
                    "Polling wall-clock ceiling reached",
                    extra={"job_id": job_id, "attempt": attempt},
                )
                break
            await self._sleep(interval)

        if last_error is not None:
            raise last_error
        raise JobTimeoutError(
            f"Job {job_id} did not finish in time (last status: {last_status or 'unknown'})",
            job_id=job_id,
        )

    @staticmethod
    def _resolve(job: Job) -> Optional[Job]:
        if job.status is JobStatus.COMPLETED:
            if not job.output:
                raise UnexpectedResponseError(
                    f"Job {job.id} completed without any output"
                )
            return job
        if job.status is JobStatus.FAILED:
            raise JobFailedError(
                f"Try-on generation failed: {job.error or 'no reason given'}",
                job_id=job.id,
            )
        if job.status is JobStatus.TIMEOUT:
            raise JobTimeoutError(
                f"Provider timed out processing job {job.id}", job_id=job.id
            )
        return None
