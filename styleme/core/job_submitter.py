"""Creation of fashn.ai try-on jobs with bounded retries."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional

import httpx

from styleme.config import (
    API_CONFIG,
    FASHN_API_KEY,
    FASHN_BASE_URL,
    FASHN_MODEL_NAME,
    logger,
)
from styleme.core.errors import TransientError, UnexpectedResponseError
from styleme.core.image_encoding import EncodedImage
from styleme.core.provider import Job, JobStatus, auth_headers, error_for_status, parse_json

Sleep = Callable[[float], Awaitable[None]]

MAX_SEED = 2**32 - 1


class JobSubmitter:
    """
    Submit a (model image, product image) pair to ``POST /run``.

    Only TransientError (5xx, network failure, timeout) is retried. Auth,
    quota, input and rate-limit errors surface on the first attempt.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str] = FASHN_API_KEY,
        base_url: str = FASHN_BASE_URL,
        model_name: str = FASHN_MODEL_NAME,
        max_attempts: int = API_CONFIG["RETRY_ATTEMPTS"],
        base_delay: float = API_CONFIG["RETRY_BASE_DELAY_SECONDS"],
        timeout: float = API_CONFIG["TIMEOUT_SECONDS"],
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    def build_payload(
        self,
        user_image: EncodedImage,
        garment_image: EncodedImage,
        seed: Optional[int] = None,
    ) -> dict:
        return {
            "model_name": self.model_name,
            "inputs": {
                "model_image": user_image.data_uri,
                "product_image": garment_image.data_uri,
                "seed": seed if seed is not None else random.randint(0, MAX_SEED),
            },
        }

    async def submit(
        self,
        user_image: EncodedImage,
        garment_image: EncodedImage,
        seed: Optional[int] = None,
    ) -> Job:
        """
        Create a try-on job.

        Args:
            user_image: Encoded photo of the person
            garment_image: Encoded photo of the garment
            seed: Provider seed, drawn at random when None

        Returns:
            Job in the queued state

        Raises:
            AuthError, QuotaError, InputError, RateLimitError: immediately
            TransientError: after the last attempt fails transiently
            UnexpectedResponseError: if the provider answers without a job id
        """
        payload = self.build_payload(user_image, garment_image, seed)
        attempt = 1

        while True:
            try:
                job = await self._submit_once(payload)
            except TransientError as exc:
                logger.warning(
                    "Transient error submitting try-on job",
                    extra={"attempt": attempt, "error": exc.message},
                )
                if attempt >= self.max_attempts:
                    logger.error(
                        "Try-on job submission failed after retries",
                        extra={"attempts": attempt},
                    )
                    raise
                await self._sleep(self.backoff_delay(attempt))
                attempt += 1
                continue

            logger.info(
                "Try-on job submitted",
                extra={"job_id": job.id, "attempt": attempt},
            )
            return job

    async def _submit_once(self, payload: dict) -> Job:
        try:
            response = await self.client.post(
                f"{self.base_url}/run",
                json=payload,
                headers=auth_headers(self.api_key),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransientError(f"Provider request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransientError(f"Network error calling provider: {exc}") from exc

        error = error_for_status(response)
        if error is not None:
            raise error

        body = parse_json(response, "Job submission")
        if body.get("error"):
            raise UnexpectedResponseError(f"Provider rejected job: {body['error']}")

        job_id = body.get("id")
        if not job_id:
            raise UnexpectedResponseError("Provider response did not include a job id")

        return Job(id=str(job_id), status=JobStatus.QUEUED)
