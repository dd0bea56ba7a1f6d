"""
Shared pieces of the fashn.ai job API: the Job record, response
classification and request headers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from styleme.core.errors import (
    AuthError,
    InputError,
    QuotaError,
    RateLimitError,
    TransientError,
    TryOnError,
    UnexpectedResponseError,
)

PROVIDER_NAME = "fashn.ai"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "JobStatus":
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT)


@dataclass(slots=True)
class Job:
    """Read-through view of a provider job. Only rebuilt from status responses."""

    id: str
    status: JobStatus = JobStatus.QUEUED
    output: List[str] = field(default_factory=list)
    error: Optional[str] = None
    raw_status: Optional[str] = None

    @classmethod
    def from_status_payload(cls, job_id: str, payload: Dict[str, Any]) -> "Job":
        raw_status = payload.get("status")
        output = payload.get("output") or []
        if isinstance(output, str):
            output = [output]
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("name") or str(error)
        return cls(
            id=str(payload.get("id") or job_id),
            status=JobStatus.parse(raw_status if isinstance(raw_status, str) else None),
            output=[str(item) if item is not None else "" for item in output],
            error=str(error) if error else None,
            raw_status=raw_status if isinstance(raw_status, str) else None,
        )


def auth_headers(api_key: Optional[str]) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        detail = body.get("error") or body.get("message") or body.get("detail")
        if isinstance(detail, dict):
            detail = detail.get("message") or str(detail)
        if detail:
            return str(detail)
    return response.text[:200]


def error_for_status(response: httpx.Response) -> Optional[TryOnError]:
    """
    Map a non-2xx provider response onto the error taxonomy.

    Returns:
        The error to raise, or None for a 2xx response
    """
    status = response.status_code
    if status < 400:
        return None

    detail = _error_detail(response)
    if status == 401:
        return AuthError(f"Invalid provider credentials: {detail}", status_code=status)
    if status == 402:
        return QuotaError(f"Insufficient provider credits: {detail}", status_code=status)
    if status == 422:
        return InputError(f"Malformed request or images: {detail}", status_code=status)
    if status == 429:
        return RateLimitError(
            f"Provider rate limit reached: {detail}", status_code=status
        )
    if status >= 500:
        return TransientError(
            f"Provider server error {status}: {detail}", status_code=status
        )
    return UnexpectedResponseError(
        f"Unexpected provider response {status}: {detail}", status_code=status
    )


def parse_json(response: httpx.Response, context: str) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise UnexpectedResponseError(f"{context} returned invalid JSON") from exc
    if not isinstance(body, dict):
        raise UnexpectedResponseError(f"{context} returned a non-object body")
    return body
