import json

import httpx
import pytest

from styleme.core.errors import (
    AuthError,
    InputError,
    QuotaError,
    RateLimitError,
    TransientError,
    UnexpectedResponseError,
)
from styleme.core.image_encoding import EncodedImage
from styleme.core.job_submitter import JobSubmitter
from styleme.core.provider import JobStatus

from .conftest import ProviderStub, SleepRecorder, network_error, respond

USER = EncodedImage(data_uri="data:image/jpeg;base64,AAAA", content_type="image/jpeg", size_bytes=3)
GARMENT = EncodedImage(data_uri="data:image/png;base64,BBBB", content_type="image/png", size_bytes=3)


def make_submitter(stub: ProviderStub, sleep: SleepRecorder) -> JobSubmitter:
    return JobSubmitter(
        stub.client(),
        api_key="fa-test-key",
        base_url="https://api.fashn.test/v1",
        model_name="tryon-max",
        sleep=sleep,
    )


async def test_submit_sends_exact_wire_payload() -> None:
    stub = ProviderStub(submit_responses=[respond(200, {"id": "abc", "error": None})])
    submitter = make_submitter(stub, SleepRecorder())

    job = await submitter.submit(USER, GARMENT, seed=42)

    assert job.id == "abc"
    assert job.status is JobStatus.QUEUED
    request = stub.requests[0]
    assert request.url == "https://api.fashn.test/v1/run"
    assert request.headers["Authorization"] == "Bearer fa-test-key"
    assert json.loads(request.content) == {
        "model_name": "tryon-max",
        "inputs": {
            "model_image": USER.data_uri,
            "product_image": GARMENT.data_uri,
            "seed": 42,
        },
    }


async def test_random_seed_when_none_given() -> None:
    stub = ProviderStub(submit_responses=[respond(200, {"id": "abc"})])

    await make_submitter(stub, SleepRecorder()).submit(USER, GARMENT)

    seed = json.loads(stub.requests[0].content)["inputs"]["seed"]
    assert isinstance(seed, int) and seed >= 0


async def test_retries_three_times_on_server_errors_with_backoff() -> None:
    stub = ProviderStub(submit_responses=[respond(500, {"error": "boom"})])
    sleep = SleepRecorder()

    with pytest.raises(TransientError):
        await make_submitter(stub, sleep).submit(USER, GARMENT)

    assert stub.submit_calls == 3
    assert sleep.delays == [1.0, 2.0]


async def test_single_attempt_raises_the_transient_error() -> None:
    stub = ProviderStub(submit_responses=[respond(503, {"error": "busy"})])
    sleep = SleepRecorder()
    submitter = JobSubmitter(
        stub.client(),
        api_key="fa-test-key",
        base_url="https://api.fashn.test/v1",
        max_attempts=1,
        sleep=sleep,
    )

    with pytest.raises(TransientError) as excinfo:
        await submitter.submit(USER, GARMENT)

    assert excinfo.value.status_code == 503
    assert stub.submit_calls == 1
    assert sleep.delays == []


async def test_recovers_when_a_retry_succeeds() -> None:
    stub = ProviderStub(
        submit_responses=[network_error, respond(503), respond(200, {"id": "xyz"})]
    )
    sleep = SleepRecorder()

    job = await make_submitter(stub, sleep).submit(USER, GARMENT)

    assert job.id == "xyz"
    assert stub.submit_calls == 3
    assert sleep.delays == [1.0, 2.0]


async def test_timeouts_are_retried() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json={"id": "late"})

    submitter = JobSubmitter(
        httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        api_key="fa-test-key",
        sleep=SleepRecorder(),
    )

    job = await submitter.submit(USER, GARMENT)

    assert job.id == "late"
    assert len(calls) == 2


@pytest.mark.parametrize(
    "status_code,error_type",
    [(401, AuthError), (402, QuotaError), (422, InputError), (429, RateLimitError)],
)
async def test_client_errors_are_not_retried(status_code: int, error_type: type) -> None:
    stub = ProviderStub(submit_responses=[respond(status_code, {"error": "nope"})])
    sleep = SleepRecorder()

    with pytest.raises(error_type) as excinfo:
        await make_submitter(stub, sleep).submit(USER, GARMENT)

    assert stub.submit_calls == 1
    assert sleep.delays == []
    assert excinfo.value.status_code == status_code


async def test_missing_job_id_is_unexpected() -> None:
    stub = ProviderStub(submit_responses=[respond(200, {})])

    with pytest.raises(UnexpectedResponseError):
        await make_submitter(stub, SleepRecorder()).submit(USER, GARMENT)


async def test_error_body_is_unexpected() -> None:
    stub = ProviderStub(submit_responses=[respond(200, {"id": None, "error": "bad image"})])

    with pytest.raises(UnexpectedResponseError, match="bad image"):
        await make_submitter(stub, SleepRecorder()).submit(USER, GARMENT)
