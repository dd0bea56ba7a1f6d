"""Turn an ImageRef into a base64 data URI ready for the provider."""

from __future__ import annotations

import asyncio
import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from styleme.config import logger
from styleme.core.errors import EncodingError
from styleme.core.image_validation import MAX_IMAGE_BYTES
from styleme.models import ImageRef

FETCH_TIMEOUT_SECONDS = 30.0

_JPEG_MAGIC = b"\xff\xd8\xff"
_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png"}


@dataclass(slots=True, frozen=True)
class EncodedImage:
    """In-memory encoded payload. Only size and type ever reach the logs."""

    data_uri: str
    content_type: str
    size_bytes: int

    def __repr__(self) -> str:
        return (
            f"EncodedImage(content_type={self.content_type!r}, "
            f"size_bytes={self.size_bytes})"
        )


def sniff_content_type(data: bytes) -> Optional[str]:
    if data.startswith(_JPEG_MAGIC):
        return "image/jpeg"
    if data.startswith(_PNG_MAGIC):
        return "image/png"
    return None


def _normalize_declared(mime_type: Optional[str]) -> Optional[str]:
    if not mime_type:
        return None
    cleaned = mime_type.split(";", 1)[0].strip().lower()
    return "image/jpeg" if cleaned == "image/jpg" else cleaned


class ImageEncoder:
    """Read the bytes behind an ImageRef and encode them as a data URI."""

    def __init__(
        self,
        max_bytes: int = MAX_IMAGE_BYTES,
        http_client: Optional[httpx.AsyncClient] = None,
        fetch_timeout: float = FETCH_TIMEOUT_SECONDS,
    ):
        self.max_bytes = max_bytes
        self._http_client = http_client
        self.fetch_timeout = fetch_timeout

    async def encode(self, image: ImageRef, label: str = "image") -> EncodedImage:
        """
        Encode an image for submission.

        Raises:
            EncodingError: If the bytes cannot be read, exceed the size
                ceiling, or are not JPEG/PNG
        """
        data, header_type = await self._read_bytes(image, label)

        if not data:
            raise EncodingError(f"The {label} is empty")

        if len(data) > self.max_bytes:
            raise EncodingError(
                f"The {label} is {len(data)} bytes, above the "
                f"{self.max_bytes} byte limit"
            )

        content_type = (
            sniff_content_type(data)
            or _normalize_declared(header_type)
            or _normalize_declared(image.mime_type)
            or _normalize_declared(mimetypes.guess_type(image.uri)[0])
        )
        if content_type not in _ALLOWED_CONTENT_TYPES:
            raise EncodingError(
                f"The {label} must be JPEG or PNG, got {content_type or 'unknown type'}"
            )

        encoded = base64.b64encode(data).decode("utf-8")
        result = EncodedImage(
            data_uri=f"data:{content_type};base64,{encoded}",
            content_type=content_type,
            size_bytes=len(data),
        )
        logger.debug(
            "Encoded image",
            extra={"label": label, "content_type": content_type, "size_bytes": len(data)},
        )
        return result

    async def _read_bytes(
        self, image: ImageRef, label: str
    ) -> tuple[bytes, Optional[str]]:
        uri = image.uri.strip()

        if uri.startswith("data:"):
            return _decode_data_uri(uri, label)

        if uri.startswith("http://") or uri.startswith("https://"):
            return await self._fetch(uri, label)

        path = Path(unquote(urlparse(uri).path)) if uri.startswith("file://") else Path(uri)
        try:
            return await asyncio.to_thread(path.read_bytes), None
        except OSError as exc:
            raise EncodingError(f"Could not read the {label}: {exc}") from exc

    async def _fetch(self, url: str, label: str) -> tuple[bytes, Optional[str]]:
        logger.info(f"Fetching {label} from URL")
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=self.fetch_timeout)
            else:
                async with httpx.AsyncClient(timeout=self.fetch_timeout) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise EncodingError(
                f"Failed to fetch the {label}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EncodingError(f"Network error fetching the {label}: {exc}") from exc

        return response.content, response.headers.get("content-type")


def _decode_data_uri(uri: str, label: str) -> tuple[bytes, Optional[str]]:
    try:
        header, payload = uri.split(",", 1)
    except ValueError as exc:
        raise EncodingError(f"Invalid data URI provided for the {label}") from exc

    declared = header[len("data:"):].split(";", 1)[0] or None
    if ";base64" not in header:
        raise EncodingError(f"The {label} data URI is not base64 encoded")

    try:
        return base64.b64decode(payload, validate=True), declared
    except (binascii.Error, ValueError) as exc:
        raise EncodingError(f"The {label} data URI is not valid base64") from exc
