import base64
from pathlib import Path

import httpx
import pytest

from styleme.core.errors import EncodingError
from styleme.core.image_encoding import ImageEncoder
from styleme.models import ImageRef

from .conftest import GIF_BYTES, JPEG_BYTES, PNG_BYTES


async def test_encodes_local_jpeg_as_data_uri(tmp_path: Path) -> None:
    path = tmp_path / "me.jpg"
    path.write_bytes(JPEG_BYTES)

    encoded = await ImageEncoder().encode(ImageRef(uri=str(path)))

    assert encoded.content_type == "image/jpeg"
    assert encoded.size_bytes == len(JPEG_BYTES)
    prefix = "data:image/jpeg;base64,"
    assert encoded.data_uri.startswith(prefix)
    assert base64.b64decode(encoded.data_uri[len(prefix):]) == JPEG_BYTES


async def test_encodes_file_uri_png(tmp_path: Path) -> None:
    path = tmp_path / "shirt.png"
    path.write_bytes(PNG_BYTES)

    encoded = await ImageEncoder().encode(ImageRef(uri=path.as_uri()))

    assert encoded.content_type == "image/png"


async def test_repr_never_contains_payload(tmp_path: Path) -> None:
    path = tmp_path / "me.jpg"
    path.write_bytes(JPEG_BYTES)

    encoded = await ImageEncoder().encode(ImageRef(uri=str(path)))

    assert "base64" not in repr(encoded)
    assert str(len(JPEG_BYTES)) in repr(encoded)


async def test_rejects_bytes_over_limit_even_without_metadata(tmp_path: Path) -> None:
    path = tmp_path / "big.jpg"
    path.write_bytes(JPEG_BYTES + b"\x00" * 100)

    with pytest.raises(EncodingError, match="limit"):
        await ImageEncoder(max_bytes=50).encode(ImageRef(uri=str(path)))


async def test_missing_file_raises_encoding_error(tmp_path: Path) -> None:
    with pytest.raises(EncodingError, match="Could not read"):
        await ImageEncoder().encode(ImageRef(uri=str(tmp_path / "absent.jpg")))


async def test_rejects_non_jpeg_png_content(tmp_path: Path) -> None:
    path = tmp_path / "anim"
    path.write_bytes(GIF_BYTES)

    with pytest.raises(EncodingError, match="JPEG or PNG"):
        await ImageEncoder().encode(ImageRef(uri=str(path)))


async def test_accepts_data_uri_input() -> None:
    data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    encoded = await ImageEncoder().encode(ImageRef(uri=data_uri))

    assert encoded.content_type == "image/png"
    assert encoded.size_bytes == len(PNG_BYTES)


async def test_rejects_broken_data_uri() -> None:
    with pytest.raises(EncodingError):
        await ImageEncoder().encode(ImageRef(uri="data:image/png;base64,@@not-base64@@"))


async def test_fetches_remote_images_with_httpx() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "image/jpeg"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        encoded = await ImageEncoder(http_client=client).encode(
            ImageRef(uri="https://images.example.com/me")
        )

    assert encoded.content_type == "image/jpeg"


async def test_remote_fetch_failure_is_encoding_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(EncodingError, match="HTTP 404"):
            await ImageEncoder(http_client=client).encode(
                ImageRef(uri="https://images.example.com/missing.jpg")
            )
