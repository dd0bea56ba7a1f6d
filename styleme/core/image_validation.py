"""
Metadata checks run on try-on images before any encoding or network call.
"""

import posixpath
from urllib.parse import urlparse

from styleme.core.errors import ValidationError
from styleme.models import ImageRef

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MIN_DIMENSION_PX = 512
ALLOWED_FORMATS = {"jpeg", "jpg", "png"}

__all__ = ["ImageValidator", "MAX_IMAGE_BYTES", "MIN_DIMENSION_PX", "ALLOWED_FORMATS"]


def _format_from_mime(mime_type: str) -> str:
    # "image/jpeg; charset=binary" -> "jpeg"
    return mime_type.split(";", 1)[0].strip().lower().rsplit("/", 1)[-1]


def _extension_from_uri(uri: str) -> str | None:
    if uri.startswith("data:"):
        return None
    path = urlparse(uri).path if "://" in uri else uri
    _, ext = posixpath.splitext(path)
    return ext[1:].lower() or None


class ImageValidator:
    """Pure precondition check on the metadata an ImageRef already carries."""

    def __init__(
        self,
        max_bytes: int = MAX_IMAGE_BYTES,
        min_dimension: int = MIN_DIMENSION_PX,
    ):
        self.max_bytes = max_bytes
        self.min_dimension = min_dimension

    def validate(self, image: ImageRef, label: str = "image") -> None:
        """
        Raise ValidationError if the image cannot be used for a try-on.

        Args:
            image: Image reference to check
            label: Name used in error messages ("user image", "garment image")

        Raises:
            ValidationError: On a missing uri, oversized file, too-small
                dimensions, or a format other than jpeg/png
        """
        if not image.uri or not image.uri.strip():
            raise ValidationError(f"The {label} is missing")

        if image.file_size_bytes is not None and image.file_size_bytes > self.max_bytes:
            size_mb = image.file_size_bytes / (1024 * 1024)
            raise ValidationError(
                f"The {label} is too large ({size_mb:.1f} MB). "
                f"Maximum size is {self.max_bytes // (1024 * 1024)} MB."
            )

        if image.width is not None and image.height is not None:
            if image.width < self.min_dimension or image.height < self.min_dimension:
                raise ValidationError(
                    f"The {label} is too small ({image.width}x{image.height}). "
                    f"Minimum size is {self.min_dimension}x{self.min_dimension} pixels."
                )

        if image.mime_type:
            fmt = _format_from_mime(image.mime_type)
            if fmt not in ALLOWED_FORMATS:
                raise ValidationError(
                    f"The {label} has unsupported type '{image.mime_type}'. "
                    "Use a JPEG or PNG image."
                )

        ext = _extension_from_uri(image.uri)
        if ext and ext not in ALLOWED_FORMATS:
            raise ValidationError(
                f"The {label} has unsupported extension '.{ext}'. "
                "Use a JPEG or PNG image."
            )
