"""
Input normalisation shared by the upload and share controllers.

Every helper either returns the cleaned value or raises ValidationError
naming the offending field.
"""
import base64
import binascii
import fnmatch
import json
import os
import re
from typing import Optional, Tuple
from urllib.parse import urlparse

from deaddrop.core.config import settings
from deaddrop.core.errors import ValidationError
from deaddrop.models.file import UNLIMITED_DOWNLOADS
from deaddrop.models.share import SHARE_TYPES

DEFAULT_MIME_TYPE = "application/octet-stream"

ALLOWED_MIME_TYPES = (
    "image/*",
    "video/*",
    "audio/*",
    "text/*",
    "application/pdf",
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
    "application/json",
    "application/xml",
    "application/octet-stream",
)

MAX_FILENAME_LENGTH = 255

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]")
_DATA_URL_RE = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.*)$", re.DOTALL)


def sanitize_filename(filename: Optional[str]) -> str:
    if not filename or not filename.strip():
        raise ValidationError("Filename is required", field="filename")
    # Drop any directory part, whichever separator the client used
    name = os.path.basename(filename.replace("\\", "/")).strip()
    name = _UNSAFE_FILENAME_CHARS.sub("_", name)[:MAX_FILENAME_LENGTH]
    if not name or name in (".", ".."):
        raise ValidationError("Invalid filename", field="filename")
    return name


def validate_size(size: Optional[int]) -> int:
    if size is None or isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise ValidationError("File size must be a positive integer", field="size")
    limit = min(settings.MAX_FILE_SIZE, settings.MAX_UPLOAD_SIZE)
    if size > limit:
        raise ValidationError(f"File too large. Maximum size is {limit} bytes", field="size")
    return size


def validate_mime_type(mime_type: Optional[str]) -> str:
    mime_type = (mime_type or "").strip().lower() or DEFAULT_MIME_TYPE
    if not any(fnmatch.fnmatchcase(mime_type, pattern) for pattern in ALLOWED_MIME_TYPES):
        raise ValidationError(f"File type not allowed: {mime_type}", field="mime_type")
    return mime_type


def clamp_expiry_minutes(expiry_minutes: Optional[int]) -> int:
    if expiry_minutes is None:
        return settings.DEFAULT_EXPIRY_MINUTES
    return max(1, min(int(expiry_minutes), settings.MAX_EXPIRY_MINUTES))


def validate_max_downloads(max_downloads: Optional[int]) -> int:
    if max_downloads is None:
        return settings.DEFAULT_MAX_DOWNLOADS
    if max_downloads == UNLIMITED_DOWNLOADS:
        return max_downloads
    if max_downloads < 1:
        raise ValidationError("max_downloads must be -1 (unlimited) or at least 1", field="max_downloads")
    return max_downloads


def normalize_password(password: Optional[str]) -> Optional[str]:
    if password is None:
        return None
    password = password.strip()
    return password or None


def validate_share_type(share_type: Optional[str]) -> str:
    if share_type not in SHARE_TYPES:
        raise ValidationError(
            f"Invalid share type. Must be one of: {', '.join(SHARE_TYPES)}", field="type"
        )
    return share_type


def validate_share_content(share_type: str, content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise ValidationError("Content is required", field="content")

    if share_type == "image":
        # Size of images is checked on the decoded bytes
        return content

    if len(content) > settings.MAX_SHARE_TEXT_SIZE:
        raise ValidationError(
            f"Content too large. Maximum size is {settings.MAX_SHARE_TEXT_SIZE} characters",
            field="content",
        )

    if share_type == "link":
        parsed = urlparse(content.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("Invalid URL", field="content")
        return content.strip()

    if share_type == "json":
        try:
            json.loads(content)
        except ValueError:
            raise ValidationError("Invalid JSON", field="content")

    return content


def decode_image_data_url(content: str) -> Tuple[str, bytes]:
    """Split `data:image/...;base64,...` into (mime_type, raw bytes)."""
    match = _DATA_URL_RE.match(content.strip())
    if not match:
        raise ValidationError("Image must be a base64 data URL", field="content")
    mime_type, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid image data", field="content")
    if not data:
        raise ValidationError("Invalid image data", field="content")
    if len(data) > settings.MAX_SHARE_IMAGE_BYTES:
        raise ValidationError(
            f"Image too large. Maximum size is {settings.MAX_SHARE_IMAGE_BYTES} bytes",
            field="content",
        )
    return mime_type.lower(), data


def encode_image_data_url(mime_type: str, data: bytes) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
