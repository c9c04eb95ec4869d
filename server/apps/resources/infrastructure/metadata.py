"""Content metadata helpers for stored objects."""

import mimetypes
from typing import BinaryIO, Final

from django.core.files.base import File as DjangoFile

DEFAULT_CONTENT_TYPE: Final = 'application/octet-stream'
ZIP_CONTENT_TYPE: Final = 'application/zip'


def detect_mime_type(filename: str) -> str:
    """Detect MIME type from filename extension.

    Args:
        filename: Filename or storage key with extension.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type is None:
        return DEFAULT_CONTENT_TYPE
    return mime_type


def get_content_size(file_obj: BinaryIO | DjangoFile) -> int:
    """Get size of a file-like object.

    Django files know their size; plain streams are measured
    and rewound.

    Args:
        file_obj: File-like object.

    Returns:
        Size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_size = len(file_obj.read())
    file_obj.seek(0)
    return file_size
