"""File format detection: picks the text extraction strategy for an input file"""
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .exceptions import UnsupportedFormat


class FormatKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"
    WORD = "word"
    HTML = "html"
    TEXT = "text"


EXTENSION_MAP = {
    ".pdf": FormatKind.PDF,
    ".png": FormatKind.IMAGE,
    ".jpg": FormatKind.IMAGE,
    ".jpeg": FormatKind.IMAGE,
    ".gif": FormatKind.IMAGE,
    ".bmp": FormatKind.IMAGE,
    ".tiff": FormatKind.IMAGE,
    ".tif": FormatKind.IMAGE,
    ".doc": FormatKind.WORD,
    ".docx": FormatKind.WORD,
    ".html": FormatKind.HTML,
    ".htm": FormatKind.HTML,
    ".txt": FormatKind.TEXT,
}


def _from_media_type(media_type: str) -> Optional[FormatKind]:
    media_type = media_type.split(";")[0].strip().lower()
    if media_type == "application/pdf":
        return FormatKind.PDF
    if media_type.startswith("image/"):
        return FormatKind.IMAGE
    if "word" in media_type:
        return FormatKind.WORD
    if media_type == "text/html":
        return FormatKind.HTML
    if media_type == "text/plain":
        return FormatKind.TEXT
    return None


def classify(path: Union[str, Path], media_type: Optional[str] = None) -> FormatKind:
    """
    Select the extraction strategy for a file.

    The file extension wins; the declared media type is only consulted when
    the extension is missing or unknown.

    Raises:
        UnsupportedFormat: if neither the extension nor the media type match
    """
    suffix = Path(path).suffix.lower()
    kind = EXTENSION_MAP.get(suffix)
    if kind is None and media_type:
        kind = _from_media_type(media_type)
    if kind is None:
        raise UnsupportedFormat(f"Unsupported file type: {suffix or media_type or Path(path).name}")
    return kind


def is_supported(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in EXTENSION_MAP
