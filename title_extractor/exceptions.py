"""
Exceptions raised by the extraction pipeline.

Every failure carries a human-readable ``message`` (stored on the failed job)
and optional ``details`` for logs.
"""
from typing import Optional


class ExtractionError(Exception):
    """Base exception for all extraction pipeline errors"""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class UnsupportedFormat(ExtractionError):
    """File extension and media type match no known extractor"""


class ReadFailure(ExtractionError):
    """Input file is missing, unreadable or corrupt"""


class OcrFailure(ExtractionError):
    """Text recognition failed for an image"""


class RasterFailure(ExtractionError):
    """A PDF page could not be rendered to an image"""


class AiRequestFailure(ExtractionError):
    """The completion service could not be reached or returned an error"""


class AiParseFailure(ExtractionError):
    """The model response contained no usable JSON document"""
