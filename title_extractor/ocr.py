"""OCR engine adapter around Tesseract"""
import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

import pytesseract
from PIL import Image

from .config import OCR_LANGUAGE, OCR_PSM, OCR_TIMEOUT
from .exceptions import OcrFailure

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class OcrEngine:
    """Recognizes text in an image file.

    Recognition runs in a worker thread so other jobs keep progressing while
    Tesseract works.
    """

    def __init__(self, language: str = OCR_LANGUAGE, psm: int = OCR_PSM,
                 timeout: Optional[float] = OCR_TIMEOUT):
        self.language = language
        self.config = f"--psm {psm}"
        self.timeout = timeout

    async def recognize(self,
                        image_path: Union[str, Path],
                        on_progress: Optional[ProgressCallback] = None,
                        timeout: Optional[float] = None) -> str:
        """
        Recognize text in an image

        Args:
            image_path: Path to the image file
            on_progress: Receives fractional progress 0.0-1.0
            timeout: Seconds before giving up (defaults to the engine timeout)

        Returns:
            Recognized text, possibly empty

        Raises:
            OcrFailure: engine error, unreadable image, or timeout
        """
        timeout = timeout if timeout is not None else self.timeout
        if on_progress:
            on_progress(0.0)

        logger.debug("OCR started: %s", image_path)
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._recognize_sync, str(image_path), timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise OcrFailure(f"OCR timed out after {timeout:.0f}s", details=str(image_path)) from e
        except OcrFailure:
            raise
        except Exception as e:
            raise OcrFailure(f"OCR failed for {Path(image_path).name}", details=str(e)) from e

        if on_progress:
            on_progress(1.0)
        logger.debug("OCR complete: %d chars", len(text))
        return text

    def _recognize_sync(self, image_path: str, timeout: Optional[float]) -> str:
        try:
            with Image.open(image_path) as image:
                return pytesseract.image_to_string(
                    image, lang=self.language, config=self.config, timeout=timeout or 0
                )
        except pytesseract.TesseractError as e:
            raise OcrFailure(f"Tesseract failed: {e.message}", details=image_path) from e
        except RuntimeError as e:
            # pytesseract signals its own timeout with a bare RuntimeError
            if "timeout" in str(e).lower():
                raise OcrFailure("OCR timed out", details=str(e)) from e
            raise
