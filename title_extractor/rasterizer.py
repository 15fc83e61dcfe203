"""Render scanned PDF pages to images for OCR, one page at a time"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Union

import fitz  # PyMuPDF

from .config import RASTER_DPI, RASTER_HEIGHT, RASTER_WIDTH
from .exceptions import RasterFailure

logger = logging.getLogger(__name__)


class PageRasterizer:
    """Renders single PDF pages to PNG files at a fixed size"""

    def __init__(self, dpi: int = RASTER_DPI, width: int = RASTER_WIDTH, height: int = RASTER_HEIGHT):
        self.dpi = dpi
        self.width = width
        self.height = height

    async def rasterize(self, pdf_path: Union[str, Path], page_number: int,
                        output_dir: Union[str, Path]) -> Path:
        """
        Render one page to ``output_dir/page.<N>.png``

        Args:
            pdf_path: Source PDF
            page_number: 1-based page number
            output_dir: Per-job temporary directory

        Raises:
            RasterFailure: if the page cannot be rendered
        """
        return await asyncio.to_thread(self._rasterize_sync, str(pdf_path), page_number, Path(output_dir))

    def _rasterize_sync(self, pdf_path: str, page_number: int, output_dir: Path) -> Path:
        output_path = output_dir / f"page.{page_number}.png"
        try:
            with fitz.open(pdf_path) as doc:
                page = doc[page_number - 1]
                # Stretch onto the fixed A4 pixel box whatever the page size
                matrix = fitz.Matrix(self.width / page.rect.width, self.height / page.rect.height)
                pix = page.get_pixmap(matrix=matrix, alpha=False)
                pix.set_dpi(self.dpi, self.dpi)
                pix.save(str(output_path))
        except Exception as e:
            raise RasterFailure(f"Failed to render page {page_number}", details=str(e)) from e

        logger.debug("Rendered page %d to %s", page_number, output_path)
        return output_path

    @staticmethod
    def discard(image_path: Union[str, Path]) -> None:
        """Delete a rendered page; failures are logged and ignored"""
        try:
            os.remove(image_path)
        except OSError as e:
            logger.debug("Could not remove %s: %s", image_path, e)
