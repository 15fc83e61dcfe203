"""Text extraction from PDF, image, Word, HTML and plain text files"""
import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import docx
import fitz  # PyMuPDF
import pdfplumber
from PIL import Image, ImageFilter, ImageOps

from .classifier import FormatKind
from .config import DIGITAL_TEXT_THRESHOLD, OCR_PAGE_CONCURRENCY
from .exceptions import OcrFailure, RasterFailure, ReadFailure
from .ocr import OcrEngine
from .progress import Stage
from .rasterizer import PageRasterizer

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# (stage, percent, message, detail) -> None
ProgressReporter = Callable[[Stage, int, str, Optional[dict]], None]


def _no_progress(stage: Stage, progress: int, message: str, detail: Optional[dict] = None) -> None:
    pass


def page_progress(page: int, total_pages: int) -> int:
    """Map page N of M onto the 15-75% extraction band"""
    return 15 + round((page / total_pages) * 60)


class PdfTextExtractor:
    """Extracts the text layer of a PDF, falling back to page OCR for scans"""

    def __init__(self,
                 ocr_engine: OcrEngine,
                 rasterizer: Optional[PageRasterizer] = None,
                 threshold: int = DIGITAL_TEXT_THRESHOLD,
                 concurrency: int = OCR_PAGE_CONCURRENCY):
        self.ocr_engine = ocr_engine
        self.rasterizer = rasterizer if rasterizer is not None else PageRasterizer()
        self.threshold = threshold
        self.concurrency = max(1, concurrency)

    async def extract(self, pdf_path: PathLike, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        """
        Extract text from a PDF file

        Args:
            pdf_path: Path to the PDF
            work_dir: Directory for rendered page images (scanned PDFs only)
            report: Progress reporter

        Returns:
            The text layer for digital PDFs, otherwise OCR text with
            ``--- PAGE N ---`` separators
        """
        report(Stage.PDF, 15, "Reading PDF document...", None)
        text, page_count = await asyncio.to_thread(self.extract_text_layer, pdf_path)
        if page_count == 0:
            raise ReadFailure(f"PDF has no pages: {Path(pdf_path).name}")

        if len(text.strip()) > self.threshold:
            logger.info("PDF has a text layer: %d chars, %d pages", len(text), page_count)
            report(Stage.PDF, 75, "Text extracted from PDF", {"chars": len(text), "pages": page_count})
            return text

        logger.info("Scanned PDF detected (%d pages), running OCR", page_count)
        report(Stage.OCR, 15, f"Scanned PDF detected ({page_count} pages) - starting OCR...",
               {"pages": page_count})

        if work_dir is not None:
            return await self.ocr_pages(pdf_path, page_count, work_dir, report)
        with tempfile.TemporaryDirectory(prefix="pages-") as tmp:
            return await self.ocr_pages(pdf_path, page_count, tmp, report)

    def extract_text_layer(self, pdf_path: PathLike) -> Tuple[str, int]:
        """Return (text, page_count), preferring PyMuPDF over pdfplumber"""
        try:
            return self._extract_pymupdf(pdf_path)
        except Exception as e:
            logger.warning("PyMuPDF failed on %s (%s), trying pdfplumber", Path(pdf_path).name, e)
            try:
                return self._extract_pdfplumber(pdf_path)
            except Exception as fallback_error:
                raise ReadFailure(f"Failed to read PDF: {Path(pdf_path).name}",
                                  details=str(fallback_error)) from e

    def _extract_pymupdf(self, pdf_path: PathLike) -> Tuple[str, int]:
        """Extract using PyMuPDF (fitz)"""
        with fitz.open(str(pdf_path)) as doc:
            pages = [page.get_text("text") for page in doc]
            return "\n".join(pages), doc.page_count

    def _extract_pdfplumber(self, pdf_path: PathLike) -> Tuple[str, int]:
        """Extract using pdfplumber (fallback)"""
        with pdfplumber.open(str(pdf_path)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
            return "\n".join(pages), len(pdf.pages)

    async def ocr_pages(self, pdf_path: PathLike, page_count: int, work_dir: PathLike,
                        report: ProgressReporter = _no_progress) -> str:
        """
        Rasterize and OCR every page.

        Pages run through a rasterize -> OCR cycle bounded by ``concurrency``
        (1 = strictly sequential). A page that fails to render or recognize is
        logged and left out; the remaining pages are still returned.
        """
        if page_count <= 0:
            return ""

        report(Stage.OCR, 15, f"Starting OCR on {page_count} pages...",
               {"currentPage": 0, "totalPages": page_count})

        semaphore = asyncio.Semaphore(self.concurrency)
        results: Dict[int, str] = {}
        started = 0

        async def process(page_number: int) -> None:
            nonlocal started
            async with semaphore:
                started += 1
                report(Stage.OCR, page_progress(started, page_count),
                       f"OCR: Page {started} of {page_count}",
                       {"currentPage": started, "totalPages": page_count})
                try:
                    results[page_number] = await self._ocr_page(pdf_path, page_number, work_dir)
                except (OcrFailure, RasterFailure) as e:
                    logger.warning("Skipping page %d of %s: %s", page_number, Path(pdf_path).name, e)

        tasks = [asyncio.ensure_future(process(n)) for n in range(1, page_count + 1)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Stop sibling pages before the caller removes the work directory
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return "".join(f"\n--- PAGE {n} ---\n{results[n]}" for n in sorted(results))

    async def _ocr_page(self, pdf_path: PathLike, page_number: int, work_dir: PathLike) -> str:
        image_path = await self.rasterizer.rasterize(pdf_path, page_number, work_dir)
        try:
            return await self.ocr_engine.recognize(image_path)
        finally:
            self.rasterizer.discard(image_path)


class ImageTextExtractor:
    """OCR for images, with grayscale/contrast/sharpen pre-processing"""

    def __init__(self, ocr_engine: OcrEngine):
        self.ocr_engine = ocr_engine

    async def extract(self, image_path: PathLike, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        report(Stage.OCR, 20, "Optimizing image for OCR...", None)
        optimized = await asyncio.to_thread(self.preprocess, image_path, work_dir)
        try:
            def on_progress(fraction: float) -> None:
                report(Stage.OCR, 20 + round(fraction * 55), "Recognizing text...",
                       {"progress": round(fraction * 100)})

            return await self.ocr_engine.recognize(optimized, on_progress=on_progress)
        finally:
            try:
                os.remove(optimized)
            except OSError:
                logger.debug("Could not remove %s", optimized)

    @staticmethod
    def preprocess(image_path: PathLike, work_dir: Optional[PathLike] = None) -> Path:
        """Write a grayscale, contrast-normalized, sharpened PNG next to the source (or in work_dir)"""
        source = Path(image_path)
        target_dir = Path(work_dir) if work_dir is not None else source.parent
        optimized = target_dir / f"{source.name}_optimized.png"
        try:
            with Image.open(source) as image:
                image.seek(0)  # first frame of multi-frame GIF/TIFF
                processed = ImageOps.grayscale(image)
                processed = ImageOps.autocontrast(processed)
                processed = processed.filter(ImageFilter.SHARPEN)
                processed.save(optimized, "PNG")
        except FileNotFoundError as e:
            raise ReadFailure(f"File not found: {source.name}") from e
        except Exception as e:
            raise ReadFailure(f"Failed to read image: {source.name}", details=str(e)) from e
        return optimized


class WordTextExtractor:
    """Raw text from .docx files (styling discarded)"""

    async def extract(self, docx_path: PathLike, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        report(Stage.PROCESSING, 20, "Reading Word document...", None)
        return await asyncio.to_thread(self.extract_sync, docx_path)

    @staticmethod
    def extract_sync(docx_path: PathLike) -> str:
        try:
            document = docx.Document(str(docx_path))
        except Exception as e:
            raise ReadFailure(f"Failed to read Word document: {Path(docx_path).name}",
                              details=str(e)) from e

        lines: List[str] = [para.text for para in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                lines.append("\t".join(cell.text for cell in row.cells))
        return "\n".join(lines).strip()


_SCRIPT_RE = re.compile(r"<script[^>]*>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_ENTITIES = (("&nbsp;", " "), ("&amp;", "&"), ("&lt;", "<"), ("&gt;", ">"))


def html_to_text(html: str) -> str:
    """Best-effort plain text from HTML; not a DOM-accurate renderer"""
    text = _SCRIPT_RE.sub("", html)
    text = _STYLE_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return re.sub(r"\s+", " ", text).strip()


def read_text_file(path: PathLike) -> str:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except FileNotFoundError as e:
        raise ReadFailure(f"File not found: {Path(path).name}") from e
    except OSError as e:
        raise ReadFailure(f"Failed to read file: {Path(path).name}", details=str(e)) from e


class HtmlTextExtractor:
    async def extract(self, html_path: PathLike, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        report(Stage.PROCESSING, 20, "Reading HTML document...", None)
        html = await asyncio.to_thread(read_text_file, html_path)
        return html_to_text(html)


class PlainTextExtractor:
    async def extract(self, text_path: PathLike, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        report(Stage.PROCESSING, 20, "Reading text file...", None)
        return await asyncio.to_thread(read_text_file, text_path)


class TextExtractor:
    """Routes a classified file to the extractor for its format"""

    def __init__(self, ocr_engine: Optional[OcrEngine] = None,
                 rasterizer: Optional[PageRasterizer] = None,
                 concurrency: int = OCR_PAGE_CONCURRENCY):
        ocr_engine = ocr_engine if ocr_engine is not None else OcrEngine()
        self.extractors = {
            FormatKind.PDF: PdfTextExtractor(ocr_engine, rasterizer, concurrency=concurrency),
            FormatKind.IMAGE: ImageTextExtractor(ocr_engine),
            FormatKind.WORD: WordTextExtractor(),
            FormatKind.HTML: HtmlTextExtractor(),
            FormatKind.TEXT: PlainTextExtractor(),
        }

    async def extract(self, path: PathLike, kind: FormatKind, work_dir: Optional[PathLike] = None,
                      report: ProgressReporter = _no_progress) -> str:
        if not Path(path).is_file():
            raise ReadFailure(f"File not found: {Path(path).name}")
        logger.info("Extracting %s text from %s", kind.value, Path(path).name)
        return await self.extractors[kind].extract(path, work_dir=work_dir, report=report)
