"""
Shared pytest fixtures: fake OCR engine, rasterizer and completion client,
plus synthetic PDFs built with PyMuPDF.
"""
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

import fitz
import pytest

from title_extractor.exceptions import OcrFailure, RasterFailure
from title_extractor.extractor import TitleExtractor
from title_extractor.jobs import JobRegistry
from title_extractor.progress import ProgressChannel
from title_extractor.structuring import StructuringStage
from title_extractor.text_extractor import TextExtractor


DEED_TEXT = (
    "Deed Book 123 Page 456 recorded 01/15/2024. John Smith, grantor, "
    "does hereby convey to ABC Holdings LLC for $250,000."
)


def deed_response(confidence: str = "high") -> str:
    return json.dumps({
        "deeds": [{
            "grantor": "John Smith",
            "grantee": "ABC Holdings LLC",
            "consideration": "$250,000",
            "noteDate": "",
            "fileNumber": "",
            "recordingDate": "01/15/2024",
            "bookPage": "Book 123 Page 456",
        }],
        "deedsOfTrust": [],
        "judgments": [],
        "liens": [],
        "namesSearched": ["John Smith", "ABC Holdings LLC"],
        "propertyInfo": {"address": "", "parcelNumber": "", "legalDescription": ""},
        "confidence": confidence,
    })


class FakeCompletionClient:
    """Returns canned responses per model and records every call"""

    def __init__(self, responses: Union[str, Dict[str, str]]):
        self.responses = responses
        self.calls: List[dict] = []

    async def complete(self, model: str, system_prompt: str, user_content: str) -> str:
        self.calls.append({"model": model, "system_prompt": system_prompt, "user_content": user_content})
        if isinstance(self.responses, dict):
            response = self.responses[model]
        else:
            response = self.responses
        if isinstance(response, Exception):
            raise response
        return response


class FakeOcrEngine:
    """OCR stand-in keyed by page number parsed from ``page.<N>.png``"""

    def __init__(self, pages: Optional[Dict[int, str]] = None, text: str = "", fail_pages=()):
        self.pages = pages or {}
        self.text = text
        self.fail_pages = set(fail_pages)
        self.calls: List[Path] = []
        self.existed: List[bool] = []

    async def recognize(self, image_path, on_progress=None, timeout=None) -> str:
        image_path = Path(image_path)
        self.calls.append(image_path)
        self.existed.append(image_path.exists())
        if on_progress:
            on_progress(0.0)
        match = re.match(r"page\.(\d+)\.png$", image_path.name)
        page = int(match.group(1)) if match else None
        if page in self.fail_pages or (page is None and None in self.fail_pages):
            raise OcrFailure(f"OCR failed for page {page}")
        if on_progress:
            on_progress(1.0)
        if page is not None and page in self.pages:
            return self.pages[page]
        return self.text


class FakeRasterizer:
    """Writes placeholder page images; can fail selected pages"""

    def __init__(self, fail_pages=()):
        self.fail_pages = set(fail_pages)
        self.rendered: List[Path] = []

    async def rasterize(self, pdf_path, page_number, output_dir) -> Path:
        if page_number in self.fail_pages:
            raise RasterFailure(f"Failed to render page {page_number}")
        path = Path(output_dir) / f"page.{page_number}.png"
        path.write_bytes(b"\x89PNG")
        self.rendered.append(path)
        return path

    @staticmethod
    def discard(image_path) -> None:
        Path(image_path).unlink(missing_ok=True)


def make_pdf(path: Path, pages: List[str]) -> Path:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=10)
    doc.save(str(path))
    doc.close()
    return path


@pytest.fixture
def digital_pdf(tmp_path):
    body = " ".join([DEED_TEXT] * 3)
    return make_pdf(tmp_path / "digital.pdf", [body])


@pytest.fixture
def scanned_pdf(tmp_path):
    return make_pdf(tmp_path / "scanned.pdf", ["", "", ""])


@pytest.fixture
def channel():
    return ProgressChannel()


@pytest.fixture
def recorded_events(channel):
    """Subscribe to a fixed job id and collect every event"""
    events = []
    channel.subscribe("job-1", events.append)
    return events


@pytest.fixture
def make_extractor(channel, tmp_path):
    def _make(client, ocr_engine=None, rasterizer=None, registry=None):
        text_extractor = TextExtractor(ocr_engine=ocr_engine or FakeOcrEngine(),
                                       rasterizer=rasterizer or FakeRasterizer())
        structuring = StructuringStage(client, progress=channel, fast_model="fast", accurate_model="accurate")
        return TitleExtractor(structuring, text_extractor=text_extractor,
                              jobs=registry if registry is not None else JobRegistry(), progress=channel,
                              temp_dir=str(tmp_path / "work"))
    return _make
