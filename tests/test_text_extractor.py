"""
Tests for per-format text extraction.
"""
import asyncio

import docx
import pytest
from PIL import Image

from conftest import DEED_TEXT, FakeOcrEngine, FakeRasterizer, make_pdf
from title_extractor.classifier import FormatKind
from title_extractor.exceptions import OcrFailure, ReadFailure
from title_extractor.progress import Stage
from title_extractor.text_extractor import (
    ImageTextExtractor,
    PdfTextExtractor,
    TextExtractor,
    WordTextExtractor,
    html_to_text,
    page_progress,
)


class TestHtml:
    """HTML tag stripping."""

    def test_strips_script_and_style_blocks(self):
        html = (
            "<html><head><style>body { color: red; }</style>"
            "<script type='text/javascript'>var x = '<b>';</script></head>"
            "<body><p>Deed&nbsp;Book 12</p></body></html>"
        )
        assert html_to_text(html) == "Deed Book 12"

    def test_decodes_entities_and_collapses_whitespace(self):
        html = "<div>Smith &amp; Jones</div>\n\n<span>&lt;grantor&gt;</span>   LLC"
        assert html_to_text(html) == "Smith & Jones <grantor> LLC"

    def test_uppercase_tags(self):
        assert html_to_text("<SCRIPT>alert(1)</SCRIPT><P>Lien</P>") == "Lien"

    def test_html_file(self, tmp_path):
        path = tmp_path / "search.html"
        path.write_text("<h1>Judgment</h1><p>Plaintiff: Bank</p>", encoding="utf-8")
        text = asyncio.run(TextExtractor(ocr_engine=FakeOcrEngine()).extract(path, FormatKind.HTML))
        assert text == "Judgment Plaintiff: Bank"


class TestPlainText:
    """Plain text passthrough and read failures."""

    def test_passthrough(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text(DEED_TEXT, encoding="utf-8")
        text = asyncio.run(TextExtractor(ocr_engine=FakeOcrEngine()).extract(path, FormatKind.TEXT))
        assert text == DEED_TEXT

    def test_missing_file_is_read_failure(self, tmp_path):
        with pytest.raises(ReadFailure):
            asyncio.run(TextExtractor(ocr_engine=FakeOcrEngine()).extract(tmp_path / "nope.txt", FormatKind.TEXT))


class TestWord:
    """Word document extraction."""

    def test_paragraphs_and_tables(self, tmp_path):
        document = docx.Document()
        document.add_heading("Warranty Deed", level=1)
        document.add_paragraph("Grantor: John Smith")
        table = document.add_table(rows=1, cols=2)
        table.rows[0].cells[0].text = "Book"
        table.rows[0].cells[1].text = "123"
        path = tmp_path / "deed.docx"
        document.save(str(path))

        text = asyncio.run(WordTextExtractor().extract(path))
        assert "Warranty Deed" in text
        assert "Grantor: John Smith" in text
        assert "Book\t123" in text

    def test_corrupt_document_is_read_failure(self, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"not a zip file")
        with pytest.raises(ReadFailure):
            asyncio.run(WordTextExtractor().extract(path))


class TestImage:
    """Image OCR with a scoped optimized intermediate."""

    @pytest.fixture
    def image_path(self, tmp_path):
        path = tmp_path / "scan.jpg"
        Image.new("RGB", (64, 32), color=(200, 180, 160)).save(path)
        return path

    def test_ocr_on_optimized_image_then_cleanup(self, image_path):
        ocr = FakeOcrEngine(text="RECORDED 01/15/2024")
        events = []
        text = asyncio.run(ImageTextExtractor(ocr).extract(
            image_path, report=lambda *args: events.append(args)))

        assert text == "RECORDED 01/15/2024"
        optimized = ocr.calls[0]
        assert optimized.name == "scan.jpg_optimized.png"
        assert ocr.existed == [True]
        assert not optimized.exists()
        assert all(stage == Stage.OCR for stage, *_ in events)
        assert events[-1][1] == 75

    def test_preprocess_produces_grayscale_png(self, image_path, tmp_path):
        optimized = ImageTextExtractor.preprocess(image_path, tmp_path)
        with Image.open(optimized) as image:
            assert image.format == "PNG"
            assert image.mode == "L"

    def test_ocr_failure_propagates_and_still_cleans_up(self, image_path):
        ocr = FakeOcrEngine(fail_pages=[None])
        with pytest.raises(OcrFailure):
            asyncio.run(ImageTextExtractor(ocr).extract(image_path))
        assert not ocr.calls[0].exists()

    def test_unreadable_image_is_read_failure(self, tmp_path):
        path = tmp_path / "bad.png"
        path.write_bytes(b"garbage")
        with pytest.raises(ReadFailure):
            asyncio.run(ImageTextExtractor(FakeOcrEngine()).extract(path))


class TestPdf:
    """Digital vs scanned decision and per-page OCR."""

    def test_digital_pdf_skips_ocr(self, digital_pdf, tmp_path):
        ocr = FakeOcrEngine(text="should not be used")
        rasterizer = FakeRasterizer()
        text = asyncio.run(PdfTextExtractor(ocr, rasterizer).extract(digital_pdf, tmp_path))

        assert "John Smith" in text
        assert ocr.calls == []
        assert rasterizer.rendered == []

    def test_short_text_layer_counts_as_scanned(self, tmp_path):
        pdf = make_pdf(tmp_path / "short.pdf", ["Page 1 of 2", ""])
        ocr = FakeOcrEngine(pages={1: "first", 2: "second"})
        text = asyncio.run(PdfTextExtractor(ocr, FakeRasterizer()).extract(pdf, tmp_path))
        assert len(ocr.calls) == 2
        assert text == "\n--- PAGE 1 ---\nfirst\n--- PAGE 2 ---\nsecond"

    def test_scanned_pdf_runs_ocr_on_every_page(self, scanned_pdf, tmp_path):
        ocr = FakeOcrEngine(pages={1: "one", 2: "two", 3: "three"})
        rasterizer = FakeRasterizer()
        text = asyncio.run(PdfTextExtractor(ocr, rasterizer).extract(scanned_pdf, tmp_path))

        assert [p.name for p in ocr.calls] == ["page.1.png", "page.2.png", "page.3.png"]
        assert "--- PAGE 1 ---\none" in text
        assert "--- PAGE 3 ---\nthree" in text
        # page images are removed once recognized
        assert not any(p.exists() for p in rasterizer.rendered)

    def test_failed_page_is_omitted(self, scanned_pdf, tmp_path):
        ocr = FakeOcrEngine(pages={1: "one", 2: "two", 3: "three"}, fail_pages=[2])
        text = asyncio.run(PdfTextExtractor(ocr, FakeRasterizer()).extract(scanned_pdf, tmp_path))

        assert "--- PAGE 1 ---" in text
        assert "--- PAGE 3 ---" in text
        assert "--- PAGE 2 ---" not in text
        assert "two" not in text

    def test_raster_failure_is_isolated_too(self, scanned_pdf, tmp_path):
        ocr = FakeOcrEngine(pages={1: "one", 2: "two", 3: "three"})
        text = asyncio.run(PdfTextExtractor(ocr, FakeRasterizer(fail_pages=[1])).extract(scanned_pdf, tmp_path))
        assert text == "\n--- PAGE 2 ---\ntwo\n--- PAGE 3 ---\nthree"

    def test_parallel_pages_keep_page_order(self, scanned_pdf, tmp_path):
        ocr = FakeOcrEngine(pages={1: "one", 2: "two", 3: "three"})
        extractor = PdfTextExtractor(ocr, FakeRasterizer(), concurrency=3)
        text = asyncio.run(extractor.extract(scanned_pdf, tmp_path))
        assert text.index("PAGE 1") < text.index("PAGE 2") < text.index("PAGE 3")

    def test_unexpected_page_error_cancels_other_pages(self, scanned_pdf, tmp_path):
        finished = []

        class BrokenOcr(FakeOcrEngine):
            async def recognize(self, image_path, on_progress=None, timeout=None):
                if image_path.name == "page.1.png":
                    raise ValueError("engine crashed")
                await asyncio.sleep(0.2)
                finished.append(image_path.name)
                return "late"

        async def run():
            extractor = PdfTextExtractor(BrokenOcr(), FakeRasterizer(), concurrency=3)
            with pytest.raises(ValueError):
                await extractor.extract(scanned_pdf, tmp_path)
            await asyncio.sleep(0.3)

        asyncio.run(run())
        assert finished == []

    @pytest.mark.parametrize("chars, scanned", [(100, True), (101, False)])
    def test_text_layer_threshold(self, scanned_pdf, tmp_path, chars, scanned):
        ocr = FakeOcrEngine(text="ocr text")
        extractor = PdfTextExtractor(ocr, FakeRasterizer(), threshold=100)
        extractor.extract_text_layer = lambda path: ("  " + "x" * chars + "\n", 3)

        text = asyncio.run(extractor.extract(scanned_pdf, tmp_path))

        assert bool(ocr.calls) is scanned
        if scanned:
            assert "--- PAGE 1 ---\nocr text" in text
        else:
            assert text.strip() == "x" * chars

    def test_page_progress_is_monotonic(self, scanned_pdf, tmp_path):
        events = []
        ocr = FakeOcrEngine(text="x")
        asyncio.run(PdfTextExtractor(ocr, FakeRasterizer()).extract(
            scanned_pdf, tmp_path, report=lambda *args: events.append(args)))

        percents = [pct for _, pct, _, _ in events]
        assert percents == sorted(percents)
        assert percents[-1] == 75
        assert events[-1][3] == {"currentPage": 3, "totalPages": 3}

    def test_corrupt_pdf_is_read_failure(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"%PDF-1.4 garbage")
        with pytest.raises(ReadFailure):
            asyncio.run(PdfTextExtractor(FakeOcrEngine(), FakeRasterizer()).extract(path, tmp_path))


def test_page_progress_band():
    assert page_progress(1, 3) == 35
    assert page_progress(3, 3) == 75
    assert page_progress(1, 1) == 75
