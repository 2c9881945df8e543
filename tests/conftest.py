import io
import time
import zipfile
from collections.abc import Callable, Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import openpyxl
import pytest
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from docpipe.config.settings import Settings
from docpipe.processor.governor import Budget

LONG_LINE = "The quarterly report lists revenue, costs and the outlook for next year."


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def mixed_pdf_bytes() -> bytes:
    """Three pages: long text, blank, long text."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, LONG_LINE)
    c.showPage()
    c.showPage()
    c.drawString(72, 720, LONG_LINE)
    c.save()
    return buf.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    image = Image.new("RGB", (120, 80), (200, 30, 30))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def xlsx_bytes() -> bytes:
    """Workbook with two sheets: 'Summary' then 'Data'."""
    workbook = openpyxl.Workbook()
    summary = workbook.active
    summary.title = "Summary"
    summary.append(["name", "total"])
    summary.append(["alpha", 3])
    data = workbook.create_sheet("Data")
    data.append(["id", "value", None, None])
    data.append([None, None])
    data.append([1, 2.5])
    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()


@pytest.fixture()
def docx_bytes() -> bytes:
    document = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        "<w:body>"
        "<w:p><w:r><w:t>First paragraph</w:t></w:r></w:p>"
        "<w:p><w:r><w:t>Second </w:t></w:r><w:r><w:t>paragraph</w:t></w:r></w:p>"
        "</w:body></w:document>"
    )
    return _zip({"word/document.xml": document})


@pytest.fixture()
def pptx_bytes() -> bytes:
    def slide(text: str) -> str:
        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<p:sld xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main" '
            'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
            f"<p:cSld><p:spTree><p:sp><p:txBody><a:p><a:r><a:t>{text}</a:t></a:r></a:p>"
            "</p:txBody></p:sp></p:spTree></p:cSld></p:sld>"
        )

    return _zip(
        {
            "ppt/slides/slide10.xml": slide("Tenth slide"),
            "ppt/slides/slide2.xml": slide("Second slide"),
            "ppt/slides/slide1.xml": slide("First slide"),
            "ppt/slides/_rels/slide1.xml.rels": "<Relationships/>",
        }
    )


@pytest.fixture()
def odt_bytes() -> bytes:
    content = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<office:document-content xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0" '
        'xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0">'
        "<office:body><office:text>"
        "<text:h>Heading</text:h>"
        "<text:p>Body <text:span>text</text:span> here</text:p>"
        "</office:text></office:body></office:document-content>"
    )
    return _zip({"content.xml": content})


@pytest.fixture()
def ods_bytes() -> bytes:
    """Spreadsheet with sheets 'First' and 'Second'; uses row and column repeats."""
    content = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<office:document-content xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0" '
        'xmlns:table="urn:oasis:names:tc:opendocument:xmlns:table:1.0" '
        'xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0">'
        "<office:body><office:spreadsheet>"
        '<table:table table:name="First">'
        "<table:table-row>"
        "<table:table-cell><text:p>a</text:p></table:table-cell>"
        '<table:table-cell table:number-columns-repeated="2"><text:p>b</text:p></table:table-cell>'
        '<table:table-cell table:number-columns-repeated="1000"/>'
        "</table:table-row>"
        '<table:table-row table:number-rows-repeated="500">'
        '<table:table-cell table:number-columns-repeated="1000"/>'
        "</table:table-row>"
        "</table:table>"
        '<table:table table:name="Second">'
        '<table:table-row table:number-rows-repeated="2">'
        "<table:table-cell><text:p>x</text:p></table:table-cell>"
        "</table:table-row>"
        "</table:table>"
        "</office:spreadsheet></office:body></office:document-content>"
    )
    return _zip({"content.xml": content})


@pytest.fixture()
def write_file(tmp_path: Path) -> Callable[[str, bytes | str], Path]:
    """Write a document under tmp_path/docs and return its path."""
    docs = tmp_path / "docs"
    docs.mkdir()

    def _write(name: str, content: bytes | str) -> Path:
        path = docs / name
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_bytes(content)
        return path

    return _write


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        temp_dir=str(tmp_path / "scratch"),
        ocr_engine="none",
        threads=4,
        timeout_seconds=30,
        abort_grace_seconds=2,
    )


@pytest.fixture()
def budget(tmp_path: Path) -> Generator[Budget, None, None]:
    """A Budget with a private unit pool, for running steps directly."""
    scratch = tmp_path / "unit-scratch"
    scratch.mkdir()
    pool = ThreadPoolExecutor(max_workers=5)
    yield Budget(
        step_name="test",
        deadline=time.monotonic() + 30,
        unit_pool=pool,
        scratch_dir=scratch,
    )
    pool.shutdown(wait=True, cancel_futures=True)


def _zip(members: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buf.getvalue()
