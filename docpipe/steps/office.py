import io
import re
import xml.etree.ElementTree as ET
import zipfile
from collections.abc import Callable

from striprtf.striprtf import rtf_to_text

from docpipe.logging.logger import Log
from docpipe.normalization.normalizer import normalize
from docpipe.processor.exceptions import DecodeError, UnsupportedFormatError
from docpipe.processor.file_loader import FileLoader
from docpipe.processor.governor import Budget
from docpipe.processor.models import Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep, format_extracted_data

_WORD_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
_DRAWING_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"
_ODF_TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"
_SLIDE_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class OfficeStep(PipelineStep):
    name = "office"
    fatal = True

    def __init__(self, file_loader: FileLoader | None = None) -> None:
        self._file_loader = file_loader if file_loader is not None else FileLoader()

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        extractor = EXTRACTORS.get(query.file_type.lower())
        if extractor is None:
            raise UnsupportedFormatError(f"No office extractor for '{query.file_type}'")
        data = self._file_loader.load(query)
        try:
            text = extractor(data)
        except (zipfile.BadZipFile, KeyError, ET.ParseError) as exc:
            raise DecodeError(f"{query.file_type} document unreadable: {exc}") from exc
        budget.check()

        text = normalize(text)
        Log.info(f"Extracted {len(text)} chars from {query.file_path}")
        if not text:
            return StepOutcome.completed(errors=["document contains no text"])
        return StepOutcome.completed(prompt_parts=[format_extracted_data(text)])


def extract_docx_text(data: bytes) -> str:
    root = _read_member(data, "word/document.xml")
    paragraphs = []
    for paragraph in root.iter(f"{{{_WORD_NS}}}p"):
        chunks = []
        for node in paragraph.iter():
            if node.tag == f"{{{_WORD_NS}}}t":
                chunks.append(node.text or "")
            elif node.tag == f"{{{_WORD_NS}}}tab":
                chunks.append("\t")
            elif node.tag in (f"{{{_WORD_NS}}}br", f"{{{_WORD_NS}}}cr"):
                chunks.append("\n")
        paragraphs.append("".join(chunks))
    return "\n".join(paragraphs)


def extract_pptx_text(data: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        slides = sorted(
            (int(match.group(1)), name)
            for name in archive.namelist()
            if (match := _SLIDE_RE.match(name))
        )
        slide_texts = []
        for _, name in slides:
            root = ET.fromstring(archive.read(name))
            lines = [
                "".join(node.text or "" for node in paragraph.iter(f"{{{_DRAWING_NS}}}t"))
                for paragraph in root.iter(f"{{{_DRAWING_NS}}}p")
            ]
            slide_texts.append("\n".join(lines))
    return "\n".join(slide_texts)


def extract_odf_text(data: bytes) -> str:
    root = _read_member(data, "content.xml")
    blocks = [
        "".join(element.itertext())
        for element in root.iter()
        if element.tag in (f"{{{_ODF_TEXT_NS}}}p", f"{{{_ODF_TEXT_NS}}}h")
    ]
    return "\n".join(blocks)


def extract_rtf_text(data: bytes) -> str:
    # RTF is 7-bit with escapes; latin-1 maps every byte so decoding cannot fail
    return rtf_to_text(data.decode("latin-1"), errors="ignore")


def _read_member(data: bytes, member: str) -> ET.Element:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return ET.fromstring(archive.read(member))


EXTRACTORS: dict[str, Callable[[bytes], str]] = {
    "docx": extract_docx_text,
    "docm": extract_docx_text,
    "pptx": extract_pptx_text,
    "pptm": extract_pptx_text,
    "odt": extract_odf_text,
    "odp": extract_odf_text,
    "rtf": extract_rtf_text,
}
