"""
MainsGrader - Document Extractors
==================================
Thin adapters over the parsing libraries used by the content assembler.

  PDF   → PyMuPDF: page count, per-page text, per-page JPEG rendering
  DOCX  → python-docx: paragraph and table text
  PPTX  → zipfile: slide XML parts, <a:t> text runs
  Image → raw bytes as a base64 data URL (no re-encoding)

None of these catch their own errors; the assembler decides what a failure
means for the batch.
"""

import base64
import html
import io
import logging
import re
import zipfile
from typing import List, Optional

import fitz  # PyMuPDF
from PIL import Image

logger = logging.getLogger(__name__)

PDF_TEXT_PAGE_CAP   = 20
PDF_RENDER_PAGE_CAP = 8
PDF_RENDER_SCALE    = 1.8
PDF_JPEG_QUALITY    = 70
PPTX_SLIDE_CAP      = 40

_SLIDE_PART_RE = re.compile(r"ppt/slides/slide(\d+)\.xml")
_TEXT_RUN_RE   = re.compile(r"<a:t(?:\s[^>]*)?>(.*?)</a:t>", re.DOTALL)


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


# ─────────────────────────────────────────────────────────────────────────────
# PDF
# ─────────────────────────────────────────────────────────────────────────────

class PdfDocument:
    """Read-only view of a PDF held in memory."""

    def __init__(self, data: bytes):
        self._doc = fitz.open(stream=data, filetype="pdf")

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def page_text(self, index: int) -> str:
        return self._doc[index].get_text().strip()

    def render_page(self, index: int, scale: float = PDF_RENDER_SCALE,
                    quality: int = PDF_JPEG_QUALITY) -> str:
        """Rasterize one page and return it as a JPEG data URL."""
        pix = self._doc[index].get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=quality)
        return to_data_url(buf.getvalue(), "image/jpeg")

    def close(self):
        self._doc.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def open_pdf(data: bytes) -> PdfDocument:
    return PdfDocument(data)


def extract_pdf_text(doc: PdfDocument, max_pages: int = PDF_TEXT_PAGE_CAP) -> str:
    """Concatenate page texts with [Page N] markers, up to max_pages."""
    text = ""
    for i in range(min(doc.page_count, max_pages)):
        text += f"\n\n[Page {i + 1}] {doc.page_text(i)}"
    return text


def render_pdf_pages(doc: PdfDocument, max_pages: int = PDF_RENDER_PAGE_CAP) -> List[str]:
    return [doc.render_page(i) for i in range(min(doc.page_count, max_pages))]


# ─────────────────────────────────────────────────────────────────────────────
# DOCX
# ─────────────────────────────────────────────────────────────────────────────

def extract_docx_text(data: bytes) -> str:
    from docx import Document

    doc = Document(io.BytesIO(data))
    lines = [p.text for p in doc.paragraphs if p.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            row_text = " | ".join(cell.text.strip() for cell in row.cells)
            if row_text.strip(" |"):
                lines.append(row_text)

    return "\n".join(lines)


# ─────────────────────────────────────────────────────────────────────────────
# PPTX
# ─────────────────────────────────────────────────────────────────────────────

def slide_number(part_name: str) -> Optional[int]:
    m = _SLIDE_PART_RE.fullmatch(part_name)
    return int(m.group(1)) if m else None


def sorted_slide_parts(names: List[str]) -> List[str]:
    """Slide XML parts in presentation order (slide10 after slide9)."""
    slides = [n for n in names if slide_number(n) is not None]
    return sorted(slides, key=slide_number)


def extract_pptx_text(data: bytes, max_slides: int = PPTX_SLIDE_CAP) -> str:
    text = ""
    found_runs = False
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for part in sorted_slide_parts(archive.namelist())[:max_slides]:
            xml = archive.read(part).decode("utf-8", errors="replace")
            runs = [html.unescape(r) for r in _TEXT_RUN_RE.findall(xml)]
            found_runs = found_runs or any(r.strip() for r in runs)
            text += f"\n\n[Slide {slide_number(part)}] {' '.join(runs)}"
    return text if found_runs else ""
