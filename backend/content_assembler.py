"""
MainsGrader - Content Assembler
================================
Turns the files a candidate uploads into the {texts, images} payload the
evaluator expects.

  ┌───────┬────────────────────────────────────────────────────────────┐
  │ Kind  │ Strategy                                                   │
  ├───────┼────────────────────────────────────────────────────────────┤
  │ image │ PNG/JPEG bytes → data URL, appended to images              │
  │ pdf   │ text from first 20 pages; if < 500 chars, first 8 pages    │
  │       │ rendered to JPEG instead (text OR images, never both)      │
  │ docx  │ raw text, one source if non-empty                          │
  │ pptx  │ slide XML text runs, numeric slide order, first 40 slides  │
  └───────┴────────────────────────────────────────────────────────────┘

Only the first 10 accepted files are processed. A file that fails to parse is
reported in `files` with status "failed" and the rest of the batch goes on.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from backend import document_extractors as extractors

logger = logging.getLogger(__name__)

MAX_FILES          = 10
PDF_MIN_TEXT_CHARS = 500

PDF_MIME  = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_MIME = "application/vnd.openxmlformats-officedocument.presentationml.presentation"

IMAGE_MIMES = {"image/png", "image/jpeg"}
IMAGE_EXTENSIONS = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg"}


class FileKind(str, Enum):
    IMAGE   = "image"
    PDF     = "pdf"
    DOCX    = "docx"
    PPTX    = "pptx"
    UNKNOWN = "unknown"


_MIME_KINDS = {PDF_MIME: FileKind.PDF, DOCX_MIME: FileKind.DOCX, PPTX_MIME: FileKind.PPTX}
_EXTENSION_KINDS = {".pdf": FileKind.PDF, ".docx": FileKind.DOCX, ".pptx": FileKind.PPTX}


# ─────────────────────────────────────────────────────────
# Data types
# ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UploadedFile:
    name: str
    data: bytes
    mime: Optional[str] = None


@dataclass(frozen=True)
class TextSource:
    source: str
    text: str

    def to_dict(self) -> dict:
        return {"source": self.source, "text": self.text}


@dataclass(frozen=True)
class ImageBlob:
    mime: str
    data_url: str

    def to_dict(self) -> dict:
        return {"mime": self.mime, "dataUrl": self.data_url}


@dataclass
class FileStatus:
    name: str
    kind: str
    status: str          # text | images | empty | failed | rejected | skipped
    message: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind, "status": self.status, "message": self.message}


@dataclass
class AssembledPayload:
    texts: List[TextSource] = field(default_factory=list)
    images: List[ImageBlob] = field(default_factory=list)
    files: List[FileStatus] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "texts": [t.to_dict() for t in self.texts],
            "images": [i.to_dict() for i in self.images],
        }

    @property
    def warnings(self) -> List[str]:
        return [f"{f.name}: {f.message}" for f in self.files
                if f.status in ("failed", "rejected", "skipped")]


# ─────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────

def detect_kind(name: str, mime: Optional[str] = None) -> FileKind:
    """Classify by declared MIME type first, then by extension."""
    mime = (mime or "").lower()
    ext  = Path(name or "").suffix.lower()

    if mime in IMAGE_MIMES:
        return FileKind.IMAGE
    if mime in _MIME_KINDS:
        return _MIME_KINDS[mime]
    if ext in IMAGE_EXTENSIONS:
        return FileKind.IMAGE
    return _EXTENSION_KINDS.get(ext, FileKind.UNKNOWN)


def needs_image_fallback(text: str, threshold: int = PDF_MIN_TEXT_CHARS) -> bool:
    """True when extracted PDF text is too short to trust (likely a scan)."""
    return len((text or "").strip()) < threshold


def _image_mime(f: UploadedFile) -> str:
    mime = (f.mime or "").lower()
    if mime in IMAGE_MIMES:
        return mime
    return IMAGE_EXTENSIONS.get(Path(f.name).suffix.lower(), "image/jpeg")


# ─────────────────────────────────────────────────────────
# Assembler
# ─────────────────────────────────────────────────────────

class ContentAssembler:

    def __init__(self, max_files: int = MAX_FILES, pdf_min_text_chars: int = PDF_MIN_TEXT_CHARS):
        self.max_files = max_files
        self.pdf_min_text_chars = pdf_min_text_chars

    def assemble(self, files: Iterable[UploadedFile]) -> AssembledPayload:
        payload  = AssembledPayload()
        accepted = 0

        for f in files:
            kind = detect_kind(f.name, f.mime)

            if kind == FileKind.UNKNOWN:
                logger.warning("Unsupported file rejected: %s (%s)", f.name, f.mime or "no type")
                payload.files.append(FileStatus(f.name, kind.value, "rejected", f"Unsupported: {f.name}"))
                continue

            if accepted >= self.max_files:
                payload.files.append(FileStatus(
                    f.name, kind.value, "skipped", f"Only the first {self.max_files} files are evaluated.",
                ))
                continue
            accepted += 1

            try:
                status = self._extract(f, kind, payload)
            except Exception as e:
                logger.warning("Extraction failed for %s: %s", f.name, e, exc_info=True)
                status = FileStatus(f.name, kind.value, "failed", f"Could not read file: {e}")
            payload.files.append(status)

        skipped = sum(1 for s in payload.files if s.status == "skipped")
        if skipped:
            logger.info("File cap reached: %d file(s) not evaluated.", skipped)
        logger.info(
            "Assembled %d text source(s) and %d image(s) from %d file(s).",
            len(payload.texts), len(payload.images), accepted,
        )
        return payload

    # ─────────────────────────────────────────────────────
    # Per-kind strategies. Each appends to the payload only after its
    # extraction has fully succeeded.
    # ─────────────────────────────────────────────────────

    def _extract(self, f: UploadedFile, kind: FileKind, payload: AssembledPayload) -> FileStatus:
        if kind == FileKind.IMAGE:
            mime = _image_mime(f)
            payload.images.append(ImageBlob(mime, extractors.to_data_url(f.data, mime)))
            return FileStatus(f.name, kind.value, "images", "1 image")

        if kind == FileKind.PDF:
            return self._from_pdf(f, payload)

        if kind == FileKind.DOCX:
            text = extractors.extract_docx_text(f.data)
        else:
            text = extractors.extract_pptx_text(f.data)
        return self._add_text(f, kind, text, payload)

    def _from_pdf(self, f: UploadedFile, payload: AssembledPayload) -> FileStatus:
        with extractors.open_pdf(f.data) as doc:
            text = extractors.extract_pdf_text(doc)
            if not needs_image_fallback(text, self.pdf_min_text_chars):
                payload.texts.append(TextSource(f.name, text))
                return FileStatus(f.name, FileKind.PDF.value, "text", f"{len(text)} characters")

            logger.info("PDF %s has little extractable text; rendering pages for OCR.", f.name)
            pages = extractors.render_pdf_pages(doc)

        if not pages:
            return FileStatus(f.name, FileKind.PDF.value, "empty", "PDF has no pages.")
        payload.images.extend(ImageBlob("image/jpeg", url) for url in pages)
        return FileStatus(f.name, FileKind.PDF.value, "images", f"{len(pages)} page image(s) for OCR")

    @staticmethod
    def _add_text(f: UploadedFile, kind: FileKind, text: str, payload: AssembledPayload) -> FileStatus:
        if not text or not text.strip():
            return FileStatus(f.name, kind.value, "empty", "No text found.")
        payload.texts.append(TextSource(f.name, text))
        return FileStatus(f.name, kind.value, "text", f"{len(text)} characters")
