"""Extract policy title and HTML content from uploaded PDF and DOCX files."""
from __future__ import annotations

import html
import logging
import re
from datetime import datetime
from typing import BinaryIO

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024

_HEADING_STYLES = {
    "title": 1,
    "heading 1": 1,
    "heading1": 1,
    "subtitle": 2,
    "heading 2": 2,
    "heading2": 2,
    "heading 3": 3,
    "heading3": 3,
}

_NUMBERED_HEADING = re.compile(r"^(\d+\.\s+|(chapter|section|part|appendix)\s+\d+)", re.IGNORECASE)


class DocumentParseError(ValueError):
    pass


def _paragraph_html(text: str, level: int | None) -> str:
    escaped = html.escape(text)
    if level:
        return f"<h{level}>{escaped}</h{level}>"
    return f"<p>{escaped}</p>"


def _guess_heading(text: str) -> int | None:
    if len(text) > 100 or text.endswith((".", "!", "?")):
        return None
    if _NUMBERED_HEADING.match(text):
        return 2
    if len(text.split()) <= 8 and text.isupper():
        return 3
    return None


def extract_text_from_pdf(file: BinaryIO, max_pages: int = 200) -> tuple[list[dict], dict]:
    """Return ({page, text} dicts, document info) for a PDF."""
    import pdfplumber

    pages = []
    try:
        with pdfplumber.open(file) as pdf:
            info = dict(pdf.metadata or {})
            for i, page in enumerate(pdf.pages[:max_pages]):
                text = page.extract_text() or ""
                if text.strip():
                    pages.append({"page": i + 1, "text": text.strip()})
    except Exception as e:
        logger.error("PDF extraction error: %s", e)
        raise DocumentParseError("Could not read the PDF file.") from e
    return pages, info


def extract_text_from_docx(file: BinaryIO) -> tuple[list[dict], dict]:
    """Return ({index, text, style} dicts, core properties) for a DOCX."""
    from docx import Document

    paragraphs = []
    try:
        doc = Document(file)
        props = doc.core_properties
        info = {"title": props.title or None, "created": props.created}
        for i, para in enumerate(doc.paragraphs):
            text = para.text.strip()
            if text:
                style_name = para.style.name if para.style else ""
                paragraphs.append({"index": i, "text": text, "style": style_name})
    except Exception as e:
        logger.error("DOCX extraction error: %s", e)
        raise DocumentParseError("Could not read the DOCX file.") from e
    return paragraphs, info


def _pdf_created(raw: str | None) -> datetime | None:
    # PDF dates look like D:20240131120000+01'00'
    if not raw:
        return None
    m = re.match(r"D:(\d{14})", raw)
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d%H%M%S")
    except ValueError:
        return None


def parse_policy_document(filename: str, file: BinaryIO) -> dict:
    """Return {title, content (HTML), metadata} for an uploaded policy document."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "pdf":
        pages, info = extract_text_from_pdf(file)
        blocks = []
        for p in pages:
            for line in p["text"].split("\n"):
                line = line.strip()
                if line:
                    blocks.append(_paragraph_html(line, _guess_heading(line)))
        title = (info.get("Title") or "").strip() or None
        if not title and pages:
            title = pages[0]["text"].split("\n", 1)[0].strip()[:255] or None
        meta = {
            "format": "pdf",
            "total_pages": len(pages),
            "created_at": _pdf_created(info.get("CreationDate")),
        }
    elif ext == "docx":
        paragraphs, info = extract_text_from_docx(file)
        blocks = []
        title = info.get("title")
        for p in paragraphs:
            level = _HEADING_STYLES.get(p["style"].lower()) or _guess_heading(p["text"])
            if not title and p["style"].lower() in ("title", "heading 1", "heading1"):
                title = p["text"][:255]
            blocks.append(_paragraph_html(p["text"], level))
        meta = {
            "format": "docx",
            "total_paragraphs": len(paragraphs),
            "created_at": info.get("created"),
        }
    elif ext == "doc":
        raise DocumentParseError("Legacy .doc files are not supported. Please save the document as .docx.")
    else:
        raise DocumentParseError(f"Unsupported file format: .{ext}. Supported: .pdf, .docx")

    content = "\n".join(blocks)
    if not content.strip():
        raise DocumentParseError("The document is empty or no text could be extracted.")

    meta["total_chars"] = len(content)
    return {"title": title, "content": content, "metadata": meta}
