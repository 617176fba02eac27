"""
Plain-text extraction from uploaded PDF, DOCX and text files
"""
import io
import logging
from typing import Iterable, List, Tuple

import PyPDF2
from docx import Document

from papergen.errors import EmptySourceTextError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

SUPPORTED_MIME_TYPES = (PDF_MIME, DOCX_MIME, TEXT_MIME)


def _extract_pdf(data: bytes) -> str:
    pdf_reader = PyPDF2.PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in pdf_reader.pages]
    logger.info(f"Extracted text from PDF: {len(pdf_reader.pages)} pages")
    return "\n".join(pages)


def _extract_docx(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    lines = [paragraph.text for paragraph in document.paragraphs]
    # Syllabus weightage usually lives in tables; keep rows as `a | b | c`
    for table in document.tables:
        for row in table.rows:
            lines.append(" | ".join(cell.text.strip() for cell in row.cells))
    return "\n".join(lines)


def extract_text(data: bytes, mime_type: str) -> str:
    """
    Extract plain text from file bytes

    Args:
        data: raw file content
        mime_type: declared content type (parameters such as charset are ignored)

    Raises:
        UnsupportedFileTypeError: mime type is not PDF, DOCX or plain text
        EmptySourceTextError: the file could not be read
    """
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in SUPPORTED_MIME_TYPES:
        raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type or 'unknown'}")

    try:
        if mime == PDF_MIME:
            return _extract_pdf(data)
        if mime == DOCX_MIME:
            return _extract_docx(data)
        return data.decode("utf-8", errors="replace")
    except Exception as e:
        logger.error(f"Failed to extract text ({mime}): {str(e)}")
        raise EmptySourceTextError(f"Could not read {mime} file: {str(e)}") from e


def combine_files(files: Iterable[Tuple[str, str]]) -> str:
    """Join (filename, text) pairs with `=== filename ===` separators"""
    parts: List[str] = [f"\n\n=== {name} ===\n\n{text}" for name, text in files]
    return "".join(parts)


_EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".txt": TEXT_MIME,
}


def resolve_mime_type(filename: str, content_type: str) -> str:
    """Declared content type, or one inferred from the extension for generic uploads"""
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in SUPPORTED_MIME_TYPES:
        return mime
    for extension, inferred in _EXTENSION_MIME_TYPES.items():
        if (filename or "").lower().endswith(extension):
            return inferred
    return mime
