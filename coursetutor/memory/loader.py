# coursetutor/memory/loader.py

"""
Text extraction for uploaded course materials.

Pipeline contract:
loader → chunker → embedder → store

Supports:
- PDF files (text layer only, no OCR)
- Plain text
- Markdown
"""

import io
import logging
import os

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from coursetutor.config import (
    ALLOWED_FILE_EXTENSIONS,
    MAX_DOCUMENT_CHARACTERS,
)
from coursetutor.errors import DocumentProcessingError, NoTextExtractedError

logger = logging.getLogger(__name__)


# ============================================================
# SAFETY: CHARACTER LIMIT
# ============================================================

def enforce_character_limit(text: str) -> str:

    if not text:
        return ""

    if len(text) > MAX_DOCUMENT_CHARACTERS:
        return text[:MAX_DOCUMENT_CHARACTERS]

    return text


# ============================================================
# PDF LOADER
# ============================================================

def load_pdf_text(content: bytes, filename: str = "document.pdf") -> str:

    try:
        reader = PdfReader(io.BytesIO(content))

        if reader.is_encrypted:
            raise DocumentProcessingError(
                "Failed to extract text from PDF: file is password-protected",
                {"file_name": filename},
            )

        parts = []

        for page in reader.pages:

            text = page.extract_text()

            if text:
                parts.append(text)

    except DocumentProcessingError:
        raise

    except (PdfReadError, ValueError, KeyError, TypeError) as e:

        logger.error(
            "PDF extraction error",
            extra={"file_name": filename, "error": str(e)},
        )

        raise DocumentProcessingError(
            "Failed to extract text from PDF: file may be corrupted",
            {"file_name": filename},
        ) from e

    logger.info(
        "PDF text extracted",
        extra={"file_name": filename, "pages": len(reader.pages)},
    )

    return enforce_character_limit("\n".join(parts))


# ============================================================
# PLAIN TEXT / MARKDOWN LOADER
# ============================================================

def load_plain_text(content: bytes, filename: str = "document.txt") -> str:

    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DocumentProcessingError(
            "File is not valid UTF-8 text",
            {"file_name": filename},
        ) from e

    return enforce_character_limit(text)


# ============================================================
# UNIFIED ENTRYPOINT
# ============================================================

def extract_text(filename: str, content: bytes) -> str:
    """
    Extract usable text from an uploaded file.

    Raises NoTextExtractedError when the file parses but holds no text
    (typically a scanned PDF), so callers can suggest OCR.
    """

    extension = os.path.splitext(filename)[1].lower()

    if extension not in ALLOWED_FILE_EXTENSIONS:
        raise DocumentProcessingError(
            f"Unsupported file type: {extension or 'none'}",
            {"file_name": filename, "allowed": ALLOWED_FILE_EXTENSIONS},
        )

    if not content:
        raise NoTextExtractedError(filename)

    if extension == ".pdf":
        text = load_pdf_text(content, filename)
    else:
        text = load_plain_text(content, filename)

    if not text.strip():
        logger.warning("No text extracted", extra={"file_name": filename})
        raise NoTextExtractedError(filename)

    return text
