# invoices/extract.py
"""
PDF -> text adapter. Everything downstream works on the extracted string.
"""
import io
import logging

import pdfplumber

logger = logging.getLogger(__name__)


class InvoiceExtractionError(Exception):
    """Raised when the uploaded bytes cannot be read as a PDF"""
    pass


def extract_text(data: bytes) -> str:
    """
    Return the text of every page joined with newlines, carriage returns removed.

    Raises:
        InvoiceExtractionError: If the data is empty or not a readable PDF
    """
    if not data:
        raise InvoiceExtractionError("Empty file")

    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [(page.extract_text() or "") for page in pdf.pages]
    except Exception as e:
        logger.warning(f"Could not extract text from PDF: {e}")
        raise InvoiceExtractionError(f"Unable to read PDF: {e}") from e

    return "\n".join(pages).replace("\r", "")
