from typing import List, Optional
from io import BytesIO
from langchain_text_splitters import RecursiveCharacterTextSplitter
from pypdf import PdfReader
import docx

from similarity_service.core.config import settings

PDF_MIME_TYPES = {"application/pdf"}
DOCX_MIME_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}


class UnsupportedFileTypeError(ValueError):
    """Raised when no extractor exists for a file's type."""


class DocumentProcessor:
    def __init__(self, chunk_size: int = None, chunk_overlap: int = None):
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size or settings.CHUNK_SIZE,
            chunk_overlap=chunk_overlap or settings.CHUNK_OVERLAP,
            separators=["\n\n", "\n", ". ", " ", ""]
        )

    def extract_text_from_pdf(self, file_bytes: bytes) -> str:
        """Extract text from PDF"""
        # PdfReader needs a file-like object that supports seeking
        reader = PdfReader(BytesIO(file_bytes))
        return "\n".join(page.extract_text() or "" for page in reader.pages)

    def extract_text_from_docx(self, file_bytes: bytes) -> str:
        """Extract text from DOCX"""
        doc = docx.Document(BytesIO(file_bytes))
        return "\n".join(para.text for para in doc.paragraphs)

    def extract_text(self, file_bytes: bytes, mime_type: Optional[str], file_name: str) -> str:
        """Extract plain text based on mime type, falling back to the file extension."""
        name = (file_name or "").lower()
        if mime_type in PDF_MIME_TYPES or name.endswith(".pdf"):
            return self.extract_text_from_pdf(file_bytes)
        if mime_type in DOCX_MIME_TYPES or name.endswith(".docx"):
            return self.extract_text_from_docx(file_bytes)
        if (mime_type or "").startswith("text/") or name.endswith((".txt", ".md", ".csv")):
            return file_bytes.decode("utf-8", errors="replace")
        raise UnsupportedFileTypeError(f"No text extractor for {file_name} ({mime_type})")

    def chunk_text(self, text: str) -> List[str]:
        """Split long text into overlapping chunks for partial-duplicate comparison"""
        return self.text_splitter.split_text(text)
