"""Comparison text from a document's stored files."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from similarity_service.core.config import settings
from similarity_service.services.document_processor import DocumentProcessor
from similarity_service.services.file_storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Outcome of extracting one file: either text or the reason it failed."""
    file_id: Any
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TextExtractionService:

    def __init__(self, storage: FileStorage, processor: DocumentProcessor):
        self.storage = storage
        self.processor = processor

    async def extract_file(self, file, limit_text: bool = False) -> ExtractionResult:
        """Extract a single file; failures are returned, never raised."""
        max_bytes = settings.MAX_FILE_BYTES_LIMITED if limit_text else settings.MAX_FILE_BYTES
        try:
            file_bytes = await self.storage.read_file(file.storage_key, max_bytes=max_bytes)
            text = await asyncio.to_thread(
                self.processor.extract_text, file_bytes, file.mime_type, file.file_name
            )
        except Exception as e:
            logger.warning(f"Failed to extract text from file {file.id} ({file.file_name}): {e}")
            return ExtractionResult(file_id=file.id, error=str(e))

        if limit_text:
            text = text[:settings.MAX_TEXT_CHARS_LIMITED]
        return ExtractionResult(file_id=file.id, text=text)

    async def extract_files(self, files: Sequence[Any], limit_text: bool = False) -> List[ExtractionResult]:
        if limit_text and len(files) > settings.MAX_FILES_LIMITED:
            logger.debug(f"Reading only the first {settings.MAX_FILES_LIMITED} of {len(files)} files")
            files = files[:settings.MAX_FILES_LIMITED]
        # Sequential on purpose: one storage read at a time per job
        return [await self.extract_file(f, limit_text=limit_text) for f in files]

    async def extract_text_from_files(self, files: Sequence[Any], limit_text: bool = False) -> str:
        """
        Concatenated text of all files that could be extracted.

        Args:
            files: File rows (storage_key, mime_type, file_name)
            limit_text: Bound files read, bytes per file and chars per file
                for candidate-side comparisons

        Returns:
            Joined text, empty string if nothing could be extracted
        """
        if not files:
            return ""
        results = await self.extract_files(files, limit_text=limit_text)
        texts = [r.text for r in results if r.ok and r.text]
        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.info(f"Skipped {failed}/{len(results)} files that failed extraction")
        max_chars = settings.MAX_TEXT_CHARS_LIMITED * settings.MAX_FILES_LIMITED if limit_text else settings.MAX_TEXT_CHARS
        return "\n\n".join(texts).strip()[:max_chars]
