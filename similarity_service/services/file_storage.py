"""Object storage access for stored document files."""
import asyncio
import logging
from typing import Optional

import boto3
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from similarity_service.core.config import settings

logger = logging.getLogger(__name__)


class FileTooLargeError(Exception):
    """Stored object exceeds the byte budget for extraction."""


class FileStorage:
    """Reads stored files from the S3 bucket with a per-file byte cap."""

    def __init__(self, bucket: str = None, client=None):
        self.bucket = bucket or settings.S3_BUCKET
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client(
                's3',
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                region_name=settings.S3_REGION,
                endpoint_url=settings.S3_ENDPOINT_URL,
            )
        return self._client

    def _read_object(self, storage_key: str, max_bytes: Optional[int]) -> bytes:
        file_obj = self._get_client().get_object(Bucket=self.bucket, Key=storage_key)
        size = file_obj.get('ContentLength', 0)
        if max_bytes is not None and size > max_bytes:
            file_obj['Body'].close()
            raise FileTooLargeError(f"{storage_key} is {size} bytes (limit {max_bytes})")
        return file_obj['Body'].read()

    @retry(
        retry=retry_if_not_exception_type(FileTooLargeError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        reraise=True,
    )
    async def read_file(self, storage_key: str, max_bytes: Optional[int] = None) -> bytes:
        """Download a stored file, retrying transient failures."""
        # boto3 is blocking; keep the event loop free while downloading
        return await asyncio.to_thread(self._read_object, storage_key, max_bytes)
