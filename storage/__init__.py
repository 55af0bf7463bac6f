"""Storage module for item originals and previews.

Originals live in an S3-compatible bucket and are only ever handed out as
short-lived signed URLs. Legacy items keep their original on the local disk.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiofiles
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

class StorageError(Exception):
    """Raised when an object store operation fails."""
    pass

class ObjectStore:
    """S3-compatible object store client."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None
    ):
        """Initialize object store.

        Args:
            bucket: Bucket holding originals
            region: Optional region name
            endpoint_url: Optional endpoint for S3-compatible services (R2, MinIO)
            client: Optional preconfigured boto3 S3 client
        """
        self.bucket = bucket
        self.client = client or boto3.client(
            's3',
            region_name=region or None,
            endpoint_url=endpoint_url or None,
            config=Config(signature_version='s3v4')
        )

    async def put(self, key: str, body: bytes, content_type: str) -> None:
        """Upload an object.

        Args:
            key: Object key
            body: Object bytes
            content_type: MIME type stored with the object

        Raises:
            StorageError: If the upload fails
        """
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {key} to bucket {self.bucket}: {e}")
            raise StorageError(f"Failed to upload {key}: {e}")

    def signed_url(self, key: str, expires_in: int = 60, filename: Optional[str] = None) -> str:
        """Create a signed GET URL for an object.

        Signing is local, no request is made to the store.

        Args:
            key: Object key
            expires_in: URL lifetime in seconds
            filename: Optional download filename for Content-Disposition

        Returns:
            Signed URL
        """
        params = {'Bucket': self.bucket, 'Key': key}
        if filename:
            params['ResponseContentDisposition'] = f"attachment; filename*=UTF-8''{quote(filename)}"
        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params=params,
                ExpiresIn=expires_in
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to sign URL for {key}: {e}")

async def write_local_file(directory: str, name: str, body: bytes) -> str:
    """Write bytes under a local directory, creating it if needed.

    Args:
        directory: Target directory
        name: File name
        body: File contents

    Returns:
        Path of the written file
    """
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, name)
    async with aiofiles.open(path, 'wb') as f:
        await f.write(body)
    return path

def resolve_local_file(file_path: str) -> Optional[Path]:
    """Resolve a legacy item's local file, or None when it no longer exists."""
    path = Path(file_path).resolve()
    return path if path.is_file() else None

__all__ = ['ObjectStore', 'StorageError', 'write_local_file', 'resolve_local_file']
