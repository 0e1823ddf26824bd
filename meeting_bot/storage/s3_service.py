"""
S3 Service for uploading finished meeting recordings.
"""
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from meeting_bot.config import get_logger, S3Settings
from meeting_bot.core.exceptions import StorageError

logger = get_logger("storage")


CONTENT_TYPES = {
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mp4": "video/mp4",
}


class S3Service:
    """Handles uploading recordings to AWS S3."""

    def __init__(self, s3_settings: S3Settings, client=None):
        self.bucket_name = s3_settings.s3_bucket_name
        self.region = s3_settings.region
        self.s3_client = client

        if self.s3_client is not None:
            return

        if self._credentials_available(s3_settings):
            try:
                self.s3_client = boto3.client(
                    's3',
                    aws_access_key_id=s3_settings.access_key_id,
                    aws_secret_access_key=s3_settings.secret_access_key,
                    region_name=self.region
                )
                logger.info(f"S3 service initialized for bucket: {self.bucket_name}")
            except (BotoCoreError, ValueError) as e:
                logger.error(f"Failed to initialize S3 client: {e}")
                self.s3_client = None
        else:
            logger.warning("AWS credentials not configured. S3 upload will be disabled.")

    def _credentials_available(self, s3_settings: S3Settings) -> bool:
        """Check if AWS credentials are configured."""
        return bool(
            s3_settings.access_key_id and
            s3_settings.secret_access_key and
            self.bucket_name
        )

    @staticmethod
    def _sanitize(value: str) -> str:
        """Make a value safe for use as an S3 key segment."""
        sanitized = re.sub(r'[^a-zA-Z0-9\-_.]+', '_', value).strip('_')
        return sanitized[:100] or 'unknown'

    def is_enabled(self) -> bool:
        """Check if S3 service is enabled and ready."""
        return self.s3_client is not None

    def upload_recording(self, file_path: Path, bot_id: int) -> Optional[str]:
        """
        Upload a finished recording to S3.

        Structure: bot-{bot_id}/recording_{timestamp}{ext}

        Args:
            file_path: Local path to the recording file
            bot_id: Control-plane bot id

        Returns:
            s3:// reference, or None when S3 is disabled

        Raises:
            StorageError: The file is missing or the upload failed
        """
        if not self.s3_client:
            logger.warning("S3 client not initialized. Skipping recording upload.")
            return None

        file_path = Path(file_path)
        if not file_path.exists():
            raise StorageError(f"Recording file not found: {file_path}")

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        extension = file_path.suffix
        s3_key = f"{self._sanitize(f'bot-{bot_id}')}/recording_{timestamp}{extension}"

        logger.info(f"Uploading recording to S3: {s3_key}")
        try:
            with open(file_path, 'rb') as f:
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=s3_key,
                    Body=f,
                    ContentType=CONTENT_TYPES.get(extension, "application/octet-stream"),
                    Metadata={
                        'bot_id': str(bot_id),
                        'upload_timestamp': timestamp
                    }
                )
        except (BotoCoreError, ClientError, OSError) as e:
            raise StorageError(
                f"Failed to upload recording to S3: {e}",
                details={"bucket": self.bucket_name, "key": s3_key},
            ) from e

        s3_url = f"s3://{self.bucket_name}/{s3_key}"
        file_size_mb = file_path.stat().st_size / (1024 * 1024)
        logger.info(f"Uploaded recording to S3: {s3_url} ({file_size_mb:.2f} MB)")
        return s3_url
