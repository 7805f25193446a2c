"""Image inspection and CDN upload service"""

import asyncio
import io
from typing import Optional

import aioboto3
from botocore.exceptions import ClientError
from PIL import Image

from app.models.chat import new_id
from app.models.config import CDNConfig
from app.models.file import ImageMetadata
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()

# Retryable S3 error codes
_RETRYABLE_CODES = {"RequestTimeout", "ServiceUnavailable", "ThrottlingException", "Throttling", "SlowDown"}


def inspect_image(data: bytes) -> ImageMetadata:
    """Read width, height and format without decoding the full image"""
    with Image.open(io.BytesIO(data)) as image:
        return ImageMetadata(
            width=image.width,
            height=image.height,
            format=(image.format or "").lower() or None
        )


class ImageService:
    """Uploads images to an S3-compatible bucket served by the CDN"""

    def __init__(self, config: CDNConfig):
        self.config = config
        self.session = aioboto3.Session()

    @property
    def configured(self) -> bool:
        return self.config.configured

    async def upload(self, data: bytes, file_name: str, content_type: str, max_retries: int = 1) -> str:
        """
        Upload an image and return its public URL.

        Retries once on throttling and network errors.
        """
        key = f"uploads/{new_id()}/{file_name}"
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            try:
                async with self.session.client(
                    "s3",
                    endpoint_url=self.config.endpoint,
                    aws_access_key_id=self.config.access_key,
                    aws_secret_access_key=self.config.secret_key,
                ) as s3:
                    await s3.put_object(
                        Bucket=self.config.bucket,
                        Key=key,
                        Body=data,
                        ContentType=content_type,
                    )
                break
            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "")
                if error_code not in _RETRYABLE_CODES or attempt >= max_retries:
                    raise
                last_error = e
            except OSError as e:
                if attempt >= max_retries:
                    raise
                last_error = e

            wait_time = 2 ** attempt
            logger.warning(f"CDN upload error (attempt {attempt + 1}), retrying in {wait_time}s: {last_error}")
            await asyncio.sleep(wait_time)

        base_url = (self.config.public_url or f"{self.config.endpoint}/{self.config.bucket}").rstrip("/")
        url = f"{base_url}/{key}"
        logger.info(f"Image uploaded to CDN: {url}")
        return url


# Global instance
_image_service = None


def get_image_service() -> ImageService:
    """Get the global image service instance"""
    global _image_service
    if _image_service is None:
        _image_service = ImageService(CDNConfig.from_env(get_config()))
    return _image_service
