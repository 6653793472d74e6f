import logging
from pathlib import Path
from typing import Tuple
from urllib.parse import urlparse

import boto3

from config import AWS_ACCESS_KEY_ID, AWS_REGION, AWS_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """
    Split an ``s3://bucket/key`` URI into bucket and key

    Raises:
        ValueError: if the URI has no bucket or no key
    """
    parsed = urlparse(uri)
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if parsed.scheme != "s3" or not bucket or not key:
        raise ValueError(f"Invalid S3 URI: {uri}")
    return bucket, key


class S3Client:
    def __init__(self):
        """Initialize S3 client with configuration from environment variables"""
        self.s3_client = boto3.client(
            "s3",
            aws_access_key_id=AWS_ACCESS_KEY_ID,
            aws_secret_access_key=AWS_SECRET_ACCESS_KEY,
            region_name=AWS_REGION,
        )

    def download_model(self, bucket: str, key: str, save_path: Path) -> Path:
        """
        Download a serialized model object from S3

        Args:
            bucket: S3 bucket name
            key: S3 key of the model object
            save_path: Local destination

        Returns:
            Path of the downloaded file
        """
        save_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = save_path.with_name(save_path.name + ".part")
        logger.info(f"📥 Downloading model from s3://{bucket}/{key}")
        try:
            self.s3_client.download_file(bucket, key, str(tmp_path))
            tmp_path.replace(save_path)
        finally:
            tmp_path.unlink(missing_ok=True)

        file_size = save_path.stat().st_size / (1024 * 1024)  # MB
        logger.info(f"✅ Downloaded: {save_path.name} ({file_size:.1f} MB)")
        return save_path


# Create a singleton instance
s3_client = S3Client()
