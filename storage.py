"""
storage.py — MinIO S3-compatible object storage for shared file payloads.

Falls back to local disk when MinIO is disabled or unreachable. Keys look like
``"<owner_id>/<hex>.<ext>"``.
"""

import os
import logging
from pathlib import Path

import boto3
from botocore.exceptions import ClientError
from botocore.config import Config
from dotenv import load_dotenv

from errors import StoreError

load_dotenv()

logger = logging.getLogger(__name__)

MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "http://localhost:9000")
MINIO_PUBLIC_URL = os.getenv("MINIO_PUBLIC_URL", MINIO_ENDPOINT)
MINIO_ACCESS_KEY = os.getenv("MINIO_ROOT_USER", "admin")
MINIO_SECRET_KEY = os.getenv("MINIO_ROOT_PASSWORD", "StrongPassword123")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "shares")
USE_MINIO = os.getenv("USE_MINIO", "true").lower() == "true"

LOCAL_UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")


def _get_s3_client(endpoint: str):
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=MINIO_ACCESS_KEY,
        aws_secret_access_key=MINIO_SECRET_KEY,
        config=Config(
            signature_version="s3v4",
            connect_timeout=5,
            read_timeout=30,
            retries={"max_attempts": 3, "mode": "standard"},
        ),
        region_name="us-east-1",
    )


def _ensure_bucket(s3_client, bucket: str):
    try:
        s3_client.head_bucket(Bucket=bucket)
    except ClientError as e:
        if e.response["Error"]["Code"] in ("404", "NoSuchBucket"):
            s3_client.create_bucket(Bucket=bucket)
            logger.info(f"Created MinIO bucket: {bucket}")
        else:
            raise


class StorageBackend:

    def __init__(
        self,
        use_minio: bool = USE_MINIO,
        local_dir: str = LOCAL_UPLOAD_DIR,
        endpoint: str = MINIO_ENDPOINT,
        bucket: str = MINIO_BUCKET,
        public_url: str = MINIO_PUBLIC_URL,
    ):
        self.use_minio = use_minio
        self.local_dir = Path(local_dir).resolve()
        self.endpoint = endpoint
        self.bucket = bucket
        self.public_base = public_url.rstrip("/")
        self._minio_available = False
        self._s3 = None
        self.local_dir.mkdir(parents=True, exist_ok=True)
        if use_minio:
            self._init_minio()

    def _init_minio(self):
        try:
            self._s3 = _get_s3_client(self.endpoint)
            _ensure_bucket(self._s3, self.bucket)
            self._minio_available = True
            logger.info(f"MinIO connected: {self.endpoint} / bucket={self.bucket}")
        except Exception as e:
            logger.warning(f"MinIO unavailable ({e}). Falling back to local disk.")
            self._minio_available = False

    @property
    def backend_name(self) -> str:
        return "MinIO" if self._minio_available else "LocalDisk"

    def _local_path(self, key: str) -> Path:
        path = (self.local_dir / key).resolve()
        if self.local_dir not in path.parents:
            raise ValueError(f"Storage key escapes upload directory: {key!r}")
        return path

    def public_url(self, key: str) -> str:
        if self._minio_available:
            return f"{self.public_base}/{self.bucket}/{key}"
        return self._local_path(key).as_uri()

    def store(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        """Write the blob and return its public URL."""
        if self._minio_available:
            try:
                self._s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
                return self.public_url(key)
            except Exception as e:
                logger.error(f"MinIO PUT failed for {key}: {e}. Falling back to disk.")

        path = self._local_path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"LocalDisk PUT failed for {key}: {e}")
            raise StoreError(f"Could not store {key}") from e
        return path.as_uri()

    def get(self, key: str):
        if self._minio_available:
            try:
                response = self._s3.get_object(Bucket=self.bucket, Key=key)
                return response["Body"].read()
            except ClientError as e:
                if e.response["Error"]["Code"] not in ("NoSuchKey", "404"):
                    logger.error(f"MinIO GET failed for {key}: {e}")
            except Exception as e:
                logger.error(f"MinIO GET error for {key}: {e}")

        path = self._local_path(key)
        if path.exists():
            with open(path, "rb") as f:
                return f.read()
        return None

    def delete(self, key: str) -> None:
        """Remove the blob. Errors propagate; callers decide whether they matter."""
        if self._minio_available:
            self._s3.delete_object(Bucket=self.bucket, Key=key)

        path = self._local_path(key)
        if path.exists():
            os.remove(path)

    def get_health(self) -> dict:
        if not self.use_minio:
            return {"status": "local_disk", "message": "MinIO disabled"}
        if self._minio_available:
            try:
                self._s3.head_bucket(Bucket=self.bucket)
                return {"status": "healthy", "backend": "MinIO", "endpoint": self.endpoint}
            except Exception as e:
                return {"status": "degraded", "backend": "MinIO", "error": str(e)}
        return {"status": "fallback", "backend": "LocalDisk"}
