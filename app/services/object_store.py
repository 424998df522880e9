"""Object storage for event media: AWS S3, or the local filesystem fallback."""
import logging
import os
from typing import Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    def __init__(self, operation: str, key: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"{operation} {key} failed{detail}")


class ObjectExistsError(ObjectStoreError):
    """Raised by put() when the key is already taken (objects are never overwritten)."""


class ObjectStore:
    """Interface shared by the S3 and local implementations."""

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip("/")

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    def key_for_url(self, url: str) -> Optional[str]:
        """Inverse of public_url(); None for URLs this store did not issue."""
        prefix = self.public_base_url + "/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None


class S3ObjectStore(ObjectStore):
    """Handles event media in an S3 bucket."""

    def __init__(
        self,
        region: str,
        bucket: str,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        public_base_url: str = "",
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        client=None,
    ):
        """
        Initialize S3 client.

        Args:
            region: AWS region
            bucket: S3 bucket name
            access_key: AWS access key (optional; uses IAM role on EC2)
            secret_key: AWS secret key (optional; uses IAM role on EC2)
            public_base_url: CDN or bucket URL objects are served from
            connect_timeout/read_timeout: per-call limits in seconds; a timeout
                is reported as ObjectStoreError like any other failed call
            client: pre-built boto3 client (tests)
        """
        super().__init__(public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com")
        self.bucket = bucket
        self.region = region
        self.client = client or boto3.client(
            "s3",
            region_name=region or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            config=Config(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 2, "mode": "standard"},
            ),
        )
        logger.info(f"S3 storage initialized for bucket '{bucket}' in region '{region}'")

    def put(self, key, data, content_type="application/octet-stream", metadata=None):
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
                ServerSideEncryption="AES256",
                IfNoneMatch="*",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise ObjectExistsError("put", key, e) from e
            logger.error(f"S3 upload failed for {key}: {e}")
            raise ObjectStoreError("put", key, e) from e
        except BotoCoreError as e:
            # Connect/read timeouts and endpoint errors land here
            logger.error(f"S3 upload failed for {key}: {e}")
            raise ObjectStoreError("put", key, e) from e
        logger.info(f"Uploaded to S3: s3://{self.bucket}/{key}")
        return key

    def get(self, key):
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError("get", key, e) from e

    def delete(self, key):
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            raise ObjectStoreError("delete", key, e) from e
        logger.info(f"Deleted from S3: s3://{self.bucket}/{key}")

    def exists(self, key):
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            logger.error(f"Error checking S3 file existence: {e}")
            raise ObjectStoreError("exists", key, e) from e
        except BotoCoreError as e:
            raise ObjectStoreError("exists", key, e) from e


class LocalObjectStore(ObjectStore):
    """Filesystem store rooted at `base_dir`, served by the app under /storage."""

    def __init__(self, base_dir: str = "storage", public_base_url: str = "/storage"):
        super().__init__(public_base_url)
        self.base_dir = os.path.abspath(base_dir)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.base_dir, key))
        if os.path.commonpath([path, self.base_dir]) != self.base_dir:
            raise ObjectStoreError("resolve", key)
        return path

    def put(self, key, data, content_type="application/octet-stream", metadata=None):
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            # 'xb' refuses to replace an existing object
            with open(path, "xb") as fh:
                fh.write(data)
        except FileExistsError as e:
            raise ObjectExistsError("put", key, e) from e
        except OSError as e:
            logger.error(f"Local upload failed for {key}: {e}")
            raise ObjectStoreError("put", key, e) from e
        logger.debug(f"Stored locally: {path}")
        return key

    def get(self, key):
        try:
            with open(self._path(key), "rb") as fh:
                return fh.read()
        except OSError as e:
            raise ObjectStoreError("get", key, e) from e

    def delete(self, key):
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            return
        except OSError as e:
            raise ObjectStoreError("delete", key, e) from e

    def exists(self, key):
        return os.path.isfile(self._path(key))


def build_object_store(settings) -> ObjectStore:
    """Create the process-wide store: S3 when a bucket is configured, else local disk."""
    if getattr(settings, "S3_UPLOADS_BUCKET", ""):
        return S3ObjectStore(
            region=settings.AWS_REGION,
            bucket=settings.S3_UPLOADS_BUCKET,
            access_key=getattr(settings, "AWS_ACCESS_KEY_ID", None),
            secret_key=getattr(settings, "AWS_SECRET_ACCESS_KEY", None),
            public_base_url=getattr(settings, "S3_PUBLIC_BASE_URL", ""),
            connect_timeout=float(settings.STORAGE_CONNECT_TIMEOUT_SECONDS),
            read_timeout=float(settings.STORAGE_READ_TIMEOUT_SECONDS),
        )
    logger.info("S3_UPLOADS_BUCKET not configured; using local filesystem")
    base_url = str(getattr(settings, "BASE_URL", "") or "").rstrip("/")
    return LocalObjectStore(
        base_dir=getattr(settings, "LOCAL_STORAGE_DIR", "storage"),
        public_base_url=f"{base_url}/storage",
    )
