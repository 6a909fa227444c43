# sidebyside/services/storage_service.py
"""Object storage for uploaded media: local directory or S3 bucket."""
import os
from abc import ABC, abstractmethod
from functools import lru_cache

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from sidebyside.config import settings
from sidebyside.core.logger import logger

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"


class ObjectNotFound(Exception):
    """Storage key does not exist"""


class StorageDriver(ABC):
    """Flat key/value blob store"""

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str, cache_control: str = DEFAULT_CACHE_CONTROL) -> None:
        ...

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        """Raises ObjectNotFound"""

    @abstractmethod
    def delete_object(self, key: str) -> None:
        ...


class LocalStorageDriver(StorageDriver):

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        os.makedirs(self.data_dir, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.data_dir, key)

    def put_object(self, key, data, content_type, cache_control=DEFAULT_CACHE_CONTROL):
        with open(self._path(key), "wb") as buffer:
            buffer.write(data)

    def get_object(self, key):
        path = self._path(key)
        if not os.path.isfile(path):
            raise ObjectNotFound(key)
        with open(path, "rb") as f:
            return f.read()

    def delete_object(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            raise ObjectNotFound(key)
        os.remove(path)


class S3StorageDriver(StorageDriver):

    def __init__(
        self,
        endpoint: str,
        region: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        force_path_style: bool = False,
    ):
        if not all([endpoint, region, bucket, access_key_id, secret_access_key]):
            raise ValueError(
                "Missing S3 configuration. Set S3_ENDPOINT, S3_REGION, S3_BUCKET, "
                "S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY"
            )

        self.bucket = bucket
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(s3={"addressing_style": "path" if force_path_style else "auto"}),
        )
        logger.info(f"S3 storage initialized with bucket: {bucket}")

    def put_object(self, key, data, content_type, cache_control=DEFAULT_CACHE_CONTROL):
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            CacheControl=cache_control,
        )

    def get_object(self, key):
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise ObjectNotFound(key) from e
            raise
        return response["Body"].read()

    def delete_object(self, key):
        self.client.delete_object(Bucket=self.bucket, Key=key)


def create_storage_from_settings() -> StorageDriver:
    if settings.storage_driver == "local":
        return LocalStorageDriver(settings.data_dir)

    if settings.storage_driver == "s3":
        return S3StorageDriver(
            settings.s3_endpoint,
            settings.s3_region,
            settings.s3_bucket,
            settings.s3_access_key_id,
            settings.s3_secret_access_key,
            settings.s3_force_path_style,
        )

    raise ValueError(f"Unsupported storage driver: {settings.storage_driver}")


@lru_cache
def get_storage() -> StorageDriver:
    """Storage dependency (one driver per process)"""
    return create_storage_from_settings()
