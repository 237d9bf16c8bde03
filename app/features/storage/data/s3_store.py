import io
import logging
from typing import BinaryIO, Iterator, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..domain.errors import BackendFailure, FileNotFound
from ..domain.interfaces import IStorageBackend
from ..domain.models import BackendObject, PutResult

logger = logging.getLogger(__name__)

MISSING_KEY_CODES = {"404", "NoSuchKey", "NotFound"}
MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3StorageBackend(IStorageBackend):
    """
    S3-compatible bucket backend. Objects are stored flat under their key.
    A `client` can be injected; otherwise one is built from the bucket options.
    """

    def __init__(self,
                 bucket: str,
                 region: str = "",
                 endpoint: str = "",
                 access_key_id: str = "",
                 secret_access_key: str = "",
                 create_bucket: bool = False,
                 client=None):
        self.bucket = bucket
        self.region = region
        self.endpoint = endpoint
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.create_bucket = create_bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.region:
                raise BackendFailure("The bucket region is required to connect to the S3-Compatible bucket.")
            if not self.access_key_id or not self.secret_access_key:
                raise BackendFailure("The bucket access and secret keys are required to connect to the S3-Compatible bucket.")

            # Path-style addressing works with MinIO and most S3-compatible providers.
            config = Config(
                s3={"addressing_style": "path"},
                signature_version="s3v4",
            )
            self._client = boto3.client(
                "s3",
                endpoint_url=self.endpoint or None,
                region_name=self.region,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                config=config,
            )
        return self._client

    def initialize(self) -> None:
        if not self.bucket:
            raise BackendFailure("The bucket name is required to connect to the S3-Compatible bucket.")

        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in MISSING_BUCKET_CODES:
                self._warn_connection(e)
                raise BackendFailure(f"Could not access the bucket \"{self.bucket}\": {e}") from e
        except BotoCoreError as e:
            self._warn_connection(e)
            raise BackendFailure(f"Could not access the bucket \"{self.bucket}\": {e}") from e

        if not self.create_bucket:
            raise BackendFailure(f"The bucket \"{self.bucket}\" does not exist")

        try:
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket {self.bucket}")
        except (ClientError, BotoCoreError) as e:
            raise BackendFailure(f"Could not create the bucket \"{self.bucket}\": {e}") from e

    def _warn_connection(self, error: Exception) -> None:
        logger.warning(
            "Could not connect to the S3-Compatible bucket. Check that the access key and secret key "
            f"are correct and allowed to access it. Bucket Name: {self.bucket}, "
            f"Bucket Region: {self.region or 'Not provided'}, "
            f"Bucket Access Key: {'*****' if self.access_key_id else 'Not provided'}, "
            f"Bucket Secret Key: {'*****' if self.secret_access_key else 'Not provided'}. {error}"
        )

    def put(self, key: str, stream: BinaryIO, content_type: str,
            size_bytes: Optional[int] = None, filename: str = "") -> PutResult:
        extra = {"ContentType": content_type, "ACL": "private"}
        if filename:
            extra["ContentDisposition"] = f"inline; filename=\"{quote(filename)}\""
            extra["Metadata"] = {"name": quote(filename)}

        try:
            # Multipart uploads only become visible once completed, aborted otherwise.
            self.client.upload_fileobj(Fileobj=stream, Bucket=self.bucket, Key=key, ExtraArgs=extra)
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise BackendFailure(f"Could not upload object {key} to bucket \"{self.bucket}\": {e}") from e

        etag = head.get("ETag")
        if not etag:
            raise BackendFailure(f"Could not upload object {key} to bucket \"{self.bucket}\": no ETag returned")
        return PutResult(key=key, size_bytes=int(head.get("ContentLength", 0)), etag=etag.strip("\""))

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in MISSING_KEY_CODES:
                return
            raise BackendFailure(f"Could not delete object {key} from bucket \"{self.bucket}\": {e}") from e
        except BotoCoreError as e:
            raise BackendFailure(f"Could not delete object {key} from bucket \"{self.bucket}\": {e}") from e

    def open(self, key: str, offset: int = 0, size: Optional[int] = None) -> BinaryIO:
        params = {"Bucket": self.bucket, "Key": key}

        try:
            if offset or size is not None:
                # S3 rejects empty and out-of-bounds ranges, clamp against the object length.
                total = int(self.client.head_object(Bucket=self.bucket, Key=key).get("ContentLength", 0))
                available = max(0, total - offset)
                length = available if size is None else min(size, available)
                if length <= 0:
                    return io.BytesIO(b"")
                params["Range"] = f"bytes={offset}-{offset + length - 1}"

            response = self.client.get_object(**params)
        except ClientError as e:
            if _error_code(e) in MISSING_KEY_CODES:
                raise FileNotFound(key) from e
            raise BackendFailure(f"Could not download object {key}: {e}") from e
        except BotoCoreError as e:
            raise BackendFailure(f"Could not download object {key}: {e}") from e
        return response["Body"]

    def list_objects(self) -> Iterator[BackendObject]:
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket):
                for content in page.get("Contents", []):
                    if not content.get("Key"):
                        continue
                    yield BackendObject(
                        key=content["Key"],
                        size_bytes=int(content.get("Size", 0)),
                        modified_at=content.get("LastModified"),
                    )
        except (ClientError, BotoCoreError) as e:
            raise BackendFailure(f"Could not list objects of bucket \"{self.bucket}\": {e}") from e
