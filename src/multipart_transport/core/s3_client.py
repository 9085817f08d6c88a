"""S3-compatible storage client implementing the multipart session contract."""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import RemoteNotFoundError, StorageClientError
from .headers import (
    CONTENT_LENGTH,
    META_FROM,
    META_MD5,
    META_MODIFIED_TIME,
    OCTET_STREAM,
)
from .models import ObjectMetadata, PartListing, S3Config, UploadedPart

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _set_part_content_type(request, **kwargs) -> None:
    """Send part bodies as raw octets; UploadPart has no ContentType parameter."""
    request.headers["Content-Type"] = OCTET_STREAM


class S3StorageClient:
    """Remote storage client for S3-compatible multipart uploads."""

    def __init__(
        self,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_retries: int = 5,
        max_parts: int = 10000,
        client: Any = None,
    ):
        """Initialize S3 client.

        Args:
            access_key: S3 API access key (default chain if omitted)
            secret_key: S3 API secret key (default chain if omitted)
            region: S3 region name
            endpoint_url: S3 endpoint URL for non-AWS services
            max_retries: Maximum number of botocore retries per request
            max_parts: Service cap on parts per multipart upload
            client: Pre-built boto3 S3 client to use instead of creating one
        """
        self.access_key = access_key or os.getenv("TRANSPORT_S3_ACCESS_KEY")
        self.secret_key = secret_key or os.getenv("TRANSPORT_S3_SECRET_KEY")
        self.region = region or os.getenv("TRANSPORT_S3_REGION")
        self.endpoint_url = endpoint_url or os.getenv("TRANSPORT_S3_ENDPOINT_URL")
        self.max_retries = max_retries
        self.max_parts = max_parts

        if client is None:
            session = boto3.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region,
            )
            # Standard retries may resend a part; the body is seekable and rewinds.
            config = Config(
                region_name=self.region,
                retries={"max_attempts": self.max_retries, "mode": "standard"},
            )
            client = session.client("s3", config=config, endpoint_url=self.endpoint_url)

        self.s3 = client
        self.s3.meta.events.register(
            "before-sign.s3.UploadPart", _set_part_content_type
        )

    @classmethod
    def from_config(cls, config: S3Config) -> "S3StorageClient":
        return cls(
            access_key=config.access_key,
            secret_key=config.secret_key,
            region=config.region,
            endpoint_url=config.endpoint_url,
            max_retries=config.max_retries,
            max_parts=config.max_parts,
        )

    @staticmethod
    def is_not_found_error(exc: Exception) -> bool:
        """Return True if the exception wraps a missing-object response."""
        if isinstance(exc, ClientError):
            meta = exc.response.get("ResponseMetadata", {})
            code = exc.response.get("Error", {}).get("Code")
            return meta.get("HTTPStatusCode") == 404 or code in NOT_FOUND_CODES
        return False

    @staticmethod
    def _to_storage_error(description: str, exc: Exception) -> StorageClientError:
        status_code = None
        if isinstance(exc, ClientError):
            status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return StorageClientError(f"{description} failed: {exc}", status_code)

    def initiate_multipart_session(self, bucket: str, key: str) -> str:
        """Create a multipart upload and return its upload id."""
        try:
            resp = self.s3.create_multipart_upload(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to initiate multipart upload for {bucket}/{key}: {e}")
            raise self._to_storage_error("create_multipart_upload", e) from e
        upload_id = resp["UploadId"]
        logger.info(f"Initiated multipart upload: UploadId={upload_id}")
        return upload_id

    def list_uploaded_parts(
        self, bucket: str, key: str, upload_session_id: str
    ) -> PartListing:
        """List parts already accepted by the multipart upload."""
        parts = []
        try:
            paginator = self.s3.get_paginator("list_parts")
            for page in paginator.paginate(
                Bucket=bucket, Key=key, UploadId=upload_session_id
            ):
                for part in page.get("Parts", []):
                    parts.append(
                        UploadedPart(
                            part_number=part["PartNumber"],
                            size=part["Size"],
                            etag=part.get("ETag"),
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list parts of {upload_session_id}: {e}")
            raise self._to_storage_error("list_parts", e) from e

        parts.sort(key=lambda p: p.part_number)
        return PartListing(parts=parts, max_parts=self.max_parts)

    def put_part(
        self,
        bucket: str,
        key: str,
        body: Any,
        headers: Mapping[str, Any],
        params: Mapping[str, Any],
    ) -> str:
        """Upload one part body and return its ETag."""
        try:
            resp = self.s3.upload_part(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentLength=int(headers[CONTENT_LENGTH]),
                PartNumber=params["partNumber"],
                UploadId=params["uploadId"],
            )
        except (ClientError, BotoCoreError) as e:
            raise self._to_storage_error(f"upload_part {params['partNumber']}", e) from e
        return resp["ETag"]

    def complete_multipart_session(
        self,
        bucket: str,
        key: str,
        upload_session_id: str,
        ordered_parts: List[UploadedPart],
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """Complete the multipart upload and tag the object with ``metadata``.

        S3 only accepts user metadata when an object is created or copied,
        so the tags are applied with an in-place managed copy once the
        parts have been assembled.
        """
        parts = [{"PartNumber": p.part_number, "ETag": p.etag} for p in ordered_parts]
        try:
            self.s3.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_session_id,
                MultipartUpload={"Parts": parts},
            )
            if metadata:
                self.s3.copy(
                    {"Bucket": bucket, "Key": key},
                    bucket,
                    key,
                    ExtraArgs={"Metadata": metadata, "MetadataDirective": "REPLACE"},
                )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to complete multipart upload {upload_session_id}: {e}")
            raise self._to_storage_error("complete_multipart_upload", e) from e
        logger.info(f"Completed multipart upload of {bucket}/{key} ({len(parts)} parts)")

    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Fetch size and transport tags of a remote object."""
        try:
            head = self.s3.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if self.is_not_found_error(e):
                raise RemoteNotFoundError(bucket, key) from e
            raise self._to_storage_error("head_object", e) from e
        except BotoCoreError as e:
            raise self._to_storage_error("head_object", e) from e

        user_meta = {k.lower(): v for k, v in (head.get("Metadata") or {}).items()}
        modified_time = None
        if user_meta.get(META_MODIFIED_TIME) is not None:
            try:
                modified_time = int(user_meta[META_MODIFIED_TIME])
            except ValueError:
                logger.warning(
                    f"Ignoring malformed {META_MODIFIED_TIME} on {bucket}/{key}: "
                    f"{user_meta[META_MODIFIED_TIME]!r}"
                )

        return ObjectMetadata(
            size=head.get("ContentLength", 0),
            origin=user_meta.get(META_FROM),
            modified_time=modified_time,
            md5=user_meta.get(META_MD5) or None,
        )
