"""
Tests for S3StorageClient.

These tests use a mocked boto3 client to check the request mapping and
error translation of the multipart session contract.
"""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from multipart_transport.core.exceptions import RemoteNotFoundError, StorageClientError
from multipart_transport.core.models import S3Config, UploadedPart
from multipart_transport.core.s3_client import S3StorageClient, _set_part_content_type


def client_error(code, status, operation="HeadObject"):
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_s3():
    """Create a mock boto3 S3 client."""
    client = MagicMock()
    client.create_multipart_upload.return_value = {"UploadId": "mock-upload-id"}
    client.upload_part.return_value = {"ETag": '"part-etag"'}
    client.complete_multipart_upload.return_value = {"ETag": '"final-etag"'}
    client.head_object.return_value = {
        "ContentLength": 4096,
        "Metadata": {
            "from": "multipart-transport",
            "modified-time": "1700000000123",
            "content-md5": "d41d8cd98f00b204e9800998ecf8427e",
        },
    }
    return client


@pytest.fixture
def storage(mock_s3):
    return S3StorageClient(client=mock_s3, max_parts=1000)


# =============================================================================
# Construction
# =============================================================================


def test_registers_content_type_hook(mock_s3):
    S3StorageClient(client=mock_s3)

    mock_s3.meta.events.register.assert_called_once_with(
        "before-sign.s3.UploadPart", _set_part_content_type
    )


def test_content_type_hook_sets_octet_stream():
    request = MagicMock()
    request.headers = {}

    _set_part_content_type(request)

    assert request.headers["Content-Type"] == "application/octet-stream"


def test_from_config_builds_boto3_client():
    config = S3Config(
        access_key="AKIA",
        secret_key="secret",
        region="eu-west-1",
        endpoint_url="https://s3.example.com",
        max_retries=3,
        max_parts=500,
    )
    with patch("multipart_transport.core.s3_client.boto3") as mock_boto3:
        storage = S3StorageClient.from_config(config)

    mock_boto3.Session.assert_called_once_with(
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
        region_name="eu-west-1",
    )
    session_client = mock_boto3.Session.return_value.client
    args, kwargs = session_client.call_args
    assert args == ("s3",)
    assert kwargs["endpoint_url"] == "https://s3.example.com"
    assert kwargs["config"].retries == {"max_attempts": 3, "mode": "standard"}
    assert storage.max_parts == 500


def test_s3_config_rejects_bad_endpoint():
    with pytest.raises(ValueError):
        S3Config(endpoint_url="s3.example.com")


# =============================================================================
# Multipart session
# =============================================================================


def test_initiate_returns_upload_id(storage, mock_s3):
    assert storage.initiate_multipart_session("bucket", "key") == "mock-upload-id"
    mock_s3.create_multipart_upload.assert_called_once_with(Bucket="bucket", Key="key")


def test_initiate_wraps_client_errors(storage, mock_s3):
    mock_s3.create_multipart_upload.side_effect = client_error(
        "AccessDenied", 403, "CreateMultipartUpload"
    )

    with pytest.raises(StorageClientError) as exc_info:
        storage.initiate_multipart_session("bucket", "key")

    assert exc_info.value.status_code == 403


def test_list_parts_paginates_and_sorts(storage, mock_s3):
    mock_s3.get_paginator.return_value.paginate.return_value = [
        {"Parts": [{"PartNumber": 2, "Size": 10, "ETag": '"b"'}]},
        {"Parts": [{"PartNumber": 1, "Size": 20, "ETag": '"a"'}]},
        {},
    ]

    listing = storage.list_uploaded_parts("bucket", "key", "upload-1")

    mock_s3.get_paginator.assert_called_once_with("list_parts")
    mock_s3.get_paginator.return_value.paginate.assert_called_once_with(
        Bucket="bucket", Key="key", UploadId="upload-1"
    )
    assert [p.part_number for p in listing.parts] == [1, 2]
    assert listing.uploaded_bytes == 30
    assert listing.max_parts == 1000


def test_list_parts_wraps_missing_upload(storage, mock_s3):
    mock_s3.get_paginator.return_value.paginate.side_effect = client_error(
        "NoSuchUpload", 404, "ListParts"
    )

    with pytest.raises(StorageClientError):
        storage.list_uploaded_parts("bucket", "key", "gone")


def test_put_part_maps_headers_and_params(storage, mock_s3):
    body = object()

    etag = storage.put_part(
        "bucket",
        "key",
        body,
        {"Content-Length": 1024, "Content-Type": "application/octet-stream"},
        {"partNumber": 3, "uploadId": "upload-1"},
    )

    assert etag == '"part-etag"'
    mock_s3.upload_part.assert_called_once_with(
        Bucket="bucket",
        Key="key",
        Body=body,
        ContentLength=1024,
        PartNumber=3,
        UploadId="upload-1",
    )


def test_put_part_wraps_connection_errors(storage, mock_s3):
    mock_s3.upload_part.side_effect = EndpointConnectionError(endpoint_url="https://s3")

    with pytest.raises(StorageClientError) as exc_info:
        storage.put_part(
            "bucket", "key", b"", {"Content-Length": 0}, {"partNumber": 1, "uploadId": "u"}
        )

    assert exc_info.value.status_code is None


def test_put_part_lets_other_exceptions_through(storage, mock_s3):
    mock_s3.upload_part.side_effect = RuntimeError("read aborted")

    with pytest.raises(RuntimeError):
        storage.put_part(
            "bucket", "key", b"", {"Content-Length": 0}, {"partNumber": 1, "uploadId": "u"}
        )


def test_complete_sends_parts_and_tags_object(storage, mock_s3):
    parts = [
        UploadedPart(part_number=1, size=10, etag='"a"'),
        UploadedPart(part_number=2, size=5, etag='"b"'),
    ]
    metadata = {"from": "multipart-transport", "modified-time": "123"}

    storage.complete_multipart_session("bucket", "key", "upload-1", parts, metadata)

    mock_s3.complete_multipart_upload.assert_called_once_with(
        Bucket="bucket",
        Key="key",
        UploadId="upload-1",
        MultipartUpload={
            "Parts": [{"PartNumber": 1, "ETag": '"a"'}, {"PartNumber": 2, "ETag": '"b"'}]
        },
    )
    mock_s3.copy.assert_called_once_with(
        {"Bucket": "bucket", "Key": "key"},
        "bucket",
        "key",
        ExtraArgs={"Metadata": metadata, "MetadataDirective": "REPLACE"},
    )


def test_complete_without_metadata_skips_copy(storage, mock_s3):
    storage.complete_multipart_session("bucket", "key", "upload-1", [], None)

    mock_s3.copy.assert_not_called()


# =============================================================================
# Object metadata
# =============================================================================


def test_get_object_metadata_parses_tags(storage):
    meta = storage.get_object_metadata("bucket", "key")

    assert meta.size == 4096
    assert meta.origin == "multipart-transport"
    assert meta.modified_time == 1700000000123
    assert meta.md5 == "d41d8cd98f00b204e9800998ecf8427e"


def test_get_object_metadata_of_foreign_object(storage, mock_s3):
    mock_s3.head_object.return_value = {"ContentLength": 7}

    meta = storage.get_object_metadata("bucket", "key")

    assert meta.size == 7
    assert meta.origin is None
    assert meta.modified_time is None
    assert meta.md5 is None


def test_get_object_metadata_ignores_malformed_mtime(storage, mock_s3):
    mock_s3.head_object.return_value = {
        "ContentLength": 7,
        "Metadata": {"modified-time": "yesterday"},
    }

    assert storage.get_object_metadata("bucket", "key").modified_time is None


def test_missing_object_raises_remote_not_found(storage, mock_s3):
    mock_s3.head_object.side_effect = client_error("404", 404)

    with pytest.raises(RemoteNotFoundError):
        storage.get_object_metadata("bucket", "key")


def test_other_head_errors_raise_storage_error(storage, mock_s3):
    mock_s3.head_object.side_effect = client_error("403", 403)

    with pytest.raises(StorageClientError) as exc_info:
        storage.get_object_metadata("bucket", "key")

    assert exc_info.value.status_code == 403
