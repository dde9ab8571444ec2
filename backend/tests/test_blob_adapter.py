"""Tests for the S3-compatible blob store adapter.

All tests mock the boto3 client so no real bucket or credentials are needed.
"""
import re
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from filebed.backends.base import AssembledFile
from filebed.backends.blob import BlobStoreAdapter, generate_object_key
from filebed.uploads.exceptions import BackendUnavailable, BackendUploadFailed


def _adapter() -> BlobStoreAdapter:
    return BlobStoreAdapter(
        bucket="files",
        endpoint_url="https://account.r2.cloudflarestorage.com",
        aws_access_key_id="FAKE_KEY",
        aws_secret_access_key="FAKE_SECRET",
    )


def _client_error(code: str = "InternalError") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, "PutObject")


class TestGenerateObjectKey:
    def test_key_shape(self):
        key = generate_object_key("png", now_ms=1718000000000)
        assert re.fullmatch(r"r2_1718000000000_[0-9a-z]{6}\.png", key)

    def test_keys_differ_within_same_millisecond(self):
        keys = {generate_object_key("bin", now_ms=1) for _ in range(50)}
        assert len(keys) == 50


class TestAssembledFile:
    @pytest.mark.parametrize(
        "name,ext",
        [("a.PNG", "png"), ("archive.tar.gz", "gz"), ("README", "bin"), ("trailing.", "bin")],
    )
    def test_extension(self, name, ext):
        assert AssembledFile(name=name, data=b"").extension == ext

    def test_default_content_type(self):
        assert AssembledFile(name="a", data=b"").effective_content_type == "application/octet-stream"


class TestBlobCommit:
    def test_commit_puts_object_with_metadata(self):
        adapter = _adapter()
        mock_client = MagicMock()
        adapter._client = mock_client

        result = adapter.commit(AssembledFile(name="a b.png", data=b"xyz", content_type="image/png"))

        kwargs = mock_client.put_object.call_args[1]
        assert kwargs["Bucket"] == "files"
        assert kwargs["Body"] == b"xyz"
        assert kwargs["ContentType"] == "image/png"
        assert kwargs["Metadata"]["fileName"] == "a%20b.png"
        assert kwargs["Metadata"]["uploadTime"].isdigit()
        assert result.backend_ref == f"r2:{kwargs['Key']}"
        assert result.blob_key == kwargs["Key"]
        assert result.relay_message_id is None
        assert kwargs["Key"].endswith(".png")

    def test_commit_defaults_content_type(self):
        adapter = _adapter()
        adapter._client = MagicMock()
        adapter.commit(AssembledFile(name="data.bin", data=b"x"))
        assert adapter._client.put_object.call_args[1]["ContentType"] == "application/octet-stream"

    def test_client_error_is_upload_failed(self):
        adapter = _adapter()
        adapter._client = MagicMock()
        adapter._client.put_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(BackendUploadFailed, match="AccessDenied"):
            adapter.commit(AssembledFile(name="a.png", data=b"x"))
        assert adapter._client.put_object.call_count == 1

    def test_connection_error_is_unavailable(self):
        adapter = _adapter()
        adapter._client = MagicMock()
        adapter._client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://x")

        with pytest.raises(BackendUnavailable):
            adapter.commit(AssembledFile(name="a.png", data=b"x"))

    @patch("filebed.backends.blob.boto3")
    def test_client_built_lazily_with_endpoint_and_credentials(self, mock_boto3):
        adapter = _adapter()
        adapter.commit(AssembledFile(name="a.png", data=b"x"))
        adapter.commit(AssembledFile(name="b.png", data=b"y"))

        mock_boto3.client.assert_called_once()
        args, kwargs = mock_boto3.client.call_args
        assert args == ("s3",)
        assert kwargs["endpoint_url"] == "https://account.r2.cloudflarestorage.com"
        assert kwargs["aws_access_key_id"] == "FAKE_KEY"
        assert kwargs["aws_secret_access_key"] == "FAKE_SECRET"
        assert kwargs["region_name"] == "auto"


class TestBlobDelete:
    def test_delete_uses_r2_key(self):
        adapter = _adapter()
        adapter._client = MagicMock()

        assert adapter.delete({"key": "r2:r2_1_abc.png", "r2Key": "r2_1_abc.png"}) is True
        adapter._client.delete_object.assert_called_once_with(Bucket="files", Key="r2_1_abc.png")

    def test_delete_falls_back_to_catalog_key(self):
        adapter = _adapter()
        adapter._client = MagicMock()

        adapter.delete({"key": "r2:r2_1_abc.png", "r2Key": None})
        adapter._client.delete_object.assert_called_once_with(Bucket="files", Key="r2_1_abc.png")

    def test_delete_error(self):
        adapter = _adapter()
        adapter._client = MagicMock()
        adapter._client.delete_object.side_effect = _client_error()

        with pytest.raises(BackendUploadFailed):
            adapter.delete({"key": "r2:x.png", "r2Key": "x.png"})
