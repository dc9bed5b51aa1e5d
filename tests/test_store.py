"""Tests for the blob store HTTP client.

Network calls are replaced by patching ``requests.Session`` methods so the
URL layout, status mapping, and error translation can be checked offline.
"""

from __future__ import annotations

import hashlib
import os
from unittest.mock import MagicMock, patch

import pytest
import requests

from pkgsources.config import Config
from pkgsources.errors import StoreError
from pkgsources.sync.models import RemoteStatus
from pkgsources.sync.store import BlobStoreClient

DIGEST = "3b1f0c7e0c3d2f5a9e8b6c4d2a1f0e9d8c7b6a59"


def _response(status_code: int = 200, chunks: list[bytes] | None = None):
    response = MagicMock()
    response.status_code = status_code
    response.iter_content.return_value = chunks or []
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Client Error"
        )
    return response


class TestSession:
    def test_auth_set_when_credentials_given(self, store_config):
        client = BlobStoreClient(store_config)
        assert client.session.auth == ("testuser", "testpass")
        assert client.session.verify is True

    def test_no_auth_without_password(self):
        client = BlobStoreClient(
            Config(store_url="https://s.example.com", username="u")
        )
        assert client.session.auth is None

    def test_insecure_disables_verification(self):
        client = BlobStoreClient(
            Config(store_url="https://s.example.com", insecure=True)
        )
        assert client.session.verify is False

    def test_context_manager_closes_session(self, store_config):
        with BlobStoreClient(store_config) as client:
            session = client.session
        assert client._session is None
        assert session is not None


class TestUrls:
    def test_object_url_layout(self, store_config):
        client = BlobStoreClient(store_config)
        assert client.object_url(DIGEST) == (
            f"https://sources.example.com/pkgs/demo/3b/{DIGEST}"
        )

    def test_object_url_rejects_bad_digest(self, store_config):
        client = BlobStoreClient(store_config)
        with pytest.raises(ValueError, match="hex"):
            client.object_url("not-a-digest")

    def test_upload_url(self, store_config):
        client = BlobStoreClient(store_config)
        assert client.upload_url == "https://sources.example.com/pkgs/demo/upload"


class TestCheck:
    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (200, RemoteStatus.PRESENT),
            (204, RemoteStatus.PRESENT),
            (404, RemoteStatus.ABSENT),
            (410, RemoteStatus.ABSENT),
            (500, RemoteStatus.UNKNOWN),
            (403, RemoteStatus.UNKNOWN),
        ],
    )
    def test_status_mapping(self, store_config, status_code, expected):
        client = BlobStoreClient(store_config)
        with patch.object(
            requests.Session, "head", return_value=_response(status_code)
        ) as mock_head:
            status, reason = client.check(DIGEST)

        assert status == expected
        assert bool(reason) == (expected == RemoteStatus.UNKNOWN)
        mock_head.assert_called_once_with(
            client.object_url(DIGEST), timeout=5.0, allow_redirects=True
        )

    def test_network_failure_is_unknown(self, store_config, caplog):
        client = BlobStoreClient(store_config)
        with patch.object(
            requests.Session,
            "head",
            side_effect=requests.ConnectionError("connection refused"),
        ):
            status, reason = client.check(DIGEST)

        assert status == RemoteStatus.UNKNOWN
        assert "connection refused" in reason
        assert "connection refused" in caplog.text

    def test_exists_returns_status_only(self, store_config):
        client = BlobStoreClient(store_config)
        with patch.object(
            requests.Session, "head", return_value=_response(404)
        ):
            assert client.exists(DIGEST) == RemoteStatus.ABSENT


class TestUpload:
    def test_upload_posts_multipart(self, store_config, tmp_path):
        path = tmp_path / "foo.tar.gz"
        path.write_bytes(b"\x00payload")
        client = BlobStoreClient(store_config)

        with patch.object(
            requests.Session, "post", return_value=_response(200)
        ) as mock_post:
            client.upload(path, "foo.tar.gz", DIGEST)

        args, kwargs = mock_post.call_args
        assert args[0] == client.upload_url
        assert kwargs["data"] == {"filename": "foo.tar.gz", "sha1sum": DIGEST}
        assert kwargs["files"]["file"][0] == "foo.tar.gz"

    def test_http_error_raises_store_error(self, store_config, tmp_path):
        path = tmp_path / "foo.tar.gz"
        path.write_bytes(b"\x00payload")
        client = BlobStoreClient(store_config)

        with patch.object(
            requests.Session, "post", return_value=_response(500)
        ):
            with pytest.raises(StoreError, match="upload of foo.tar.gz"):
                client.upload(path, "foo.tar.gz", DIGEST)

    def test_missing_file_raises_store_error(self, store_config, tmp_path):
        client = BlobStoreClient(store_config)
        with pytest.raises(StoreError, match="cannot read"):
            client.upload(tmp_path / "gone", "gone", DIGEST)


class TestDownload:
    def test_download_verifies_and_writes(self, store_config, tmp_path):
        data = b"\x00blob content"
        digest = hashlib.sha1(data).hexdigest()
        dest = tmp_path / "foo.tar.gz"
        client = BlobStoreClient(store_config)

        with patch.object(
            requests.Session,
            "get",
            return_value=_response(200, [data[:5], data[5:]]),
        ) as mock_get:
            client.download(digest, dest)

        assert dest.read_bytes() == data
        assert mock_get.call_args[0][0] == client.object_url(digest)

    def test_digest_mismatch_leaves_no_file(self, store_config, tmp_path):
        dest = tmp_path / "foo.tar.gz"
        client = BlobStoreClient(store_config)

        with patch.object(
            requests.Session,
            "get",
            return_value=_response(200, [b"tampered"]),
        ):
            with pytest.raises(StoreError, match="digest mismatch"):
                client.download(DIGEST, dest)

        assert list(tmp_path.iterdir()) == []

    def test_http_error_raises_store_error(self, store_config, tmp_path):
        client = BlobStoreClient(store_config)
        with patch.object(
            requests.Session, "get", return_value=_response(404)
        ):
            with pytest.raises(StoreError, match="download of"):
                client.download(DIGEST, tmp_path / "foo.tar.gz")
        assert list(tmp_path.iterdir()) == []

    def test_upstream_download_does_not_use_store_session(
        self, store_config, tmp_path
    ):
        data = b"upstream tarball"
        client = BlobStoreClient(store_config)

        with patch.object(requests.Session, "get") as session_get, patch(
            "pkgsources.sync.store.requests.get",
            return_value=_response(200, [data]),
        ) as plain_get:
            digest = client.download_url(
                "https://upstream.example.org/foo-1.0.tar.gz",
                tmp_path / "foo-1.0.tar.gz",
            )

        session_get.assert_not_called()
        plain_get.assert_called_once()
        assert digest == hashlib.sha1(data).hexdigest()


@pytest.mark.live
class TestLiveStore:
    def test_unknown_digest_is_absent(self):
        config = Config(store_url=os.environ["PKGSOURCES_LIVE_STORE_URL"])
        with BlobStoreClient(config) as client:
            assert client.exists("0" * 40) == RemoteStatus.ABSENT
