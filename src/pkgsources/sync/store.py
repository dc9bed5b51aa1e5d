"""HTTP client for the content-addressed blob store.

Blob layout on the store::

    <store_url>/<sha1[:2]>/<sha1>      GET (download), HEAD (existence)
    <store_url>/upload                 POST multipart (filename, sha1sum, file)

The existence check is the engine's oracle: it never raises, it answers
``PRESENT``, ``ABSENT`` or ``UNKNOWN``.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path

import requests

from pkgsources.config import Config
from pkgsources.errors import StoreError
from pkgsources.sync.models import RemoteStatus
from pkgsources.validators import validate_digest

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536
_ABSENT_CODES = frozenset({404, 410})


class BlobStoreClient:
    def __init__(self, config: Config):
        self.config = config
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        if self.config.username and self.config.password:
            session.auth = (self.config.username, self.config.password)
        session.verify = not self.config.insecure
        return session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> BlobStoreClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def object_url(self, digest: str) -> str:
        """Return the URL of the blob addressed by *digest*."""
        ok, reason = validate_digest(digest)
        if not ok:
            raise ValueError(reason)
        return f"{self.config.store_url.rstrip('/')}/{digest[:2]}/{digest}"

    @property
    def upload_url(self) -> str:
        return f"{self.config.store_url.rstrip('/')}/upload"

    def _is_store_url(self, url: str) -> bool:
        return url.startswith(self.config.store_url.rstrip("/") + "/")

    # ------------------------------------------------------------------
    # Existence oracle
    # ------------------------------------------------------------------

    def check(self, digest: str) -> tuple[RemoteStatus, str]:
        """Ask the store whether *digest* exists.

        Returns:
            Tuple of (status, reason). ``reason`` is empty unless the status
            is ``UNKNOWN``, in which case it says why.
        """
        url = self.object_url(digest)
        try:
            response = self.session.head(
                url, timeout=self.config.timeout, allow_redirects=True
            )
        except requests.RequestException as exc:
            reason = f"request failed: {exc}"
            logger.warning("Existence check for %s: %s", digest, reason)
            return RemoteStatus.UNKNOWN, reason

        if 200 <= response.status_code < 300:
            return RemoteStatus.PRESENT, ""
        if response.status_code in _ABSENT_CODES:
            return RemoteStatus.ABSENT, ""

        reason = f"unexpected HTTP status {response.status_code}"
        logger.warning("Existence check for %s: %s", digest, reason)
        return RemoteStatus.UNKNOWN, reason

    def exists(self, digest: str) -> RemoteStatus:
        """Tri-state existence check for *digest*."""
        status, _ = self.check(digest)
        return status

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def upload(self, path: Path, name: str, digest: str) -> None:
        """Upload the file at *path* under *digest*.

        Raises:
            StoreError: On network failure or a non-2xx response.
        """
        logger.info("Uploading %s (%s)", name, digest)
        try:
            with open(path, "rb") as fh:
                response = self.session.post(
                    self.upload_url,
                    data={"filename": name, "sha1sum": digest},
                    files={"file": (name, fh, "application/octet-stream")},
                    timeout=self.config.timeout,
                )
            response.raise_for_status()
        except OSError as exc:
            raise StoreError(f"cannot read {name}: {exc}") from exc
        except requests.RequestException as exc:
            raise StoreError(f"upload of {name} failed: {exc}") from exc

    def download(self, digest: str, dest: Path) -> None:
        """Download the blob addressed by *digest* into *dest*.

        The content is verified against *digest* before *dest* is replaced.

        Raises:
            StoreError: On network failure, a non-2xx response, or a digest
                mismatch.
        """
        self.download_url(self.object_url(digest), dest, digest)

    def download_url(
        self, url: str, dest: Path, expected_digest: str | None = None
    ) -> str:
        """Download *url* into *dest* atomically and return its SHA-1.

        Used for blobs as well as upstream source URLs.

        Raises:
            StoreError: On network failure, a non-2xx response, or a digest
                mismatch when *expected_digest* is given.
        """
        logger.info("Downloading %s -> %s", url, dest.name)
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(dest.parent), prefix=".download-", suffix=".tmp"
        )
        sha = hashlib.sha1()
        # Store credentials are only sent to the store itself.
        get = self.session.get if self._is_store_url(url) else requests.get
        try:
            with os.fdopen(fd, "wb") as fh:
                with get(
                    url, stream=True, timeout=self.config.timeout
                ) as response:
                    response.raise_for_status()
                    for chunk in response.iter_content(_CHUNK_SIZE):
                        sha.update(chunk)
                        fh.write(chunk)
            actual = sha.hexdigest()
            if expected_digest is not None and actual != expected_digest:
                raise StoreError(
                    f"digest mismatch for {dest.name}: "
                    f"expected {expected_digest}, got {actual}"
                )
            os.replace(tmp_path, dest)
        except requests.RequestException as exc:
            _discard(tmp_path)
            raise StoreError(f"download of {url} failed: {exc}") from exc
        except BaseException:
            _discard(tmp_path)
            raise
        return actual


def _discard(tmp_path: str) -> None:
    try:
        os.unlink(tmp_path)
    except OSError:
        pass
