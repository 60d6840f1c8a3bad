"""Reading, writing and deleting objects under a store location."""

from __future__ import annotations

import base64
import logging
import re
import time
from typing import IO, TYPE_CHECKING, Any

from obspec_bench.buffer import DEFAULT_CHUNK_SIZE
from obspec_bench.digest import compute_md5
from obspec_bench.encryption import EncryptionMode, request_headers
from obspec_bench.errors import ConfigurationError, UploadError
from obspec_bench.handle import StoreHandle
from obspec_bench.stream import SeekableObjectStream

if TYPE_CHECKING:
    from obspec_bench.encryption import CustomerKey
    from obspec_bench.handle import StoreClient

logger = logging.getLogger(__name__)

DIGEST_METADATA_KEY = "content-md5"

_XML_FIELDS = {
    "request_id": re.compile(r"<RequestId>([^<]*)</RequestId>"),
    "host_id": re.compile(r"<HostId>([^<]*)</HostId>"),
    "code": re.compile(r"<Code>([^<]*)</Code>"),
}


def _diagnostics(exc: BaseException) -> dict[str, str | None]:
    """Backend request identifiers from an exception or its S3 error body."""
    message = str(exc)
    found = {}
    for name, pattern in _XML_FIELDS.items():
        value = getattr(exc, name, None)
        if value is None:
            match = pattern.search(message)
            value = match.group(1) if match else None
        found[name] = value
    return found


class ResourceStore:
    """
    Objects stored under one location, such as `s3x://my-bucket/bench/`.

    The location's scheme selects the encryption applied to every object:

    - `s3://`: no encryption
    - `s3e://`: server-side encryption with keys managed by the backend
    - `s3k://`: key-service-managed encryption (not supported; reads and
      writes raise [ConfigurationError][obspec_bench.errors.ConfigurationError])
    - `s3x://`: server-side encryption with a customer-provided key

    Examples
    --------

    ```python
    from io import BytesIO
    from obstore.store import MemoryStore
    from obspec_bench import ResourceStore

    with ResourceStore("s3://my-bucket/data/", client=MemoryStore()) as store:
        store.write_resource(BytesIO(b"hello world"), None, "greeting")
        with store.open_resource("greeting") as stream:
            stream.seek(6)
            assert stream.read() == b"world"
    ```
    """

    def __init__(
        self,
        location: str,
        client: StoreClient | None = None,
        *,
        customer_key: CustomerKey | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        **client_options: Any,
    ) -> None:
        """
        Open a store.

        Parameters
        ----------
        location
            Store location, `<scheme>://<bucket>/<prefix...>`.
        client
            Any object implementing obspec's `Get`, `Put` and `Delete`. When
            omitted, an obstore `S3Store` is built for the bucket.
        customer_key
            Key for `s3x://` stores. Defaults to the process-wide key.
        chunk_size
            Default chunk size of streams returned by `open_resource`.
        **client_options
            Passed to the default `S3Store`.

        Raises
        ------
        ConfigurationError
            If the location is malformed.
        """
        self._handle = StoreHandle.from_location(
            location, client, customer_key=customer_key, **client_options
        )
        self._chunk_size = chunk_size

    @property
    def handle(self) -> StoreHandle:
        return self._handle

    def _check_supported(self) -> None:
        if self._handle.encryption is EncryptionMode.KEY_MANAGED:
            raise ConfigurationError(
                f"Encryption mode {self._handle.encryption.name} is not supported"
            )

    def open_resource(
        self, physical_path: str, chunk_size: int | None = None
    ) -> SeekableObjectStream:
        """
        Open an object for reading.

        The returned stream must be closed by the caller.
        """
        self._check_supported()
        return SeekableObjectStream(
            self._handle,
            self._handle.build_key(physical_path),
            self._chunk_size if chunk_size is None else chunk_size,
        )

    def write_resource(
        self, source: IO[bytes], digest: bytes | None, physical_path: str
    ) -> float:
        """
        Upload `source` as the object at `physical_path`.

        Parameters
        ----------
        source
            A seekable binary stream. It is read from the start and is not
            closed.
        digest
            MD5 of the source's contents, or None to compute it here.
        physical_path
            Path of the object below the store's prefix.

        Returns
        -------
        float
            Seconds spent uploading, excluding digest computation.

        Raises
        ------
        ConfigurationError
            If the store's encryption mode is not supported.
        UploadError
            If the backend rejects the upload.
        """
        headers = request_headers(self._handle.encryption, self._handle.customer_key)
        if digest is None:
            digest = compute_md5(source)
        key = self._handle.build_key(physical_path)
        logger.debug(
            "Uploading %s with encryption headers %s", key, sorted(headers)
        )

        start = time.perf_counter()
        try:
            self._handle.client.put(
                key,
                source,
                attributes={
                    DIGEST_METADATA_KEY: base64.b64encode(digest).decode("ascii")
                },
                use_multipart=False,
            )
        except Exception as exc:
            ids = _diagnostics(exc)
            logger.error(
                "Upload of s3://%s/%s failed: request id %s, host id %s, code %s",
                self._handle.bucket,
                key,
                ids["request_id"],
                ids["host_id"],
                ids["code"],
            )
            raise UploadError(self._handle.bucket, key, **ids) from exc
        return time.perf_counter() - start

    def delete_resource(self, physical_path: str) -> None:
        """
        Delete an object, best effort.

        Failures are logged and never raised.
        """
        key = self._handle.build_key(physical_path)
        try:
            self._handle.client.delete(key)
        except Exception:
            logger.warning(
                "Could not delete s3://%s/%s", self._handle.bucket, key, exc_info=True
            )

    def close(self) -> None:
        """Release the store's client. Streams opened from it become unusable."""
        self._handle.close()

    def __enter__(self) -> "ResourceStore":
        """Enter the context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the context manager and close the store."""
        self.close()


__all__ = ["DIGEST_METADATA_KEY", "ResourceStore"]
