"""Exception types raised by obspec-bench."""

from __future__ import annotations


class ObspecBenchError(Exception):
    """Base class for all obspec-bench errors."""


class ConfigurationError(ObspecBenchError, ValueError):
    """A store location or encryption setting cannot be used."""


class ContractViolation(ObspecBenchError, ValueError):
    """A caller used a stream in a way its contract forbids."""


class TransientFetchError(ObspecBenchError):
    """Opening or reading a range response failed; the fetch may be retried."""


class FatalReadError(ObspecBenchError, OSError):
    """A range fetch failed again after the session was reopened."""

    def __init__(self, bucket: str, key: str, offset: int) -> None:
        super().__init__(
            f"Failed to read s3://{bucket}/{key} at offset {offset} after reopening"
        )
        self.bucket = bucket
        self.key = key
        self.offset = offset


class UploadError(ObspecBenchError, OSError):
    """The backend rejected an upload.

    The backend's diagnostic identifiers are kept verbatim so that a failed
    request can be looked up later.
    """

    def __init__(
        self,
        bucket: str,
        key: str,
        *,
        request_id: str | None = None,
        host_id: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(
            f"Upload of s3://{bucket}/{key} failed with code {code} "
            f"(request id {request_id}, host id {host_id})"
        )
        self.bucket = bucket
        self.key = key
        self.request_id = request_id
        self.host_id = host_id
        self.code = code


__all__ = [
    "ConfigurationError",
    "ContractViolation",
    "FatalReadError",
    "ObspecBenchError",
    "TransientFetchError",
    "UploadError",
]
