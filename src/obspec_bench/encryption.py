"""Encryption modes and the process-wide customer-provided key."""

from __future__ import annotations

import base64
import hashlib
import secrets
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from obspec_bench.errors import ConfigurationError


class EncryptionMode(Enum):
    """Server-side encryption policy selected by the location scheme."""

    NONE = "s3"
    SERVER_MANAGED = "s3e"
    KEY_MANAGED = "s3k"
    CUSTOMER_PROVIDED = "s3x"

    @classmethod
    def from_scheme(cls, scheme: str) -> EncryptionMode:
        """
        Look up the mode for a location scheme such as `s3x:` or `s3x`.

        Raises
        ------
        ConfigurationError
            If the scheme is not one of the known tokens.
        """
        token = scheme.lower().removesuffix(":")
        try:
            return cls(token)
        except ValueError:
            raise ConfigurationError(
                f"Unknown store scheme {scheme!r}, expected one of "
                f"{', '.join(m.value + '://' for m in cls)}"
            ) from None


@dataclass(frozen=True)
class CustomerKey:
    """A 256-bit AES key supplied by the caller on every request."""

    key: bytes

    def __post_init__(self) -> None:
        if len(self.key) != 32:
            raise ConfigurationError(
                f"Customer encryption keys must be 32 bytes, got {len(self.key)}"
            )

    @classmethod
    def generate(cls) -> CustomerKey:
        return cls(secrets.token_bytes(32))

    @property
    def key_base64(self) -> str:
        return base64.b64encode(self.key).decode("ascii")

    @property
    def key_md5_base64(self) -> str:
        return base64.b64encode(hashlib.md5(self.key).digest()).decode("ascii")


_process_key: CustomerKey | None = None
_process_key_lock = threading.Lock()


def process_customer_key() -> CustomerKey:
    """
    Return the customer key shared by every store in this process.

    The key is generated on the first call and never changes afterwards, so
    objects written with it can only be read back by the same process.
    Concurrent first calls agree on a single key.
    """
    global _process_key
    with _process_key_lock:
        if _process_key is None:
            _process_key = CustomerKey.generate()
        return _process_key


def request_headers(
    mode: EncryptionMode, customer_key: CustomerKey | None = None
) -> dict[str, str]:
    """
    S3 request headers implied by an encryption mode.

    Parameters
    ----------
    mode
        The store's encryption mode.
    customer_key
        Key material for [EncryptionMode.CUSTOMER_PROVIDED][]; ignored otherwise.

    Returns
    -------
    dict[str, str]
        Header name to value. Empty for unencrypted stores.

    Raises
    ------
    ConfigurationError
        For key-managed encryption, which is not supported, or for
        customer-provided encryption without a key.
    """
    if mode is EncryptionMode.NONE:
        return {}
    if mode is EncryptionMode.SERVER_MANAGED:
        return {"x-amz-server-side-encryption": "AES256"}
    if mode is EncryptionMode.CUSTOMER_PROVIDED:
        if customer_key is None:
            raise ConfigurationError(
                "Customer-provided encryption requires a customer key"
            )
        return {
            "x-amz-server-side-encryption-customer-algorithm": "AES256",
            "x-amz-server-side-encryption-customer-key": customer_key.key_base64,
            "x-amz-server-side-encryption-customer-key-MD5": (
                customer_key.key_md5_base64
            ),
        }
    raise ConfigurationError(f"Encryption mode {mode.name} is not supported")


def s3_config(
    mode: EncryptionMode, customer_key: CustomerKey | None = None
) -> dict[str, str]:
    """
    obstore `S3Store` configuration that applies an encryption mode.

    obstore attaches encryption settings to every request made through the
    store, so they are fixed when the client is built rather than per call.
    Key-managed stores get no settings here; reads and writes through them
    fail with [ConfigurationError][obspec_bench.errors.ConfigurationError].
    """
    if mode is EncryptionMode.SERVER_MANAGED:
        return {"aws_server_side_encryption": "AES256"}
    if mode is EncryptionMode.CUSTOMER_PROVIDED:
        if customer_key is None:
            raise ConfigurationError(
                "Customer-provided encryption requires a customer key"
            )
        return {
            "aws_server_side_encryption": "sse-c",
            "aws_sse_customer_key_base64": customer_key.key_base64,
        }
    return {}


def _normalized(config: Mapping[str, Any]) -> dict[str, str]:
    normalized = {}
    for name, value in config.items():
        name = str(name).lower()
        normalized[name.removeprefix("aws_")] = str(value)
    return normalized


def config_applies(
    mode: EncryptionMode,
    customer_key: CustomerKey | None,
    config: Mapping[str, Any] | None,
) -> bool:
    """
    Whether a client configuration carries the settings of `mode`.

    Setting names are compared without case or their `aws_` prefix, and the
    server-side encryption value without case. The customer key must match
    exactly.
    """
    expected = _normalized(s3_config(mode, customer_key))
    if not expected:
        return True
    actual = _normalized(config or {})
    for name, value in expected.items():
        if name not in actual:
            return False
        if name == "server_side_encryption":
            if actual[name].lower() != value.lower():
                return False
        elif actual[name] != value:
            return False
    return True


__all__ = [
    "CustomerKey",
    "EncryptionMode",
    "config_applies",
    "process_customer_key",
    "request_headers",
    "s3_config",
]
