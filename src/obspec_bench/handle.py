"""Parsing of store locations into immutable store handles."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NamedTuple, Protocol

from obspec import Delete, Get, Put
from obstore.store import S3Store

from obspec_bench.encryption import (
    CustomerKey,
    EncryptionMode,
    config_applies,
    process_customer_key,
    s3_config,
)
from obspec_bench.errors import ConfigurationError

logger = logging.getLogger(__name__)


class StoreClient(Get, Put, Delete, Protocol):
    """
    Client protocol required by a store handle.

    Combines [Get][obspec.Get], [Put][obspec.Put] and [Delete][obspec.Delete]
    from obspec. obstore's [S3Store][obstore.store.S3Store] and
    [MemoryStore][obstore.store.MemoryStore] both satisfy it.
    """

    pass


class Location(NamedTuple):
    """The parts of a store location string."""

    encryption: EncryptionMode
    bucket: str
    prefix: str


def parse_location(location: str) -> Location:
    """
    Split a location such as `s3x://mybucket/data/` into its parts.

    The scheme selects the encryption mode (`s3`, `s3e`, `s3k` or `s3x`), the
    first path segment is the bucket and the remaining segments form the key
    prefix. The prefix is normalized to end with exactly one `/`; a location
    without a prefix has an empty prefix.

    Raises
    ------
    ConfigurationError
        If the scheme is unknown or lacks its `:`, the host segment is not
        empty, the bucket is missing or the prefix starts with a separator.
    """
    parts = location.split("/")
    if len(parts) < 3:
        raise ConfigurationError(f"The store location {location!r} is invalid")
    encryption = EncryptionMode.from_scheme(parts[0])
    bucket = parts[2]
    prefix = "/".join(parts[3:]).replace("\\", "/").rstrip("/")
    if (
        not parts[0].endswith(":")
        or parts[1]
        or not bucket
        or prefix.startswith("/")
    ):
        raise ConfigurationError(
            f"The store location {location!r} is not a valid S3 location"
        )
    if prefix:
        prefix += "/"
    return Location(encryption, bucket, prefix)


@dataclass(frozen=True)
class StoreHandle:
    """
    Immutable description of where and how objects are stored.

    A handle is shared read-only by every stream and write issued against one
    store. Closing it releases the client; streams opened from it must not be
    used afterwards.
    """

    bucket: str
    prefix: str
    encryption: EncryptionMode
    client: StoreClient
    customer_key: CustomerKey | None = None

    @classmethod
    def from_location(
        cls,
        location: str,
        client: StoreClient | None = None,
        *,
        customer_key: CustomerKey | None = None,
        **client_options: Any,
    ) -> StoreHandle:
        """
        Build a handle from a location string.

        Parameters
        ----------
        location
            A location of the form `<scheme>://<bucket>/<prefix...>`.
        client
            The client used for all requests. When omitted an obstore
            [S3Store][obstore.store.S3Store] is created for the bucket,
            configured for the location's encryption mode.
            A supplied client for `s3e://` or `s3x://` must expose a `config`
            mapping that carries the mode's settings, as obstore stores do.
        customer_key
            Key for `s3x://` locations. Defaults to the process-wide key from
            [process_customer_key][obspec_bench.encryption.process_customer_key].
        **client_options
            Extra keyword arguments for the default `S3Store` (e.g. `region`,
            `endpoint`, `client_options`).

        Raises
        ------
        ConfigurationError
            If the location is malformed, or a supplied client is not
            configured for the location's encryption mode.
        """
        encryption, bucket, prefix = parse_location(location)
        if encryption is EncryptionMode.CUSTOMER_PROVIDED and customer_key is None:
            customer_key = process_customer_key()
        if client is None:
            client = _default_client(bucket, encryption, customer_key, client_options)
        elif not config_applies(
            encryption, customer_key, getattr(client, "config", None)
        ):
            raise ConfigurationError(
                f"The client for {location!r} is not configured for "
                f"{encryption.name} encryption"
            )
        logger.debug(
            "Opened store bucket=%s prefix=%r encryption=%s",
            bucket,
            prefix,
            encryption.name,
        )
        return cls(bucket, prefix, encryption, client, customer_key)

    def build_key(self, physical_path: str) -> str:
        """Object key for a path: the prefix followed by the path, unescaped."""
        return self.prefix + physical_path

    def close(self) -> None:
        """Release the client if it holds resources."""
        close = getattr(self.client, "close", None)
        if close is not None:
            close()


def _default_client(
    bucket: str,
    encryption: EncryptionMode,
    customer_key: CustomerKey | None,
    options: dict[str, Any],
) -> StoreClient:
    config = dict(options.pop("config", None) or {})
    config.update(s3_config(encryption, customer_key))
    return S3Store(bucket, config=config, **options)


__all__ = ["Location", "StoreClient", "StoreHandle", "parse_location"]
