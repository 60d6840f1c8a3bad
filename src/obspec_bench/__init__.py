from ._version import __version__
from .buffer import ChunkBuffer
from .encryption import CustomerKey, EncryptionMode, process_customer_key
from .errors import (
    ConfigurationError,
    ContractViolation,
    FatalReadError,
    ObspecBenchError,
    TransientFetchError,
    UploadError,
)
from .handle import StoreHandle, parse_location
from .session import RemoteObjectSession
from .store import ResourceStore
from .stream import SeekableObjectStream

__all__ = [
    "__version__",
    "ChunkBuffer",
    "ConfigurationError",
    "ContractViolation",
    "CustomerKey",
    "EncryptionMode",
    "FatalReadError",
    "ObspecBenchError",
    "RemoteObjectSession",
    "ResourceStore",
    "SeekableObjectStream",
    "StoreHandle",
    "TransientFetchError",
    "UploadError",
    "parse_location",
    "process_customer_key",
]
