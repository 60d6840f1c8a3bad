"""Content digests of seekable sources."""

from __future__ import annotations

import hashlib
from typing import IO

_READ_SIZE = 1024 * 1024


def compute_md5(source: IO[bytes]) -> bytes:
    """
    MD5 digest of everything in `source`.

    The source is read from position 0 and left at position 0, ready to be
    uploaded.
    """
    md5 = hashlib.md5()
    source.seek(0)
    while chunk := source.read(_READ_SIZE):
        md5.update(chunk)
    source.seek(0)
    return md5.digest()


__all__ = ["compute_md5"]
