"""Content checksums in ``<algorithm>:<hex digest>`` form."""

from __future__ import annotations

import hashlib
import hmac
import re
from typing import Tuple

from common.errors import LockfileError
from constants import Constants

_HEX = re.compile(r"^[0-9a-f]+$")
_DIGEST_SIZES = {"sha256": 64, "sha512": 128, "blake2b": 128}


def _hasher(algorithm: str):
    if algorithm not in Constants.SUPPORTED_CHECKSUM_ALGORITHMS:
        raise LockfileError(
            f"unsupported checksum algorithm '{algorithm}'; "
            f"expected one of {', '.join(Constants.SUPPORTED_CHECKSUM_ALGORITHMS)}"
        )
    return hashlib.new(algorithm)


def compute_checksum(content: bytes, algorithm: str = Constants.DEFAULT_CHECKSUM_ALGORITHM) -> str:
    """Digest of ``content`` prefixed with the algorithm name."""
    hasher = _hasher(algorithm)
    hasher.update(content)
    return f"{algorithm}:{hasher.hexdigest()}"


def parse_checksum(checksum: str) -> Tuple[str, str]:
    """Split and validate a checksum into ``(algorithm, hex digest)``."""
    algorithm, sep, digest = str(checksum).partition(":")
    if not sep or not digest:
        raise LockfileError(f"malformed checksum '{checksum}': expected '<algorithm>:<hex>'")
    _hasher(algorithm)
    digest = digest.lower()
    if not _HEX.match(digest) or len(digest) != _DIGEST_SIZES[algorithm]:
        raise LockfileError(f"malformed {algorithm} digest in checksum '{checksum}'")
    return algorithm, digest


def verify_checksum(content: bytes, checksum: str) -> bool:
    """True when ``content`` hashes to ``checksum`` under the algorithm it names."""
    algorithm, expected = parse_checksum(checksum)
    actual = compute_checksum(content, algorithm).partition(":")[2]
    return hmac.compare_digest(actual, expected)
