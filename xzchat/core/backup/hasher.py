from __future__ import annotations

import hashlib

_CHUNK = 1024 * 1024


def payload_digest(blob: bytes) -> str:
    """Hex sha256 of an encoded payload, as recorded in the index."""
    return hashlib.sha256(blob).hexdigest()


def file_digest(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(_CHUNK)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def digest_matches(path: str, expected: str) -> bool:
    # records written before digests existed carry an empty value
    if not expected:
        return True
    return file_digest(path) == expected
