from __future__ import annotations

import gzip
import json
import zlib
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from xzchat.core.backup.models import BackupPayload
from xzchat.core.crypto import DEFAULT_SCRYPT_N, DecryptionError, seal, unseal
from xzchat.core.errors import CorruptPayloadError, PassphraseRequiredError


_AAD = b"xzchat.backup.payload.v1"


def canonical_json(value: Any) -> bytes:
    """
    Stable serialization: sorted keys, compact separators, UTF-8.
    Key order carries no meaning; it only makes equal values byte-equal.
    """
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


def compress(data: bytes, *, level: int = 6) -> bytes:
    # mtime=0 keeps output reproducible for identical input
    return gzip.compress(data, compresslevel=int(level), mtime=0)


def decompress(blob: bytes) -> bytes:
    try:
        return gzip.decompress(blob)
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptPayloadError("Backup payload is not a valid gzip container.", stage="decompress", error=str(e)) from e


def encode(
    payload: BackupPayload,
    *,
    encrypt: bool = False,
    passphrase: Optional[str] = None,
    compress_level: int = 6,
    scrypt_n: int = DEFAULT_SCRYPT_N,
) -> bytes:
    packed = compress(canonical_json(payload.model_dump(mode="json")), level=compress_level)
    if not encrypt:
        return packed
    if not passphrase:
        raise PassphraseRequiredError(backup_id=payload.backup_id)
    envelope = seal(packed, passphrase, n=scrypt_n, aad=_AAD)
    return canonical_json(envelope)


def decode_document(blob: bytes, *, encrypted: bool = False, passphrase: Optional[str] = None) -> Any:
    """
    Decrypt (if needed), decompress and parse a container into its raw JSON
    document, without checking its shape.
    """
    if encrypted:
        if not passphrase:
            raise CorruptPayloadError("Backup is encrypted and no passphrase was provided.", stage="decrypt")
        try:
            envelope = json.loads(blob.decode("utf-8"))
        except ValueError as e:
            raise CorruptPayloadError("Encrypted container is unreadable.", stage="decrypt", error=str(e)) from e
        if not isinstance(envelope, dict):
            raise CorruptPayloadError("Encrypted container is unreadable.", stage="decrypt")
        try:
            blob = unseal(envelope, passphrase, aad=_AAD)
        except DecryptionError as e:
            raise CorruptPayloadError("Backup could not be decrypted (wrong passphrase or tampered data).", stage="decrypt", error=str(e)) from e
    raw = decompress(blob)
    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError as e:
        raise CorruptPayloadError("Backup payload is not valid JSON.", stage="parse", error=str(e)) from e


def decode(blob: bytes, *, encrypted: bool = False, passphrase: Optional[str] = None) -> BackupPayload:
    doc = decode_document(blob, encrypted=encrypted, passphrase=passphrase)
    try:
        return BackupPayload.model_validate(doc)
    except PydanticValidationError as e:
        raise CorruptPayloadError("Backup payload has an invalid structure.", stage="parse", error=str(e.errors()[:3])) from e
