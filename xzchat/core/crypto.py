from __future__ import annotations

import base64
import os
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt


ENVELOPE_VERSION = 1
ENVELOPE_ALG = "AES-256-GCM"
ENVELOPE_KDF = "scrypt"
DEFAULT_SCRYPT_N = 2**15
MIN_SCRYPT_N = 2
MAX_SCRYPT_N = 2**20


class DecryptionError(RuntimeError):
    pass


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


def derive_key(passphrase: str, salt: bytes, *, n: int = DEFAULT_SCRYPT_N) -> bytes:
    # AES-256 key
    kdf = Scrypt(salt=salt, length=32, n=int(n), r=8, p=1)
    return kdf.derive(passphrase.encode("utf-8"))


def best_effort_restrict_permissions(path: str) -> None:
    """
    Best-effort permissions tightening.
    On Windows this is limited; on POSIX it sets 0o600.
    """
    try:
        if os.name != "nt":
            os.chmod(path, 0o600)
    except OSError:
        return


def aesgcm_encrypt(key: bytes, plaintext: bytes, aad: bytes = b"") -> Dict[str, str]:
    aes = AESGCM(key)
    nonce = secrets.token_bytes(12)
    ct = aes.encrypt(nonce, plaintext, aad or None)
    return {"nonce": _b64e(nonce), "ciphertext": _b64e(ct)}


def aesgcm_decrypt(key: bytes, blob: Dict[str, str], aad: bytes = b"") -> bytes:
    aes = AESGCM(key)
    nonce = _b64d(blob["nonce"])
    ct = _b64d(blob["ciphertext"])
    return aes.decrypt(nonce, ct, aad or None)


def seal(plaintext: bytes, passphrase: str, *, n: int = DEFAULT_SCRYPT_N, aad: bytes = b"") -> Dict[str, Any]:
    """
    Encrypt with a key derived from the passphrase. The envelope carries the
    salt and KDF parameters, never the key.
    """
    salt = secrets.token_bytes(16)
    key = derive_key(passphrase, salt, n=n)
    blob = aesgcm_encrypt(key, plaintext, aad=aad)
    return {
        "v": ENVELOPE_VERSION,
        "alg": ENVELOPE_ALG,
        "kdf": ENVELOPE_KDF,
        "n": int(n),
        "salt": _b64e(salt),
        "nonce": blob["nonce"],
        "ciphertext": blob["ciphertext"],
    }


def _envelope_cost(raw: Any) -> int:
    # scrypt needs a power of two; anything above MAX_SCRYPT_N would ask for gigabytes
    n = int(DEFAULT_SCRYPT_N if raw is None else raw)
    if n < MIN_SCRYPT_N or n > MAX_SCRYPT_N or n & (n - 1):
        raise DecryptionError(f"Unsupported scrypt cost: {n}")
    return n


def unseal(envelope: Dict[str, Any], passphrase: str, *, aad: bytes = b"") -> bytes:
    if envelope.get("v") != ENVELOPE_VERSION:
        raise DecryptionError("Unsupported encrypted envelope version.")
    if envelope.get("alg") != ENVELOPE_ALG or envelope.get("kdf") != ENVELOPE_KDF:
        raise DecryptionError("Unsupported cipher or KDF.")
    try:
        n = _envelope_cost(envelope.get("n"))
        salt = _b64d(str(envelope["salt"]))
        key = derive_key(passphrase, salt, n=n)
        return aesgcm_decrypt(key, {"nonce": str(envelope["nonce"]), "ciphertext": str(envelope["ciphertext"])}, aad=aad)
    except InvalidTag as e:
        raise DecryptionError("Wrong passphrase or tampered ciphertext.") from e
    except (KeyError, ValueError, TypeError, MemoryError) as e:
        raise DecryptionError(f"Malformed envelope: {e}") from e


@dataclass(frozen=True)
class PassphraseProvider:
    """
    Resolves the backup passphrase from an explicit value or an environment variable.
    """

    env_var: str = "XZCHAT_BACKUP_PASSPHRASE"
    value: Optional[str] = None

    def get(self) -> Optional[str]:
        if self.value:
            return self.value
        v = os.environ.get(self.env_var)
        return v or None
