from __future__ import annotations

from typing import Any, Dict

# Keys whose values never reach logs, ops records or error payloads.
SECRET_KEYS = frozenset({"passphrase", "password", "secret", "token", "api_key", "key", "authorization"})

# Encrypted envelope material. Not secret on its own, but useless noise in a log line.
ENVELOPE_KEYS = frozenset({"ciphertext", "salt", "nonce"})

REDACTED = "***REDACTED***"


def is_sensitive_key(name: Any) -> bool:
    k = str(name).lower()
    if k in SECRET_KEYS or k in ENVELOPE_KEYS:
        return True
    return k.endswith(("_passphrase", "_password", "_token", "_secret"))


def redact(obj: Any) -> Any:
    """
    Copy of `obj` with sensitive dict values replaced. Lists and tuples are
    walked; other values are returned as-is.
    """
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            out[k] = REDACTED if is_sensitive_key(k) else redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    return obj
