from __future__ import annotations

import gzip
import json

import pytest

from xzchat.core.backup import codec
from xzchat.core.backup.models import BackupKind, BackupPayload
from xzchat.core.errors import CorruptPayloadError, PassphraseRequiredError


def _payload() -> BackupPayload:
    return BackupPayload(
        backup_id="backup-1-abc",
        kind=BackupKind.full,
        created_at=1_700_000_000.0,
        data={"notes": {"n1": "päivää", "n2": "secret plans"}, "todos": {"t1": {"done": False}}, "env": {}},
    )


def test_plain_round_trip_is_gzip():
    blob = codec.encode(_payload())
    assert blob[:2] == b"\x1f\x8b"
    out = codec.decode(blob)
    assert out == _payload()


def test_encoding_is_reproducible_and_order_independent():
    p1 = _payload()
    p2 = _payload().model_copy(update={"data": {"env": {}, "todos": {"t1": {"done": False}}, "notes": {"n2": "secret plans", "n1": "päivää"}}})
    assert codec.encode(p1) == codec.encode(p2)


def test_encrypted_round_trip():
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    out = codec.decode(blob, encrypted=True, passphrase="pw")
    assert out.data == _payload().data
    assert codec.canonical_json(out.data) == codec.canonical_json(_payload().data)


def test_encrypted_container_carries_no_key_or_plaintext():
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    envelope = json.loads(blob.decode("utf-8"))
    assert set(envelope) == {"v", "alg", "kdf", "n", "salt", "nonce", "ciphertext"}
    assert b"secret plans" not in blob
    # fresh salt/nonce per encode
    blob2 = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    assert blob != blob2


def test_wrong_passphrase_is_corrupt_payload():
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    with pytest.raises(CorruptPayloadError):
        codec.decode(blob, encrypted=True, passphrase="not-pw")


def test_missing_passphrase_is_corrupt_payload():
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    with pytest.raises(CorruptPayloadError):
        codec.decode(blob, encrypted=True, passphrase=None)


def test_tampered_ciphertext_is_corrupt_payload():
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    envelope = json.loads(blob.decode("utf-8"))
    ct = envelope["ciphertext"]
    envelope["ciphertext"] = ("A" if ct[0] != "A" else "B") + ct[1:]
    with pytest.raises(CorruptPayloadError):
        codec.decode(json.dumps(envelope).encode("utf-8"), encrypted=True, passphrase="pw")


def test_encrypt_without_passphrase_is_rejected():
    with pytest.raises(PassphraseRequiredError):
        codec.encode(_payload(), encrypt=True, passphrase=None)


@pytest.mark.parametrize(
    "blob",
    [
        b"definitely not gzip",
        gzip.compress(b"{not json"),
        gzip.compress(b"[1, 2, 3]"),
        gzip.compress(json.dumps({"backup_id": "x"}).encode("utf-8")),
        gzip.compress(b"\xff\xfe\xfd"),
    ],
)
def test_garbage_is_corrupt_payload(blob):
    with pytest.raises(CorruptPayloadError):
        codec.decode(blob)


def test_decrypting_a_plain_payload_fails_cleanly():
    blob = codec.encode(_payload())
    with pytest.raises(CorruptPayloadError):
        codec.decode(blob, encrypted=True, passphrase="pw")


@pytest.mark.parametrize("cost", [2**40, 3, 0, -1024, "lots"])
def test_envelope_with_unusable_scrypt_cost_is_corrupt_payload(cost):
    blob = codec.encode(_payload(), encrypt=True, passphrase="pw", scrypt_n=2**10)
    envelope = json.loads(blob.decode("utf-8"))
    envelope["n"] = cost
    with pytest.raises(CorruptPayloadError) as ei:
        codec.decode(json.dumps(envelope).encode("utf-8"), encrypted=True, passphrase="pw")
    assert ei.value.context["stage"] == "decrypt"
