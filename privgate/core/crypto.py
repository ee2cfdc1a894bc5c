from __future__ import annotations

import base64
import secrets
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from privgate.core.errors import CryptoError, CryptoErrorKind

BLOB_VERSION = 1
KDF_NAME = "scrypt"

# Alphabet without look-alike characters (0/O, 1/l/I).
_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


def generate_password(length: int = 24) -> str:
    """One-time export password. Returned to the caller once, never stored."""
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(max(16, int(length))))


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(max(16, int(nbytes)))


def _derive_key(password: str, salt: bytes, *, n: int, r: int, p: int) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=int(n), r=int(r), p=int(p))
    return kdf.derive(str(password).encode("utf-8"))


def encrypt_with_password(
    plaintext: bytes,
    password: str,
    *,
    aad: bytes = b"",
    n: int = 2**15,
    r: int = 8,
    p: int = 1,
) -> Dict[str, Any]:
    """
    AES-256-GCM with a scrypt-derived key.

    Returns a self-describing JSON-able blob; the password itself is never
    part of the output.
    """
    if not password:
        raise ValueError("password required")
    salt = secrets.token_bytes(16)
    nonce = secrets.token_bytes(12)
    key = _derive_key(password, salt, n=n, r=r, p=p)
    ct = AESGCM(key).encrypt(nonce, plaintext, aad or None)
    return {
        "v": BLOB_VERSION,
        "kdf": {"name": KDF_NAME, "n": int(n), "r": int(r), "p": int(p), "salt": _b64e(salt)},
        "nonce": _b64e(nonce),
        "ciphertext": _b64e(ct),
    }


def decrypt_with_password(blob: Dict[str, Any], password: str, *, aad: bytes = b"") -> bytes:
    """
    Inverse of encrypt_with_password. A wrong password or any tampering raises
    CryptoError(DECRYPTION_FAILED); garbage is never returned.
    """
    if not isinstance(blob, dict) or blob.get("v") != BLOB_VERSION:
        raise CryptoError(CryptoErrorKind.UNSUPPORTED_FORMAT, "Unsupported encrypted blob version.")
    kdf = blob.get("kdf") or {}
    if not isinstance(kdf, dict) or kdf.get("name") != KDF_NAME:
        raise CryptoError(CryptoErrorKind.UNSUPPORTED_FORMAT, "Unsupported key derivation.")
    try:
        salt = _b64d(str(kdf["salt"]))
        nonce = _b64d(str(blob["nonce"]))
        ct = _b64d(str(blob["ciphertext"]))
        key = _derive_key(str(password or ""), salt, n=int(kdf["n"]), r=int(kdf["r"]), p=int(kdf["p"]))
    except (KeyError, ValueError, TypeError) as e:
        raise CryptoError(CryptoErrorKind.UNSUPPORTED_FORMAT, "Malformed encrypted blob.") from e
    try:
        return AESGCM(key).decrypt(nonce, ct, aad or None)
    except InvalidTag as e:
        raise CryptoError(CryptoErrorKind.DECRYPTION_FAILED) from e
