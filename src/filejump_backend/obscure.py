"""Reversible obscuring of secrets stored in configuration.

This is not encryption: the key is fixed and public. It only keeps access
tokens from being readable at a glance in config files and environment
dumps, and is compatible with ``rclone obscure``.
"""

import base64
import binascii
import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

_CRYPT_KEY = bytes(
    [
        0x9C, 0x93, 0x5B, 0x48, 0x73, 0x0A, 0x55, 0x4D,
        0x6B, 0xFD, 0x7C, 0x63, 0xC8, 0x86, 0xA9, 0x2B,
        0xD3, 0x90, 0x19, 0x8E, 0xB8, 0x12, 0x8A, 0xFB,
        0xF4, 0xDE, 0x16, 0x2B, 0x8B, 0x95, 0xF6, 0x38,
    ]
)  # fmt: skip
_IV_SIZE = 16


def _crypt(data: bytes, iv: bytes) -> bytes:
    # CTR mode: encryption and decryption are the same operation
    cipher = Cipher(algorithms.AES(_CRYPT_KEY), modes.CTR(iv))
    transform = cipher.encryptor()
    return transform.update(data) + transform.finalize()


def obscure(plaintext: str) -> str:
    """Obscure a secret for storage in configuration.

    Args:
        plaintext: The secret to obscure.

    Returns:
        URL-safe base64 (unpadded) of a random IV followed by the AES-CTR ciphertext.
    """
    iv = os.urandom(_IV_SIZE)
    blob = iv + _crypt(plaintext.encode("utf-8"), iv)
    return base64.urlsafe_b64encode(blob).rstrip(b"=").decode("ascii")


def reveal(obscured: str) -> str:
    """Reverse obscure().

    Args:
        obscured: Value previously produced by obscure().

    Returns:
        The original secret.

    Raises:
        ValueError: If the value is not a valid obscured string.
    """
    padded = obscured + "=" * (-len(obscured) % 4)
    try:
        blob = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError(
            "base64 decode failed when revealing password - is it obscured?"
        ) from exc
    if len(blob) < _IV_SIZE:
        raise ValueError("input too short when revealing password - is it obscured?")
    iv, ciphertext = blob[:_IV_SIZE], blob[_IV_SIZE:]
    try:
        return _crypt(ciphertext, iv).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("revealed password is not valid UTF-8 - is it obscured?") from exc
