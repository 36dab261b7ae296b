"""
AES-128-CBC decryption of HLS segments.

Decryption favours availability: if a segment cannot be decrypted (wrong key,
wrong mode, or not actually encrypted) its original bytes are kept so the
acquisition still completes.
"""

import asyncio
import logging
import struct
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

log = logging.getLogger(__name__)

AES_BLOCK_BYTES = 16


def derive_iv(sequence_index: int) -> bytes:
    """12 zero bytes followed by the big-endian 32-bit sequence index."""
    return b"\x00" * 12 + struct.pack(">I", sequence_index & 0xFFFFFFFF)


def decrypt(
    cipher_bytes: bytes,
    key: bytes,
    explicit_iv: Optional[bytes],
    sequence_index: int,
) -> bytes:
    """
    Decrypts one segment. Returns `cipher_bytes` unchanged on any failure.

    Args:
        cipher_bytes: The encrypted segment body.
        key: The 16-byte AES key.
        explicit_iv: The playlist's IV attribute, if it declared one.
        sequence_index: The segment's media sequence number.
    """
    iv = explicit_iv if explicit_iv is not None else derive_iv(sequence_index)
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(cipher_bytes) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_BYTES * 8).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        log.debug(
            f"Decryption of segment {sequence_index} failed ({e}); keeping raw bytes."
        )
        return cipher_bytes


class SegmentDecryptor:
    """Decrypts segments off the event loop with a fixed key."""

    def __init__(self, key: bytes, explicit_iv: Optional[bytes] = None):
        self.key = key
        self.explicit_iv = explicit_iv

    async def __call__(self, sequence_index: int, data: bytes) -> bytes:
        return await asyncio.to_thread(
            decrypt, data, self.key, self.explicit_iv, sequence_index
        )
