"""
Media Processing Layer.

This package handles operations on segment payloads, currently
AES-128 decryption of encrypted HLS segments.
"""

from .decryptor import SegmentDecryptor, decrypt, derive_iv

__all__ = ["SegmentDecryptor", "decrypt", "derive_iv"]
