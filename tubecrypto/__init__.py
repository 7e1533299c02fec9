"""
End-to-end encryption layer for Tube file sharing.

Implements:
- RSA-OAEP key pair generation (4096-bit, SHA-512 by default)
- Public key export/import as DER SubjectPublicKeyInfo
- Encryption with the recipient's public key, decryption with the
  matching private key
"""

from .config import CipherConfig, DEFAULT_CONFIG
from .keys import KeyCodec, KeyPair, PublicKey, PrivateKey
from .cipher import CipherEngine
from .errors import (
    CryptoError,
    MalformedKeyError,
    PayloadTooLargeError,
    DecryptionFailedError,
    KeyGenerationFailedError,
    KeyUsageError
)

__all__ = [
    'CipherConfig',
    'DEFAULT_CONFIG',
    'KeyCodec',
    'KeyPair',
    'PublicKey',
    'PrivateKey',
    'CipherEngine',
    'CryptoError',
    'MalformedKeyError',
    'PayloadTooLargeError',
    'DecryptionFailedError',
    'KeyGenerationFailedError',
    'KeyUsageError'
]
