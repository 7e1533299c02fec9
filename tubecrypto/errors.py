"""
Exceptions raised by the encryption layer.
"""


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class MalformedKeyError(CryptoError):
    """Encoded public key is not a valid key for the configured algorithm"""
    pass


class PayloadTooLargeError(CryptoError):
    """Plaintext exceeds what the padding scheme can carry"""
    pass


class DecryptionFailedError(CryptoError):
    """Ciphertext did not decrypt under the given private key"""
    pass


class KeyGenerationFailedError(CryptoError):
    """Key pair could not be generated"""
    pass


class KeyUsageError(CryptoError):
    """Key used for something it is not allowed to do"""
    pass
