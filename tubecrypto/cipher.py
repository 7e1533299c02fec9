"""
RSA-OAEP encryption and decryption.

Encryption is randomized by OAEP, so the same plaintext under the same key
gives different ciphertext every time. Every decryption failure is
reported with the same exception and message.
"""

from cryptography.hazmat.primitives.asymmetric import padding

from .config import CipherConfig, DEFAULT_CONFIG
from .errors import DecryptionFailedError, KeyUsageError, PayloadTooLargeError
from .keys import PrivateKey, PublicKey


_DECRYPTION_FAILED = "Decryption failed"


def _as_bytes(data) -> bytes:
    """Copy any bytes-like object into bytes"""
    try:
        return memoryview(data).tobytes()
    except TypeError:
        raise TypeError(f"Expected bytes-like data, got {type(data).__name__}") from None


class CipherEngine:
    """
    Encrypts under a recipient's public key and decrypts under the
    holder's private key.
    """

    def __init__(self, config: CipherConfig = DEFAULT_CONFIG):
        self.config = config

    @property
    def max_payload(self) -> int:
        """Largest plaintext a single encrypt call accepts"""
        return self.config.max_payload

    def _padding(self) -> padding.OAEP:
        return padding.OAEP(
            mgf=padding.MGF1(algorithm=self.config.hash_algorithm()),
            algorithm=self.config.hash_algorithm(),
            label=None
        )

    def _check_config(self, key):
        if key.config != self.config:
            raise KeyUsageError("Key was created under a different configuration")

    def encrypt(self, public_key: PublicKey, data: bytes) -> bytes:
        """
        Encrypt data for the holder of the matching private key.

        Args:
            public_key: Recipient's public key (generated or imported)
            data: Plaintext, at most max_payload bytes

        Returns:
            Ciphertext, exactly key_size_bytes long

        Raises:
            PayloadTooLargeError: If data exceeds max_payload
            KeyUsageError: If public_key is not a PublicKey of this config
        """
        if not isinstance(public_key, PublicKey):
            raise KeyUsageError(f"Encryption requires a public key, got {type(public_key).__name__}")
        self._check_config(public_key)

        plaintext = _as_bytes(data)
        if len(plaintext) > self.max_payload:
            raise PayloadTooLargeError(
                f"Payload is {len(plaintext)} bytes, at most {self.max_payload} can be encrypted"
            )

        return public_key._key.encrypt(plaintext, self._padding())

    def decrypt(self, private_key: PrivateKey, data: bytes) -> bytes:
        """
        Decrypt ciphertext produced under the matching public key.

        Args:
            private_key: Our private key
            data: Ciphertext

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionFailedError: If the ciphertext does not decrypt under this key
            KeyUsageError: If private_key is not a PrivateKey of this config
        """
        if not isinstance(private_key, PrivateKey):
            raise KeyUsageError(f"Decryption requires a private key, got {type(private_key).__name__}")
        self._check_config(private_key)

        ciphertext = _as_bytes(data)
        try:
            return private_key._key.decrypt(ciphertext, self._padding())
        except ValueError:
            raise DecryptionFailedError(_DECRYPTION_FAILED) from None
