"""
Cipher parameters shared by key generation, key encoding and encryption.

A single CipherConfig is built at start-up and handed to KeyCodec and
CipherEngine so every operation agrees on the same algorithm, modulus
length and OAEP hash.
"""

import os
from dataclasses import dataclass
from cryptography.hazmat.primitives import hashes


ALGORITHM_NAME = "RSA-OAEP"
DEFAULT_KEY_SIZE = 4096  # 512 bytes
DEFAULT_PUBLIC_EXPONENT = 65537
DEFAULT_HASH = "SHA-512"

# WebCrypto hash names
_HASHES = {
    "SHA-1": hashes.SHA1,
    "SHA-256": hashes.SHA256,
    "SHA-384": hashes.SHA384,
    "SHA-512": hashes.SHA512,
}


@dataclass(frozen=True)
class CipherConfig:
    """
    Fixed RSA-OAEP parameters.

    Attributes:
        key_size: Modulus length in bits
        public_exponent: RSA public exponent
        hash_name: Hash used by OAEP and MGF1
        algorithm: Algorithm identifier (only RSA-OAEP is supported)
    """
    key_size: int = DEFAULT_KEY_SIZE
    public_exponent: int = DEFAULT_PUBLIC_EXPONENT
    hash_name: str = DEFAULT_HASH
    algorithm: str = ALGORITHM_NAME

    def __post_init__(self):
        if self.algorithm != ALGORITHM_NAME:
            raise ValueError(f"Unsupported algorithm: {self.algorithm}")
        if self.hash_name not in _HASHES:
            raise ValueError(f"Unsupported hash: {self.hash_name}")
        if self.public_exponent not in (3, 65537):
            raise ValueError(f"Public exponent must be 3 or 65537, got {self.public_exponent}")
        if self.key_size < 1024 or self.key_size % 8:
            raise ValueError(f"Key size must be a multiple of 8 and at least 1024 bits, got {self.key_size}")
        if self.max_payload < 1:
            raise ValueError(f"{self.key_size}-bit keys cannot carry any payload with {self.hash_name}")

    @classmethod
    def from_env(cls) -> 'CipherConfig':
        """Build a config from TUBE_KEY_SIZE and TUBE_HASH"""
        return cls(
            key_size=int(os.getenv("TUBE_KEY_SIZE", str(DEFAULT_KEY_SIZE))),
            hash_name=os.getenv("TUBE_HASH", DEFAULT_HASH),
        )

    @property
    def key_size_bytes(self) -> int:
        return self.key_size // 8

    def hash_algorithm(self) -> hashes.HashAlgorithm:
        """Fresh hash instance for OAEP/MGF1"""
        return _HASHES[self.hash_name]()

    @property
    def hash_size_bytes(self) -> int:
        return _HASHES[self.hash_name].digest_size

    @property
    def max_payload(self) -> int:
        """Largest plaintext OAEP can carry with these parameters"""
        return self.key_size_bytes - 2 * self.hash_size_bytes - 2


DEFAULT_CONFIG = CipherConfig()
