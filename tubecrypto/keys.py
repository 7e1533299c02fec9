"""
Key generation and public key encoding.

Only public keys are ever encoded or decoded. PrivateKey has no
serialization method at all, and refuses to be copied or pickled, so the
private half of a key pair cannot leave the peer that generated it.
"""

from dataclasses import dataclass
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .config import CipherConfig, DEFAULT_CONFIG
from .errors import KeyGenerationFailedError, KeyUsageError, MalformedKeyError


class PublicKey:
    """
    Encrypt-only handle over an RSA public key.

    Keys returned by KeyCodec.decode_key are marked as imported and can
    only be used for encryption, never encoded again.
    """

    __slots__ = ("_key", "_config", "_imported")

    def __init__(self, key: rsa.RSAPublicKey, config: CipherConfig, imported: bool = False):
        object.__setattr__(self, "_key", key)
        object.__setattr__(self, "_config", config)
        object.__setattr__(self, "_imported", imported)

    def __setattr__(self, name, value):
        raise AttributeError("PublicKey is immutable")

    @property
    def config(self) -> CipherConfig:
        return self._config

    @property
    def imported(self) -> bool:
        return self._imported

    @property
    def key_size(self) -> int:
        return self._key.key_size

    def __repr__(self) -> str:
        origin = "imported" if self._imported else "generated"
        return f"<PublicKey {self._config.algorithm} {self.key_size}-bit {origin}>"


class PrivateKey:
    """Decrypt-only handle over an RSA private key"""

    __slots__ = ("_key", "_config")

    def __init__(self, key: rsa.RSAPrivateKey, config: CipherConfig):
        object.__setattr__(self, "_key", key)
        object.__setattr__(self, "_config", config)

    def __setattr__(self, name, value):
        raise AttributeError("PrivateKey is immutable")

    @property
    def config(self) -> CipherConfig:
        return self._config

    @property
    def key_size(self) -> int:
        return self._key.key_size

    def __copy__(self):
        raise KeyUsageError("Private keys cannot be copied")

    def __deepcopy__(self, memo):
        raise KeyUsageError("Private keys cannot be copied")

    def __reduce_ex__(self, protocol):
        raise KeyUsageError("Private keys cannot be serialized")

    def __repr__(self) -> str:
        return f"<PrivateKey {self._config.algorithm} {self.key_size}-bit>"


@dataclass(frozen=True)
class KeyPair:
    """
    Public and private key from a single generation event.

    Attributes:
        public_key: Key to publish to the other peer
        private_key: Key that stays with this peer
    """
    public_key: PublicKey
    private_key: PrivateKey


class KeyCodec:
    """
    Generates key pairs and converts public keys to and from
    SubjectPublicKeyInfo/DER.
    """

    def __init__(self, config: CipherConfig = DEFAULT_CONFIG):
        self.config = config

    def generate_keypair(self) -> KeyPair:
        """
        Generate a new RSA key pair.

        Returns:
            KeyPair bound to this codec's config

        Raises:
            KeyGenerationFailedError: If the backend cannot generate the key
        """
        try:
            private_key = rsa.generate_private_key(
                public_exponent=self.config.public_exponent,
                key_size=self.config.key_size
            )
        except Exception as e:
            raise KeyGenerationFailedError(f"Key generation failed: {e}") from e

        return KeyPair(
            public_key=PublicKey(private_key.public_key(), self.config),
            private_key=PrivateKey(private_key, self.config)
        )

    def encode_key(self, key: PublicKey) -> bytes:
        """
        Serialize a public key to DER SubjectPublicKeyInfo.

        Args:
            key: Public key from generate_keypair

        Returns:
            Encoded key bytes

        Raises:
            KeyUsageError: If the key is not a generated public key of this config
        """
        if not isinstance(key, PublicKey):
            raise KeyUsageError(f"Only public keys can be encoded, got {type(key).__name__}")
        if key.imported:
            raise KeyUsageError("Imported public keys cannot be encoded again")
        if key.config != self.config:
            raise KeyUsageError("Public key was generated under a different configuration")

        return key._key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )

    def decode_key(self, blob: bytes) -> PublicKey:
        """
        Parse an encoded public key received from the other peer.

        Args:
            blob: DER SubjectPublicKeyInfo bytes

        Returns:
            Encrypt-only public key

        Raises:
            MalformedKeyError: If the blob is not an RSA key matching the config
        """
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise MalformedKeyError(f"Encoded key must be bytes, got {type(blob).__name__}")
        blob = bytes(blob)

        try:
            key = serialization.load_der_public_key(blob)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise MalformedKeyError(f"Not a valid encoded public key: {e}") from e

        if not isinstance(key, rsa.RSAPublicKey):
            raise MalformedKeyError("Encoded key is not an RSA key")

        # DER is canonical, so anything that is not SPKI (e.g. bare PKCS#1) shows up here
        canonical = key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )
        if canonical != blob:
            raise MalformedKeyError("Encoded key is not in SubjectPublicKeyInfo form")

        if key.key_size != self.config.key_size:
            raise MalformedKeyError(
                f"Expected a {self.config.key_size}-bit key, got {key.key_size}-bit"
            )
        if key.public_numbers().e != self.config.public_exponent:
            raise MalformedKeyError("Unexpected public exponent")

        return PublicKey(key, self.config, imported=True)
