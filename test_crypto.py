#!/usr/bin/env python3
"""
Tests for the encryption layer: key generation, key encoding and
RSA-OAEP encrypt/decrypt.
"""

import copy
import os
import pickle
import sys
from concurrent.futures import ThreadPoolExecutor
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from tubecrypto import (
    CipherConfig,
    CipherEngine,
    KeyCodec,
    DecryptionFailedError,
    KeyGenerationFailedError,
    KeyUsageError,
    MalformedKeyError,
    PayloadTooLargeError,
)


# Smaller keys keep the suite fast; the default config is covered separately
TEST_CONFIG = CipherConfig(key_size=2048)
codec = KeyCodec(TEST_CONFIG)
engine = CipherEngine(TEST_CONFIG)


def test_default_config():
    """Test the fixed default parameters"""
    print("Testing default config...")

    config = CipherConfig()
    assert config.algorithm == "RSA-OAEP"
    assert config.key_size == 4096
    assert config.key_size_bytes == 512
    assert config.public_exponent == 65537
    assert config.hash_name == "SHA-512"
    assert config.max_payload == 512 - 2 * 64 - 2
    assert TEST_CONFIG.max_payload == 256 - 2 * 64 - 2

    for bad in (
        dict(algorithm="RSA-PSS"),
        dict(hash_name="MD5"),
        dict(public_exponent=17),
        dict(key_size=512),
        dict(key_size=1024),  # no room left with SHA-512
    ):
        try:
            CipherConfig(**bad)
            assert False, f"Should have rejected {bad}"
        except ValueError:
            pass  # Expected

    print("✓ Default config works")


def test_hello_world():
    """Test the full scenario with the default 4096-bit keys"""
    print("Testing Hello World scenario...")

    default_codec = KeyCodec()
    default_engine = CipherEngine()
    message = "Hello World!".encode("utf-8")

    keys = default_codec.generate_keypair()
    ciphertext = default_engine.encrypt(keys.public_key, message)
    assert len(ciphertext) == 512, "Ciphertext should be one modulus long"
    assert default_engine.decrypt(keys.private_key, ciphertext) == message

    encoded = default_codec.encode_key(keys.public_key)
    imported = default_codec.decode_key(encoded)
    ciphertext = default_engine.encrypt(imported, message)
    decrypted = default_engine.decrypt(keys.private_key, ciphertext)
    assert decrypted.decode("utf-8") == "Hello World!"

    print("✓ Hello World scenario works")


def test_encrypt_decrypt():
    """Test round trips across payload sizes"""
    print("Testing encrypt/decrypt...")

    keys = codec.generate_keypair()

    for size in (0, 1, 16, engine.max_payload):
        plaintext = os.urandom(size)
        ciphertext = engine.encrypt(keys.public_key, plaintext)
        assert len(ciphertext) == TEST_CONFIG.key_size_bytes
        assert engine.decrypt(keys.private_key, ciphertext) == plaintext

    # Any bytes-like input is accepted
    data = bytearray(b"bytes-like")
    assert engine.decrypt(keys.private_key, engine.encrypt(keys.public_key, memoryview(data))) == bytes(data)

    print("✓ Encryption/decryption works")


def test_non_deterministic():
    """Test that OAEP randomizes every ciphertext"""
    print("Testing non-determinism...")

    keys = codec.generate_keypair()
    plaintext = b"same input twice"

    first = engine.encrypt(keys.public_key, plaintext)
    second = engine.encrypt(keys.public_key, plaintext)

    assert first != second, "Ciphertexts should differ"
    assert engine.decrypt(keys.private_key, first) == plaintext
    assert engine.decrypt(keys.private_key, second) == plaintext

    print("✓ Encryption is randomized")


def test_key_encoding():
    """Test encode/decode of public keys"""
    print("Testing key encoding...")

    keys = codec.generate_keypair()
    encoded = codec.encode_key(keys.public_key)

    assert encoded == codec.encode_key(keys.public_key), "Encoding should be deterministic"
    assert encoded[0] == 0x30, "Should be a DER SEQUENCE"

    imported = codec.decode_key(encoded)
    assert imported.imported
    assert not keys.public_key.imported
    assert imported.key_size == 2048

    ciphertext = engine.encrypt(imported, b"via imported key")
    assert engine.decrypt(keys.private_key, ciphertext) == b"via imported key"

    # Imported keys are encrypt-only and never re-exported
    try:
        codec.encode_key(imported)
        assert False, "Should have raised KeyUsageError"
    except KeyUsageError:
        pass  # Expected

    print("✓ Key encoding works")


def test_private_key_stays_private():
    """Test that private keys cannot be exported, copied or pickled"""
    print("Testing private key protection...")

    keys = codec.generate_keypair()

    for attempt in (
        lambda: codec.encode_key(keys.private_key),
        lambda: copy.copy(keys.private_key),
        lambda: copy.deepcopy(keys.private_key),
        lambda: pickle.dumps(keys.private_key),
    ):
        try:
            attempt()
            assert False, "Should have raised KeyUsageError"
        except KeyUsageError:
            pass  # Expected

    assert "PrivateKey" in repr(keys.private_key)

    try:
        keys.private_key._key = None
        assert False, "Should have raised AttributeError"
    except AttributeError:
        pass  # Expected

    print("✓ Private keys stay private")


def test_wrong_key_kinds():
    """Test that keys are only used for what they can do"""
    print("Testing key usage checks...")

    keys = codec.generate_keypair()
    ciphertext = engine.encrypt(keys.public_key, b"data")

    for attempt in (
        lambda: engine.encrypt(keys.private_key, b"data"),
        lambda: engine.decrypt(keys.public_key, ciphertext),
        lambda: CipherEngine().encrypt(keys.public_key, b"data"),
        lambda: KeyCodec().encode_key(keys.public_key),
    ):
        try:
            attempt()
            assert False, "Should have raised KeyUsageError"
        except KeyUsageError:
            pass  # Expected

    print("✓ Key usage checks work")


def test_cross_key_rejection():
    """Test that another key pair cannot decrypt"""
    print("Testing cross-key rejection...")

    alice = codec.generate_keypair()
    bob = codec.generate_keypair()
    ciphertext = engine.encrypt(alice.public_key, b"for alice only")

    try:
        engine.decrypt(bob.private_key, ciphertext)
        assert False, "Should have raised DecryptionFailedError"
    except DecryptionFailedError as e:
        wrong_key_message = str(e)
        assert e.__cause__ is None

    # Corrupted and truncated input fail the same way
    corrupted = bytearray(ciphertext)
    corrupted[10] ^= 0x01
    for bad in (bytes(corrupted), ciphertext[:-1], b"", ciphertext + b"\x00"):
        try:
            engine.decrypt(alice.private_key, bad)
            assert False, "Should have raised DecryptionFailedError"
        except DecryptionFailedError as e:
            assert str(e) == wrong_key_message, "Failures must be indistinguishable"

    print("✓ Cross-key rejection works")


def test_concurrent_use():
    """Test that one codec and engine can be shared across threads"""
    print("Testing concurrent use...")

    keys = codec.generate_keypair()
    encoded = codec.encode_key(keys.public_key)

    def round_trip(i):
        plaintext = f"message {i}".encode()
        public_key = codec.decode_key(encoded)
        return engine.decrypt(keys.private_key, engine.encrypt(public_key, plaintext)) == plaintext

    with ThreadPoolExecutor(max_workers=4) as pool:
        assert all(pool.map(round_trip, range(16)))

    print("✓ Concurrent use works")


def test_oversize_rejection():
    """Test payloads beyond the OAEP capacity"""
    print("Testing oversize rejection...")

    keys = codec.generate_keypair()

    try:
        engine.encrypt(keys.public_key, b"x" * (engine.max_payload + 1))
        assert False, "Should have raised PayloadTooLargeError"
    except PayloadTooLargeError:
        pass  # Expected

    print("✓ Oversize rejection works")


def test_malformed_keys():
    """Test decoding of things that are not valid public keys"""
    print("Testing malformed key rejection...")

    other_size = KeyCodec(CipherConfig(key_size=3072)).generate_keypair()
    other_encoded = KeyCodec(CipherConfig(key_size=3072)).encode_key(other_size.public_key)

    encoded = codec.encode_key(codec.generate_keypair().public_key)

    for blob in (
        os.urandom(294),
        b"",
        encoded[:-1],
        encoded + b"\x00",
        other_encoded,
        "not bytes",
    ):
        try:
            codec.decode_key(blob)
            assert False, "Should have raised MalformedKeyError"
        except MalformedKeyError:
            pass  # Expected

    # Well-formed keys that are the wrong kind, form or exponent
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key()
    low_exponent = rsa.generate_private_key(public_exponent=3, key_size=2048).public_key()
    ec_key = ec.generate_private_key(ec.SECP256R1()).public_key()

    for key, form, reason in (
        (ec_key, serialization.PublicFormat.SubjectPublicKeyInfo, "not an RSA key"),
        (rsa_key, serialization.PublicFormat.PKCS1, "not in SubjectPublicKeyInfo form"),
        (low_exponent, serialization.PublicFormat.SubjectPublicKeyInfo, "Unexpected public exponent"),
    ):
        blob = key.public_bytes(encoding=serialization.Encoding.DER, format=form)
        try:
            codec.decode_key(blob)
            assert False, "Should have raised MalformedKeyError"
        except MalformedKeyError as e:
            assert reason in str(e), str(e)

    print("✓ Malformed keys are rejected")


def test_key_generation_failure():
    """Test that backend failures surface as KeyGenerationFailedError"""
    print("Testing key generation failure...")

    from tubecrypto import keys as keys_module

    original = keys_module.rsa.generate_private_key

    def broken(**kwargs):
        raise ValueError("no entropy")

    keys_module.rsa.generate_private_key = broken
    try:
        codec.generate_keypair()
        assert False, "Should have raised KeyGenerationFailedError"
    except KeyGenerationFailedError:
        pass  # Expected
    finally:
        keys_module.rsa.generate_private_key = original

    print("✓ Key generation failures surface")


def run_all_tests():
    """Run all tests"""
    print("\n" + "="*50)
    print("Running Cryptographic Tests")
    print("="*50 + "\n")

    try:
        test_default_config()
        test_hello_world()
        test_encrypt_decrypt()
        test_non_deterministic()
        test_key_encoding()
        test_private_key_stays_private()
        test_wrong_key_kinds()
        test_cross_key_rejection()
        test_concurrent_use()
        test_oversize_rejection()
        test_malformed_keys()
        test_key_generation_failure()

        print("\n" + "="*50)
        print("✓ All tests passed!")
        print("="*50 + "\n")
        return 0

    except AssertionError as e:
        print(f"\n✗ Test failed: {e}")
        return 1
    except Exception as e:
        print(f"\n✗ Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(run_all_tests())
